"""
Snapshot Builder

Assembles the canonical ledger snapshot of a live, ready indexer:
1. Retrieve rune details and the balances map through a source strategy
2. Decode each spaced rune name into its numeral and spacer mask
3. Attach the rune's outpoints, sorted by (transaction hash, output index)
4. Return an immutable Snapshot in a deterministic rune order

Two source strategies exist because indexers expose the same ledger in two
shapes. Both produce the same canonical Snapshot.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import RuneNameError, RuneRecordError, SourceUnavailable
from .models import Outpoint, RejectedRune, RuneEntry, RuneTerms, Snapshot, sort_outpoints
from .ord_client import OrdClient
from .rune_name import decode_spaced_rune

logger = logging.getLogger(__name__)

LEDGER_FIRST = 'ledger-first'
BALANCE_FIRST = 'balance-first'
RETRIEVAL_MODES = (LEDGER_FIRST, BALANCE_FIRST)


# =============================================================================
#  Record Parsing
# =============================================================================

def parse_rune_id(rune_id: str) -> Tuple[int, int]:
    """Split a ``"block:tx"`` rune id into its integer parts."""
    block, sep, tx = str(rune_id).partition(':')
    if not sep:
        raise ValueError(f"Malformed rune id: {rune_id!r}")
    return int(block), int(tx)


def _bound(pair: Any, index: int) -> Optional[int]:
    if not isinstance(pair, (list, tuple)) or len(pair) <= index:
        return None
    return pair[index]


def parse_terms(terms: Optional[Dict[str, Any]]) -> Optional[RuneTerms]:
    """Flatten the indexer's ``{height: [start, end], offset: [start, end]}`` terms."""
    if not terms:
        return None
    height = terms.get('height')
    offset = terms.get('offset')
    return RuneTerms(
        amount=terms.get('amount'),
        cap=terms.get('cap'),
        height_start=_bound(height, 0),
        height_end=_bound(height, 1),
        offset_start=_bound(offset, 0),
        offset_end=_bound(offset, 1),
    )


def parse_outpoints(balances: Optional[Dict[str, Any]]) -> Tuple[Outpoint, ...]:
    """
    Turn a ``{"txhash:index": amount}`` mapping into sorted outpoints.

    A missing or empty mapping (a rune that was etched but never held)
    yields an empty tuple.
    """
    if not balances:
        return ()
    if not isinstance(balances, dict):
        raise TypeError(f"balances must map outpoints to amounts, got {type(balances).__name__}")
    return sort_outpoints([Outpoint.parse(key, amount) for key, amount in balances.items()])


def build_rune_entry(
    rune_id: str,
    detail: Dict[str, Any],
    balances: Optional[Dict[str, Any]]
) -> RuneEntry:
    """
    Build a canonical entry from one indexer rune record.

    Args:
        rune_id: ``"block:tx"`` id of the etching transaction
        detail: Rune detail as served by the indexer
        balances: The rune's outpoint balances, if any

    Raises:
        RuneRecordError: if the name, id, or any field cannot be decoded
    """
    spaced_rune = detail.get('spaced_rune')
    try:
        if not isinstance(spaced_rune, str):
            raise ValueError("missing spaced_rune in record")
        decoded = decode_spaced_rune(spaced_rune)
        block, tx = parse_rune_id(rune_id)
        return RuneEntry(
            number=detail['number'],
            block=block,
            tx=tx,
            minted=detail['mints'],
            burned=detail['burned'],
            divisibility=detail['divisibility'],
            premine=detail['premine'],
            rune=str(decoded.number),
            spacers=decoded.spacers,
            symbol=detail.get('symbol') or None,
            turbo=detail.get('turbo', False),
            terms=parse_terms(detail.get('terms')),
            outpoints=parse_outpoints(balances),
        )
    except (RuneNameError, KeyError, TypeError, ValueError) as e:
        raise RuneRecordError(rune_id, spaced_rune, e) from e


# =============================================================================
#  Source Strategies
# =============================================================================

class RuneSource(ABC):
    """
    Retrieval strategy: yields ``(rune_id, detail, balances)`` records in
    canonical order.
    """

    mode = ''

    def __init__(self, client: OrdClient):
        self.client = client

    @abstractmethod
    def records(self) -> List[Tuple[str, Dict[str, Any], Optional[Dict[str, Any]]]]:
        """Retrieve every rune record from the indexer."""


class LedgerFirstSource(RuneSource):
    """
    Page through ``/runes/{page}`` and join each entry with ``/runes/balances``.

    Consecutive pages overlap by one boundary entry, so the first entry of
    every page after the first is dropped. The final order is the reverse of
    the fetch order.
    """

    mode = LEDGER_FIRST

    def fetch_listing(self) -> List[Tuple[str, Dict[str, Any]]]:
        page = 0
        entries: List[Tuple[str, Dict[str, Any]]] = []

        while True:
            data = self.client.get_runes_page(page)
            page_entries = list(data['entries'])
            logger.debug(f"Fetched runes page {page}: {len(page_entries)} entries")

            if page > 0 and page_entries:
                dropped = page_entries.pop(0)
                if entries and dropped[0] != entries[-1][0]:
                    logger.warning(
                        f"Page {page} starts with {dropped[0]}, expected overlap with {entries[-1][0]}"
                    )

            for rune_id, detail in page_entries:
                entries.append((rune_id, detail))

            if not data.get('more'):
                break
            page += 1

        logger.info(f"Fetched {len(entries)} runes over {page + 1} pages")
        return entries

    def records(self):
        # the two endpoints are independent and read-only
        with ThreadPoolExecutor(max_workers=2) as executor:
            listing_future = executor.submit(self.fetch_listing)
            balances_future = executor.submit(self.client.get_rune_balances)
            listing = listing_future.result()
            balances = balances_future.result()

        records = [
            (rune_id, detail, balances.get(detail.get('spaced_rune')))
            for rune_id, detail in listing
        ]
        records.reverse()
        return records


class BalanceFirstSource(RuneSource):
    """
    Enumerate ``/runes/balances`` and fetch each rune's detail by name.

    Detail fetches run on a thread pool bounded by ``max_workers``. Records
    are ordered by etching number so that the result lines up with the
    ledger-first order.
    """

    mode = BALANCE_FIRST

    def __init__(self, client: OrdClient, max_workers: int = 8):
        super().__init__(client)
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.max_workers = max_workers

    def _fetch_detail(self, spaced_rune: str) -> Tuple[str, Dict[str, Any]]:
        payload = self.client.get_rune(spaced_rune)
        # ord wraps the entry as {"id": ..., "entry": {...}}
        detail = payload.get('entry', payload) if isinstance(payload, dict) else None
        if not isinstance(detail, dict):
            raise SourceUnavailable(f'/rune/{spaced_rune}', message=f"Unexpected rune payload for {spaced_rune}: {payload!r}")
        rune_id = payload.get('id') or detail.get('id')
        if 'spaced_rune' not in detail:
            detail = dict(detail, spaced_rune=spaced_rune)
        return rune_id, detail

    def records(self):
        balances = self.client.get_rune_balances()
        names = list(balances)
        logger.info(f"Fetching details for {len(names)} runes with {self.max_workers} workers")

        executor = ThreadPoolExecutor(max_workers=self.max_workers)
        try:
            futures = [executor.submit(self._fetch_detail, name) for name in names]
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future in done and future.exception() is not None:
                    raise future.exception()
            details = [future.result() for future in futures]
        finally:
            # queued fetches are dropped once one has failed
            executor.shutdown(wait=True, cancel_futures=True)

        records = [
            (rune_id, detail, balances[name])
            for name, (rune_id, detail) in zip(names, details)
        ]
        records.sort(key=lambda record: _etching_number(record[1]))
        return records


def _etching_number(detail: Dict[str, Any]) -> int:
    number = detail.get('number')
    return number if isinstance(number, int) else -1


def retrieval_source(mode: str, client: OrdClient, max_workers: int = 8) -> RuneSource:
    """Create the source strategy for a configured retrieval mode."""
    if mode == LEDGER_FIRST:
        return LedgerFirstSource(client)
    if mode == BALANCE_FIRST:
        return BalanceFirstSource(client, max_workers=max_workers)
    raise ValueError(f"Unknown retrieval mode {mode!r}; expected one of {', '.join(RETRIEVAL_MODES)}")


# =============================================================================
#  Builder
# =============================================================================

class SnapshotBuilder:
    """Builds canonical snapshots from a source strategy."""

    def __init__(self, source: RuneSource, strict: bool = False):
        """
        Args:
            source: Retrieval strategy bound to a live indexer
            strict: Abort on the first undecodable rune record instead of
                skipping it and listing it in ``Snapshot.rejected``
        """
        self.source = source
        self.strict = strict

    def build(self, height: int) -> Snapshot:
        """
        Capture the indexer's ledger at ``height``.

        Raises:
            SourceUnavailable: if any indexer request fails
            RuneRecordError: in strict mode, for an undecodable record
        """
        entries, rejected = self._assemble(self.source.records())
        if rejected:
            logger.warning(f"Skipped {len(rejected)} undecodable runes at height {height}")

        logger.info(f"Built snapshot for height {height}: {len(entries)} runes ({self.source.mode})")
        return Snapshot(height=height, runes=tuple(entries), rejected=tuple(rejected))

    def _assemble(self, records: Iterable) -> Tuple[List[RuneEntry], List[RejectedRune]]:
        entries = []
        rejected = []
        for rune_id, detail, balances in records:
            try:
                entries.append(build_rune_entry(rune_id, detail, balances))
            except RuneRecordError as e:
                if self.strict:
                    raise
                logger.warning(f"Skipping rune record: {e}")
                rejected.append(RejectedRune(rune_id=e.rune_id, spaced_rune=e.spaced_rune, reason=str(e.cause)))
        return entries, rejected

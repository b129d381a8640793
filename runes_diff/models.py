"""
Canonical ledger records captured from a runes indexer.

The ``to_dict`` methods define the persisted and compared form. Key order is
part of that form: the differ treats two mappings with the same keys in a
different order as divergent.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class RuneTerms:
    """Minting terms of a rune. ``None`` means the bound is absent."""
    amount: Optional[int] = None
    cap: Optional[int] = None
    height_start: Optional[int] = None
    height_end: Optional[int] = None
    offset_start: Optional[int] = None
    offset_end: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'amount': self.amount,
            'cap': self.cap,
            'height_start': self.height_start,
            'height_end': self.height_end,
            'offset_start': self.offset_start,
            'offset_end': self.offset_end,
        }


@dataclass(frozen=True)
class Outpoint:
    """A transaction output holding a balance of one rune."""
    transaction_hash: str
    output_index: int
    amount: int

    @classmethod
    def parse(cls, key: str, amount: Any) -> 'Outpoint':
        """
        Build an outpoint from a ``"txhash:index"`` key and its balance.

        Raises:
            ValueError: if the key or amount is malformed
        """
        tx_hash, sep, index = key.rpartition(':')
        if not sep or not tx_hash:
            raise ValueError(f"Malformed outpoint key: {key!r}")
        output_index = int(index)
        if output_index < 0:
            raise ValueError(f"Negative output index in outpoint {key!r}")
        value = int(amount)
        if value < 0:
            raise ValueError(f"Negative amount {amount!r} for outpoint {key!r}")
        return cls(transaction_hash=tx_hash, output_index=output_index, amount=value)

    def sort_key(self) -> Tuple[str, int]:
        return (self.transaction_hash, self.output_index)

    def to_dict(self) -> Dict[str, Any]:
        # amount is a decimal string so u128 balances survive any JSON reader
        return {
            'hash': self.transaction_hash,
            'index': self.output_index,
            'amount': str(self.amount),
        }


@dataclass(frozen=True)
class RuneEntry:
    """Full state of one rune at a height."""
    number: int
    block: int
    tx: int
    minted: int
    burned: int
    divisibility: int
    premine: int
    rune: str
    spacers: int
    symbol: Optional[str]
    turbo: bool
    terms: Optional[RuneTerms]
    outpoints: Tuple[Outpoint, ...] = ()

    @property
    def rune_id(self) -> str:
        return f"{self.block}:{self.tx}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'number': self.number,
            'block': self.block,
            'tx': self.tx,
            'minted': self.minted,
            'burned': self.burned,
            'divisibility': self.divisibility,
            'premine': self.premine,
            'rune': self.rune,
            'spacers': self.spacers,
            'symbol': self.symbol,
            'turbo': self.turbo,
            'terms': self.terms.to_dict() if self.terms is not None else None,
            'outpoints': [outpoint.to_dict() for outpoint in self.outpoints],
        }


@dataclass(frozen=True)
class RejectedRune:
    """A rune record that could not be decoded into a canonical entry."""
    rune_id: Optional[str]
    spaced_rune: Optional[str]
    reason: str


@dataclass(frozen=True)
class Snapshot:
    """
    Ledger state of one indexer at one height.

    ``rejected`` lists records skipped during a lenient build; it is reported
    but not persisted.
    """
    height: int
    runes: Tuple[RuneEntry, ...]
    rejected: Tuple[RejectedRune, ...] = field(default=(), compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'height': self.height,
            'runes': [entry.to_dict() for entry in self.runes],
        }


def sort_outpoints(outpoints: List[Outpoint]) -> Tuple[Outpoint, ...]:
    """Order outpoints by transaction hash, then numerically by output index."""
    return tuple(sorted(outpoints, key=Outpoint.sort_key))

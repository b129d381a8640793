"""
Exception hierarchy for the runes state verifier.

Codec errors describe a bad rune display name, source errors describe a failed
call against the indexer HTTP API, and lifecycle errors describe a failed
index-update/serve cycle for one height. Divergences found by the differ are
reported as data, not raised.
"""

from typing import Optional


class RunesDiffError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(RunesDiffError):
    """Configuration is missing or invalid."""


# ========== Rune name codec ==========

class RuneNameError(RunesDiffError, ValueError):
    """A spaced rune name could not be decoded."""

    def __init__(self, message: str, name: str):
        super().__init__(message)
        self.name = name


class InvalidCharacter(RuneNameError):
    def __init__(self, name: str, char: str, position: int):
        super().__init__(f"Invalid character {char!r} at position {position} in rune name {name!r}", name)
        self.char = char
        self.position = position


class DoubleSpacer(RuneNameError):
    def __init__(self, name: str):
        super().__init__(f"Double spacer in rune name {name!r}", name)


class TrailingSpacer(RuneNameError):
    def __init__(self, name: str):
        super().__init__(f"Trailing spacer in rune name {name!r}", name)


class LeadingSpacer(RuneNameError):
    def __init__(self, name: str):
        super().__init__(f"Leading spacer in rune name {name!r}", name)


class EmptyRuneName(RuneNameError):
    def __init__(self, name: str):
        super().__init__(f"Rune name {name!r} contains no letters", name)


class RuneRecordError(RunesDiffError):
    """A rune record from the indexer could not be turned into a canonical entry."""

    def __init__(self, rune_id: Optional[str], spaced_rune: Optional[str], cause: Exception):
        super().__init__(f"Rune {rune_id or '?'} ({spaced_rune!r}): {cause}")
        self.rune_id = rune_id
        self.spaced_rune = spaced_rune
        self.cause = cause


# ========== Indexer HTTP API ==========

class SourceUnavailable(RunesDiffError):
    """An indexer API request failed or returned an unusable payload."""

    def __init__(self, endpoint: str, cause: Optional[BaseException] = None, message: Optional[str] = None):
        super().__init__(message or f"Request to {endpoint} failed: {cause}")
        self.endpoint = endpoint
        self.cause = cause


# ========== Process lifecycle ==========

class LifecycleError(RunesDiffError):
    """The index-update/serve cycle for a height failed."""

    def __init__(self, message: str, height: int):
        super().__init__(message)
        self.height = height


class ProcessSpawnFailed(LifecycleError):
    def __init__(self, height: int, mode: str, cause: OSError):
        super().__init__(f"Could not start indexer in {mode} mode for height {height}: {cause}", height)
        self.mode = mode
        self.cause = cause


class IndexUpdateFailed(LifecycleError):
    def __init__(self, height: int, returncode: int):
        super().__init__(f"Index update for height {height} exited with code {returncode}", height)
        self.returncode = returncode


class HeightOvershoot(LifecycleError):
    def __init__(self, height: int, reported: int):
        super().__init__(f"Server reports height {reported}, beyond target height {height}", height)
        self.reported = reported


class ReadinessTimeout(LifecycleError):
    def __init__(self, height: int, waited: float, last_reported: Optional[int]):
        super().__init__(
            f"Server did not reach height {height} within {waited:.1f}s (last reported: {last_reported})",
            height,
        )
        self.waited = waited
        self.last_reported = last_reported


class ServerExited(LifecycleError):
    def __init__(self, height: int, returncode: int):
        super().__init__(f"Server exited with code {returncode} before reaching height {height}", height)
        self.returncode = returncode

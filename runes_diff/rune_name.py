"""
Rune Name Codec

Rune names are displayed as letters A-Z with optional spacer glyphs between
them (e.g. ``UNCOMMON•GOODS``). The canonical identity of a rune is the
bijective base-26 value of its letters plus a bitmask of spacer positions,
never the display string itself.

Bit ``k`` of the spacer mask is set when a spacer follows the ``(k+1)``-th
letter.
"""

from dataclasses import dataclass

from .errors import (
    DoubleSpacer,
    EmptyRuneName,
    InvalidCharacter,
    LeadingSpacer,
    TrailingSpacer,
)

SPACER_GLYPHS = ('.', '•')
DEFAULT_SPACER = '•'
ALPHABET_SIZE = 26


@dataclass(frozen=True)
class SpacedRune:
    """Decoded form of a spaced rune name."""
    number: int
    spacers: int


def rune_number(letters: str) -> int:
    """
    Decode a letter-only rune name as a bijective base-26 numeral.

    Every letter after the first adds one before the running value is
    multiplied, so ``A`` is 0, ``Z`` is 25, ``AA`` is 26 and ``BA`` is 52.

    Raises:
        EmptyRuneName: if ``letters`` is empty
        InvalidCharacter: for anything outside A-Z
    """
    if not letters:
        raise EmptyRuneName(letters)

    number = 0
    for i, char in enumerate(letters):
        if not ('A' <= char <= 'Z'):
            raise InvalidCharacter(letters, char, i)
        if i > 0:
            number += 1
        number *= ALPHABET_SIZE
        number += ord(char) - ord('A')
    return number


def decode_spaced_rune(spaced_name: str) -> SpacedRune:
    """
    Split a display name into its numeral value and spacer bitmask.

    Args:
        spaced_name: Display name such as ``"A.B"`` or ``"UNCOMMON•GOODS"``

    Returns:
        SpacedRune with the bijective numeral and the spacer bitmask

    Raises:
        InvalidCharacter: a character is neither A-Z nor a spacer glyph
        LeadingSpacer: a spacer appears before the first letter
        DoubleSpacer: the same gap is marked twice
        TrailingSpacer: a spacer follows the last letter
        EmptyRuneName: the name has no letters
    """
    letters = []
    spacers = 0

    for position, char in enumerate(spaced_name):
        if 'A' <= char <= 'Z':
            letters.append(char)
        elif char in SPACER_GLYPHS:
            if not letters:
                raise LeadingSpacer(spaced_name)
            flag = 1 << (len(letters) - 1)
            if spacers & flag:
                raise DoubleSpacer(spaced_name)
            spacers |= flag
        else:
            raise InvalidCharacter(spaced_name, char, position)

    if not letters:
        raise EmptyRuneName(spaced_name)

    # highest set bit must sit strictly before the final letter
    if spacers.bit_length() >= len(letters):
        raise TrailingSpacer(spaced_name)

    return SpacedRune(number=rune_number(''.join(letters)), spacers=spacers)


def rune_name(number: int) -> str:
    """Encode a rune numeral back into its letters (inverse of ``rune_number``)."""
    if number < 0:
        raise ValueError(f"Rune number must be non-negative, got {number}")

    chars = []
    n = number + 1
    while n > 0:
        n -= 1
        chars.append(chr(ord('A') + n % ALPHABET_SIZE))
        n //= ALPHABET_SIZE
    return ''.join(reversed(chars))


def format_spaced_rune(number: int, spacers: int, spacer: str = DEFAULT_SPACER) -> str:
    """Render the display form of a numeral and spacer mask."""
    letters = rune_name(number)
    if spacers.bit_length() >= len(letters):
        raise ValueError(f"Spacer mask {spacers:#b} does not fit rune {letters}")

    out = []
    for i, char in enumerate(letters):
        out.append(char)
        if spacers & (1 << i):
            out.append(spacer)
    return ''.join(out)

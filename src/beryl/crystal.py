"""Crystal: a 64-bit identifier packing producer id, sequence and timestamp.

Bit layout, most significant bit first:
- producer id: 14 bits (63..50), identity of the emitting generator
- sequence:     8 bits (49..42), ordinal within the millisecond
- timestamp:   42 bits (41..0),  milliseconds since an application-chosen epoch

The three parts tile the full 64 bits, so a Crystal with every part at its
maximum is the all-ones pattern. Crystals compare by their unsigned value
(producer id, then sequence, then timestamp); sort with ``chronological_key``
to order them by creation time.

Storage systems without unsigned 64-bit integers can keep the signed
two's-complement reinterpretation (``to_signed`` / ``from_signed``); the text
form is fixed-width Crockford base32, which sorts like the integer.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Final

from beryl.errors import BerylError, FieldOutOfBounds

PRODUCER_ID_BITS: Final[int] = 14
SEQUENCE_BITS: Final[int] = 8
TIMESTAMP_BITS: Final[int] = 42

PRODUCER_ID_MAX: Final[int] = (1 << PRODUCER_ID_BITS) - 1  # 0x3FFF
SEQUENCE_MAX: Final[int] = (1 << SEQUENCE_BITS) - 1  # 0xFF
TIMESTAMP_MAX: Final[int] = (1 << TIMESTAMP_BITS) - 1  # 0x3FFFFFFFFFF

SEQUENCE_SHIFT: Final[int] = TIMESTAMP_BITS
PRODUCER_ID_SHIFT: Final[int] = TIMESTAMP_BITS + SEQUENCE_BITS

U64_MASK: Final[int] = (1 << 64) - 1
I64_MIN: Final[int] = -(1 << 63)
I64_MAX: Final[int] = (1 << 63) - 1

_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_DECODE: Final[dict[str, int]] = {ch: i for i, ch in enumerate(_ALPHABET)}
TEXT_LENGTH: Final[int] = 13  # ceil(64 / 5)


class CrystalPart(str, enum.Enum):
    producer_id = "producer_id"
    sequence = "sequence"
    timestamp = "timestamp"


_LIMITS: Final[dict[CrystalPart, int]] = {
    CrystalPart.producer_id: PRODUCER_ID_MAX,
    CrystalPart.sequence: SEQUENCE_MAX,
    CrystalPart.timestamp: TIMESTAMP_MAX,
}


def check_part(part: CrystalPart, value: int) -> int:
    """Return ``value`` if it fits ``part``'s width, else raise FieldOutOfBounds."""
    limit = _LIMITS[part]
    if not 0 <= value <= limit:
        raise FieldOutOfBounds(part, value, limit)
    return value


def _encode_base32(value: int, length: int) -> str:
    chars: list[str] = []
    for _ in range(length):
        value, rem = divmod(value, 32)
        chars.append(_ALPHABET[rem])
    chars.reverse()
    return "".join(chars)


@dataclass(frozen=True, order=True)
class Crystal:
    """Immutable wrapper over the raw unsigned 64-bit pattern."""

    bits: int

    def __post_init__(self) -> None:
        if not isinstance(self.bits, int) or isinstance(self.bits, bool):
            raise TypeError(f"Crystal bits must be int, got {type(self.bits).__name__}")
        if not 0 <= self.bits <= U64_MASK:
            raise BerylError(f"Crystal bits out of unsigned 64-bit range: {self.bits}")

    # --- construction -------------------------------------------------

    @classmethod
    def from_parts(cls, producer_id: int, sequence: int, timestamp: int) -> Crystal:
        """Create a Crystal from its parts, rejecting any part wider than its field.

        Parts are checked in layout order; the first failure raises
        FieldOutOfBounds naming that part.
        """
        for part, value in zip(_LIMITS, (producer_id, sequence, timestamp)):
            check_part(part, value)
        return cls.from_parts_unchecked(producer_id, sequence, timestamp)

    @classmethod
    def from_parts_unchecked(cls, producer_id: int, sequence: int, timestamp: int) -> Crystal:
        """Pack parts without validating them.

        Only for callers that already guarantee each part fits its field (the
        generator). Oversized parts bleed into neighbouring fields; the result
        is truncated to 64 bits.
        """
        bits = (producer_id << PRODUCER_ID_SHIFT) | (sequence << SEQUENCE_SHIFT) | timestamp
        return cls(bits & U64_MASK)

    @classmethod
    def from_int(cls, value: int) -> Crystal:
        return cls(value)

    @classmethod
    def from_signed(cls, value: int) -> Crystal:
        """Reinterpret a signed 64-bit integer's bits as a Crystal."""
        if not I64_MIN <= value <= I64_MAX:
            raise BerylError(f"Value out of signed 64-bit range: {value}")
        return cls(value & U64_MASK)

    @classmethod
    def from_string(cls, text: str) -> Crystal:
        """Parse the 13-character base32 form produced by ``str(crystal)``."""
        norm = text.strip().upper()
        if len(norm) != TEXT_LENGTH:
            raise BerylError(f"Crystal text must be {TEXT_LENGTH} characters, got {len(norm)}")
        value = 0
        for ch in norm:
            digit = _DECODE.get(ch)
            if digit is None:
                raise BerylError(f"Invalid base32 character in Crystal text: {ch!r}")
            value = value * 32 + digit
        if value > U64_MASK:
            raise BerylError(f"Crystal text overflows 64 bits: {text!r}")
        return cls(value)

    # --- destructuring ------------------------------------------------

    @property
    def producer_id(self) -> int:
        return self.bits >> PRODUCER_ID_SHIFT

    @property
    def sequence(self) -> int:
        return (self.bits >> SEQUENCE_SHIFT) & SEQUENCE_MAX

    @property
    def timestamp(self) -> int:
        return self.bits & TIMESTAMP_MAX

    def parts(self) -> tuple[int, int, int]:
        return (self.producer_id, self.sequence, self.timestamp)

    def chronological_key(self) -> tuple[int, int, int]:
        """Sort key ordering Crystals by timestamp, then sequence, then producer id."""
        return (self.timestamp, self.sequence, self.producer_id)

    def timestamp_datetime(self, epoch: datetime) -> datetime:
        """Wall-clock time of creation, given the epoch the generator used."""
        if epoch.tzinfo is None:
            epoch = epoch.replace(tzinfo=timezone.utc)
        return epoch + timedelta(milliseconds=self.timestamp)

    # --- conversions --------------------------------------------------

    def to_int(self) -> int:
        return self.bits

    def to_signed(self) -> int:
        """Two's-complement reinterpretation of the bits as a signed 64-bit integer."""
        return self.bits - (1 << 64) if self.bits > I64_MAX else self.bits

    def __int__(self) -> int:
        return self.bits

    def __str__(self) -> str:
        return _encode_base32(self.bits, TEXT_LENGTH)

    def __repr__(self) -> str:
        return (
            f"Crystal(producer_id={self.producer_id}, sequence={self.sequence}, "
            f"timestamp={self.timestamp})"
        )


def encode(producer_id: int, sequence: int, timestamp: int) -> Crystal:
    return Crystal.from_parts(producer_id, sequence, timestamp)


def encode_unchecked(producer_id: int, sequence: int, timestamp: int) -> Crystal:
    return Crystal.from_parts_unchecked(producer_id, sequence, timestamp)


def decode(crystal: Crystal | int) -> tuple[int, int, int]:
    """Split a Crystal (or its raw unsigned value) into (producer_id, sequence, timestamp)."""
    if not isinstance(crystal, Crystal):
        crystal = Crystal.from_int(crystal)
    return crystal.parts()

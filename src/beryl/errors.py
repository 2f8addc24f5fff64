"""Exceptions raised by the Crystal codec and generators."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from beryl.crystal import CrystalPart


class BerylError(ValueError):
    """Base class for every error raised by beryl."""

    pass


class FieldOutOfBounds(BerylError):
    """Raised when a Crystal part does not fit its bit width."""

    def __init__(self, part: CrystalPart, value: int, limit: int):
        self.part = part
        self.value = value
        self.limit = limit
        super().__init__(
            f"Crystal part was out of bounds: {part.value}={value} (allowed 0..{limit})"
        )


class SequenceSpaceExhausted(BerylError):
    """Raised by ``try_generate`` when no sequence number is left this millisecond."""

    def __init__(self, producer_id: int, timestamp: int):
        self.producer_id = producer_id
        self.timestamp = timestamp
        super().__init__(
            f"Generator {producer_id} ran out of Crystals for millisecond {timestamp}"
        )

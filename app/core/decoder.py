"""Pure helpers turning raw holding-register words into scaled values.

Conventions:
- Every word is an unsigned 16-bit integer (0..65535).
- 32-bit values span two consecutive words; which one is more significant
  depends on the device firmware and is passed in as a ``WordOrder``.
- A point that does not fit in the words supplied decodes to ``None``.
  Callers record that as a missing value instead of substituting zero.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from app.core.register_map import RegisterPoint

UINT32_MAX = 0xFFFFFFFF


class WordOrder(str, Enum):
    """Which of two consecutive words carries the high 16 bits."""

    HIGH_FIRST = "high_first"
    LOW_FIRST = "low_first"


def _word(raw: Sequence[int], index: int) -> int:
    return int(raw[index]) & 0xFFFF


def decode16(raw: Sequence[int], offset: int, scale: float = 1) -> Optional[float]:
    """Decode one unsigned 16-bit word at ``offset`` and divide by ``scale``."""
    if offset < 0 or offset >= len(raw):
        return None
    return _word(raw, offset) / scale


def decode32(
    raw: Sequence[int],
    offset: int,
    word_order: WordOrder,
    scale: float = 1,
) -> Optional[float]:
    """Combine ``raw[offset]`` and ``raw[offset + 1]`` into an unsigned 32-bit value.

    Returns ``None`` when the second word is out of bounds.
    """
    if offset < 0 or offset + 1 >= len(raw):
        return None
    first, second = _word(raw, offset), _word(raw, offset + 1)
    if word_order is WordOrder.HIGH_FIRST:
        value = (first << 16) | second
    else:
        value = (second << 16) | first
    return value / scale


def encode32(value: int, word_order: WordOrder) -> Tuple[int, int]:
    """Split an unsigned 32-bit integer into two words in ``word_order``."""
    if not 0 <= value <= UINT32_MAX:
        raise ValueError(f"{value} does not fit in an unsigned 32-bit register pair")
    high, low = (value >> 16) & 0xFFFF, value & 0xFFFF
    if word_order is WordOrder.HIGH_FIRST:
        return high, low
    return low, high


def decode_point(
    raw: Sequence[int],
    point: "RegisterPoint",
    default_word_order: WordOrder,
) -> Optional[float]:
    """Decode ``point`` from the words of its read block.

    The point's own word order wins over ``default_word_order`` when set.
    """
    if point.width == 16:
        return decode16(raw, point.offset, point.scale)
    return decode32(raw, point.offset, point.word_order or default_word_order, point.scale)

"""Little-endian bit sets stored in byte arrays, one bit per attester."""

from __future__ import annotations


def new_bitmap(n: int) -> bytearray:
    """Return an all-clear bitmap with room for ``n`` bits."""
    if n < 0:
        raise ValueError(f"bitmap size must not be negative: {n}")
    return bytearray((n + 7) // 8)


def _in_range(bitmap: bytes | bytearray, index: int) -> bool:
    return 0 <= index < len(bitmap) * 8


def set_bit(bitmap: bytearray, index: int) -> None:
    """Set the bit at ``index``; indices outside the bitmap are ignored."""
    if _in_range(bitmap, index):
        bitmap[index // 8] |= 1 << (index % 8)


def is_set(bitmap: bytes | bytearray, index: int) -> bool:
    if not _in_range(bitmap, index):
        return False
    return bool(bitmap[index // 8] & (1 << (index % 8)))


def pop_count(bitmap: bytes | bytearray) -> int:
    return sum(byte.bit_count() for byte in bitmap)


def bitmap_or(dst: bytearray, src: bytes | bytearray) -> None:
    """OR ``src`` into ``dst`` over their common length."""
    for i, byte in enumerate(src[: len(dst)]):
        dst[i] |= byte


def bitmap_and(dst: bytearray, src: bytes | bytearray) -> None:
    """AND ``src`` into ``dst`` over their common length."""
    for i, byte in enumerate(src[: len(dst)]):
        dst[i] &= byte


def copy_bitmap(bitmap: bytes | bytearray | None) -> bytearray | None:
    return None if bitmap is None else bytearray(bitmap)


def clear_bitmap(bitmap: bytearray) -> None:
    bitmap[:] = bytes(len(bitmap))


def count_in_range(bitmap: bytes | bytearray, start: int, end: int) -> int:
    """Count set bits in ``[start, end)``, clipped to the bitmap."""
    return sum(is_set(bitmap, i) for i in range(start, min(end, len(bitmap) * 8)))
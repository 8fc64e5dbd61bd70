"""
Memory accessors handed to the evaluation runtime.

Accessors expose peek(address, size) / poke(address, size, value) over a
fixed window of emulated memory. Anything touching bytes at or beyond the
window reads as zero and ignores writes instead of faulting.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

VALID_SIZES = (1, 2, 4)


def in_window(address: int, size: int, window: int) -> bool:
    return size in VALID_SIZES and address >= 0 and address + size <= window


class BufferMemory:
    """Little-endian memory window over a bytearray (offline runs and tests)."""

    def __init__(self, size: int = 0x10000, data: bytes = b""):
        self.window = size
        self.data = bytearray(size)
        self.data[:len(data)] = data[:size]

    def peek(self, address: int, size: int) -> int:
        if not in_window(address, size, self.window):
            return 0
        return int.from_bytes(self.data[address:address + size], "little")

    def poke(self, address: int, size: int, value: int) -> None:
        if not in_window(address, size, self.window):
            return
        mask = (1 << (size * 8)) - 1
        self.data[address:address + size] = (value & mask).to_bytes(size, "little")


# =============================================================================
# Console Memory Maps
# =============================================================================

@dataclass(frozen=True)
class MemoryRegion:
    """A slice of the achievement address space backed by console memory."""
    start: int
    size: int
    real_address: int

    def contains(self, address: int, size: int) -> bool:
        return self.start <= address and address + size <= self.start + self.size


# Achievement addresses 0x00000-0x07FFF are IWRAM, 0x08000-0x47FFF EWRAM
GBA_REGIONS = (
    MemoryRegion(0x00000, 0x08000, 0x03000000),
    MemoryRegion(0x08000, 0x40000, 0x02000000),
)
GBA_WINDOW = 0x48000


def map_address(address: int, size: int, regions=GBA_REGIONS) -> Optional[int]:
    """
    Translate an achievement address to the console bus address.

    Returns None when the access is not fully inside one region.
    """
    for region in regions:
        if region.contains(address, size):
            return region.real_address + (address - region.start)
    return None

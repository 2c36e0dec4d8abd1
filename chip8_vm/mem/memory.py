"""
CHIP-8 VM — 4K Memory Map

Memory map:
  $000–$04F  Built-in hex digit font (16 glyphs × 5 bytes)
  $050–$1FF  Reserved (interpreter area on the original hardware)
  $200–$FFE  Program image + working data
  $FFF       Never addressable

Every access is bounds-checked: touching $FFF or anything past it is an
AddressFault. There is no wraparound.
"""

from pathlib import Path
from typing import Dict, Union

from ..faults import AddressFault

MEMORY_SIZE = 0x1000
MEMORY_LIMIT = 0xFFF      # first address that may never be touched
FONT_BASE = 0x000
PROGRAM_BASE = 0x200
GLYPH_HEIGHT = 5

# 8×5 glyphs, one row per byte, MSB = leftmost pixel
FONT = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])

MAX_PROGRAM_SIZE = MEMORY_LIMIT - PROGRAM_BASE


def glyph_address(digit: int) -> int:
    """Address of the built-in sprite for hex digit 0–F."""
    return FONT_BASE + digit * GLYPH_HEIGHT


class Memory:
    """4096-byte flat memory with bounds-checked access.

    The backing store is a bytearray; values are masked to 8 bits on write.
    """

    def __init__(self):
        self._mem = bytearray(MEMORY_SIZE)
        self.load_font()

    # --- Bounds ---

    @staticmethod
    def check_range(addr: int, length: int = 1, action: str = 'access'):
        """Raise AddressFault unless [addr, addr+length) lies below $FFF."""
        if addr < 0 or length < 0 or addr + length > MEMORY_LIMIT:
            raise AddressFault(
                f"cannot {action} {length} byte(s) at ${addr:03X} "
                f"(limit ${MEMORY_LIMIT:03X})")

    # --- Core read/write ---

    def read8(self, addr: int) -> int:
        self.check_range(addr, 1, 'read')
        return self._mem[addr]

    def write8(self, addr: int, value: int):
        self.check_range(addr, 1, 'write')
        self._mem[addr] = value & 0xFF

    def read16(self, addr: int) -> int:
        """Read 16-bit value (big-endian, CHIP-8 native byte order)."""
        self.check_range(addr, 2, 'read')
        return (self._mem[addr] << 8) | self._mem[addr + 1]

    def read_block(self, addr: int, length: int) -> bytes:
        self.check_range(addr, length, 'read')
        return bytes(self._mem[addr:addr + length])

    def write_block(self, addr: int, data: bytes):
        self.check_range(addr, len(data), 'write')
        self._mem[addr:addr + len(data)] = data

    # --- Bulk load ---

    def load_font(self):
        self._mem[FONT_BASE:FONT_BASE + len(FONT)] = FONT

    def load_binary(self, data: bytes, base_addr: int = PROGRAM_BASE):
        """Load a raw image at base_addr. Images that would reach $FFF fault."""
        data = bytes(data)
        self.check_range(base_addr, len(data), 'load')
        self._mem[base_addr:base_addr + len(data)] = data

    def load_file(self, path: Union[str, Path], base_addr: int = PROGRAM_BASE) -> int:
        data = Path(path).read_bytes()
        self.load_binary(data, base_addr)
        return len(data)

    def clear(self):
        """Zero everything and reload the font."""
        self._mem = bytearray(MEMORY_SIZE)
        self.load_font()

    # --- Snapshots ---

    def snapshot(self, start: int = PROGRAM_BASE, end: int = MEMORY_LIMIT) -> bytes:
        """Copy of [start, end) for later diffing."""
        return bytes(self._mem[start:end])

    @staticmethod
    def diff_snapshots(snap_a: bytes, snap_b: bytes,
                       base_addr: int = PROGRAM_BASE) -> Dict[int, tuple]:
        """Compare two snapshots, return {addr: (old, new)} for changes."""
        return {base_addr + offset: (old, new)
                for offset, (old, new) in enumerate(zip(snap_a, snap_b))
                if old != new}

    # --- Hex dump ---

    def hexdump(self, start: int, length: int = 256) -> str:
        """Hex dump of [start, start+length), clamped to the memory size."""
        lines = []
        end = min(start + length, MEMORY_SIZE)
        for addr in range(start, end, 16):
            row = self._mem[addr:min(addr + 16, end)]
            hex_bytes = ' '.join(f'{b:02X}' for b in row)
            ascii_bytes = ''.join(chr(b) if 0x20 <= b < 0x7F else '.' for b in row)
            lines.append(f'{addr:03X}  {hex_bytes:<47}  {ascii_bytes}')
        return '\n'.join(lines)

"""
CHIP-8 VM — Framebuffer + Display Sinks

The framebuffer is 32 rows × 64 pixels, each row one 64-bit int.
Column 0 is the most significant bit of the row, column 63 the least.
Only the draw instruction mutates it (XOR); CLS zeroes it.

A DisplaySink receives two kinds of event:
  clear()                         whole screen blanked
  update_region(top, rows)        rows[i] is the new 64-bit value of
                                  framebuffer row top + i
Sinks own all presentation. HeadlessDisplay keeps a mirror + event log
(for tests and --headless runs); TerminalDisplay paints with ANSI
escape sequences.
"""

import abc
import sys
from collections import deque
from typing import Deque, List, Optional, TextIO, Tuple

SCREEN_WIDTH = 64
SCREEN_HEIGHT = 32
ROW_MASK = (1 << SCREEN_WIDTH) - 1
DEFAULT_MAX_EVENTS = 256


def sprite_row_bits(sprite_byte: int, x: int) -> int:
    """Place an 8-pixel sprite row so its MSB lands in column x.

    Pixels pushed past column 63 are dropped, never wrapped.
    """
    return ((sprite_byte & 0xFF) << (SCREEN_WIDTH - 8)) >> x & ROW_MASK


def render_row(bits: int, on: str = '#', off: str = '.') -> str:
    return ''.join(on if (bits >> (SCREEN_WIDTH - 1 - col)) & 1 else off
                   for col in range(SCREEN_WIDTH))


class Framebuffer:
    """32 × 64-bit monochrome rows."""

    def __init__(self):
        self.rows: List[int] = [0] * SCREEN_HEIGHT

    def clear(self):
        self.rows = [0] * SCREEN_HEIGHT

    def xor_row(self, y: int, bits: int) -> bool:
        """XOR bits into row y. Returns True if any lit pixel went dark."""
        old = self.rows[y]
        self.rows[y] = (old ^ bits) & ROW_MASK
        return bool(old & bits)

    def pixel(self, x: int, y: int) -> int:
        return (self.rows[y] >> (SCREEN_WIDTH - 1 - x)) & 1

    def lit_count(self) -> int:
        return sum(bin(row).count('1') for row in self.rows)

    def render(self, on: str = '#', off: str = '.') -> str:
        return '\n'.join(render_row(row, on, off) for row in self.rows)


class DisplaySink(abc.ABC):
    """Consumer of framebuffer mutation events."""

    @abc.abstractmethod
    def clear(self):
        ...

    @abc.abstractmethod
    def update_region(self, top: int, rows: List[int]):
        ...

    def close(self):
        """Release any presentation resources. Optional."""


class HeadlessDisplay(DisplaySink):
    """In-memory sink: mirrors the screen and keeps the most recent events.

    Only the last `max_events` events are retained (None keeps them all);
    update_count counts every update regardless.
    """

    def __init__(self, max_events: Optional[int] = DEFAULT_MAX_EVENTS):
        self.rows: List[int] = [0] * SCREEN_HEIGHT
        self.events: Deque[Tuple[str, Optional[int], Tuple[int, ...]]] = deque(maxlen=max_events)
        self.update_count = 0

    def clear(self):
        self.rows = [0] * SCREEN_HEIGHT
        self.events.append(('clear', None, ()))

    def update_region(self, top: int, rows: List[int]):
        for i, bits in enumerate(rows):
            self.rows[top + i] = bits
        self.events.append(('update', top, tuple(rows)))
        self.update_count += 1

    def render(self, on: str = '#', off: str = '.') -> str:
        return '\n'.join(render_row(row, on, off) for row in self.rows)


class TerminalDisplay(DisplaySink):
    """ANSI terminal sink. Each pixel is one character cell."""

    def __init__(self, stream: Optional[TextIO] = None, on: str = '#', off: str = ' '):
        self.stream = stream or sys.stdout
        self.on = on
        self.off = off

    def clear(self):
        out = ['\x1b[2J\x1b[H']
        blank = self.off * SCREEN_WIDTH + '|'
        out.extend(blank + '\n' for _ in range(SCREEN_HEIGHT))
        out.append('\x1b[H')
        self.stream.write(''.join(out))
        self.stream.flush()

    def update_region(self, top: int, rows: List[int]):
        out = []
        for i, bits in enumerate(rows):
            # cursor positions are 1-based
            out.append(f'\x1b[{top + i + 1};1H')
            out.append(render_row(bits, self.on, self.off))
        out.append(f'\x1b[{SCREEN_HEIGHT + 1};1H')
        self.stream.write(''.join(out))
        self.stream.flush()

    def close(self):
        self.stream.write('\x1b[0m\n')
        self.stream.flush()

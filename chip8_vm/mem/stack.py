"""
CHIP-8 VM — Call Stack

Sixteen 16-bit return addresses with an independent stack pointer in
[0, 16]. The stack is not mapped into the 4K address space.
"""

from typing import List

from ..faults import StackOverflow, StackUnderflow

STACK_DEPTH = 16


class CallStack:
    """Fixed-capacity return-address stack."""

    __slots__ = ('_slots', 'sp')

    def __init__(self):
        self._slots: List[int] = [0] * STACK_DEPTH
        self.sp: int = 0

    def push(self, addr: int):
        if self.sp >= STACK_DEPTH:
            raise StackOverflow(
                f"call stack full ({STACK_DEPTH} return addresses)")
        self._slots[self.sp] = addr & 0xFFFF
        self.sp += 1

    def pop(self) -> int:
        if self.sp == 0:
            raise StackUnderflow("return with empty call stack")
        self.sp -= 1
        return self._slots[self.sp]

    @property
    def depth(self) -> int:
        return self.sp

    def frames(self) -> List[int]:
        """Live return addresses, oldest first."""
        return self._slots[:self.sp]

    def reset(self):
        self._slots = [0] * STACK_DEPTH
        self.sp = 0

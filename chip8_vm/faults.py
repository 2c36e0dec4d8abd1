"""
CHIP-8 VM — Fault Types

Every condition that ends a run is one of these. They are raised where the
problem is detected (memory, stack, instruction handlers) and turned into a
StopReason.FAULT result by Chip8Emulator.step(), so a caller can decide to
halt, log, or reset.

  AddressFault            memory access or instruction fetch at/after $FFF
  StackOverflow           CALL with 16 return addresses already stacked
  StackUnderflow          RET with an empty stack
  InvalidEncoding         sub-opcode field holds a disallowed value
  InvalidDigit            digit-sprite lookup outside 0–F
  UnsupportedInstruction  opcode / selector pair not defined by the ISA
"""

from typing import Optional


class VMFault(Exception):
    """Base class for all fatal VM conditions."""

    def __init__(self, message: str, pc: Optional[int] = None):
        super().__init__(message)
        self.pc = pc

    @property
    def kind(self) -> str:
        return type(self).__name__

    def __str__(self):
        msg = super().__str__()
        if self.pc is not None:
            return f"{msg} (at ${self.pc:03X})"
        return msg


class AddressFault(VMFault):
    pass


class StackOverflow(VMFault):
    pass


class StackUnderflow(VMFault):
    pass


class InvalidEncoding(VMFault):
    pass


class InvalidDigit(VMFault):
    pass


class UnsupportedInstruction(VMFault):
    pass

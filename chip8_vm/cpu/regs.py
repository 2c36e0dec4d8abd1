"""
CHIP-8 VM — CPU Register Set

Register model:
  V0–VF  16 × 8-bit general purpose registers
         VF doubles as the carry / borrow / collision flag
  I      16-bit address register
  PC     16-bit program counter (programs start at $200)

The delay/sound timers live in periph/timer.py because they are also
driven from outside the instruction loop. The stack pointer lives with the
call stack in mem/stack.py.
"""

PROGRAM_START = 0x200
NUM_V = 16
VF = 0xF


class Registers:
    """CHIP-8 register file.

    V is a bytearray, so stores of values outside 0–255 raise ValueError
    instead of silently widening; handlers mask with & 0xFF before storing.
    """

    __slots__ = ('V', '_I', '_PC')

    def __init__(self):
        self.V = bytearray(NUM_V)
        self._I = 0
        self._PC = PROGRAM_START

    # --- 16-bit registers (always masked) ---

    @property
    def I(self) -> int:
        return self._I

    @I.setter
    def I(self, value: int):
        self._I = value & 0xFFFF

    @property
    def PC(self) -> int:
        return self._PC

    @PC.setter
    def PC(self, value: int):
        self._PC = value & 0xFFFF

    # --- Flag register ---

    @property
    def flag(self) -> int:
        return self.V[VF]

    @flag.setter
    def flag(self, value: int):
        self.V[VF] = 1 if value else 0

    # --- Display ---

    def display(self) -> str:
        """Format register state for trace lines and CLI dumps."""
        v = ' '.join(f'{val:02X}' for val in self.V)
        return f"PC={self.PC:04X} I={self.I:04X} V=[{v}]"

    def reset(self):
        """Reset to power-on state."""
        self.V = bytearray(NUM_V)
        self._I = 0
        self._PC = PROGRAM_START

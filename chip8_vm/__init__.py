"""
CHIP-8 Virtual Machine
======================
A fetch-decode-execute interpreter for the CHIP-8 instruction set:
sixteen 8-bit V registers, a 16-bit I register, 4K of memory with the hex
font at $000 and programs at $200, a 16-deep call stack and a 64×32
monochrome framebuffer.

Architecture:
    ┌───────────┐    ┌──────────┐    ┌────────────────┐    ┌──────────────┐
    │ ROM image │───>│  Memory  │───>│ Decoder (word) │───>│  Dispatcher  │
    │ (.ch8)    │    │  ($200)  │    │  x/y/n/nn/nnn  │    │  (emu.py)    │
    └───────────┘    └──────────┘    └────────────────┘    └──────┬───────┘
                                                                  │
                    DisplaySink <── framebuffer events ───────────┤
                    InputSource <── keys / random bytes ──────────┤
                    Timers      <── DT / ST (ticked at 60 Hz) ────┘

Faults (faults.py) are returned to the caller as StopReason.FAULT rather
than ending the process.
"""

__version__ = "0.3.0"

from .config import EmulatorConfig, SPEED_PROFILES
from .cpu.decoder import Instruction, decode, disassemble, disassemble_program
from .emu import Chip8Emulator, RunResult, StopReason
from .faults import (
    VMFault, AddressFault, StackOverflow, StackUnderflow,
    InvalidEncoding, InvalidDigit, UnsupportedInstruction,
)
from .periph.display import DisplaySink, Framebuffer, HeadlessDisplay, TerminalDisplay
from .periph.keypad import InputSource, ScriptedKeypad
from .periph.timer import Timers, TimerClock

"""
CHIP-8 VM — Main Emulator Class

Integrates:
  - CPU registers (cpu/regs.py)
  - 4K memory + font (mem/memory.py)
  - Call stack (mem/stack.py)
  - Instruction decoder (cpu/decoder.py)
  - ALU helpers (cpu/alu.py)
  - Peripherals: framebuffer + display sink, keypad/RNG, DT/ST timers

Execution model (one step):
  1. Breakpoint check
  2. Fetch the big-endian word at PC (AddressFault if PC + 2 >= $FFF)
  3. PC += 2, decode
  4. Dispatch on the opcode family, then on its selector field
  5. Any VMFault ends the step with StopReason.FAULT; the fault is kept
     on `emulator.fault` and further steps refuse to run until reset()

Termination reasons for run():
  FAULT      a VMFault was raised (see faults.py)
  BREAK      breakpoint address reached (not yet executed)
  CANCELLED  cancellation requested between instructions
  LIMIT      instruction budget exhausted
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from .config import EmulatorConfig
from .cpu import alu
from .cpu.decoder import (
    Instruction, decode, disassemble,
    OP_SYS, OP_JP, OP_CALL, OP_SE_B, OP_SNE_B, OP_SE_R, OP_LD_B, OP_ADD_B,
    OP_RR, OP_SNE_R, OP_LD_I, OP_JP_V0, OP_RND, OP_DRW, OP_KEY, OP_SPEC,
    SYS_CLS, SYS_RET,
    RR_LD, RR_OR, RR_AND, RR_XOR, RR_ADD, RR_SUB, RR_SHR, RR_SUBN, RR_SHL,
    KEY_SKP, KEY_SKNP,
    SPEC_GET_DT, SPEC_GET_DT_ALT, SPEC_WAIT_KEY, SPEC_SET_DT, SPEC_SET_ST, SPEC_ADD_I,
    SPEC_DIGIT, SPEC_BCD, SPEC_STORE, SPEC_LOAD,
)
from .cpu.regs import Registers, PROGRAM_START, VF
from .faults import VMFault, AddressFault, InvalidEncoding, InvalidDigit, UnsupportedInstruction
from .mem.memory import Memory, MEMORY_LIMIT, PROGRAM_BASE, glyph_address
from .mem.stack import CallStack
from .periph.display import DisplaySink, Framebuffer, HeadlessDisplay, SCREEN_HEIGHT, sprite_row_bits
from .periph.keypad import InputSource, ScriptedKeypad
from .periph.timer import Timers, TimerClock

log = logging.getLogger(__name__)

# Falling further behind than this resynchronises the throttle instead of
# running a burst of catch-up instructions.
MAX_THROTTLE_LAG = 0.25


class StopReason(Enum):
    FAULT = 'FAULT'
    BREAK = 'BREAK'
    CANCELLED = 'CANCELLED'
    LIMIT = 'LIMIT'


@dataclass
class RunResult:
    reason: StopReason
    instructions: int
    fault: Optional[VMFault] = None
    pc: int = PROGRAM_START

    @property
    def ok(self) -> bool:
        return self.reason is not StopReason.FAULT


class Chip8Emulator:
    """CHIP-8 virtual machine.

    Usage:
        emu = Chip8Emulator()
        emu.load_program('ibm_logo.ch8')
        result = emu.run(max_instructions=1000)
        print(emu.fb.render())
    """

    def __init__(self, display: Optional[DisplaySink] = None,
                 keypad: Optional[InputSource] = None,
                 config: Optional[EmulatorConfig] = None):
        self.config = config or EmulatorConfig()

        # Core state
        self.regs = Registers()
        self.mem = Memory()
        self.stack = CallStack()
        self.fb = Framebuffer()
        self.timers = Timers()

        # External collaborators
        self.display = display if display is not None else HeadlessDisplay()
        self.keypad = keypad if keypad is not None else ScriptedKeypad(seed=self.config.rng_seed)

        self.fault: Optional[VMFault] = None
        self.instructions = 0
        self.waiting_for_key = False

        self._breakpoints: Set[int] = set()
        self._break_resume_pc: Optional[int] = None
        self._stop_event = threading.Event()

        self._trace = self.config.trace
        self._trace_output: List[str] = []

        self._dispatch = self._build_dispatch()
        self._rr_dispatch = self._build_rr_dispatch()
        self._key_dispatch = {
            KEY_SKP:  self._op_skp,
            KEY_SKNP: self._op_sknp,
        }
        self._spec_dispatch = self._build_spec_dispatch()

    # ══════════════════════════════════════════════
    # Loading
    # ══════════════════════════════════════════════

    def load_program(self, path_or_data) -> int:
        """Load a raw program image at $200 and point PC at it.

        Accepts a path (str / Path) or bytes-like data. Returns the size.
        """
        if isinstance(path_or_data, (str, Path)):
            data = Path(path_or_data).read_bytes()
            source = str(path_or_data)
        else:
            data = bytes(path_or_data)
            source = '<bytes>'
        self.mem.load_binary(data, PROGRAM_BASE)
        self.regs.PC = PROGRAM_BASE
        log.info("Loaded %d bytes from %s at $%03X", len(data), source, PROGRAM_BASE)
        return len(data)

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def step(self) -> Optional[StopReason]:
        """Execute one instruction. Returns a StopReason if stopped, else None."""
        if self.fault is not None:
            return StopReason.FAULT

        pc = self.regs.PC

        if pc in self._breakpoints and self._break_resume_pc != pc:
            self._break_resume_pc = pc
            return StopReason.BREAK
        self._break_resume_pc = None

        try:
            # fetch requires pc + 2 below $FFF, one byte stricter than data access
            if pc + 2 >= MEMORY_LIMIT:
                raise AddressFault(f"instruction fetch at ${pc:03X} reaches ${MEMORY_LIMIT:03X}")
            word = self.mem.read16(pc)
            ins = decode(word)
            self.regs.PC = pc + 2

            if self._trace:
                line = f"0x{pc:03X}: {word:04X}  {disassemble(word):<18} {self.regs.display()}"
                self._trace_output.append(line)
                log.debug(line)

            self._execute(ins)
        except VMFault as fault:
            if fault.pc is None:
                fault.pc = pc
            self.fault = fault
            log.error("%s: %s", fault.kind, fault)
            return StopReason.FAULT

        self.instructions += 1
        return None

    def run(self, max_instructions: Optional[int] = None,
            cancel: Optional[threading.Event] = None) -> RunResult:
        """Run until a stop condition.

        Args:
            max_instructions: budget for this call (defaults to config)
            cancel: optional Event; checked between instructions

        Returns:
            RunResult with the StopReason and, for FAULT, the fault
        """
        limit = max_instructions if max_instructions is not None else self.config.max_instructions
        interval = self.config.instruction_interval
        clock = TimerClock(self.timers, self.config.timer_hz) if self.config.realtime_timers else None

        log.info("Run start at $%03X (limit=%s, ips=%s)", self.regs.PC,
                 limit if limit is not None else 'none',
                 self.config.instructions_per_second or 'unthrottled')

        executed = 0
        if clock is not None:
            clock.start()
        try:
            next_time = time.perf_counter()
            while True:
                if self._stop_event.is_set() or (cancel is not None and cancel.is_set()):
                    self._stop_event.clear()
                    reason = StopReason.CANCELLED
                    break
                if limit is not None and executed >= limit:
                    reason = StopReason.LIMIT
                    break

                reason = self.step()
                if reason is not None:
                    break
                executed += 1

                if interval is not None:
                    next_time += interval
                    delay = next_time - time.perf_counter()
                    if delay > 0:
                        time.sleep(delay)
                    elif delay < -MAX_THROTTLE_LAG:
                        next_time = time.perf_counter()
        finally:
            if clock is not None:
                clock.stop()

        result = RunResult(
            reason=reason,
            instructions=executed,
            fault=self.fault if reason is StopReason.FAULT else None,
            pc=self.regs.PC,
        )
        log.info("Run stopped: %s after %d instructions at $%03X",
                 reason.value, executed, self.regs.PC)
        return result

    def request_stop(self):
        """Ask a running run() to return CANCELLED. Safe from other threads."""
        self._stop_event.set()

    # ══════════════════════════════════════════════
    # Dispatch
    # ══════════════════════════════════════════════

    def _execute(self, ins: Instruction):
        self._dispatch[ins.opcode](ins)

    def _build_dispatch(self) -> Dict[int, Callable[[Instruction], None]]:
        """Opcode family → handler. Covers all 16 families."""
        return {
            OP_SYS:   self._op_sys,
            OP_JP:    self._op_jp,
            OP_CALL:  self._op_call,
            OP_SE_B:  self._op_se_b,
            OP_SNE_B: self._op_sne_b,
            OP_SE_R:  self._op_se_r,
            OP_LD_B:  self._op_ld_b,
            OP_ADD_B: self._op_add_b,
            OP_RR:    self._op_rr,
            OP_SNE_R: self._op_sne_r,
            OP_LD_I:  self._op_ld_i,
            OP_JP_V0: self._op_jp_v0,
            OP_RND:   self._op_rnd,
            OP_DRW:   self._op_drw,
            OP_KEY:   self._op_key,
            OP_SPEC:  self._op_spec,
        }

    def _build_rr_dispatch(self) -> Dict[int, Callable[[int, int], None]]:
        """8xyN selector → handler(x, y)."""
        return {
            RR_LD:   self._rr_ld,
            RR_OR:   self._rr_or,
            RR_AND:  self._rr_and,
            RR_XOR:  self._rr_xor,
            RR_ADD:  self._rr_add,
            RR_SUB:  self._rr_sub,
            RR_SHR:  self._rr_shr,
            RR_SUBN: self._rr_subn,
            RR_SHL:  self._rr_shl,
        }

    def _build_spec_dispatch(self) -> Dict[int, Callable[[int], None]]:
        """FxNN selector → handler(x)."""
        return {
            SPEC_GET_DT:   self._spec_get_dt,
            SPEC_GET_DT_ALT: self._spec_get_dt,
            SPEC_WAIT_KEY: self._spec_wait_key,
            SPEC_SET_DT:   self._spec_set_dt,
            SPEC_SET_ST:   self._spec_set_st,
            SPEC_ADD_I:    self._spec_add_i,
            SPEC_DIGIT:    self._spec_digit,
            SPEC_BCD:      self._spec_bcd,
            SPEC_STORE:    self._spec_store,
            SPEC_LOAD:     self._spec_load,
        }

    def _skip(self):
        self.regs.PC += 2

    # ── System / flow control ──

    def _op_sys(self, ins: Instruction):
        if ins.nnn == SYS_CLS:
            self.fb.clear()
            self.display.clear()
        elif ins.nnn == SYS_RET:
            self.regs.PC = self.stack.pop()
        else:
            raise UnsupportedInstruction(f"machine-code routine call {ins} is not supported")

    def _op_jp(self, ins: Instruction):
        self.regs.PC = ins.nnn

    def _op_call(self, ins: Instruction):
        self.stack.push(self.regs.PC)
        self.regs.PC = ins.nnn

    def _op_jp_v0(self, ins: Instruction):
        self.regs.PC = self.regs.V[0] + ins.nnn

    # ── Conditional skips ──

    def _op_se_b(self, ins: Instruction):
        if self.regs.V[ins.x] == ins.nn:
            self._skip()

    def _op_sne_b(self, ins: Instruction):
        if self.regs.V[ins.x] != ins.nn:
            self._skip()

    def _op_se_r(self, ins: Instruction):
        if ins.n != 0:
            raise InvalidEncoding(f"SE V{ins.x:X}, V{ins.y:X} needs n=0, got n={ins.n} ({ins})")
        if self.regs.V[ins.x] == self.regs.V[ins.y]:
            self._skip()

    def _op_sne_r(self, ins: Instruction):
        if ins.n != 0:
            raise InvalidEncoding(f"SNE V{ins.x:X}, V{ins.y:X} needs n=0, got n={ins.n} ({ins})")
        if self.regs.V[ins.x] != self.regs.V[ins.y]:
            self._skip()

    # ── Immediates / I register ──

    def _op_ld_b(self, ins: Instruction):
        self.regs.V[ins.x] = ins.nn

    def _op_add_b(self, ins: Instruction):
        # no carry flag for 7xnn
        self.regs.V[ins.x] = (self.regs.V[ins.x] + ins.nn) & 0xFF

    def _op_ld_i(self, ins: Instruction):
        self.regs.I = ins.nnn

    def _op_rnd(self, ins: Instruction):
        self.regs.V[ins.x] = self.keypad.random_byte() & ins.nn

    # ── Register-register group ──

    def _op_rr(self, ins: Instruction):
        handler = self._rr_dispatch.get(ins.n)
        if handler is None:
            raise InvalidEncoding(f"unknown register-register selector n=0x{ins.n:X} ({ins})")
        handler(ins.x, ins.y)

    def _rr_set(self, x: int, result: int, vf: int):
        # result first, flag last: 8Fy4 etc. leave the flag in VF
        self.regs.V[x] = result
        self.regs.V[VF] = vf

    def _rr_ld(self, x, y):
        self.regs.V[x] = self.regs.V[y]

    def _rr_or(self, x, y):
        self.regs.V[x] = alu.or8(self.regs.V[x], self.regs.V[y])

    def _rr_and(self, x, y):
        self.regs.V[x] = alu.and8(self.regs.V[x], self.regs.V[y])

    def _rr_xor(self, x, y):
        self.regs.V[x] = alu.xor8(self.regs.V[x], self.regs.V[y])

    def _rr_add(self, x, y):
        self._rr_set(x, *alu.add8(self.regs.V[x], self.regs.V[y]))

    def _rr_sub(self, x, y):
        self._rr_set(x, *alu.sub8(self.regs.V[x], self.regs.V[y]))

    def _rr_shr(self, x, y):
        self._rr_set(x, *alu.shr8(self.regs.V[x]))

    def _rr_subn(self, x, y):
        self._rr_set(x, *alu.subn8(self.regs.V[x], self.regs.V[y]))

    def _rr_shl(self, x, y):
        self._rr_set(x, *alu.shl8(self.regs.V[x]))

    # ── Display ──

    def _op_drw(self, ins: Instruction):
        """Dxyn: XOR an n-row sprite from [I] at (Vx, Vy).

        Rows at or below screen row 32 are clipped; pixels past column 63
        are dropped. VF = 1 if any lit pixel was turned off.
        """
        vx = self.regs.V[ins.x]
        vy = self.regs.V[ins.y]
        count = max(0, min(ins.n, SCREEN_HEIGHT - vy))
        sprite = self.mem.read_block(self.regs.I, count) if count else b''

        collision = False
        drawn = []
        for row, sprite_byte in enumerate(sprite):
            y = vy + row
            if self.fb.xor_row(y, sprite_row_bits(sprite_byte, vx)):
                collision = True
            drawn.append(self.fb.rows[y])

        self.regs.flag = collision
        if drawn:
            self.display.update_region(vy, drawn)

    # ── Keypad group ──

    def _op_key(self, ins: Instruction):
        handler = self._key_dispatch.get(ins.nn)
        if handler is None:
            raise UnsupportedInstruction(f"unknown key instruction selector 0x{ins.nn:02X} ({ins})")
        handler(ins.x)

    def _op_skp(self, x: int):
        if self.keypad.is_key_down(self.regs.V[x] & 0xF):
            self._skip()

    def _op_sknp(self, x: int):
        if not self.keypad.is_key_down(self.regs.V[x] & 0xF):
            self._skip()

    # ── Special group ──

    def _op_spec(self, ins: Instruction):
        handler = self._spec_dispatch.get(ins.nn)
        if handler is None:
            raise UnsupportedInstruction(f"unknown special instruction selector 0x{ins.nn:02X} ({ins})")
        handler(ins.x)

    def _spec_get_dt(self, x: int):
        self.regs.V[x] = self.timers.dt

    def _spec_wait_key(self, x: int):
        key = self.keypad.wait_key()
        if key is None:
            # re-execute Fx0A on the next step
            self.regs.PC -= 2
            self.waiting_for_key = True
            return
        self.waiting_for_key = False
        self.regs.V[x] = key & 0xF

    def _spec_set_dt(self, x: int):
        self.timers.dt = self.regs.V[x]

    def _spec_set_st(self, x: int):
        self.timers.st = self.regs.V[x]

    def _spec_add_i(self, x: int):
        self.regs.I += self.regs.V[x]

    def _spec_digit(self, x: int):
        digit = self.regs.V[x]
        if digit >= 16:
            raise InvalidDigit(f"V{x:X}=0x{digit:02X} is not a hexadecimal digit")
        self.regs.I = glyph_address(digit)

    def _spec_bcd(self, x: int):
        self.mem.write_block(self.regs.I, bytes(alu.bcd8(self.regs.V[x])))

    def _spec_store(self, x: int):
        self.mem.write_block(self.regs.I, bytes(self.regs.V[:x + 1]))

    def _spec_load(self, x: int):
        self.regs.V[:x + 1] = self.mem.read_block(self.regs.I, x + 1)

    # ══════════════════════════════════════════════
    # Breakpoints
    # ══════════════════════════════════════════════

    def add_breakpoint(self, addr: int):
        """Execution stops (BREAK) before the instruction at addr runs."""
        self._breakpoints.add(addr & 0xFFFF)

    def remove_breakpoint(self, addr: int):
        self._breakpoints.discard(addr & 0xFFFF)

    def clear_breakpoints(self):
        self._breakpoints.clear()

    # ══════════════════════════════════════════════
    # Trace / Debug
    # ══════════════════════════════════════════════

    def enable_trace(self, enable: bool = True):
        self._trace = enable

    def get_trace(self) -> str:
        return '\n'.join(self._trace_output)

    def clear_trace(self):
        self._trace_output.clear()

    def reset(self):
        """Back to power-on state: font reloaded, program area zeroed."""
        self.regs.reset()
        self.mem.clear()
        self.stack.reset()
        self.timers.reset()
        self.fb.clear()
        self.display.clear()
        self.fault = None
        self.instructions = 0
        self.waiting_for_key = False
        self._break_resume_pc = None
        self._stop_event.clear()
        self._breakpoints.clear()
        self._trace_output.clear()

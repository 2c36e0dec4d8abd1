"""
CHIP-8 VM — Core Instruction Tests

Each test hand-assembles a few big-endian words at $200 and single-steps
the emulator. Fault tests check the typed result: step() returns
StopReason.FAULT and the fault instance is left on emu.fault.
"""

import sys
import os
import random
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from chip8_vm.emu import Chip8Emulator, StopReason
from chip8_vm.faults import (
    AddressFault, StackOverflow, StackUnderflow,
    InvalidEncoding, InvalidDigit, UnsupportedInstruction,
)
from chip8_vm.periph.display import HeadlessDisplay
from chip8_vm.periph.keypad import ScriptedKeypad


def _emu(*words, **kwargs) -> Chip8Emulator:
    """Emulator with the given instruction words loaded at $200."""
    emu = Chip8Emulator(**kwargs)
    emu.load_program(b''.join(w.to_bytes(2, 'big') for w in words))
    return emu


def _steps(emu: Chip8Emulator, count: int):
    for _ in range(count):
        assert emu.step() is None, f"unexpected stop: {emu.fault}"


def _assert_fault(emu: Chip8Emulator, fault_type, pc=None):
    assert emu.step() is StopReason.FAULT
    assert isinstance(emu.fault, fault_type)
    if pc is not None:
        assert emu.fault.pc == pc


# ═══════════════════════════════════════════════
# Flow control
# ═══════════════════════════════════════════════

class TestFlowControl:

    def test_fetch_advances_pc(self):
        emu = _emu(0x6001)
        _steps(emu, 1)
        assert emu.regs.PC == 0x202
        assert emu.instructions == 1

    def test_jump(self):
        emu = _emu(0x1300)
        _steps(emu, 1)
        assert emu.regs.PC == 0x300

    def test_jump_with_offset(self):
        emu = _emu(0x6004, 0xB300)
        _steps(emu, 2)
        assert emu.regs.PC == 0x304

    def test_call_then_return(self):
        emu = _emu(
            0x2206,  # 200: CALL 206
            0x6155,  # 202: LD V1, 55
            0x1204,  # 204: JP 204
            0x6077,  # 206: LD V0, 77
            0x00EE,  # 208: RET
        )
        _steps(emu, 1)
        assert emu.regs.PC == 0x206
        assert emu.stack.frames() == [0x202]
        _steps(emu, 2)
        assert emu.regs.V[0] == 0x77
        assert emu.regs.PC == 0x202
        assert emu.stack.depth == 0
        _steps(emu, 1)
        assert emu.regs.V[1] == 0x55

    def test_sixteen_nested_calls_then_overflow(self):
        emu = _emu(0x2200)  # CALL 200, forever
        _steps(emu, 16)
        assert emu.stack.depth == 16
        _assert_fault(emu, StackOverflow, pc=0x200)

    def test_return_with_empty_stack(self):
        emu = _emu(0x00EE)
        _assert_fault(emu, StackUnderflow, pc=0x200)

    def test_machine_code_call_unsupported(self):
        emu = _emu(0x0123)
        _assert_fault(emu, UnsupportedInstruction)

    def test_fetch_at_memory_limit(self):
        emu = _emu(0x1FFE)
        _steps(emu, 1)
        _assert_fault(emu, AddressFault, pc=0xFFE)

    def test_fetch_word_ending_at_last_byte(self):
        emu = _emu(0x1FFD)
        emu.mem.write_block(0xFFD, bytes([0x60, 0x42]))
        _steps(emu, 1)
        _assert_fault(emu, AddressFault, pc=0xFFD)
        assert emu.regs.V[0] == 0

    def test_last_fetchable_word(self):
        emu = _emu(0x1FFC)
        emu.mem.write_block(0xFFC, bytes([0x60, 0x42]))
        _steps(emu, 2)
        assert emu.regs.V[0] == 0x42
        assert emu.regs.PC == 0xFFE

    def test_jump_past_memory(self):
        emu = _emu(0x60FF, 0xBFFF)
        _steps(emu, 2)
        _assert_fault(emu, AddressFault)

    def test_fault_is_sticky(self):
        emu = _emu(0x00EE, 0x6001)
        _assert_fault(emu, StackUnderflow)
        assert emu.step() is StopReason.FAULT
        assert emu.regs.V[0] == 0
        assert emu.instructions == 0


# ═══════════════════════════════════════════════
# Conditional skips
# ═══════════════════════════════════════════════

class TestSkips:

    def test_se_immediate(self):
        emu = _emu(0x6005, 0x3005)
        _steps(emu, 2)
        assert emu.regs.PC == 0x206

    def test_se_immediate_no_skip(self):
        emu = _emu(0x6005, 0x3006)
        _steps(emu, 2)
        assert emu.regs.PC == 0x204

    def test_sne_immediate(self):
        emu = _emu(0x6005, 0x4006)
        _steps(emu, 2)
        assert emu.regs.PC == 0x206

    def test_se_register(self):
        emu = _emu(0x6003, 0x6103, 0x5010)
        _steps(emu, 3)
        assert emu.regs.PC == 0x208

    def test_sne_register(self):
        emu = _emu(0x6003, 0x6104, 0x9010)
        _steps(emu, 3)
        assert emu.regs.PC == 0x208

    @pytest.mark.parametrize("word", [0x5121, 0x512F, 0x9121, 0x912E])
    def test_register_compare_needs_zero_nibble(self, word):
        emu = _emu(word)
        _assert_fault(emu, InvalidEncoding)


# ═══════════════════════════════════════════════
# Immediates and register-register group
# ═══════════════════════════════════════════════

class TestArithmetic:

    def test_load_immediate(self):
        emu = _emu(0x6A42)
        _steps(emu, 1)
        assert emu.regs.V[0xA] == 0x42

    def test_add_immediate_wraps_without_flag(self):
        emu = _emu(0x6F07, 0x60FF, 0x7002)
        _steps(emu, 3)
        assert emu.regs.V[0] == 0x01
        assert emu.regs.V[0xF] == 0x07

    def test_ld_or_and_xor(self):
        emu = _emu(0x60F0, 0x613C, 0x8200, 0x8211, 0x6330, 0x8312, 0x640F, 0x8403)
        _steps(emu, 8)
        assert emu.regs.V[2] == 0xFC   # LD from V0 then OR with V1
        assert emu.regs.V[3] == 0x30   # 0x30 & 0x3C
        assert emu.regs.V[4] == 0xFF   # 0x0F ^ 0xF0

    def test_add_with_carry(self):
        emu = _emu(0x60FF, 0x6102, 0x8014)
        _steps(emu, 3)
        assert emu.regs.V[0] == 0x01
        assert emu.regs.V[0xF] == 1

    def test_add_without_carry(self):
        emu = _emu(0x6010, 0x6120, 0x6F01, 0x8014)
        _steps(emu, 4)
        assert emu.regs.V[0] == 0x30
        assert emu.regs.V[0xF] == 0

    def test_sub(self):
        emu = _emu(0x6005, 0x6103, 0x8015)
        _steps(emu, 3)
        assert emu.regs.V[0] == 0x02
        assert emu.regs.V[0xF] == 1

    def test_sub_borrow(self):
        emu = _emu(0x6003, 0x6105, 0x8015)
        _steps(emu, 3)
        assert emu.regs.V[0] == 0xFE
        assert emu.regs.V[0xF] == 0

    def test_sub_equal_clears_flag(self):
        emu = _emu(0x6004, 0x6104, 0x6F01, 0x8015)
        _steps(emu, 4)
        assert emu.regs.V[0] == 0x00
        assert emu.regs.V[0xF] == 0

    def test_subn(self):
        emu = _emu(0x6003, 0x6105, 0x8017)
        _steps(emu, 3)
        assert emu.regs.V[0] == 0x02
        assert emu.regs.V[0xF] == 1

    def test_shr(self):
        emu = _emu(0x6005, 0x8006)
        _steps(emu, 2)
        assert emu.regs.V[0] == 0x02
        assert emu.regs.V[0xF] == 1

    def test_shl(self):
        emu = _emu(0x6081, 0x800E)
        _steps(emu, 2)
        assert emu.regs.V[0] == 0x02
        assert emu.regs.V[0xF] == 1

    def test_flag_register_as_destination_keeps_flag(self):
        emu = _emu(0x6FFF, 0x6101, 0x8F14)
        _steps(emu, 3)
        assert emu.regs.V[0xF] == 1

    @pytest.mark.parametrize("n", [0x8, 0x9, 0xA, 0xB, 0xC, 0xD, 0xF])
    def test_unknown_register_selector(self, n):
        emu = _emu(0x8010 | n)
        _assert_fault(emu, InvalidEncoding)

    def test_load_i(self):
        emu = _emu(0xA22A)
        _steps(emu, 1)
        assert emu.regs.I == 0x22A

    def test_random_masked_by_immediate(self):
        keypad = ScriptedKeypad(seed=42)
        emu = _emu(0xC00F, keypad=keypad)
        _steps(emu, 1)
        assert emu.regs.V[0] == random.Random(42).randrange(256) & 0x0F

    def test_random_zero_mask(self):
        emu = _emu(0x60FF, 0xC000)
        _steps(emu, 2)
        assert emu.regs.V[0] == 0


# ═══════════════════════════════════════════════
# Display
# ═══════════════════════════════════════════════

class TestDraw:

    def test_clear_screen(self):
        display = HeadlessDisplay()
        emu = _emu(0xA000, 0xD005, 0x00E0, display=display)
        _steps(emu, 3)
        assert emu.fb.rows == [0] * 32
        assert display.events[-1][0] == 'clear'

    def test_digit_zero_at_origin(self):
        display = HeadlessDisplay()
        emu = _emu(0xA000, 0x6000, 0x6100, 0xD015, display=display)
        _steps(emu, 4)
        expected = [b << 56 for b in (0xF0, 0x90, 0x90, 0x90, 0xF0)]
        assert emu.fb.rows[:5] == expected
        assert emu.fb.rows[5:] == [0] * 27
        assert emu.regs.V[0xF] == 0
        assert display.events[-1] == ('update', 0, tuple(expected))

    def test_redraw_erases_and_sets_collision(self):
        emu = _emu(0xA000, 0xD005, 0xD005)
        _steps(emu, 3)
        assert emu.fb.rows == [0] * 32
        assert emu.regs.V[0xF] == 1

    def test_offset_sprite(self):
        emu = _emu(0xA000, 0x6008, 0x6103, 0xD011)
        _steps(emu, 4)
        assert emu.fb.rows[3] == 0xF0 << 48
        assert emu.fb.pixel(8, 3) == 1
        assert emu.fb.pixel(7, 3) == 0

    def test_bottom_rows_clipped(self):
        display = HeadlessDisplay()
        emu = _emu(0xA000, 0x6000, 0x611E, 0xD015, display=display)
        _steps(emu, 4)
        assert emu.fb.rows[30] == 0xF0 << 56
        assert emu.fb.rows[31] == 0x90 << 56
        assert emu.fb.rows[:3] == [0, 0, 0]
        kind, top, rows = display.events[-1]
        assert (kind, top, len(rows)) == ('update', 30, 2)

    def test_right_edge_bits_dropped(self):
        emu = _emu(0xA300, 0x603C, 0x6100, 0xD011)
        emu.mem.write8(0x300, 0xFF)
        _steps(emu, 4)
        assert emu.fb.rows[0] == 0xF
        assert emu.fb.pixel(0, 0) == 0

    def test_below_screen_draws_nothing(self):
        display = HeadlessDisplay()
        emu = _emu(0xA000, 0x6128, 0xD015, display=display)
        _steps(emu, 3)
        assert emu.fb.rows == [0] * 32
        assert display.update_count == 0

    def test_sprite_read_past_memory(self):
        emu = _emu(0xAFFE, 0xD003)
        _steps(emu, 1)
        _assert_fault(emu, AddressFault)


# ═══════════════════════════════════════════════
# Keypad
# ═══════════════════════════════════════════════

class TestKeys:

    def test_skip_if_pressed(self):
        emu = _emu(0x6005, 0xE09E, keypad=ScriptedKeypad(held=[5]))
        _steps(emu, 2)
        assert emu.regs.PC == 0x206

    def test_no_skip_if_not_pressed(self):
        emu = _emu(0x6005, 0xE09E, keypad=ScriptedKeypad(held=[4]))
        _steps(emu, 2)
        assert emu.regs.PC == 0x204

    def test_skip_if_not_pressed(self):
        emu = _emu(0x6005, 0xE0A1)
        _steps(emu, 2)
        assert emu.regs.PC == 0x206

    def test_key_index_uses_low_nibble(self):
        emu = _emu(0x6015, 0xE09E, keypad=ScriptedKeypad(held=[5]))
        _steps(emu, 2)
        assert emu.regs.PC == 0x206

    def test_wait_key_repeats_until_pressed(self):
        keypad = ScriptedKeypad()
        emu = _emu(0xF30A, keypad=keypad)
        _steps(emu, 2)
        assert emu.regs.PC == 0x200
        assert emu.waiting_for_key
        keypad.press(7)
        _steps(emu, 1)
        assert emu.regs.V[3] == 7
        assert emu.regs.PC == 0x202
        assert not emu.waiting_for_key

    @pytest.mark.parametrize("word", [0xE000, 0xE09F, 0xE1A2, 0xEFFF])
    def test_unknown_key_selector(self, word):
        emu = _emu(word)
        _assert_fault(emu, UnsupportedInstruction)


# ═══════════════════════════════════════════════
# Special group (timers, I, memory transfers)
# ═══════════════════════════════════════════════

class TestSpecial:

    def test_read_delay_timer(self):
        emu = _emu(0xF007)
        emu.timers.dt = 0x2A
        _steps(emu, 1)
        assert emu.regs.V[0] == 0x2A

    def test_read_delay_timer_alternate_encoding(self):
        emu = _emu(0xF406)
        emu.timers.dt = 0x11
        _steps(emu, 1)
        assert emu.regs.V[4] == 0x11

    def test_set_timers(self):
        emu = _emu(0x6033, 0xF015, 0xF018)
        _steps(emu, 3)
        assert emu.timers.dt == 0x33
        assert emu.timers.st == 0x33

    def test_add_to_i(self):
        emu = _emu(0xA100, 0x6005, 0xF01E)
        _steps(emu, 3)
        assert emu.regs.I == 0x105

    def test_digit_sprite_address(self):
        emu = _emu(0x600A, 0xF029)
        _steps(emu, 2)
        assert emu.regs.I == 50

    def test_digit_out_of_range(self):
        emu = _emu(0x6010, 0xF029)
        _steps(emu, 1)
        _assert_fault(emu, InvalidDigit, pc=0x202)

    def test_bcd_157(self):
        emu = _emu(0x609D, 0xA300, 0xF033)
        _steps(emu, 3)
        assert emu.mem.read_block(0x300, 3) == bytes([1, 5, 7])

    def test_bcd_at_last_fit(self):
        emu = _emu(0x60FF, 0xAFFC, 0xF033)
        _steps(emu, 3)
        assert emu.mem.read_block(0xFFC, 3) == bytes([2, 5, 5])

    def test_bcd_past_memory(self):
        emu = _emu(0xAFFD, 0xF033)
        _steps(emu, 1)
        _assert_fault(emu, AddressFault)

    @pytest.mark.parametrize("x", range(16))
    def test_store_then_load_round_trip(self, x):
        emu = _emu(0xA300, 0xF055 | (x << 8), 0xF065 | (x << 8))
        original = bytes((0x11 * i + 3) & 0xFF for i in range(16))
        emu.regs.V[:] = original
        _steps(emu, 2)
        assert emu.mem.read_block(0x300, x + 1) == original[:x + 1]
        assert emu.mem.read8(0x300 + x + 1) == 0
        emu.regs.V[:] = bytes(16)
        _steps(emu, 1)
        assert bytes(emu.regs.V[:x + 1]) == original[:x + 1]
        assert bytes(emu.regs.V[x + 1:]) == bytes(15 - x)

    def test_store_does_not_move_i(self):
        emu = _emu(0xA300, 0xF355)
        _steps(emu, 2)
        assert emu.regs.I == 0x300

    def test_store_past_memory(self):
        emu = _emu(0xAFF0, 0xFF55)
        _steps(emu, 1)
        _assert_fault(emu, AddressFault)

    def test_store_full_block_at_last_fit(self):
        emu = _emu(0xAFEF, 0xFF55)
        _steps(emu, 2)

    def test_load_past_memory(self):
        emu = _emu(0xAFFE, 0xF165)
        _steps(emu, 1)
        _assert_fault(emu, AddressFault)

    @pytest.mark.parametrize("word", [0xF000, 0xF0FF, 0xF108, 0xF275, 0xF385])
    def test_unknown_special_selector(self, word):
        emu = _emu(word)
        _assert_fault(emu, UnsupportedInstruction)

"""
CHIP-8 VM — ALU Operations

Pure 8-bit helpers for the 8xyN register-register group. Each function
returns (result_byte, vf) where vf is the value destined for VF. The
caller writes VF *after* the result so that `8Fy4` etc. end with the flag
in VF.

Flag rules:
  ADD   VF = carry out of bit 7        (a + b > 255)
  SUB   VF = 1 if a > b                (strictly greater, no borrow)
  SUBN  VF = 1 if b > a
  SHR   VF = bit 0 before the shift
  SHL   VF = bit 7 before the shift
"""


# ══════════════════════════════════════════════
# Arithmetic
# ══════════════════════════════════════════════

def add8(a: int, b: int) -> tuple:
    """9-bit sum: low 8 bits are the result, bit 8 is the carry."""
    result = a + b
    return (result & 0xFF, result >> 8)


def sub8(a: int, b: int) -> tuple:
    """a - b, wrapping. VF = a > b."""
    return ((a - b) & 0xFF, 1 if a > b else 0)


def subn8(a: int, b: int) -> tuple:
    """b - a, wrapping. VF = b > a."""
    return ((b - a) & 0xFF, 1 if b > a else 0)


# ══════════════════════════════════════════════
# Shifts
# ══════════════════════════════════════════════

def shr8(a: int) -> tuple:
    return (a >> 1, a & 0x01)


def shl8(a: int) -> tuple:
    return ((a << 1) & 0xFF, (a >> 7) & 0x01)


# ══════════════════════════════════════════════
# Logic (VF untouched)
# ══════════════════════════════════════════════

def or8(a: int, b: int) -> int:
    return (a | b) & 0xFF


def and8(a: int, b: int) -> int:
    return a & b & 0xFF


def xor8(a: int, b: int) -> int:
    return (a ^ b) & 0xFF


# ══════════════════════════════════════════════
# BCD
# ══════════════════════════════════════════════

def bcd8(value: int) -> tuple:
    """Decimal digits of an 8-bit value: (hundreds, tens, ones)."""
    return ((value // 100) % 10, (value // 10) % 10, value % 10)

"""
CHIP-8 VM — Instruction Decoder / Disassembler

Every CHIP-8 instruction is one 16-bit big-endian word. The fields are
always in the same nibble positions, so decoding is pure mask/shift work
and total over all 65536 words. Whether a word actually means something is
decided later by the dispatcher (UnsupportedInstruction / InvalidEncoding).

Field layout:
  opcode  bits 12–15   instruction family
  x       bits  8–11   first register index
  y       bits  4–7    second register index
  n       bits  0–3    4-bit immediate / sub-opcode selector
  nn      bits  0–7    8-bit immediate / sub-opcode selector
  nnn     bits  0–11   12-bit address

The same tables drive the disassembler used for trace output and the
`chip8kit disasm` command.
"""

from dataclasses import dataclass
from typing import Iterator, Tuple

# ──────────────────────────────────────────────
# Opcode families (high nibble)
# ──────────────────────────────────────────────

OP_SYS   = 0x0   # 00E0 CLS / 00EE RET
OP_JP    = 0x1   # pc = nnn
OP_CALL  = 0x2   # push pc; pc = nnn
OP_SE_B  = 0x3   # skip if vX == nn
OP_SNE_B = 0x4   # skip if vX != nn
OP_SE_R  = 0x5   # skip if vX == vY  (n must be 0)
OP_LD_B  = 0x6   # vX = nn
OP_ADD_B = 0x7   # vX += nn
OP_RR    = 0x8   # register-register ALU group, selector n
OP_SNE_R = 0x9   # skip if vX != vY  (n must be 0)
OP_LD_I  = 0xA   # I = nnn
OP_JP_V0 = 0xB   # pc = v0 + nnn
OP_RND   = 0xC   # vX = random & nn
OP_DRW   = 0xD   # draw n-row sprite at (vX, vY)
OP_KEY   = 0xE   # key query group, selector nn
OP_SPEC  = 0xF   # timers / memory / misc group, selector nn

# 00nnn selectors
SYS_CLS = 0x0E0
SYS_RET = 0x0EE

# 8xyN selectors
RR_LD   = 0x0
RR_OR   = 0x1
RR_AND  = 0x2
RR_XOR  = 0x3
RR_ADD  = 0x4
RR_SUB  = 0x5
RR_SHR  = 0x6
RR_SUBN = 0x7
RR_SHL  = 0xE

# ExNN selectors
KEY_SKP  = 0x9E   # skip if key vX down
KEY_SKNP = 0xA1   # skip if key vX up

# FxNN selectors
SPEC_GET_DT    = 0x07
SPEC_GET_DT_ALT = 0x06  # early interpreters' encoding of Fx07
SPEC_WAIT_KEY  = 0x0A
SPEC_SET_DT    = 0x15
SPEC_SET_ST    = 0x18
SPEC_ADD_I     = 0x1E
SPEC_DIGIT     = 0x29
SPEC_BCD       = 0x33
SPEC_STORE     = 0x55
SPEC_LOAD      = 0x65


# ──────────────────────────────────────────────
# Disassembly templates
# ──────────────────────────────────────────────
# Format placeholders: {x} {y} {n} {nn} {nnn}

RR_MNEMONICS = {
    RR_LD:   'LD V{x:X}, V{y:X}',
    RR_OR:   'OR V{x:X}, V{y:X}',
    RR_AND:  'AND V{x:X}, V{y:X}',
    RR_XOR:  'XOR V{x:X}, V{y:X}',
    RR_ADD:  'ADD V{x:X}, V{y:X}',
    RR_SUB:  'SUB V{x:X}, V{y:X}',
    RR_SHR:  'SHR V{x:X}',
    RR_SUBN: 'SUBN V{x:X}, V{y:X}',
    RR_SHL:  'SHL V{x:X}',
}

KEY_MNEMONICS = {
    KEY_SKP:  'SKP V{x:X}',
    KEY_SKNP: 'SKNP V{x:X}',
}

SPEC_MNEMONICS = {
    SPEC_GET_DT:   'LD V{x:X}, DT',
    SPEC_GET_DT_ALT: 'LD V{x:X}, DT',
    SPEC_WAIT_KEY: 'LD V{x:X}, K',
    SPEC_SET_DT:   'LD DT, V{x:X}',
    SPEC_SET_ST:   'LD ST, V{x:X}',
    SPEC_ADD_I:    'ADD I, V{x:X}',
    SPEC_DIGIT:    'LD F, V{x:X}',
    SPEC_BCD:      'LD B, V{x:X}',
    SPEC_STORE:    'LD [I], V{x:X}',
    SPEC_LOAD:     'LD V{x:X}, [I]',
}

SIMPLE_MNEMONICS = {
    OP_JP:    'JP 0x{nnn:03X}',
    OP_CALL:  'CALL 0x{nnn:03X}',
    OP_SE_B:  'SE V{x:X}, 0x{nn:02X}',
    OP_SNE_B: 'SNE V{x:X}, 0x{nn:02X}',
    OP_LD_B:  'LD V{x:X}, 0x{nn:02X}',
    OP_ADD_B: 'ADD V{x:X}, 0x{nn:02X}',
    OP_LD_I:  'LD I, 0x{nnn:03X}',
    OP_JP_V0: 'JP V0, 0x{nnn:03X}',
    OP_RND:   'RND V{x:X}, 0x{nn:02X}',
    OP_DRW:   'DRW V{x:X}, V{y:X}, {n}',
}


@dataclass(frozen=True)
class Instruction:
    """Structured view of one 16-bit instruction word."""
    word: int

    @property
    def opcode(self) -> int:
        return (self.word >> 12) & 0xF

    @property
    def x(self) -> int:
        return (self.word >> 8) & 0xF

    @property
    def y(self) -> int:
        return (self.word >> 4) & 0xF

    @property
    def n(self) -> int:
        return self.word & 0xF

    @property
    def nn(self) -> int:
        return self.word & 0xFF

    @property
    def nnn(self) -> int:
        return self.word & 0xFFF

    def fields(self) -> dict:
        return {'x': self.x, 'y': self.y, 'n': self.n,
                'nn': self.nn, 'nnn': self.nnn}

    def __str__(self):
        return f"{self.word:04X}"


def decode(word: int) -> Instruction:
    """Decode a 16-bit word. Never fails; out-of-range ints are masked."""
    return Instruction(word & 0xFFFF)


def fetch_word(memory, addr: int) -> int:
    """Read the big-endian instruction word at addr."""
    return memory.read16(addr)


def disassemble(word: int) -> str:
    """Render a word as a mnemonic; undefined words render as DW."""
    ins = decode(word)
    op = ins.opcode
    template = None

    if op == OP_SYS:
        if ins.nnn == SYS_CLS:
            template = 'CLS'
        elif ins.nnn == SYS_RET:
            template = 'RET'
    elif op in (OP_SE_R, OP_SNE_R):
        if ins.n == 0:
            template = ('SE' if op == OP_SE_R else 'SNE') + ' V{x:X}, V{y:X}'
    elif op == OP_RR:
        template = RR_MNEMONICS.get(ins.n)
    elif op == OP_KEY:
        template = KEY_MNEMONICS.get(ins.nn)
    elif op == OP_SPEC:
        template = SPEC_MNEMONICS.get(ins.nn)
    else:
        template = SIMPLE_MNEMONICS.get(op)

    if template is None:
        return f"DW 0x{ins.word:04X}"
    return template.format(**ins.fields())


def disassemble_program(data: bytes,
                        base: int = 0x200) -> Iterator[Tuple[int, int, str]]:
    """Yield (address, word, text) for each whole word in a program image.

    A trailing odd byte is reported as a DB line with word = the byte.
    """
    length = len(data)
    for offset in range(0, length - 1, 2):
        word = (data[offset] << 8) | data[offset + 1]
        yield base + offset, word, disassemble(word)
    if length % 2:
        yield base + length - 1, data[-1], f"DB 0x{data[-1]:02X}"

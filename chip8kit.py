#!/usr/bin/env python3
"""
chip8kit — CHIP-8 VM command line
=================================

    chip8kit run     — Execute a program image
    chip8kit disasm  — Disassemble a program image
    chip8kit info    — Summarize a program image

Usage:
    python chip8kit.py <command> [options]
    python chip8kit.py <command> --help

Examples:
    python chip8kit.py run ibm_logo.ch8
    python chip8kit.py run pong.ch8 --profile fast --keys 1,4
    python chip8kit.py run test.ch8 --headless --max-instructions 5000 --dump-screen
    python chip8kit.py disasm ibm_logo.ch8
    python chip8kit.py info ibm_logo.ch8

Exit status: 0 on a clean stop, 1 on a VM fault or bad input, 2 on an
internal error.
"""

import argparse
import logging
import sys
import os
from pathlib import Path

# Allow running from project root without installing
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from chip8_vm import __version__
from chip8_vm.config import EmulatorConfig, SPEED_PROFILES, DEFAULT_PROFILE
from chip8_vm.cpu.decoder import disassemble_program
from chip8_vm.emu import Chip8Emulator, StopReason
from chip8_vm.faults import VMFault
from chip8_vm.log_setup import setup_logging
from chip8_vm.mem.memory import MAX_PROGRAM_SIZE, PROGRAM_BASE
from chip8_vm.periph.display import HeadlessDisplay, TerminalDisplay
from chip8_vm.periph.keypad import ScriptedKeypad

log = logging.getLogger("chip8kit")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chip8kit",
        description="CHIP-8 virtual machine — run, disassemble, inspect",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Speed profiles: " + ", ".join(
            f"{name} ({p['description']})" for name, p in SPEED_PROFILES.items()),
    )
    parser.add_argument("--version", action="version", version=f"chip8kit {__version__}")
    sub = parser.add_subparsers(dest="command", metavar="command")

    # ── run ──────────────────────────────────────────────────────────────
    p_run = sub.add_parser("run", help="Execute a program image")
    p_run.add_argument("rom", help="Program image (.ch8)")
    p_run.add_argument("--profile", default=DEFAULT_PROFILE, choices=list(SPEED_PROFILES),
                       help=f"Speed profile (default: {DEFAULT_PROFILE})")
    p_run.add_argument("--ips", type=int, default=None,
                       help="Instructions per second, 0 = unthrottled (overrides profile)")
    p_run.add_argument("--max-instructions", type=int, default=None,
                       help="Stop after N instructions")
    p_run.add_argument("--headless", action="store_true",
                       help="Do not draw to the terminal")
    p_run.add_argument("--trace", action="store_true",
                       help="Log every executed instruction (DEBUG)")
    p_run.add_argument("--seed", type=int, default=None,
                       help="Seed for the random-byte instruction")
    p_run.add_argument("--keys", default=None,
                       help="Comma-separated hex keys to queue for key waits, e.g. 1,A,F")
    p_run.add_argument("--dump-screen", action="store_true",
                       help="Print the framebuffer when the run stops")
    p_run.add_argument("--dump-regs", action="store_true",
                       help="Print registers when the run stops")
    p_run.add_argument("--log-dir", default=None,
                       help="Also write a full log file into this directory")
    p_run.add_argument("-v", "--verbose", action="count", default=0,
                       help="Console log verbosity (-v INFO, -vv DEBUG)")

    # ── disasm ───────────────────────────────────────────────────────────
    p_dis = sub.add_parser("disasm", help="Disassemble a program image")
    p_dis.add_argument("rom", help="Program image (.ch8)")
    p_dis.add_argument("--base", type=lambda s: int(s, 0), default=PROGRAM_BASE,
                       help="Load address (default: 0x200)")

    # ── info ─────────────────────────────────────────────────────────────
    p_info = sub.add_parser("info", help="Summarize a program image")
    p_info.add_argument("rom", help="Program image (.ch8)")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    handler = COMMANDS[args.command]
    try:
        return handler(args)
    except (OSError, ValueError, VMFault) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Internal error: {e}", file=sys.stderr)
        return 2


# ═════════════════════════════════════════════════════════════════════════════
# COMMAND IMPLEMENTATIONS
# ═════════════════════════════════════════════════════════════════════════════

def _parse_keys(text):
    if not text:
        return []
    return [int(k.strip(), 16) for k in text.split(",") if k.strip()]


# ── run ──────────────────────────────────────────────────────────────────
def cmd_run(args):
    console_level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    if args.trace and args.headless:
        console_level = logging.DEBUG
    setup_logging("chip8_vm", console_level=console_level, log_dir=args.log_dir)
    setup_logging("chip8kit", console_level=console_level, log_dir=args.log_dir)

    config = EmulatorConfig.from_profile(
        args.profile,
        instructions_per_second=args.ips,
        max_instructions=args.max_instructions,
        trace=args.trace or None,
        rng_seed=args.seed,
    )
    keypad = ScriptedKeypad(seed=config.rng_seed)
    keypad.queue_keys(_parse_keys(args.keys))
    display = HeadlessDisplay() if args.headless else TerminalDisplay()

    emu = Chip8Emulator(display=display, keypad=keypad, config=config)
    emu.timers.on_sound = lambda on: log.debug("buzzer %s", "on" if on else "off")
    emu.load_program(Path(args.rom))

    try:
        result = emu.run()
    except KeyboardInterrupt:
        result = None
        print("\nInterrupted", file=sys.stderr)
    finally:
        display.close()

    if args.dump_screen:
        print(emu.fb.render())
    if args.dump_regs:
        print(emu.regs.display())
        print(f"DT={emu.timers.dt:02X} ST={emu.timers.st:02X} "
              f"SP={emu.stack.depth} stack=[{' '.join(f'{a:03X}' for a in emu.stack.frames())}]")

    if result is None:
        return 1
    if result.reason is StopReason.FAULT:
        print(f"VM fault: {result.fault.kind}: {result.fault}", file=sys.stderr)
        return 1
    print(f"Stopped: {result.reason.value} after {result.instructions} instructions "
          f"at ${result.pc:03X}", file=sys.stderr)
    return 0


# ── disasm ───────────────────────────────────────────────────────────────
def cmd_disasm(args):
    data = Path(args.rom).read_bytes()
    for addr, word, text in disassemble_program(data, base=args.base):
        width = 2 if text.startswith("DB") else 4
        print(f"{addr:03X}:  {word:0{width}X}  {text}")
    return 0


# ── info ─────────────────────────────────────────────────────────────────
def cmd_info(args):
    path = Path(args.rom)
    data = path.read_bytes()
    words = list(disassemble_program(data))
    undefined = sum(1 for _, _, text in words if text.startswith("DW"))
    fits = len(data) <= MAX_PROGRAM_SIZE
    print(f"File:         {path}")
    print(f"Size:         {len(data)} bytes (max {MAX_PROGRAM_SIZE})")
    print(f"Words:        {len(data) // 2}")
    print(f"Undefined:    {undefined} (data or unsupported instructions)")
    print(f"Fits memory:  {'yes' if fits else 'NO'}")
    return 0 if fits else 1


COMMANDS = {
    "run": cmd_run,
    "disasm": cmd_disasm,
    "info": cmd_info,
}


if __name__ == "__main__":
    sys.exit(main())

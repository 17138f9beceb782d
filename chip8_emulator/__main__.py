"""
CHIP-8 Emulator CLI Entry Point

Usage:
    python -m chip8_emulator [options] rom

Options:
    -d, --debug     Start in debug mode
    --headless      Run without the terminal UI
    -v, --verbose   Verbose output (instruction trace)
    -h, --help      Show help
"""

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from .emulator import Chip8Emulator, EmulatorConfig
from .debugger import CLIDebugger
from .visual_ui import RichVisualUI


logger = logging.getLogger("chip8_emulator")


def setup_logging(verbose: bool, console: Console) -> None:
    """ログ出力を設定"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def plain_output(console: Console):
    """デバッガ出力用 (ROM由来の文字列をマークアップとして解釈しない)"""
    def output(text: str) -> None:
        console.print(text, markup=False, highlight=False)
    return output


def positive_int(text: str) -> int:
    """1以上の整数引数"""
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer: {text}")
    return value


def non_negative_int(text: str) -> int:
    """0以上の整数引数"""
    value = int(text)
    if value < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {text}")
    return value


def build_config(args: argparse.Namespace) -> EmulatorConfig:
    """コマンドライン引数から設定を作成"""
    return EmulatorConfig(
        instructions_per_second=args.ips,
        speed_multiplier=args.speed,
        timer_divider=args.timer_divider,
        rng_seed=args.seed,
        trace_enabled=args.verbose,
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description='CHIP-8 Virtual Machine',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m chip8_emulator games/PONG              # Run in the terminal UI
    python -m chip8_emulator -d games/PONG           # Load and debug
    python -m chip8_emulator --headless -n 5000 rom  # Run 5000 instructions, print screen

Keypad:
    1 2 3 4        1 2 3 C
    q w e r   ->   4 5 6 D
    a s d f        7 8 9 E
    z x c v        A 0 B F
"""
    )

    parser.add_argument('rom', help='ROM file to load (raw binary, loaded at 0x200)')
    parser.add_argument('-d', '--debug', action='store_true', help='Start in debug mode')
    parser.add_argument('--headless', action='store_true', help='Run without the terminal UI')
    parser.add_argument('-n', '--max-instructions', type=non_negative_int, default=0,
                        help='Stop after N instructions (0 = unlimited)')
    parser.add_argument('--ips', type=non_negative_int, default=600,
                        help='Instructions per second (0 = unthrottled)')
    parser.add_argument('--speed', type=float, default=1.0, help='Speed multiplier')
    parser.add_argument('--timer-divider', type=positive_int, default=10,
                        help='Instructions per delay/sound timer tick')
    parser.add_argument('--seed', type=int, default=None, help='Random seed for RND')
    parser.add_argument('--no-bell', action='store_true', help='Disable the terminal bell')
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')

    args = parser.parse_args(argv)

    console = Console()
    setup_logging(args.verbose, console)

    filepath = Path(args.rom)
    if not filepath.exists():
        console.print(f"[red]Error: File not found: {escape(args.rom)}[/red]")
        return 1

    emu = Chip8Emulator(build_config(args))

    result = emu.load_rom(filepath)
    if not result.success:
        console.print(f"[red]Load failed: {escape('; '.join(result.errors))}[/red]")
        return 1

    # デバッグモード
    if args.debug:
        debugger = CLIDebugger(emu)
        debugger.output_callback = plain_output(console)
        debugger.run_cli()

    # ヘッドレス実行
    elif args.headless:
        executed = emu.run(args.max_instructions)
        console.print(f"Executed {executed} instructions")
        console.print(f"Final PC: 0x{emu.cpu.regs.pc:03X}")
        console.print(emu.display.to_text(), markup=False, highlight=False)

    # ビジュアルモード
    else:
        ui = RichVisualUI(emu, console=console, bell=not args.no_bell)
        ui.run_interactive(args.max_instructions)

    return 1 if emu.last_error else 0


if __name__ == '__main__':
    sys.exit(main())

"""
CHIP-8 Debugger Tests

逆アセンブラとCLIデバッガコマンドのテスト
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import io

from rich.console import Console

from chip8_emulator import Chip8Emulator, EmulatorConfig
from chip8_emulator.__main__ import plain_output
from chip8_emulator.debugger import CLIDebugger, Disassembler


def make_debugger(program: bytes):
    emu = Chip8Emulator(EmulatorConfig(instructions_per_second=0))
    emu.load_program_bytes(program)
    debugger = CLIDebugger(emu)
    lines = []
    debugger.output_callback = lines.append
    return emu, debugger, lines


def test_disassemble():
    """逆アセンブルのテスト"""
    emu = Chip8Emulator(EmulatorConfig(instructions_per_second=0))
    emu.load_program_bytes(bytes([0x00, 0xE0, 0x13, 0x00, 0x01, 0x23]))

    listing = Disassembler(emu).disassemble(0x200, 3)

    assert [ins.mnemonic for ins in listing] == ["cls", "jp 0x300", "DW 0x0123"]
    assert str(listing[1]) == "0x202: 1300  jp 0x300"


def test_disassemble_stops_at_memory_end():
    """メモリ末尾で逆アセンブルが止まるテスト"""
    emu = Chip8Emulator(EmulatorConfig(instructions_per_second=0))

    listing = Disassembler(emu).disassemble(0xFFE, 5)

    assert len(listing) == 1
    assert listing[0].address == 0xFFE


def test_step_command():
    """stepコマンドのテスト"""
    emu, debugger, lines = make_debugger(bytes([0x60, 0x2A, 0x61, 0x01]))

    debugger.execute_command("s 2")

    assert emu.get_register('V0') == 0x2A
    assert emu.get_register('V1') == 0x01
    assert len(debugger.execution_history) == 2
    assert debugger.execution_history[0]['instruction'] == "ld v0, 0x2a"
    assert any("=== CPU Registers ===" in line for line in lines)


def test_set_and_breakpoint_commands():
    """set/bコマンドのテスト"""
    emu, debugger, lines = make_debugger(bytes([0x60, 0x01, 0x60, 0x02, 0x60, 0x03]))

    debugger.execute_command("set V5 0x10")
    assert emu.get_register('V5') == 0x10

    debugger.execute_command("set Q 1")
    assert "Cannot set register: Q" in lines

    debugger.execute_command("b 0x204")
    assert "Breakpoint set at 0x204" in lines

    debugger.execute_command("g")
    assert emu.cpu.regs.pc == 0x204
    assert "Executed 2 instructions" in lines

    debugger.execute_command("b 0x204")
    assert "Breakpoint removed at 0x204" in lines


def test_key_commands():
    """kp/krコマンドのテスト"""
    emu, debugger, lines = make_debugger(b'')

    debugger.execute_command("kp a")
    assert emu.keypad.poll(0xA)

    debugger.execute_command("kr A")
    assert not emu.keypad.poll(0xA)

    debugger.execute_command("kp 1F")
    assert any(line.startswith("Invalid argument") for line in lines)


def test_run_reports_fatal_error():
    """実行エラーの報告テスト"""
    emu, debugger, lines = make_debugger(bytes([0x00, 0xEE]))

    debugger.execute_command("g 10")

    assert "Executed 0 instructions" in lines
    assert any(line.startswith("Stopped:") for line in lines)


def test_unknown_and_quit_commands():
    """未知コマンドと終了コマンドのテスト"""
    emu, debugger, lines = make_debugger(b'')

    debugger.execute_command("frobnicate")
    assert "Unknown command: frobnicate" in lines

    debugger.execute_command("q")
    assert debugger.running_cli is False
    assert debugger.command_history == ["frobnicate", "q"]


def test_show_display_and_stack():
    """画面・スタック表示のテスト"""
    emu, debugger, lines = make_debugger(bytes([0x23, 0x00]))
    emu.step()

    debugger.show_stack()
    assert "=== Stack (depth 1) ===" in lines
    assert "  [ 0] 0x200" in lines

    debugger.show_display()
    assert len(lines[-1].splitlines()) == 32


def test_run_until():
    """指定アドレスまでの実行テスト"""
    emu, debugger, lines = make_debugger(bytes([0x60, 0x01, 0x61, 0x02, 0x62, 0x03, 0x12, 0x06]))

    executed = debugger.run_until(0x206)

    assert executed == 3
    assert emu.cpu.regs.pc == 0x206
    assert not emu.execution.is_breakpoint(0x206), "Temporary breakpoint must be removed"

    state = emu.get_state()
    assert state['cpu']['registers']['V2'] == 3
    assert state['stack']['depth'] == 0
    assert state['last_error'] is None
    assert state['execution']['breakpoints'] == []


def test_console_output_keeps_brackets():
    """コンソール出力で角括弧がマークアップとして扱われないテスト"""
    emu, debugger, lines = make_debugger(bytes([0xF3, 0x55, 0xF3, 0x65]))
    output = io.StringIO()
    debugger.output_callback = plain_output(Console(file=output, width=120))

    debugger.execute_command("d 0x200 2")
    text = output.getvalue()
    assert "ld [i], v3" in text
    assert "ld v3, [i]" in text

    # ROM中の閉じタグ風バイト列
    emu.load_program_bytes(b"[/x]")
    debugger.execute_command("m 0x200 4")
    assert "[/x]" in output.getvalue()
    assert debugger.running_cli


def test_stack_pointer_is_read_only():
    """SPがコールスタックと食い違わないテスト"""
    emu, debugger, lines = make_debugger(bytes([0x23, 0x00]))
    emu.step()

    debugger.execute_command("set SP 3")

    assert "Cannot set register: SP" in lines
    assert emu.get_register('SP') == 1
    assert emu.memory.stack_depth == 1

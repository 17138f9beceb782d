"""
CHIP-8 Component Tests

メモリ・表示・入力・タイマ・クロック・ローダー単体のテスト
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from chip8_emulator.clock import ClockController, ExecutionController
from chip8_emulator.cpu import RegisterFile
from chip8_emulator.display import DisplayBuffer
from chip8_emulator.exceptions import (
    MemoryAccessError,
    RomTooLargeError,
    StackOverflowError,
    StackUnderflowError,
)
from chip8_emulator.keypad import InputLatch, map_host_key
from chip8_emulator.loader import RomLoader
from chip8_emulator.memory import MemoryBank, FONT_DATA, PROGRAM_LIMIT
from chip8_emulator.timer import TimerController


# === MemoryBank ===

def test_font_is_preloaded():
    """フォントが0x000から配置されているテスト"""
    memory = MemoryBank()
    assert len(FONT_DATA) == 80
    assert memory.dump(0x000, 80) == FONT_DATA
    assert memory.read(0x050) == 0


def test_memory_bounds():
    """メモリ範囲外アクセスのテスト"""
    memory = MemoryBank()

    memory.write(0xFFF, 0x1AB)
    assert memory.read(0xFFF) == 0xAB, "Writes must be truncated to 8 bits"

    with pytest.raises(MemoryAccessError):
        memory.read(0x1000)
    with pytest.raises(MemoryAccessError):
        memory.write(-1, 0)
    with pytest.raises(MemoryAccessError):
        memory.read_instruction(0xFFF)


def test_stack_push_pop():
    """スタックのLIFO動作と上限のテスト"""
    memory = MemoryBank()

    for address in range(0x200, 0x220, 2):
        memory.push(address)
    assert memory.stack_depth == 16

    with pytest.raises(StackOverflowError):
        memory.push(0x300)

    popped = [memory.pop() for _ in range(16)]
    assert popped == list(range(0x21E, 0x1FE, -2))

    with pytest.raises(StackUnderflowError):
        memory.pop()


def test_program_limit():
    """プログラム領域に収まるROMサイズのテスト"""
    memory = MemoryBank()

    data = bytes([0xAA]) * PROGRAM_LIMIT
    memory.load(data)
    assert memory.read(0x200) == 0xAA
    assert memory.read(0xFFF) == 0xAA

    with pytest.raises(RomTooLargeError) as excinfo:
        memory.load(data + b'\x00')
    assert excinfo.value.size == PROGRAM_LIMIT + 1


def test_memory_reset_keeps_font():
    """リセット後もフォントが残るテスト"""
    memory = MemoryBank()
    memory.load(b'\x12\x00')
    memory.push(0x200)

    memory.reset()

    assert memory.read(0x200) == 0
    assert memory.stack_depth == 0
    assert memory.dump(0x000, 80) == FONT_DATA


def test_dump_hex():
    """16進ダンプ形式のテスト"""
    memory = MemoryBank()
    memory.load(b'AB')

    lines = memory.dump_hex(0x200, 16).splitlines()
    assert len(lines) == 1
    assert lines[0].startswith('200: 41 42 00')
    assert lines[0].endswith('AB..............')


# === RegisterFile ===

def test_register_file_defaults():
    """レジスタ初期値のテスト"""
    regs = RegisterFile()
    assert regs.pc == 0x200
    assert regs.v == [0] * 16

    regs.vf = 0x101
    assert regs.get(0xF) == 0x01
    assert 'pc[0200]' in str(regs)


# === DisplayBuffer ===

def test_display_toggle():
    """ピクセルXOR反転のテスト"""
    display = DisplayBuffer()

    assert display.toggle(10, 5) is False
    assert display.get_pixel(10, 5)
    assert display.pixels[10 + 64 * 5] == 0xFF

    assert display.toggle(10, 5) is True
    assert not display.get_pixel(10, 5)
    assert len(display) == 2048


def test_display_text():
    """テキスト表現のテスト"""
    display = DisplayBuffer()
    display.toggle(0, 0)
    display.toggle(63, 31)

    lines = display.to_text().splitlines()
    assert len(lines) == 32
    assert lines[0] == '#' + '.' * 63
    assert lines[31] == '.' * 63 + '#'

    display.clear()
    assert display.lit_count() == 0


# === InputLatch ===

def test_input_latch():
    """キー状態ラッチのテスト"""
    keypad = InputLatch()

    keypad.set(0xA, True)
    keypad.set(0xA, True)
    keypad.set(0x3, True)
    assert keypad.poll(0xA)
    assert keypad.pressed_keys() == [0x3, 0xA]

    keypad.release_all()
    assert keypad.pressed_keys() == []
    assert "■" not in keypad.get_display()


def test_host_keymap():
    """ホストキー割り当てのテスト"""
    assert map_host_key('1') == 0x1
    assert map_host_key('4') == 0xC
    assert map_host_key('Q') == 0x4
    assert map_host_key('x') == 0x0
    assert map_host_key('v') == 0xF
    assert map_host_key('p') is None


# === TimerController ===

def test_timer_divider():
    """分周タイマのテスト"""
    regs = RegisterFile(dt=2, st=0)
    timer = TimerController(divider=3)
    timer.connect_registers(regs)

    results = [timer.tick() for _ in range(9)]

    assert results == [False, False, True] * 3
    assert regs.dt == 0
    assert timer.tick_count == 3
    assert timer.sound_active is False

    with pytest.raises(ValueError):
        TimerController(divider=0)


# === ClockController ===

def test_clock_pacing():
    """デッドライン方式のペーシングテスト"""
    sleeps = []
    clock = ClockController(100, sleep=sleeps.append, now=lambda: 0.0)

    clock.pace()
    clock.pace()

    assert sleeps == [pytest.approx(0.01), pytest.approx(0.02)]
    assert clock.tick_count == 2


def test_clock_unthrottled():
    """ペーシングなしのテスト"""
    sleeps = []
    clock = ClockController(0, sleep=sleeps.append)

    assert clock.throttled is False
    assert clock.pace() == 0.0
    assert sleeps == []


def test_clock_speed_multiplier():
    """速度倍率のテスト"""
    clock = ClockController(600, speed_multiplier=2.0)
    assert clock.cycle_period == pytest.approx(1.0 / 1200)

    clock.set_speed_multiplier(0)
    assert clock.speed_multiplier == 0.01


def test_execution_breakpoints():
    """ブレークポイント管理のテスト"""
    execution = ExecutionController()

    assert execution.toggle_breakpoint(0x204) is True
    execution.add_breakpoint(0x200)
    assert execution.list_breakpoints() == [0x200, 0x204]

    assert execution.toggle_breakpoint(0x204) is False
    assert not execution.is_breakpoint(0x204)

    execution.clear_all()
    assert execution.get_state()['breakpoints'] == []


# === RomLoader ===

def test_loader_bytes():
    """バイト列ロードのテスト"""
    memory = MemoryBank()
    loader = RomLoader()
    loader.connect_memory(memory)

    result = loader.load_bytes(b'\x60\x01')
    assert result.success
    assert result.entry_point == 0x200
    assert result.size == 2
    assert memory.read_instruction(0x200) == 0x6001

    result = loader.load_bytes(bytes(PROGRAM_LIMIT + 1))
    assert not result.success
    assert 'too large' in result.errors[0]


def test_loader_file(tmp_path):
    """ROMファイルロードのテスト"""
    memory = MemoryBank()
    loader = RomLoader()
    loader.connect_memory(memory)

    rom = tmp_path / "test.ch8"
    rom.write_bytes(b'\x12\x00')

    result = loader.load_rom(rom)
    assert result.success
    assert result.source == str(rom)
    assert memory.read_instruction(0x200) == 0x1200

    result = loader.load_rom(tmp_path / "missing.ch8")
    assert not result.success
    assert result.errors

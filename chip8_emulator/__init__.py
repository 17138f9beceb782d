"""
CHIP-8 仮想マシン
レトロ8ビット機 CHIP-8 のインタプリタ

対象範囲:
- 34命令ファミリのフェッチ・デコード・実行
- レジスタ・メモリ・スタック
- 64x32モノクロ表示バッファ
- 16キー入力ラッチ
- 60Hzタイマと実時間ペーシング
"""

__version__ = "0.1.0"
__author__ = "CHIP-8 Emulator Team"

from .cpu import Chip8Cpu, RegisterFile, Instruction, Opcode, decode
from .memory import MemoryBank
from .display import DisplayBuffer
from .keypad import InputLatch
from .timer import TimerController
from .clock import ClockController
from .loader import RomLoader
from .emulator import Chip8Emulator, EmulatorConfig
from .exceptions import (
    Chip8Error,
    MemoryAccessError,
    StackOverflowError,
    StackUnderflowError,
    RomTooLargeError,
    UnknownOpcodeError,
)

__all__ = [
    "Chip8Cpu",
    "RegisterFile",
    "Instruction",
    "Opcode",
    "decode",
    "MemoryBank",
    "DisplayBuffer",
    "InputLatch",
    "TimerController",
    "ClockController",
    "RomLoader",
    "Chip8Emulator",
    "EmulatorConfig",
    "Chip8Error",
    "MemoryAccessError",
    "StackOverflowError",
    "StackUnderflowError",
    "RomTooLargeError",
    "UnknownOpcodeError",
]

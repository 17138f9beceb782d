"""
メモリ/スタックモジュール

CHIP-8の4KBメモリマップとリターンアドレススタックを仮想再現

メモリマップ:
- 0x000 - 0x04F: 組み込みフォント (16グリフ x 5バイト)
- 0x050 - 0x1FF: インタプリタ予約領域
- 0x200 - 0xFFF: プログラム/データ領域
"""

from typing import List

from .exceptions import (
    MemoryAccessError,
    RomTooLargeError,
    StackOverflowError,
    StackUnderflowError,
)


MEMORY_SIZE = 4096
PROGRAM_START = 0x200
# 0x200 - 0xFFF をすべて使える
PROGRAM_LIMIT = MEMORY_SIZE - PROGRAM_START
STACK_SIZE = 16
EMPTY_STACK = -1

FONT_START = 0x000
FONT_GLYPH_SIZE = 5

# 組み込みフォント (0-F)
FONT_DATA = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,   # 0
    0x20, 0x60, 0x20, 0x20, 0x70,   # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,   # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,   # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,   # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,   # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,   # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,   # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,   # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,   # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,   # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,   # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,   # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,   # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,   # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,   # F
])


class MemoryBank:
    """
    メモリバンク

    4096バイトのフラットなメモリと16段のリターンアドレススタックを管理
    """

    def __init__(self):
        self.data = bytearray(MEMORY_SIZE)
        self.stack: List[int] = [0] * STACK_SIZE
        self.sp: int = EMPTY_STACK

        self._load_font()

    def _load_font(self) -> None:
        """フォントデータをメモリ先頭へ配置"""
        self.data[FONT_START:FONT_START + len(FONT_DATA)] = FONT_DATA

    @staticmethod
    def _check_address(address: int, operation: str) -> None:
        if not 0 <= address < MEMORY_SIZE:
            raise MemoryAccessError(address, operation)

    def read(self, address: int) -> int:
        """8ビット読み込み"""
        self._check_address(address, "read")
        return self.data[address]

    def write(self, address: int, value: int) -> None:
        """8ビット書き込み"""
        self._check_address(address, "write")
        self.data[address] = value & 0xFF

    def read_instruction(self, address: int) -> int:
        """命令読み込み (16ビット, ビッグエンディアン)"""
        if not 0 <= address < MEMORY_SIZE - 1:
            raise MemoryAccessError(address, "fetch")
        return (self.data[address] << 8) | self.data[address + 1]

    @property
    def stack_depth(self) -> int:
        """現在のスタック段数"""
        return self.sp + 1

    def push(self, address: int) -> None:
        """リターンアドレスをプッシュ"""
        if self.sp == STACK_SIZE - 1:
            raise StackOverflowError(f"Stack overflow: depth {STACK_SIZE} exceeded")
        self.sp += 1
        self.stack[self.sp] = address & 0xFFFF

    def pop(self) -> int:
        """リターンアドレスをポップ"""
        if self.sp == EMPTY_STACK:
            raise StackUnderflowError("Stack underflow: pop from empty stack")
        value = self.stack[self.sp]
        self.sp -= 1
        return value

    def load(self, data: bytes) -> None:
        """プログラムを0x200からロード"""
        if len(data) > PROGRAM_LIMIT:
            raise RomTooLargeError(len(data), PROGRAM_LIMIT)
        self.data[PROGRAM_START:PROGRAM_START + len(data)] = data

    def dump(self, start: int, size: int) -> bytes:
        """メモリ領域をダンプ"""
        return bytes(self.read(start + i) for i in range(size))

    def dump_hex(self, start: int, size: int, bytes_per_line: int = 16) -> str:
        """メモリを16進ダンプ形式で取得"""
        size = max(0, min(size, MEMORY_SIZE - start))
        lines = []
        data = self.dump(start, size)

        for i in range(0, size, bytes_per_line):
            addr = start + i
            hex_part = ' '.join(f'{b:02X}' for b in data[i:i+bytes_per_line])
            ascii_part = ''.join(
                chr(b) if 32 <= b < 127 else '.'
                for b in data[i:i+bytes_per_line]
            )
            lines.append(f'{addr:03X}: {hex_part:<{bytes_per_line*3}} {ascii_part}')

        return '\n'.join(lines)

    def reset(self) -> None:
        """メモリをリセット (フォントは保持)"""
        self.data = bytearray(MEMORY_SIZE)
        self._load_font()
        self.clear_stack()

    def clear_stack(self) -> None:
        """スタックを空にする"""
        self.stack = [0] * STACK_SIZE
        self.sp = EMPTY_STACK

    def get_state(self) -> dict:
        """スタック状態を取得"""
        return {
            'sp': self.sp,
            'depth': self.stack_depth,
            'stack': [f'0x{addr:03X}' for addr in self.stack[:self.stack_depth]],
        }

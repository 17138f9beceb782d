"""
例外定義モジュール

CHIP-8実行中の致命的エラー。いずれも破損・不正なプログラムを示し、
リトライせずに実行を終了する。
"""


class Chip8Error(RuntimeError):
    """CHIP-8エミュレータの致命的エラー基底クラス"""


class MemoryAccessError(Chip8Error):
    """メモリ範囲外アクセス"""

    def __init__(self, address: int, operation: str = "access"):
        self.address = address
        self.operation = operation
        super().__init__(f"Out of bounds {operation}: 0x{address:04X}")


class StackOverflowError(Chip8Error):
    """スタックオーバーフロー (深さ16でのPUSH)"""


class StackUnderflowError(Chip8Error):
    """スタックアンダーフロー (空スタックのPOP)"""


class RomTooLargeError(Chip8Error):
    """ROMがプログラム領域に収まらない"""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"ROM too large: {size} bytes (limit {limit} bytes)")


class UnknownOpcodeError(Chip8Error):
    """未定義命令"""

    def __init__(self, opcode: int, address: int = None):
        self.opcode = opcode
        self.address = address
        if address is None:
            super().__init__(f"Unknown instruction: 0x{opcode:04X}")
        else:
            super().__init__(f"Unknown instruction: 0x{opcode:04X} at PC=0x{address:04X}")

"""
ROMローダーモジュール

ヘッダなしの生バイト列ROMをプログラム領域(0x200〜)へロード
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union, TYPE_CHECKING

from .exceptions import RomTooLargeError
from .memory import PROGRAM_START

if TYPE_CHECKING:
    from .memory import MemoryBank


logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    """ロード結果"""
    success: bool = False
    entry_point: int = PROGRAM_START
    size: int = 0
    source: str = ""
    errors: List[str] = field(default_factory=list)


class RomLoader:
    """
    ROMローダー

    ファイルまたはバイト列をメモリバンクへ配置
    """

    def __init__(self):
        self.memory: Optional['MemoryBank'] = None

    def connect_memory(self, memory: 'MemoryBank') -> None:
        """メモリバンクを接続"""
        self.memory = memory

    def load_bytes(self, data: bytes, source: str = "<bytes>") -> LoadResult:
        """バイト列をロード"""
        result = LoadResult(source=source, size=len(data))

        try:
            self.memory.load(bytes(data))
        except RomTooLargeError as e:
            logger.error("Failed to load %s: %s", source, e)
            result.errors.append(str(e))
            return result

        result.success = True
        logger.info("Loaded %s (%d bytes) at 0x%03X", source, len(data), PROGRAM_START)
        return result

    def load_rom(self, filepath: Union[str, Path]) -> LoadResult:
        """ROMファイルをロード"""
        path = Path(filepath)

        try:
            data = path.read_bytes()
        except OSError as e:
            logger.error("Failed to read %s: %s", path, e)
            return LoadResult(source=str(path), errors=[str(e)])

        return self.load_bytes(data, source=str(path))

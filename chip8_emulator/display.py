"""
表示バッファモジュール

64x32モノクロディスプレイのフレームバッファ

座標系:
    (0,0)  ... (63,0)
    (0,31) ... (63,31)

1ピクセル1バイト (0=消灯, 非0=点灯)。ビットパックはしない。
"""

from typing import Iterator


SCREEN_WIDTH = 64
SCREEN_HEIGHT = 32
PIXEL_ON = 0xFF
PIXEL_OFF = 0x00


class DisplayBuffer:
    """
    ディスプレイバッファ

    行優先 (インデックス = x + 64 * y) の2048バイト
    """

    WIDTH = SCREEN_WIDTH
    HEIGHT = SCREEN_HEIGHT

    def __init__(self):
        self.pixels = bytearray(SCREEN_WIDTH * SCREEN_HEIGHT)

    def __len__(self) -> int:
        return len(self.pixels)

    def __getitem__(self, index: int) -> int:
        return self.pixels[index]

    @staticmethod
    def offset(x: int, y: int) -> int:
        """座標からバッファインデックスを計算"""
        return x + SCREEN_WIDTH * y

    def clear(self) -> None:
        """全ピクセル消灯"""
        self.pixels[:] = bytes(len(self.pixels))

    def get_pixel(self, x: int, y: int) -> bool:
        """ピクセル点灯状態を取得"""
        return self.pixels[self.offset(x, y)] != PIXEL_OFF

    def toggle(self, x: int, y: int) -> bool:
        """ピクセルをXOR反転し、反転前に点灯していたかを返す"""
        index = self.offset(x, y)
        previous = self.pixels[index]
        self.pixels[index] = previous ^ PIXEL_ON
        return previous != PIXEL_OFF

    def snapshot(self) -> bytes:
        """バッファのコピーを取得"""
        return bytes(self.pixels)

    def rows(self) -> Iterator[bytes]:
        """1行ずつバッファを返す"""
        for y in range(SCREEN_HEIGHT):
            start = y * SCREEN_WIDTH
            yield bytes(self.pixels[start:start + SCREEN_WIDTH])

    def lit_count(self) -> int:
        """点灯ピクセル数"""
        return sum(1 for p in self.pixels if p)

    def to_text(self, on: str = '#', off: str = '.') -> str:
        """テキスト表現 (デバッガ用)"""
        return '\n'.join(
            ''.join(on if p else off for p in row)
            for row in self.rows()
        )

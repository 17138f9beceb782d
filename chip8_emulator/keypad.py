"""
キーパッド入力モジュール

16キーの16進キーパッド状態をラッチ

オリジナル機のキー配置:
    1 2 3 C
    4 5 6 D
    7 8 9 E
    A 0 B F

ホストキーボードへの割り当て (DEFAULT_KEYMAP):
    1 2 3 4
    q w e r
    a s d f
    z x c v
"""

from typing import Dict, List, Optional


KEY_COUNT = 16

KEYPAD_LAYOUT = (
    (0x1, 0x2, 0x3, 0xC),
    (0x4, 0x5, 0x6, 0xD),
    (0x7, 0x8, 0x9, 0xE),
    (0xA, 0x0, 0xB, 0xF),
)

HOST_LAYOUT = (
    ('1', '2', '3', '4'),
    ('q', 'w', 'e', 'r'),
    ('a', 's', 'd', 'f'),
    ('z', 'x', 'c', 'v'),
)

DEFAULT_KEYMAP: Dict[str, int] = {
    host: key
    for host_row, key_row in zip(HOST_LAYOUT, KEYPAD_LAYOUT)
    for host, key in zip(host_row, key_row)
}


class InputLatch:
    """
    入力ラッチ

    キーインデックス(0-F)ごとの押下状態を保持
    入力コラボレータが書き込み、SKP/SKNP/LD Vx,Kが読み出す
    """

    def __init__(self):
        self.keys: List[bool] = [False] * KEY_COUNT

    def set(self, key: int, pressed: bool) -> None:
        """キー状態を設定"""
        self.keys[key] = pressed

    def poll(self, key: int) -> bool:
        """キー状態を取得"""
        return self.keys[key]

    def pressed_keys(self) -> List[int]:
        """押下中のキー一覧"""
        return [key for key, pressed in enumerate(self.keys) if pressed]

    def release_all(self) -> None:
        """全キーを離す"""
        for key in range(KEY_COUNT):
            self.set(key, False)

    def get_display(self) -> str:
        """キーパッド表示 (押下中は■)"""
        lines = []
        for row in KEYPAD_LAYOUT:
            lines.append(' '.join(
                '■' if self.keys[key] else f'{key:X}' for key in row
            ))
        return '\n'.join(lines)


def map_host_key(char: str, keymap: Optional[Dict[str, int]] = None) -> Optional[int]:
    """ホストキー文字をキーインデックスへ変換"""
    keymap = keymap if keymap is not None else DEFAULT_KEYMAP
    return keymap.get(char.lower())

"""
タイマモジュール

ディレイタイマ(DT)とサウンドタイマ(ST)の減算制御

命令実行ペースに対して1/divider の頻度で両タイマを減算する。
600命令/秒, divider=10 で 60Hz タイマを再現。
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .cpu import RegisterFile


class TimerController:
    """
    タイマコントローラ

    実行命令数を数え、divider命令ごとにDT/STを1ずつ減算 (0で停止)
    """

    def __init__(self, divider: int = 10):
        if divider < 1:
            raise ValueError(f"Timer divider must be positive: {divider}")

        self.divider = divider
        self.regs: 'RegisterFile' = None

        # 分周カウンタ
        self.prescale_counter: int = 0
        self.tick_count: int = 0

    def connect_registers(self, regs: 'RegisterFile') -> None:
        """レジスタファイルを接続"""
        self.regs = regs

    def tick(self) -> bool:
        """1命令分のティック。タイマを減算した場合Trueを返す"""
        self.prescale_counter += 1
        if self.prescale_counter < self.divider:
            return False

        self.prescale_counter = 0
        self.tick_count += 1

        if self.regs.dt > 0:
            self.regs.dt -= 1
        if self.regs.st > 0:
            self.regs.st -= 1

        return True

    @property
    def sound_active(self) -> bool:
        """ブザー鳴動中か (ST > 0)"""
        return self.regs.st > 0

    def reset(self) -> None:
        """タイマをリセット"""
        self.prescale_counter = 0
        self.tick_count = 0

    def get_state(self) -> dict:
        """タイマ状態を取得"""
        return {
            'dt': self.regs.dt,
            'st': self.regs.st,
            'divider': self.divider,
            'prescale_counter': self.prescale_counter,
            'tick_count': self.tick_count,
            'sound_active': self.sound_active,
        }

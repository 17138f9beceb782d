"""
クロック/実行制御モジュール

実時間ペーシングとブレークポイント管理

標準の命令実行レートは600命令/秒。
"""

import time
from typing import Callable, List, Optional


DEFAULT_INSTRUCTIONS_PER_SECOND = 600


class ClockController:
    """
    クロックコントローラ

    1命令ごとに次のデッドラインまでスリープし、目標実行レートを保つ
    """

    def __init__(self, instructions_per_second: int = DEFAULT_INSTRUCTIONS_PER_SECOND,
                 speed_multiplier: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep,
                 now: Callable[[], float] = time.perf_counter):
        self.instructions_per_second = instructions_per_second

        # 仮想実行速度制御
        self.speed_multiplier: float = 1.0  # 1.0 = リアルタイム
        self.set_speed_multiplier(speed_multiplier)

        self._sleep = sleep
        self._now = now
        self._deadline: Optional[float] = None

        # 現在のティックカウント
        self.tick_count: int = 0

    @property
    def throttled(self) -> bool:
        """ペーシング有効か (0は無制限)"""
        return self.instructions_per_second > 0

    @property
    def cycle_period(self) -> float:
        """1命令あたりの秒数"""
        if not self.throttled:
            return 0.0
        return 1.0 / (self.instructions_per_second * self.speed_multiplier)

    def set_speed_multiplier(self, multiplier: float) -> None:
        """実行速度倍率を設定"""
        self.speed_multiplier = max(0.01, multiplier)

    def pace(self) -> float:
        """次の命令時刻まで待機し、スリープ秒数を返す"""
        self.tick_count += 1
        if not self.throttled:
            return 0.0

        now = self._now()
        if self._deadline is None:
            self._deadline = now

        self._deadline += self.cycle_period
        delay = self._deadline - now

        if delay > 0:
            self._sleep(delay)
            return delay

        # 大きく遅れた場合は追いつこうとせず基準を取り直す
        if -delay > self.cycle_period * 10:
            self._deadline = now
        return 0.0

    def reset(self) -> None:
        """クロックをリセット"""
        self._deadline = None
        self.tick_count = 0

    def get_state(self) -> dict:
        """クロック状態を取得"""
        return {
            'instructions_per_second': self.instructions_per_second,
            'speed_multiplier': self.speed_multiplier,
            'throttled': self.throttled,
            'tick_count': self.tick_count,
        }


class ExecutionController:
    """
    実行制御

    ブレークポイントの管理
    """

    def __init__(self):
        self.running: bool = False

        # ブレークポイント
        self.breakpoints: set = set()

    def add_breakpoint(self, address: int) -> None:
        """ブレークポイントを追加"""
        self.breakpoints.add(address)

    def remove_breakpoint(self, address: int) -> None:
        """ブレークポイントを削除"""
        self.breakpoints.discard(address)

    def toggle_breakpoint(self, address: int) -> bool:
        """ブレークポイントをトグル"""
        if address in self.breakpoints:
            self.breakpoints.remove(address)
            return False
        else:
            self.breakpoints.add(address)
            return True

    def is_breakpoint(self, address: int) -> bool:
        """ブレークポイントかチェック"""
        return address in self.breakpoints

    def clear_all(self) -> None:
        """全てのブレークポイントをクリア"""
        self.breakpoints.clear()

    def start(self) -> None:
        """実行開始"""
        self.running = True

    def stop(self) -> None:
        """実行停止"""
        self.running = False

    def get_state(self) -> dict:
        """実行制御状態を取得"""
        return {
            'running': self.running,
            'breakpoints': sorted(self.breakpoints),
        }

    def list_breakpoints(self) -> List[int]:
        return sorted(self.breakpoints)

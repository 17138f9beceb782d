"""
CHIP-8エミュレータ メインモジュール

全モジュールを統合してサイクル制御を行う

1サイクルの順序:
    入力ポーリング → フェッチ/実行 → タイマ減算(10命令ごと) → 画面公開 → 音声 → ペーシング
"""

import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from .clock import ClockController, ExecutionController, DEFAULT_INSTRUCTIONS_PER_SECOND
from .cpu import Chip8Cpu, CPUState, Instruction, REGISTER_COUNT
from .display import DisplayBuffer
from .exceptions import Chip8Error
from .keypad import InputLatch
from .loader import LoadResult, RomLoader
from .memory import MemoryBank
from .timer import TimerController


logger = logging.getLogger(__name__)


@dataclass
class EmulatorConfig:
    """エミュレータ設定"""
    # 実行速度設定
    instructions_per_second: int = DEFAULT_INSTRUCTIONS_PER_SECOND  # 0 = 無制限
    speed_multiplier: float = 1.0

    # タイマ設定 (命令数/タイマティック)
    timer_divider: int = 10

    # 乱数シード (RND命令)
    rng_seed: Optional[int] = None

    # デバッグ設定
    trace_enabled: bool = False


class Chip8Emulator:
    """
    CHIP-8仮想マシン

    全てのコンポーネントを所有し、フェッチ・実行ループを駆動する
    """

    def __init__(self, config: Optional[EmulatorConfig] = None):
        self.config = config or EmulatorConfig()

        # コンポーネント初期化
        self.cpu = Chip8Cpu(rng=random.Random(self.config.rng_seed))
        self.memory = MemoryBank()
        self.display = DisplayBuffer()
        self.keypad = InputLatch()
        self.timer = TimerController(self.config.timer_divider)
        self.clock = ClockController(
            self.config.instructions_per_second,
            self.config.speed_multiplier,
        )
        self.execution = ExecutionController()
        self.loader = RomLoader()

        # コンポーネント接続
        self._connect_components()

        # 外部コラボレータ
        self.on_input_poll: Optional[Callable[['Chip8Emulator'], None]] = None
        self.on_frame: Optional[Callable[[DisplayBuffer], None]] = None
        self.on_sound: Optional[Callable[[bool], None]] = None

        # イベントコールバック
        self.on_step: Optional[Callable] = None
        self.on_breakpoint: Optional[Callable] = None
        self.on_error: Optional[Callable] = None

        # 実行状態
        self.running: bool = False
        self.last_error: Optional[str] = None

    def _connect_components(self) -> None:
        """コンポーネントを相互接続"""
        self.cpu.connect_memory(self.memory)
        self.cpu.connect_display(self.display)
        self.cpu.connect_keypad(self.keypad)

        self.timer.connect_registers(self.cpu.regs)
        self.loader.connect_memory(self.memory)

        if self.config.trace_enabled:
            self.cpu.trace_callback = self._trace

    @staticmethod
    def _trace(address: int, instruction: Instruction, regs) -> None:
        logger.debug("%03X: %04X  %s", address, instruction.raw, instruction.mnemonic())

    def load_rom(self, filepath: Union[str, Path]) -> LoadResult:
        """ROMファイルをロード"""
        return self.loader.load_rom(filepath)

    def load_program_bytes(self, data: bytes) -> LoadResult:
        """バイト列を直接ロード"""
        return self.loader.load_bytes(data)

    def reset(self) -> None:
        """システムリセット (ロード済みプログラムは保持)"""
        self.cpu.reset()
        self.timer.connect_registers(self.cpu.regs)
        self.timer.reset()
        self.clock.reset()
        self.display.clear()
        self.keypad.release_all()

        self.memory.clear_stack()

        self.running = False
        self.last_error = None
        logger.info("System reset")

    def step(self) -> Instruction:
        """1サイクル実行"""
        # 入力ポーリング
        if self.on_input_poll:
            self.on_input_poll(self)

        # フェッチ/実行
        try:
            instruction = self.cpu.step()
        except Chip8Error as e:
            self.cpu.state = CPUState.EXCEPTION
            self.running = False
            self.last_error = str(e)
            if self.on_error:
                self.on_error(str(e))
            raise

        # タイマ更新は実行後・画面公開前
        self.timer.tick()

        # 画面公開
        if self.on_frame:
            self.on_frame(self.display)

        # 音声
        if self.on_sound:
            self.on_sound(self.timer.sound_active)

        if self.on_step:
            self.on_step(self.cpu.regs.pc, self.cpu.instruction_count)

        return instruction

    def run(self, max_instructions: int = 0) -> int:
        """連続実行 (実時間ペーシング付き)"""
        self.running = True
        self.execution.start()
        if self.cpu.state != CPUState.WAITING:
            self.cpu.state = CPUState.RUNNING
        executed = 0

        try:
            while self.running:
                if max_instructions > 0 and executed >= max_instructions:
                    break

                # ブレークポイントチェック (開始位置は除く)
                if executed > 0 and self.execution.is_breakpoint(self.cpu.regs.pc):
                    if self.on_breakpoint:
                        self.on_breakpoint(self.cpu.regs.pc)
                    break

                self.step()
                executed += 1

                self.clock.pace()

        except Chip8Error as e:
            logger.error("Fatal: %s", e)

        self.running = False
        self.execution.stop()
        if self.cpu.state == CPUState.RUNNING:
            self.cpu.state = CPUState.STOPPED
        return executed

    def stop(self) -> None:
        """実行停止"""
        self.running = False

    # === キー入力 ===

    def press_key(self, key: int) -> None:
        """キーを押す"""
        self.keypad.set(key, True)

    def release_key(self, key: int) -> None:
        """キーを離す"""
        self.keypad.set(key, False)

    # === ブレークポイント ===

    def add_breakpoint(self, address: int) -> None:
        """ブレークポイント追加"""
        self.execution.add_breakpoint(address)

    def remove_breakpoint(self, address: int) -> None:
        """ブレークポイント削除"""
        self.execution.remove_breakpoint(address)

    def toggle_breakpoint(self, address: int) -> bool:
        """ブレークポイントトグル"""
        return self.execution.toggle_breakpoint(address)

    # === レジスタ/メモリアクセス ===

    def get_register(self, name: str) -> Optional[int]:
        """レジスタ値取得"""
        name = name.upper()
        regs = self.cpu.regs
        if name in ('PC', 'SP', 'I', 'DT', 'ST'):
            return getattr(regs, name.lower())
        elif name.startswith('V') and len(name) == 2:
            try:
                idx = int(name[1], 16)
            except ValueError:
                return None
            return regs.get(idx)
        return None

    def set_register(self, name: str, value: int) -> bool:
        """レジスタ値設定 (SPはコールスタックに従うため変更不可)"""
        name = name.upper()
        regs = self.cpu.regs

        if name in ('PC', 'I'):
            setattr(regs, name.lower(), value & 0xFFFF)
            return True
        elif name in ('DT', 'ST'):
            setattr(regs, name.lower(), value & 0xFF)
            return True
        elif name.startswith('V') and len(name) == 2:
            try:
                idx = int(name[1], 16)
            except ValueError:
                return False
            if 0 <= idx < REGISTER_COUNT:
                regs.set(idx, value)
                return True
        return False

    def read_memory(self, address: int) -> int:
        """メモリ読み込み"""
        return self.memory.read(address)

    def write_memory(self, address: int, value: int) -> None:
        """メモリ書き込み"""
        self.memory.write(address, value)

    def dump_memory(self, start: int, size: int) -> str:
        """メモリダンプ"""
        return self.memory.dump_hex(start, size)

    def get_state(self) -> dict:
        """システム状態取得"""
        return {
            'cpu': self.cpu.get_state(),
            'stack': self.memory.get_state(),
            'timer': self.timer.get_state(),
            'clock': self.clock.get_state(),
            'execution': self.execution.get_state(),
            'keys': self.keypad.pressed_keys(),
            'last_error': self.last_error,
        }

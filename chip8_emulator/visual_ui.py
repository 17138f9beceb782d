"""
ビジュアルUI モジュール

ターミナル上でCHIP-8を動かすための外部コラボレータ群
- 画面: 64x32バッファを半角ブロック文字で描画
- 入力: 非ブロッキングのstdin読み込みをキーパッドへ反映
- 音声: STが0より大きくなった瞬間にターミナルベル
- CPUレジスタ/キーパッドのリアルタイム表示
"""

import io
import os
import select
import sys
import time
from typing import Dict, Optional

from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich import box

from .display import DisplayBuffer, SCREEN_WIDTH, SCREEN_HEIGHT
from .emulator import Chip8Emulator
from .keypad import DEFAULT_KEYMAP, KEYPAD_LAYOUT, map_host_key


QUIT_KEY = '\x1b'  # ESC


class ScreenRenderer:
    """
    画面描画コラボレータ

    2行を1文字 (▀ ▄ █) にまとめて描画
    """

    UPPER = "▀"
    LOWER = "▄"
    FULL = "█"
    EMPTY = " "

    def __init__(self, style: str = "bright_green"):
        self.style = style
        self.frame: bytes = bytes(SCREEN_WIDTH * SCREEN_HEIGHT)
        self.frame_count: int = 0

    def publish(self, display: DisplayBuffer) -> None:
        """フレームバッファを受け取る (毎サイクル呼ばれる)"""
        self.frame = display.snapshot()
        self.frame_count += 1

    def render_text(self) -> Text:
        """現在のフレームをrich Textに変換"""
        lines = []
        frame = self.frame
        for y in range(0, SCREEN_HEIGHT, 2):
            top = frame[y * SCREEN_WIDTH:(y + 1) * SCREEN_WIDTH]
            bottom = frame[(y + 1) * SCREEN_WIDTH:(y + 2) * SCREEN_WIDTH]
            chars = []
            for upper, lower in zip(top, bottom):
                if upper and lower:
                    chars.append(self.FULL)
                elif upper:
                    chars.append(self.UPPER)
                elif lower:
                    chars.append(self.LOWER)
                else:
                    chars.append(self.EMPTY)
            lines.append(''.join(chars))
        return Text('\n'.join(lines), style=self.style)


class TerminalBuzzer:
    """
    音声コラボレータ

    ターミナルにトーン生成手段がないため、鳴動開始時にベルを鳴らす
    """

    def __init__(self, console: Console, enabled: bool = True):
        self.console = console
        self.enabled = enabled
        self.active: bool = False
        self.beep_count: int = 0

    def update(self, active: bool) -> None:
        """ST > 0 の状態を受け取る"""
        if active and not self.active:
            self.beep_count += 1
            if self.enabled:
                self.console.bell()
        self.active = active


class TerminalKeyboard:
    """
    入力コラボレータ

    stdinから1文字ずつ読み込み、キーパッドに反映する。
    ターミナルにはキーリリースが無いため、押下から hold_time 秒で離す。
    """

    def __init__(self, keymap: Optional[Dict[str, int]] = None, hold_time: float = 0.15,
                 stream=None):
        self.keymap = keymap if keymap is not None else DEFAULT_KEYMAP
        self.hold_time = hold_time
        self.stream = stream or sys.stdin
        self.release_at: Dict[int, float] = {}
        self.quit_requested: bool = False

        # __enter__ でファイルディスクリプタを確認するまでは読み込まない
        self._fd: Optional[int] = None
        self._saved_attrs = None

    def __enter__(self) -> 'TerminalKeyboard':
        try:
            fd = self.stream.fileno()
        except (io.UnsupportedOperation, OSError, ValueError):
            # 疑似ファイル (テストのキャプチャ等) では入力なしで動かす
            return self

        self._fd = fd
        if os.isatty(fd):
            import termios
            import tty
            self._saved_attrs = termios.tcgetattr(fd)
            tty.setcbreak(fd)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._saved_attrs is not None:
            import termios
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved_attrs)
            self._saved_attrs = None
        self._fd = None

    def _read_pending(self) -> str:
        if self._fd is None:
            return ''

        chars = []
        while select.select([self._fd], [], [], 0)[0]:
            char = os.read(self._fd, 1).decode(errors='ignore')
            if not char:
                break
            chars.append(char)
        return ''.join(chars)

    def feed(self, emu: Chip8Emulator, chars: str, now: Optional[float] = None) -> None:
        """入力文字をキーパッドへ反映"""
        now = time.monotonic() if now is None else now

        for char in chars:
            if char == QUIT_KEY:
                self.quit_requested = True
                emu.stop()
                continue
            key = map_host_key(char, self.keymap)
            if key is not None:
                emu.press_key(key)
                self.release_at[key] = now + self.hold_time

        for key, deadline in list(self.release_at.items()):
            if now >= deadline:
                emu.release_key(key)
                del self.release_at[key]

    def poll(self, emu: Chip8Emulator) -> None:
        """サイクル先頭で呼ばれる入力ポーリング"""
        self.feed(emu, self._read_pending())


class RichVisualUI:
    """
    Rich ライブラリを使ったビジュアルUI
    """

    def __init__(self, emulator: Chip8Emulator, console: Optional[Console] = None,
                 bell: bool = True, refresh_per_second: int = 30,
                 keyboard: Optional[TerminalKeyboard] = None):
        self.emu = emulator
        self.console = console or Console()
        self.refresh_per_second = refresh_per_second

        self.renderer = ScreenRenderer()
        self.buzzer = TerminalBuzzer(self.console, enabled=bell)
        self.keyboard = keyboard or TerminalKeyboard()

        self.layout = self.create_layout()
        self.attach()

    def attach(self) -> None:
        """エミュレータにコラボレータを接続"""
        self.emu.on_input_poll = self.keyboard.poll
        self.emu.on_frame = self.renderer.publish
        self.emu.on_sound = self.buzzer.update

    def create_screen_panel(self) -> Panel:
        """画面パネルを作成"""
        return Panel(self.renderer.render_text(), title="[bold green]CHIP-8[/bold green]",
                     border_style="green", box=box.ROUNDED, expand=False)

    def create_cpu_panel(self) -> Panel:
        """CPUステータスパネルを作成"""
        state = self.emu.cpu.get_state()

        table = Table(show_header=False, box=box.SIMPLE, padding=(0, 1))
        for _ in range(4):
            table.add_column(style="cyan", width=3)
            table.add_column(style="green", width=4)

        regs = state['registers']
        for row in range(0, 16, 4):
            cells = []
            for j in range(row, row + 4):
                cells.extend([f"V{j:X}", f"{regs[f'V{j:X}']:02X}"])
            table.add_row(*cells)

        status = Text()
        status.append("PC ", style="bold yellow")
        status.append(f"{state['pc']:03X}  ", style="bright_green")
        status.append("I ", style="bold yellow")
        status.append(f"{state['i']:03X}  ", style="bright_green")
        status.append("SP ", style="bold yellow")
        status.append(f"{state['sp']}\n", style="bright_green")
        status.append("DT ", style="bold yellow")
        status.append(f"{state['dt']:3d}  ", style="bright_green")
        status.append("ST ", style="bold yellow")
        status.append(f"{state['st']:3d}\n", style="bright_green")
        status.append(f"{state['state']}  ", style="yellow")
        status.append(f"{state['instructions']} inst", style="dim")
        if state['last_instruction']:
            status.append(f"\n{state['last_instruction']}", style="dim")

        return Panel(Group(status, table), title="[bold blue]CPU[/bold blue]",
                     border_style="blue", box=box.ROUNDED)

    def create_keypad_panel(self) -> Panel:
        """キーパッドパネルを作成"""
        host_for_key = {key: host for host, key in self.keyboard.keymap.items()}
        text = Text()
        for row in KEYPAD_LAYOUT:
            for key in row:
                style = "bold black on bright_yellow" if self.emu.keypad.poll(key) else "white"
                text.append(f" {key:X}", style=style)
                text.append(f"({host_for_key.get(key, '?')})", style="dim")
            text.append("\n")
        text.append("ESC: quit", style="dim")
        return Panel(text, title="[bold yellow]Keypad[/bold yellow]",
                     border_style="yellow", box=box.ROUNDED)

    def create_layout(self) -> Layout:
        """全体レイアウトを作成"""
        layout = Layout()
        layout.split_row(
            Layout(name="screen", size=SCREEN_WIDTH + 4),
            Layout(name="side"),
        )
        layout["side"].split_column(
            Layout(name="cpu", size=14),
            Layout(name="keypad"),
        )
        return layout

    def update_layout(self) -> Layout:
        """レイアウトを更新"""
        self.layout["screen"].update(self.create_screen_panel())
        self.layout["cpu"].update(self.create_cpu_panel())
        self.layout["keypad"].update(self.create_keypad_panel())
        return self.layout

    def run_interactive(self, max_instructions: int = 0) -> int:
        """インタラクティブモードで実行"""
        executed = 0
        with self.keyboard:
            try:
                with Live(console=self.console, screen=True,
                          refresh_per_second=self.refresh_per_second,
                          get_renderable=self.update_layout):
                    executed = self.emu.run(max_instructions)
            except KeyboardInterrupt:
                self.emu.stop()

        if self.emu.last_error:
            self.console.print(f"[bold red]Stopped:[/bold red] {self.emu.last_error}")
        else:
            self.console.print("[yellow]Emulator stopped.[/yellow]")
        return executed

    def show_static(self) -> None:
        """静的表示（1回だけ表示）"""
        self.console.print(self.update_layout())

"""
デバッガ/UIモジュール

内部状態可視化と操作:
- Run / Step
- レジスタ表示
- メモリ表示
- 逆アセンブル
- キー入力・画面表示
"""

from dataclasses import dataclass
from typing import Callable, List, Optional

from .cpu import decode, CPUState, INSTRUCTION_SIZE
from .emulator import Chip8Emulator
from .exceptions import Chip8Error, UnknownOpcodeError
from .keypad import KEY_COUNT
from .memory import MEMORY_SIZE


@dataclass
class DisassembledInstruction:
    """逆アセンブル結果"""
    address: int
    word: int
    mnemonic: str

    def __str__(self) -> str:
        return f"0x{self.address:03X}: {self.word:04X}  {self.mnemonic}"


class Disassembler:
    """
    逆アセンブラ

    デコーダを使ってメモリ上の命令語を表記に変換
    """

    def __init__(self, emulator: Chip8Emulator):
        self.emu = emulator

    def disassemble(self, address: int, count: int = 10) -> List[DisassembledInstruction]:
        """指定アドレスから逆アセンブル"""
        result = []
        current = address

        for _ in range(count):
            if not 0 <= current < MEMORY_SIZE - 1:
                break
            word = self.emu.memory.read_instruction(current)
            try:
                mnemonic = decode(word).mnemonic()
            except UnknownOpcodeError:
                # データ領域など
                mnemonic = f"DW 0x{word:04X}"
            result.append(DisassembledInstruction(current, word, mnemonic))
            current += INSTRUCTION_SIZE

        return result


class Debugger:
    """
    デバッガ

    エミュレータのデバッグ機能を提供
    """

    def __init__(self, emulator: Chip8Emulator):
        self.emu = emulator
        self.disasm = Disassembler(emulator)

        # 履歴
        self.command_history: List[str] = []
        self.execution_history: List[dict] = []

        # 出力コールバック
        self.output_callback: Optional[Callable] = None

    def output(self, text: str) -> None:
        """出力"""
        if self.output_callback:
            self.output_callback(text)
        else:
            print(text)

    def show_registers(self) -> None:
        """レジスタ表示"""
        state = self.emu.cpu.get_state()

        self.output("=== CPU Registers ===")
        self.output(f"PC: 0x{state['pc']:03X}   I: 0x{state['i']:03X}   SP: {state['sp']}")
        self.output(f"DT: {state['dt']:3d}     ST: {state['st']:3d}     State: {state['state']}")

        regs = state['registers']
        for row in range(0, 16, 4):
            line = '  '.join(f"V{j:X}: 0x{regs[f'V{j:X}']:02X}" for j in range(row, row + 4))
            self.output(line)

        self.output(f"\nCycles: {state['cycles']}  Instructions: {state['instructions']}")

    def show_memory(self, address: int, size: int = 64) -> None:
        """メモリ表示"""
        self.output(f"=== Memory Dump: 0x{address:03X} ===")
        self.output(self.emu.dump_memory(address, size))

    def show_disassembly(self, address: Optional[int] = None, count: int = 10) -> None:
        """逆アセンブル表示"""
        if address is None:
            address = self.emu.cpu.regs.pc

        self.output(f"=== Disassembly: 0x{address:03X} ===")
        for instr in self.disasm.disassemble(address, count):
            marker = '>' if instr.address == self.emu.cpu.regs.pc else ' '
            bp_marker = '*' if self.emu.execution.is_breakpoint(instr.address) else ' '
            self.output(f"{marker}{bp_marker} {instr}")

    def show_stack(self) -> None:
        """スタック表示"""
        state = self.emu.memory.get_state()
        self.output(f"=== Stack (depth {state['depth']}) ===")
        for depth, addr in enumerate(state['stack']):
            self.output(f"  [{depth:2d}] {addr}")

    def show_display(self) -> None:
        """画面バッファ表示"""
        self.output("=== Display ===")
        self.output(self.emu.display.to_text())

    def show_keypad(self) -> None:
        """キーパッド表示"""
        self.output("=== Keypad ===")
        self.output(self.emu.keypad.get_display())

    def show_breakpoints(self) -> None:
        """ブレークポイント表示"""
        self.output("=== Breakpoints ===")
        bps = self.emu.execution.list_breakpoints()
        if bps:
            for bp in bps:
                self.output(f"  0x{bp:03X}")
        else:
            self.output("  (none)")

    def step(self, count: int = 1) -> None:
        """ステップ実行"""
        for _ in range(count):
            pc_before = self.emu.cpu.regs.pc
            self.emu.step()
            pc_after = self.emu.cpu.regs.pc

            # 履歴記録
            self.execution_history.append({
                'pc_before': pc_before,
                'pc_after': pc_after,
                'instruction': str(self.emu.cpu.last_instruction),
            })

            if self.emu.cpu.state == CPUState.EXCEPTION:
                break

    def run_until(self, address: int) -> int:
        """指定アドレスまで実行"""
        self.emu.add_breakpoint(address)
        executed = self.emu.run()
        self.emu.remove_breakpoint(address)
        return executed

    def show_help(self) -> None:
        """ヘルプ表示"""
        help_text = """
=== Debugger Commands ===
  r, regs       - Show registers
  m <addr> [n]  - Show memory (n bytes, default 64)
  d [addr] [n]  - Disassemble (n instructions, default 10)
  s [n]         - Step (n instructions, default 1)
  g [n]         - Run (continue, at most n instructions)
  b <addr>      - Toggle breakpoint
  bl            - List breakpoints
  stack         - Show call stack
  screen        - Show display buffer
  keys          - Show keypad state
  kp <key>      - Press key (0-F)
  kr <key>      - Release key (0-F)
  set <reg> <v> - Set register (V0-VF, I, PC, DT, ST)
  reset         - Reset system
  q, quit       - Quit debugger
  h, help       - Show this help
"""
        self.output(help_text)


class CLIDebugger(Debugger):
    """
    CLIデバッガ

    コマンドライン対話型デバッガ
    """

    def __init__(self, emulator: Chip8Emulator):
        super().__init__(emulator)
        self.running_cli = True

    def run_cli(self) -> None:
        """CLI実行"""
        self.output("CHIP-8 Emulator Debugger")
        self.output("Type 'help' for commands")
        self.output("")

        self.show_registers()

        while self.running_cli:
            try:
                cmd = input("\n(c8dbg) ").strip()
                if cmd:
                    self.execute_command(cmd)
            except EOFError:
                break
            except KeyboardInterrupt:
                self.output("\nInterrupted")
                self.emu.stop()

    @staticmethod
    def _parse_key(text: str) -> int:
        key = int(text, 16)
        if not 0 <= key < KEY_COUNT:
            raise ValueError(f"key out of range: {text}")
        return key

    def execute_command(self, cmd: str) -> None:
        """コマンド実行"""
        self.command_history.append(cmd)
        parts = cmd.split()

        if not parts:
            return

        command = parts[0].lower()
        args = parts[1:]

        try:
            if command in ('r', 'regs'):
                self.show_registers()

            elif command in ('m', 'mem'):
                addr = int(args[0], 0) if args else self.emu.cpu.regs.i
                size = int(args[1], 0) if len(args) > 1 else 64
                self.show_memory(addr, size)

            elif command in ('d', 'dis', 'disasm'):
                addr = int(args[0], 0) if args else None
                count = int(args[1]) if len(args) > 1 else 10
                self.show_disassembly(addr, count)

            elif command in ('s', 'step'):
                count = int(args[0]) if args else 1
                self.step(count)
                self.show_registers()
                self.show_disassembly(count=3)

            elif command in ('g', 'go', 'run', 'c', 'continue'):
                max_inst = int(args[0]) if args else 100000
                executed = self.emu.run(max_inst)
                self.output(f"Executed {executed} instructions")
                if self.emu.last_error:
                    self.output(f"Stopped: {self.emu.last_error}")
                self.show_registers()

            elif command in ('b', 'bp', 'break'):
                if args:
                    addr = int(args[0], 0)
                    if self.emu.toggle_breakpoint(addr):
                        self.output(f"Breakpoint set at 0x{addr:03X}")
                    else:
                        self.output(f"Breakpoint removed at 0x{addr:03X}")
                else:
                    self.show_breakpoints()

            elif command in ('bl', 'blist'):
                self.show_breakpoints()

            elif command == 'stack':
                self.show_stack()

            elif command in ('screen', 'display'):
                self.show_display()

            elif command == 'keys':
                self.show_keypad()

            elif command == 'kp':
                if args:
                    key = self._parse_key(args[0])
                    self.emu.press_key(key)
                    self.output(f"Key {key:X} pressed")

            elif command == 'kr':
                if args:
                    key = self._parse_key(args[0])
                    self.emu.release_key(key)
                    self.output(f"Key {key:X} released")

            elif command == 'set':
                if len(args) >= 2:
                    name = args[0].upper()
                    value = int(args[1], 0)
                    if self.emu.set_register(name, value):
                        self.output(f"{name} = 0x{value:X}")
                    else:
                        self.output(f"Cannot set register: {name}")

            elif command == 'reset':
                self.emu.reset()
                self.output("System reset")
                self.show_registers()

            elif command in ('q', 'quit', 'exit'):
                self.running_cli = False

            elif command in ('h', 'help', '?'):
                self.show_help()

            else:
                self.output(f"Unknown command: {command}")
                self.output("Type 'help' for available commands")

        except ValueError as e:
            self.output(f"Invalid argument: {e}")
        except Chip8Error as e:
            self.output(f"Error: {e}")

"""
CHIP-8 CPUコアモジュール

命令デコード・実行・PC制御を行う中核モジュール

レジスタ構成:
- 汎用レジスタ: V0〜VF (8ビット, VFはフラグ兼用)
- DT/ST: ディレイタイマ/サウンドタイマ (8ビット)
- I: インデックスレジスタ (16ビット)
- PC: プログラムカウンタ (初期値0x200)
- SP: スタック深さ

命令フォーマット (16ビット, ビッグエンディアン):
    x = bits 8-11, y = bits 4-7, n = bits 0-3, kk = bits 0-7, nnn = bits 0-11

PC制御:
    全命令の実行後にPCを無条件で+2する。絶対アドレスへ分岐する命令
    (JP, CALL, JP V0) は目標アドレス-2を設定し、+2後に目標へ着地させる。
    CALLはCALL命令自身のアドレスを積み、RETはそれを復元して+2で次の命令へ戻る。
"""

import logging
import random
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Callable, Dict, List, Optional, TYPE_CHECKING

from .exceptions import UnknownOpcodeError
from .display import SCREEN_WIDTH, SCREEN_HEIGHT
from .memory import FONT_START, FONT_GLYPH_SIZE, PROGRAM_START
from .keypad import KEY_COUNT

if TYPE_CHECKING:
    from .memory import MemoryBank
    from .display import DisplayBuffer
    from .keypad import InputLatch


logger = logging.getLogger(__name__)

REGISTER_COUNT = 16
FLAG_REGISTER = 0xF
INSTRUCTION_SIZE = 2
SPRITE_WIDTH = 8


class CPUState(IntEnum):
    """CPU状態"""
    STOPPED = 0
    RUNNING = 1
    WAITING = 2     # LD Vx,K のキー待ち
    EXCEPTION = 3


@dataclass
class RegisterFile:
    """CPUレジスタセット"""
    # 汎用レジスタ V0-VF
    v: List[int] = field(default_factory=lambda: [0] * REGISTER_COUNT)

    # タイマ
    dt: int = 0
    st: int = 0

    # インデックスレジスタ
    i: int = 0

    # プログラムカウンタ
    pc: int = PROGRAM_START

    # スタック深さ
    sp: int = 0

    def get(self, index: int) -> int:
        """汎用レジスタ読み込み"""
        return self.v[index]

    def set(self, index: int, value: int) -> None:
        """汎用レジスタ書き込み"""
        self.v[index] = value & 0xFF

    @property
    def vf(self) -> int:
        """フラグレジスタ (VF)"""
        return self.v[FLAG_REGISTER]

    @vf.setter
    def vf(self, value: int) -> None:
        self.v[FLAG_REGISTER] = value & 0xFF

    def __str__(self) -> str:
        lines = []
        for row in range(0, REGISTER_COUNT, 4):
            lines.append('   '.join(
                f'v{idx:x}[{self.v[idx]:02x}]' for idx in range(row, row + 4)
            ))
        lines.append(f'dt[{self.dt:02x}]   st[{self.st:02x}]')
        lines.append(f' i[{self.i:04x}]')
        lines.append(f'sp[{self.sp:04x}]')
        lines.append(f'pc[{self.pc:04x}]')
        return '\n'.join(lines)


class Opcode(Enum):
    """命令ファミリ"""
    CLS = "cls"
    RET = "ret"
    JP = "jp"
    CALL = "call"
    SE_BYTE = "se"
    SNE_BYTE = "sne"
    SE_REG = "se"
    LD_BYTE = "ld"
    ADD_BYTE = "add"
    LD_REG = "ld"
    OR = "or"
    AND = "and"
    XOR = "xor"
    ADD_REG = "add"
    SUB = "sub"
    SHR = "shr"
    SUBN = "subn"
    SHL = "shl"
    SNE_REG = "sne"
    LD_I = "ld"
    JP_V0 = "jp"
    RND = "rnd"
    DRW = "drw"
    SKP = "skp"
    SKNP = "sknp"
    LD_VX_DT = "ld"
    LD_VX_K = "ld"
    LD_DT_VX = "ld"
    LD_ST_VX = "ld"
    ADD_I_VX = "add"
    LD_F_VX = "ld"
    LD_B_VX = "ld"
    LD_MEM_VX = "ld"
    LD_VX_MEM = "ld"

    def __new__(cls, mnemonic: str):
        # 同じニーモニックを持つ別命令をエイリアスにしないため連番を値にする
        obj = object.__new__(cls)
        obj._value_ = len(cls.__members__) + 1
        obj.mnemonic = mnemonic
        return obj


# オペランド表記 (ニーモニックの後ろに付く)
_OPERAND_FORMATS: Dict[Opcode, str] = {
    Opcode.CLS: "",
    Opcode.RET: "",
    Opcode.JP: "{nnn:#05x}",
    Opcode.CALL: "{nnn:#05x}",
    Opcode.SE_BYTE: "v{x:x}, {kk:#04x}",
    Opcode.SNE_BYTE: "v{x:x}, {kk:#04x}",
    Opcode.SE_REG: "v{x:x}, v{y:x}",
    Opcode.LD_BYTE: "v{x:x}, {kk:#04x}",
    Opcode.ADD_BYTE: "v{x:x}, {kk:#04x}",
    Opcode.LD_REG: "v{x:x}, v{y:x}",
    Opcode.OR: "v{x:x}, v{y:x}",
    Opcode.AND: "v{x:x}, v{y:x}",
    Opcode.XOR: "v{x:x}, v{y:x}",
    Opcode.ADD_REG: "v{x:x}, v{y:x}",
    Opcode.SUB: "v{x:x}, v{y:x}",
    Opcode.SHR: "v{x:x} {{, v{y:x}}}",
    Opcode.SUBN: "v{x:x}, v{y:x}",
    Opcode.SHL: "v{x:x} {{, v{y:x}}}",
    Opcode.SNE_REG: "v{x:x}, v{y:x}",
    Opcode.LD_I: "i, {nnn:#05x}",
    Opcode.JP_V0: "v0, {nnn:#05x}",
    Opcode.RND: "v{x:x}, {kk:#04x}",
    Opcode.DRW: "v{x:x}, v{y:x}, {n}",
    Opcode.SKP: "v{x:x}",
    Opcode.SKNP: "v{x:x}",
    Opcode.LD_VX_DT: "v{x:x}, dt",
    Opcode.LD_VX_K: "v{x:x}, k",
    Opcode.LD_DT_VX: "dt, v{x:x}",
    Opcode.LD_ST_VX: "st, v{x:x}",
    Opcode.ADD_I_VX: "i, v{x:x}",
    Opcode.LD_F_VX: "f, v{x:x}",
    Opcode.LD_B_VX: "b, v{x:x}",
    Opcode.LD_MEM_VX: "[i], v{x:x}",
    Opcode.LD_VX_MEM: "v{x:x}, [i]",
}


@dataclass(frozen=True)
class Instruction:
    """デコード済み命令"""
    op: Opcode
    raw: int
    x: int = 0
    y: int = 0
    n: int = 0
    kk: int = 0
    nnn: int = 0

    def __post_init__(self):
        # レジスタオペランドの範囲はデコード時に一度だけ検証する
        for name in ('x', 'y'):
            value = getattr(self, name)
            if not 0 <= value < REGISTER_COUNT:
                raise ValueError(f"Register operand {name} out of range: {value}")

    def mnemonic(self) -> str:
        """逆アセンブル表記"""
        operands = _OPERAND_FORMATS[self.op].format(
            x=self.x, y=self.y, n=self.n, kk=self.kk, nnn=self.nnn
        )
        if operands:
            return f"{self.op.mnemonic} {operands}"
        return self.op.mnemonic

    def __str__(self) -> str:
        return self.mnemonic()


_GROUP_0 = {
    0xE0: Opcode.CLS,
    0xEE: Opcode.RET,
}

_GROUP_8 = {
    0x0: Opcode.LD_REG,
    0x1: Opcode.OR,
    0x2: Opcode.AND,
    0x3: Opcode.XOR,
    0x4: Opcode.ADD_REG,
    0x5: Opcode.SUB,
    0x6: Opcode.SHR,
    0x7: Opcode.SUBN,
    0xE: Opcode.SHL,
}

_GROUP_E = {
    0x9E: Opcode.SKP,
    0xA1: Opcode.SKNP,
}

_GROUP_F = {
    0x07: Opcode.LD_VX_DT,
    0x0A: Opcode.LD_VX_K,
    0x15: Opcode.LD_DT_VX,
    0x18: Opcode.LD_ST_VX,
    0x1E: Opcode.ADD_I_VX,
    0x29: Opcode.LD_F_VX,
    0x33: Opcode.LD_B_VX,
    0x55: Opcode.LD_MEM_VX,
    0x65: Opcode.LD_VX_MEM,
}

# 上位ニブルだけで決まる命令
_SINGLE = {
    0x1: Opcode.JP,
    0x2: Opcode.CALL,
    0x3: Opcode.SE_BYTE,
    0x4: Opcode.SNE_BYTE,
    0x5: Opcode.SE_REG,
    0x6: Opcode.LD_BYTE,
    0x7: Opcode.ADD_BYTE,
    0x9: Opcode.SNE_REG,
    0xA: Opcode.LD_I,
    0xB: Opcode.JP_V0,
    0xC: Opcode.RND,
    0xD: Opcode.DRW,
}


def decode(word: int) -> Instruction:
    """
    16ビット命令語をデコード

    上位ニブルでグループ分けし、必要に応じて下位ニブル/下位バイトで識別する。
    エミュレータ状態には一切依存しない。
    """
    word &= 0xFFFF
    group = (word >> 12) & 0xF

    if group in _SINGLE:
        op = _SINGLE[group]
    elif group == 0x0:
        op = _GROUP_0.get(word & 0xFF)
    elif group == 0x8:
        op = _GROUP_8.get(word & 0xF)
    elif group == 0xE:
        op = _GROUP_E.get(word & 0xFF)
    else:
        op = _GROUP_F.get(word & 0xFF)

    if op is None:
        raise UnknownOpcodeError(word)

    return Instruction(
        op=op,
        raw=word,
        x=(word >> 8) & 0xF,
        y=(word >> 4) & 0xF,
        n=word & 0xF,
        kk=word & 0xFF,
        nnn=word & 0xFFF,
    )


class Chip8Cpu:
    """
    CHIP-8 CPUエミュレータコア

    命令フェッチ・デコード・実行サイクルを実装
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.regs = RegisterFile()
        self.state = CPUState.STOPPED
        self.memory: Optional['MemoryBank'] = None
        self.display: Optional['DisplayBuffer'] = None
        self.keypad: Optional['InputLatch'] = None
        self.rng = rng or random.Random()

        # 実行統計
        self.cycle_count: int = 0
        self.instruction_count: int = 0

        # 命令テーブル
        self._instruction_table: Dict[Opcode, Callable[[Instruction], None]] = {}
        self._build_instruction_table()

        # トレース用コールバック
        self.trace_callback: Optional[Callable] = None
        self.last_instruction: Optional[Instruction] = None

    def connect_memory(self, memory: 'MemoryBank') -> None:
        """メモリバンクを接続"""
        self.memory = memory

    def connect_display(self, display: 'DisplayBuffer') -> None:
        """表示バッファを接続"""
        self.display = display

    def connect_keypad(self, keypad: 'InputLatch') -> None:
        """入力ラッチを接続"""
        self.keypad = keypad

    def reset(self) -> None:
        """CPUリセット"""
        self.regs = RegisterFile()
        self.state = CPUState.STOPPED
        self.cycle_count = 0
        self.instruction_count = 0
        self.last_instruction = None

    def step(self) -> Instruction:
        """1命令実行"""
        if not self.memory:
            raise RuntimeError("Memory not connected")

        # 命令フェッチ
        address = self.regs.pc
        word = self.memory.read_instruction(address)
        self.cycle_count += 1

        # デコード
        try:
            instruction = decode(word)
        except UnknownOpcodeError:
            self.state = CPUState.EXCEPTION
            raise UnknownOpcodeError(word, address) from None

        if self.trace_callback:
            self.trace_callback(address, instruction, self.regs)

        # 実行
        self._execute(instruction)

        # PC更新 (分岐命令は目標-2を設定済み)
        self.regs.pc = (self.regs.pc + INSTRUCTION_SIZE) & 0xFFFF

        self.instruction_count += 1
        self.last_instruction = instruction
        return instruction

    def _execute(self, instruction: Instruction) -> None:
        """命令実行"""
        if self.state == CPUState.WAITING and instruction.op != Opcode.LD_VX_K:
            self.state = CPUState.RUNNING
        self._instruction_table[instruction.op](instruction)

    def _build_instruction_table(self) -> None:
        """命令テーブル構築"""
        self._instruction_table = {
            Opcode.CLS: self._op_cls,
            Opcode.RET: self._op_ret,
            Opcode.JP: self._op_jp,
            Opcode.CALL: self._op_call,
            Opcode.SE_BYTE: self._op_se_byte,
            Opcode.SNE_BYTE: self._op_sne_byte,
            Opcode.SE_REG: self._op_se_reg,
            Opcode.LD_BYTE: self._op_ld_byte,
            Opcode.ADD_BYTE: self._op_add_byte,
            Opcode.LD_REG: self._op_ld_reg,
            Opcode.OR: self._op_or,
            Opcode.AND: self._op_and,
            Opcode.XOR: self._op_xor,
            Opcode.ADD_REG: self._op_add_reg,
            Opcode.SUB: self._op_sub,
            Opcode.SHR: self._op_shr,
            Opcode.SUBN: self._op_subn,
            Opcode.SHL: self._op_shl,
            Opcode.SNE_REG: self._op_sne_reg,
            Opcode.LD_I: self._op_ld_i,
            Opcode.JP_V0: self._op_jp_v0,
            Opcode.RND: self._op_rnd,
            Opcode.DRW: self._op_drw,
            Opcode.SKP: self._op_skp,
            Opcode.SKNP: self._op_sknp,
            Opcode.LD_VX_DT: self._op_ld_vx_dt,
            Opcode.LD_VX_K: self._op_ld_vx_k,
            Opcode.LD_DT_VX: self._op_ld_dt_vx,
            Opcode.LD_ST_VX: self._op_ld_st_vx,
            Opcode.ADD_I_VX: self._op_add_i_vx,
            Opcode.LD_F_VX: self._op_ld_f_vx,
            Opcode.LD_B_VX: self._op_ld_b_vx,
            Opcode.LD_MEM_VX: self._op_ld_mem_vx,
            Opcode.LD_VX_MEM: self._op_ld_vx_mem,
        }

        missing = set(Opcode) - set(self._instruction_table)
        if missing:
            raise RuntimeError(f"Unhandled opcodes: {sorted(op.name for op in missing)}")

    # === PC制御 ===

    def _jump(self, target: int) -> None:
        """絶対アドレスへ分岐 (実行後の+2を見込んで-2する)"""
        self.regs.pc = (target - INSTRUCTION_SIZE) & 0xFFFF

    def _skip_if(self, condition: bool) -> None:
        """条件成立なら次の命令をスキップ"""
        if condition:
            self.regs.pc = (self.regs.pc + INSTRUCTION_SIZE) & 0xFFFF

    # === 命令実装 ===

    def _op_cls(self, ins: Instruction) -> None:
        """00E0 - CLS"""
        self.display.clear()

    def _op_ret(self, ins: Instruction) -> None:
        """00EE - RET"""
        # スタックにはCALL命令自身のアドレスが積まれている。+2でその次へ進む
        self.regs.pc = self.memory.pop()
        self.regs.sp = self.memory.stack_depth

    def _op_jp(self, ins: Instruction) -> None:
        """1nnn - JP addr"""
        self._jump(ins.nnn)

    def _op_call(self, ins: Instruction) -> None:
        """2nnn - CALL addr"""
        self.memory.push(self.regs.pc)
        self.regs.sp = self.memory.stack_depth
        self._jump(ins.nnn)

    def _op_se_byte(self, ins: Instruction) -> None:
        """3xkk - SE Vx, byte"""
        self._skip_if(self.regs.get(ins.x) == ins.kk)

    def _op_sne_byte(self, ins: Instruction) -> None:
        """4xkk - SNE Vx, byte"""
        self._skip_if(self.regs.get(ins.x) != ins.kk)

    def _op_se_reg(self, ins: Instruction) -> None:
        """5xy0 - SE Vx, Vy"""
        self._skip_if(self.regs.get(ins.x) == self.regs.get(ins.y))

    def _op_ld_byte(self, ins: Instruction) -> None:
        """6xkk - LD Vx, byte"""
        self.regs.set(ins.x, ins.kk)

    def _op_add_byte(self, ins: Instruction) -> None:
        """7xkk - ADD Vx, byte (キャリーなし)"""
        self.regs.set(ins.x, self.regs.get(ins.x) + ins.kk)

    def _op_ld_reg(self, ins: Instruction) -> None:
        """8xy0 - LD Vx, Vy"""
        self.regs.set(ins.x, self.regs.get(ins.y))

    def _op_or(self, ins: Instruction) -> None:
        """8xy1 - OR Vx, Vy"""
        self.regs.set(ins.x, self.regs.get(ins.x) | self.regs.get(ins.y))

    def _op_and(self, ins: Instruction) -> None:
        """8xy2 - AND Vx, Vy"""
        self.regs.set(ins.x, self.regs.get(ins.x) & self.regs.get(ins.y))

    def _op_xor(self, ins: Instruction) -> None:
        """8xy3 - XOR Vx, Vy"""
        self.regs.set(ins.x, self.regs.get(ins.x) ^ self.regs.get(ins.y))

    def _op_add_reg(self, ins: Instruction) -> None:
        """8xy4 - ADD Vx, Vy (VF = キャリー)"""
        result = self.regs.get(ins.x) + self.regs.get(ins.y)
        self.regs.vf = 1 if result > 0xFF else 0
        self.regs.set(ins.x, result)

    def _op_sub(self, ins: Instruction) -> None:
        """8xy5 - SUB Vx, Vy (VF = NOT ボロー)"""
        x = self.regs.get(ins.x)
        y = self.regs.get(ins.y)
        self.regs.vf = 1 if x > y else 0
        self.regs.set(ins.x, x - y)

    def _op_shr(self, ins: Instruction) -> None:
        """8xy6 - SHR Vx {, Vy}"""
        x = self.regs.get(ins.x)
        # Vyは読むだけで使わない
        self.regs.get(ins.y)
        self.regs.vf = x & 0x1
        self.regs.set(ins.x, x >> 1)

    def _op_subn(self, ins: Instruction) -> None:
        """8xy7 - SUBN Vx, Vy (VF = NOT ボロー)"""
        x = self.regs.get(ins.x)
        y = self.regs.get(ins.y)
        self.regs.vf = 1 if y > x else 0
        self.regs.set(ins.x, y - x)

    def _op_shl(self, ins: Instruction) -> None:
        """8xyE - SHL Vx {, Vy}"""
        x = self.regs.get(ins.x)
        self.regs.get(ins.y)
        # VFは最上位ビットではなく下位3ビット == 1 で決まる
        self.regs.vf = 1 if (x & 0x7) == 1 else 0
        self.regs.set(ins.x, x << 1)

    def _op_sne_reg(self, ins: Instruction) -> None:
        """9xy0 - SNE Vx, Vy"""
        self._skip_if(self.regs.get(ins.x) != self.regs.get(ins.y))

    def _op_ld_i(self, ins: Instruction) -> None:
        """Annn - LD I, addr"""
        self.regs.i = ins.nnn

    def _op_jp_v0(self, ins: Instruction) -> None:
        """Bnnn - JP V0, addr"""
        self._jump(self.regs.get(0) + ins.nnn)

    def _op_rnd(self, ins: Instruction) -> None:
        """Cxkk - RND Vx, byte"""
        self.regs.set(ins.x, self.rng.randint(0, 0xFF) & ins.kk)

    def _op_drw(self, ins: Instruction) -> None:
        """
        Dxyn - DRW Vx, Vy, nibble

        開始座標は画面内にクランプし、画面端からはみ出す行・列は
        折り返さずに切り捨てる。
        """
        x_begin = min(self.regs.get(ins.x) & (SCREEN_WIDTH - 1), SCREEN_WIDTH - 1)
        y_begin = min(self.regs.get(ins.y) & (SCREEN_HEIGHT - 1), SCREEN_HEIGHT - 1)

        collision = False
        for dy in range(ins.n):
            yc = y_begin + dy
            if yc >= SCREEN_HEIGHT:
                break

            sprite_row = self.memory.read(self.regs.i + dy)
            for dx in range(SPRITE_WIDTH):
                xc = x_begin + dx
                if xc >= SCREEN_WIDTH:
                    break
                if sprite_row & (0x80 >> dx):
                    if self.display.toggle(xc, yc):
                        collision = True

        self.regs.vf = 1 if collision else 0

    def _op_skp(self, ins: Instruction) -> None:
        """Ex9E - SKP Vx"""
        self._skip_if(self.keypad.poll(self.regs.get(ins.x) & 0xF))

    def _op_sknp(self, ins: Instruction) -> None:
        """ExA1 - SKNP Vx"""
        self._skip_if(not self.keypad.poll(self.regs.get(ins.x) & 0xF))

    def _op_ld_vx_dt(self, ins: Instruction) -> None:
        """Fx07 - LD Vx, DT"""
        self.regs.set(ins.x, self.regs.dt)

    def _op_ld_vx_k(self, ins: Instruction) -> None:
        """
        Fx0A - LD Vx, K

        スレッドは止めない。押下キーがなければPCを-2して同じ命令を
        次サイクルで再フェッチする (タイマと画面更新は継続)。
        """
        keypress = False
        for key in range(KEY_COUNT):
            if self.keypad.poll(key):
                self.regs.set(ins.x, key)
                keypress = True

        if keypress:
            self.state = CPUState.RUNNING
        else:
            if self.state != CPUState.WAITING:
                logger.debug("Waiting for key press at PC=0x%03X", self.regs.pc)
            self.state = CPUState.WAITING
            self.regs.pc = (self.regs.pc - INSTRUCTION_SIZE) & 0xFFFF

    def _op_ld_dt_vx(self, ins: Instruction) -> None:
        """Fx15 - LD DT, Vx"""
        self.regs.dt = self.regs.get(ins.x)

    def _op_ld_st_vx(self, ins: Instruction) -> None:
        """Fx18 - LD ST, Vx"""
        self.regs.st = self.regs.get(ins.x)

    def _op_add_i_vx(self, ins: Instruction) -> None:
        """Fx1E - ADD I, Vx (フラグ変化なし)"""
        self.regs.i = (self.regs.i + self.regs.get(ins.x)) & 0xFFFF

    def _op_ld_f_vx(self, ins: Instruction) -> None:
        """Fx29 - LD F, Vx"""
        self.regs.i = FONT_START + self.regs.get(ins.x) * FONT_GLYPH_SIZE

    def _op_ld_b_vx(self, ins: Instruction) -> None:
        """Fx33 - LD B, Vx"""
        value = self.regs.get(ins.x)
        self.memory.write(self.regs.i, (value // 100) % 10)
        self.memory.write(self.regs.i + 1, (value // 10) % 10)
        self.memory.write(self.regs.i + 2, value % 10)

    def _op_ld_mem_vx(self, ins: Instruction) -> None:
        """Fx55 - LD [I], Vx"""
        for idx in range(ins.x + 1):
            self.memory.write(self.regs.i + idx, self.regs.get(idx))

    def _op_ld_vx_mem(self, ins: Instruction) -> None:
        """Fx65 - LD Vx, [I]"""
        for idx in range(ins.x + 1):
            self.regs.set(idx, self.memory.read(self.regs.i + idx))

    def get_state(self) -> dict:
        """CPU状態を辞書形式で取得"""
        return {
            'state': self.state.name,
            'pc': self.regs.pc,
            'sp': self.regs.sp,
            'i': self.regs.i,
            'dt': self.regs.dt,
            'st': self.regs.st,
            'registers': {f'V{idx:X}': self.regs.v[idx] for idx in range(REGISTER_COUNT)},
            'cycles': self.cycle_count,
            'instructions': self.instruction_count,
            'last_instruction': str(self.last_instruction) if self.last_instruction else None,
        }

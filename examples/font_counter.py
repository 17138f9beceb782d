"""
フォントカウンタ サンプルプログラム

V0を0から9まで数えながら、組み込みフォントで値を画面に描くデモ
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from chip8_emulator import Chip8Emulator, EmulatorConfig


def create_counter_program():
    """カウンタプログラムを生成"""
    # CHIP-8 アセンブリ:
    # 0x200  LD V0, 0x00       ; カウンタ
    # 0x202  LD V1, 0x02       ; X座標
    # 0x204  LD V2, 0x02       ; Y座標
    # loop:
    # 0x206  LD F, V0          ; I = フォント(V0)
    # 0x208  DRW V1, V2, 5
    # 0x20A  ADD V1, 0x06      ; 次の桁位置
    # 0x20C  ADD V0, 0x01
    # 0x20E  SE V0, 0x0A       ; 10個描いたら終了
    # 0x210  JP loop
    # 0x212  JP 0x212          ; 停止ループ

    program = bytes([
        0x60, 0x00,
        0x61, 0x02,
        0x62, 0x02,
        0xF0, 0x29,
        0xD1, 0x25,
        0x71, 0x06,
        0x70, 0x01,
        0x30, 0x0A,
        0x12, 0x06,
        0x12, 0x12,
    ])

    return program


def main():
    print("CHIP-8 Font Counter Demo")
    print("=" * 40)

    # エミュレータ作成 (ペーシングなし)
    emu = Chip8Emulator(EmulatorConfig(instructions_per_second=0))

    # プログラムロード
    program = create_counter_program()
    result = emu.load_program_bytes(program)

    print(f"Program loaded at 0x{result.entry_point:03X}")
    print(f"Program size: {result.size} bytes")
    print()

    # 描画命令ごとに表示
    def on_step(pc, count):
        ins = emu.cpu.last_instruction
        if ins is not None and ins.mnemonic().startswith("drw"):
            print(f"  [{count:3d}] digit {emu.cpu.regs.get(0):X} drawn, "
                  f"lit={emu.display.lit_count()}")

    emu.on_step = on_step

    # 実行
    print("Running program...")
    # 停止ループに入ったところで止める
    emu.add_breakpoint(0x212)
    executed = emu.run(max_instructions=1000)

    # 最終状態
    print()
    print("Final State:")
    print(f"  PC: 0x{emu.cpu.regs.pc:03X}")
    print(f"  Instructions executed: {executed}")
    print()
    print('\n'.join(emu.display.to_text().splitlines()[:8]))


if __name__ == '__main__':
    main()

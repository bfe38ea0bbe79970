"""
maidata：simai 记谱（maimai 谱面）的解析与物化。

定位：
- `parse_instructions`：把某个难度的指令原文解析为带 span 的指令序列（语法层）。
- `materialize`：把指令序列按 BPM/分音重放为带绝对时间戳的音符事件（时间线层）。
- `parse_maidata`：读取整份 maidata.txt 容器，取出元数据与各难度的指令原文。

约束：
- 两个阶段都是纯函数、同步执行，不持有跨调用的状态；多个难度可以并行处理。
- 失败一律抛出带 span 的异常（见 `maidata.errors`），不返回部分结果。
"""

from .container import Difficulty, DifficultyChart, KeyVal, Level, Maidata, lex_maidata, parse_maidata
from .errors import ContainerError, MaidataError, MaterializeError, SimaiSyntaxError
from .materialize import (
    MaterializationContext,
    MaterializedHold,
    MaterializedNote,
    MaterializedSlideTrack,
    MaterializedTap,
    TapShape,
    materialize,
)
from .parser import parse_instructions
from .span import Position, Span, Spanned

__all__ = [
    "ContainerError",
    "Difficulty",
    "DifficultyChart",
    "KeyVal",
    "Level",
    "Maidata",
    "MaidataError",
    "MaterializationContext",
    "MaterializeError",
    "MaterializedHold",
    "MaterializedNote",
    "MaterializedSlideTrack",
    "MaterializedTap",
    "Position",
    "SimaiSyntaxError",
    "Span",
    "Spanned",
    "TapShape",
    "lex_maidata",
    "materialize",
    "parse_instructions",
    "parse_maidata",
]

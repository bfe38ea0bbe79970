"""
simai 记谱的指令模型（解析器输出、物化引擎输入）。

定位：
- 本模块只放纯数据：键位、tap 变体、长度、slide 形状，以及由它们组合出的指令。
- 所有类型均为不可变（frozen dataclass / Enum），解析后不再修改。
- `__str__` 输出规范化的 simai 写法，便于调试与 CLI 展示（空白不保留）。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Union

from .span import Spanned


class Key(IntEnum):
    """外圈 8 个键位（1..8）。"""

    K1 = 1
    K2 = 2
    K3 = 3
    K4 = 4
    K5 = 5
    K6 = 6
    K7 = 7
    K8 = 8

    @classmethod
    def from_char(cls, ch: str) -> "Key":
        if len(ch) != 1 or ch not in "12345678":
            raise ValueError(f"非法键位：{ch!r}（只允许 '1'..'8'）")
        return cls(int(ch))

    def __str__(self) -> str:
        return str(int(self))


class TapVariant(Enum):
    TAP = "tap"
    BREAK = "break"


@dataclass(frozen=True)
class NumBeats:
    """`[divisor:count]`：count 个 divisor 分音符（全音符 = 4 拍）。"""

    divisor: int
    count: int

    def __str__(self) -> str:
        return f"{self.divisor}:{self.count}"


@dataclass(frozen=True)
class Seconds:
    """`[#seconds]`：绝对时长，与 BPM 无关。"""

    value: float

    def __str__(self) -> str:
        return f"#{self.value:g}"


Length = Union[NumBeats, Seconds]


@dataclass(frozen=True)
class StopTimeBpm:
    """slide 等待时间按该 BPM 的一拍计算（与 NumBeats 搭配）。"""

    bpm: float


@dataclass(frozen=True)
class StopTimeSeconds:
    """slide 等待时间直接给出秒数（与 Seconds 搭配）。"""

    seconds: float


StopTime = Union[StopTimeBpm, StopTimeSeconds]


@dataclass(frozen=True)
class SlideLength:
    length: Length
    stop_time: StopTime | None = None

    def __str__(self) -> str:
        if self.stop_time is None:
            return f"[{self.length}]"
        if isinstance(self.stop_time, StopTimeBpm):
            return f"[{self.stop_time.bpm:g}#{self.length}]"
        return f"[{self.stop_time.seconds:g}#{self.length}]"


class SlideShape(Enum):
    """slide 轨迹形状；value 为记谱中的形状标记。"""

    LINE = "-"
    ARC = "^"
    CIRCUMFERENCE_LEFT = "<"
    CIRCUMFERENCE_RIGHT = ">"
    V = "v"
    P = "p"
    Q = "q"
    S = "s"
    Z = "z"
    PP = "pp"
    QQ = "qq"
    ANGLE = "V"
    SPREAD = "w"

    @property
    def marker(self) -> str:
        return self.value


@dataclass(frozen=True)
class TapParams:
    variant: TapVariant
    key: Key

    @property
    def is_break(self) -> bool:
        return self.variant is TapVariant.BREAK

    def __str__(self) -> str:
        return f"{self.key}b" if self.is_break else str(self.key)


@dataclass(frozen=True)
class HoldParams:
    key: Key
    length: Length

    def __str__(self) -> str:
        return f"{self.key}h[{self.length}]"


@dataclass(frozen=True)
class SlideTrackParams:
    destination: TapParams
    length: SlideLength
    # 仅 ANGLE（V）形状有中间点
    interim: TapParams | None = None


@dataclass(frozen=True)
class SlideTrack:
    shape: SlideShape
    params: SlideTrackParams

    def __str__(self) -> str:
        p = self.params
        interim = str(p.interim) if p.interim is not None else ""
        return f"{self.shape.marker}{interim}{p.destination}{p.length}"


@dataclass(frozen=True)
class SlideParams:
    """星星（start）+ 一条或多条轨迹；多条轨迹共用起点与时间槽（`*` 连接）。"""

    start: TapParams
    tracks: tuple[SlideTrack, ...]

    def __post_init__(self) -> None:
        if not self.tracks:
            raise ValueError("slide 至少需要一条轨迹")

    def __str__(self) -> str:
        return str(self.start) + "*".join(str(t) for t in self.tracks)


RawNoteInsn = Union[TapParams, HoldParams, SlideParams]


@dataclass(frozen=True)
class SetTempo:
    bpm: float

    def __str__(self) -> str:
        return f"({self.bpm:g})"


@dataclass(frozen=True)
class SetSubdivision:
    """`{divisor}` 或 `{#seconds}`：两者恰有其一。"""

    divisor: int | None = None
    seconds: float | None = None

    def __post_init__(self) -> None:
        if (self.divisor is None) == (self.seconds is None):
            raise ValueError("SetSubdivision 需要且只能给出 divisor 或 seconds 之一")

    @property
    def is_absolute(self) -> bool:
        return self.seconds is not None

    def __str__(self) -> str:
        if self.seconds is not None:
            return f"{{#{self.seconds:g}}}"
        return f"{{{self.divisor}}}"


@dataclass(frozen=True)
class Rest:
    def __str__(self) -> str:
        return ","


@dataclass(frozen=True)
class SingleNote:
    note: Spanned[RawNoteInsn]

    def __str__(self) -> str:
        return f"{self.note.value},"


@dataclass(frozen=True)
class NoteBundle:
    """同一时间槽内的多个音符（简写多押 `12,` 或 `/` 分隔的混合多押）。"""

    notes: tuple[Spanned[RawNoteInsn], ...]

    def __str__(self) -> str:
        return "/".join(str(n.value) for n in self.notes) + ","


@dataclass(frozen=True)
class EndMark:
    def __str__(self) -> str:
        return "E"


RawInsn = Union[SetTempo, SetSubdivision, Rest, SingleNote, NoteBundle, EndMark]

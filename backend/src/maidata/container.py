"""
maidata.txt 容器解析（`&key=value&key=value...`）。

定位：
- 把整份谱面文件切成 key/value 对，并整理出元数据与每个难度的指令原文。
- 核心（parser/materialize）不依赖本模块：它只负责把“指令原文 + 起始 offset”交给核心。

约定：
- 文件可带 BOM（记事本保存的常见情况），解析时吞掉。
- value 到下一个 `&` 为止，去掉末尾空白（\\t \\n \\r 空格）。
- 全局键：title / artist / des / first / smsg；难度键（N=1..7）：inote_N / lv_N / des_N / first_N / smsg_N。
- 难度的 offset/designer/static message 缺省时回退到全局值；offset 最终缺省为 0.0。

约束：
- 同一个 key 出现两次、缺少 `=`、首个非空白字符不是 `&`：一律 ContainerError，不做猜测。
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Literal

from .errors import ContainerError
from .insn import RawInsn
from .materialize import MaterializedNote, materialize
from .parser import parse_instructions
from .span import Position, SourceText, Span, Spanned


logger = logging.getLogger(__name__)

BOM = "\ufeff"
_TRAILING_WS = " \t\r\n"
_OFFSET_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_DIFFICULTY_KEY_RE = re.compile(r"^(inote|lv|des|first|smsg)_([1-7])$")
GLOBAL_KEYS = ("title", "artist", "des", "first", "smsg")


class Difficulty(IntEnum):
    EASY = 1
    BASIC = 2
    ADVANCED = 3
    EXPERT = 4
    MASTER = 5
    RE_MASTER = 6
    # 2simai 中曾称 mai:EDIT
    ORIGINAL = 7


LevelKind = Literal["normal", "plus", "char"]


@dataclass(frozen=True)
class Level:
    """难度等级：`13`（normal）、`13+`（plus）或任意单个非数字字符（char，如 `?`）。"""

    kind: LevelKind
    value: int | None = None
    char: str | None = None

    @classmethod
    def parse(cls, text: str, span: Span | None = None) -> "Level":
        s = text.strip()
        if re.fullmatch(r"[0-9]+", s):
            return cls(kind="normal", value=int(s))
        if re.fullmatch(r"[0-9]+\+", s):
            return cls(kind="plus", value=int(s[:-1]))
        if len(s) == 1:
            return cls(kind="char", char=s)
        raise ContainerError(f"无法识别的难度等级：{text!r}", span)

    def __str__(self) -> str:
        if self.kind == "normal":
            return str(self.value)
        if self.kind == "plus":
            return f"{self.value}+"
        return str(self.char)


@dataclass(frozen=True)
class KeyVal:
    key: str
    value: str
    key_span: Span
    # value 首字符在文件中的位置；用于让指令解析给出文件级行列号
    value_origin: Position


def lex_maidata(text: str) -> list[KeyVal]:
    src = SourceText(text)
    n = len(text)
    i = 1 if text.startswith(BOM) else 0
    out: list[KeyVal] = []

    while True:
        i = src.skip_whitespace(i)
        if i >= n:
            break
        if text[i] != "&":
            raise ContainerError(f"期望 '&' 开始一个键值对，实际 {text[i]!r}", src.span(i, i + 1))

        eq = text.find("=", i + 1)
        amp = text.find("&", i + 1)
        if eq == -1 or (amp != -1 and amp < eq):
            end = amp if amp != -1 else n
            raise ContainerError("键值对缺少 '='", src.span(i, end))

        value_start = eq + 1
        value_end = amp if amp != -1 else n
        value = text[value_start:value_end].rstrip(_TRAILING_WS)
        out.append(
            KeyVal(
                key=text[i + 1 : eq],
                value=value,
                key_span=src.span(i + 1, eq),
                value_origin=src.position(value_start),
            )
        )
        i = value_end

    return out


@dataclass(frozen=True)
class DifficultyChart:
    difficulty: Difficulty
    level: Level | None
    designer: str | None
    offset: float
    single_message: str | None
    insn_text: str
    insn_origin: Position = field(default_factory=Position)

    def iter_insns(self) -> list[Spanned[RawInsn]]:
        return parse_instructions(self.insn_text, origin=self.insn_origin)

    def materialize_notes(self) -> list[MaterializedNote]:
        return materialize(self.offset, self.iter_insns())


@dataclass(frozen=True)
class Maidata:
    title: str | None
    artist: str | None
    designer: str | None
    offset: float | None
    single_message: str | None
    difficulties: tuple[DifficultyChart, ...]
    # 未识别的键按出现顺序保留
    extra: dict[str, str] = field(default_factory=dict)

    def difficulty(self, difficulty: Difficulty | int) -> DifficultyChart | None:
        d = Difficulty(difficulty)
        for chart in self.difficulties:
            if chart.difficulty == d:
                return chart
        return None


def parse_offset(text: str, span: Span | None = None) -> float | None:
    s = text.strip()
    if s == "":
        return None
    if _OFFSET_RE.fullmatch(s) is None:
        raise ContainerError(f"offset 不是合法数值：{text!r}", span)
    value = float(s)
    if not math.isfinite(value):
        raise ContainerError(f"offset 超出范围：{text!r}", span)
    return value


def _opt_text(value: str | None) -> str | None:
    if value is None or value.strip() == "":
        return None
    return value


def parse_maidata(text: str) -> Maidata:
    """解析整份 maidata.txt：元数据 + 各难度（仅收录存在 inote_N 的难度）。"""

    global_kv: dict[str, KeyVal] = {}
    per_difficulty: dict[Difficulty, dict[str, KeyVal]] = {}
    extra: dict[str, str] = {}
    seen: set[str] = set()

    for kv in lex_maidata(text):
        if kv.key in seen:
            raise ContainerError(f"键重复：{kv.key!r}", kv.key_span)
        seen.add(kv.key)

        m = _DIFFICULTY_KEY_RE.match(kv.key)
        if m is not None:
            per_difficulty.setdefault(Difficulty(int(m.group(2))), {})[m.group(1)] = kv
        elif kv.key in GLOBAL_KEYS:
            global_kv[kv.key] = kv
        else:
            extra[kv.key] = kv.value

    def value_of(d: dict[str, KeyVal], key: str) -> str | None:
        kv = d.get(key)
        return kv.value if kv is not None else None

    global_offset = None
    if "first" in global_kv:
        global_offset = parse_offset(global_kv["first"].value, global_kv["first"].key_span)
    global_designer = _opt_text(value_of(global_kv, "des"))
    global_message = _opt_text(value_of(global_kv, "smsg"))

    charts: list[DifficultyChart] = []
    for difficulty in sorted(per_difficulty):
        d = per_difficulty[difficulty]
        if "inote" not in d:
            continue

        level = None
        lv = d.get("lv")
        if lv is not None and lv.value.strip() != "":
            level = Level.parse(lv.value, lv.key_span)

        offset = None
        if "first" in d:
            offset = parse_offset(d["first"].value, d["first"].key_span)
        if offset is None:
            offset = global_offset if global_offset is not None else 0.0

        inote = d["inote"]
        charts.append(
            DifficultyChart(
                difficulty=difficulty,
                level=level,
                designer=_opt_text(value_of(d, "des")) or global_designer,
                offset=offset,
                single_message=_opt_text(value_of(d, "smsg")) or global_message,
                insn_text=inote.value,
                insn_origin=inote.value_origin,
            )
        )
        logger.debug("found difficulty %s (level=%s, offset=%s)", difficulty.name, level, offset)

    return Maidata(
        title=value_of(global_kv, "title"),
        artist=value_of(global_kv, "artist"),
        designer=global_designer,
        offset=global_offset,
        single_message=global_message,
        difficulties=tuple(charts),
        extra=extra,
    )

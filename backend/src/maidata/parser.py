"""
simai 指令串解析器（记谱文本 → 带 span 的指令序列）。

定位：
- 输入是某个难度的 `inote_N` 原文（由容器层切出），输出 `list[Spanned[RawInsn]]`。
- 解析是“有序候选”的递归下降：每个位置按固定顺序逐个尝试候选规则，第一个成功者胜出；
  不做“最长匹配”之类的启发式。

顺序约束（与常见实现一致，改动会造成误解析）：
- 顶层：tempo | subdivision | rest | 单 tap | 简写多押 | 单 hold | 单 slide | 混合多押 | E
- 多押内的单个音符：hold | slide | tap（tap 的单键写法是 hold/slide 的前缀，必须最后尝试）
- slide 形状：`pp`/`qq` 作为字面量先于 `p`/`q` 尝试
- slide 长度：普通 `[d:n]`/`[#s]` 先于带等待时间覆盖的 `[x#d:n]`/`[x##s]`

约束：
- 空白在任意 token 之间均可出现且无意义。
- 必须消费完整输入；失败时抛出 SimaiSyntaxError（指向最远的失败位置），不返回部分结果。
- 回溯只发生在单条指令内部的候选之间；已完成的指令不会被重新解析。
"""

from __future__ import annotations

import logging
import math
import re
from typing import Callable, NoReturn, TypeVar

from .errors import SimaiSyntaxError
from .insn import (
    EndMark,
    HoldParams,
    Key,
    Length,
    NoteBundle,
    NumBeats,
    RawInsn,
    RawNoteInsn,
    Rest,
    Seconds,
    SetSubdivision,
    SetTempo,
    SingleNote,
    SlideLength,
    SlideParams,
    SlideShape,
    SlideTrack,
    SlideTrackParams,
    StopTimeBpm,
    StopTimeSeconds,
    TapParams,
    TapVariant,
)
from .span import Position, SourceText, Spanned


logger = logging.getLogger(__name__)

T = TypeVar("T")
Rule = Callable[[int], tuple]

_FLOAT_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_DIGITS_RE = re.compile(r"[0-9]+")
# 分音数、拍数等整数字面量的上限
MAX_INT_LITERAL = 255

KEY_CHARS = "12345678"

# pp/qq 必须排在 p/q 之前
SLIDE_SHAPE_ORDER: tuple[SlideShape, ...] = (
    SlideShape.LINE,
    SlideShape.ARC,
    SlideShape.CIRCUMFERENCE_LEFT,
    SlideShape.CIRCUMFERENCE_RIGHT,
    SlideShape.V,
    SlideShape.PP,
    SlideShape.QQ,
    SlideShape.P,
    SlideShape.Q,
    SlideShape.S,
    SlideShape.Z,
    SlideShape.ANGLE,
    SlideShape.SPREAD,
)


class _NoMatch(Exception):
    """当前候选不匹配；由上层继续尝试下一个候选。"""


class _InsnParser:
    def __init__(self, text: str, origin: Position | None = None) -> None:
        self.text = text
        self.src = SourceText(text, origin)
        self._furthest = -1
        self._expected: list[str] = []

    # ---- 基础设施 ----

    def _fail(self, i: int, expected: str) -> NoReturn:
        if i > self._furthest:
            self._furthest = i
            self._expected = [expected]
        elif i == self._furthest and expected not in self._expected:
            self._expected.append(expected)
        raise _NoMatch()

    def _ws(self, i: int) -> int:
        return self.src.skip_whitespace(i)

    def _char(self, i: int, ch: str) -> int:
        if self.text.startswith(ch, i):
            return i + len(ch)
        self._fail(i, repr(ch))

    def _peek(self, i: int, ch: str) -> bool:
        return self.text.startswith(ch, i)

    def _alt(self, i: int, rules: tuple[Rule, ...]) -> tuple[T, int]:
        for rule in rules:
            try:
                return rule(i)
            except _NoMatch:
                continue
        raise _NoMatch()

    def _float(self, i: int) -> tuple[float, int]:
        m = _FLOAT_RE.match(self.text, i)
        if m is None:
            self._fail(i, "数值")
        value = float(m.group(0))
        if not math.isfinite(value):
            raise SimaiSyntaxError(f"数值超出范围：{m.group(0)!r}", self.src.span(i, m.end()))
        return value, m.end()

    def _int(self, i: int) -> tuple[int, int]:
        m = _DIGITS_RE.match(self.text, i)
        if m is None:
            self._fail(i, "整数")
        digits = m.group(0).lstrip("0") or "0"
        if len(digits) > len(str(MAX_INT_LITERAL)) or int(digits) > MAX_INT_LITERAL:
            raise SimaiSyntaxError(
                f"整数超出范围（0-{MAX_INT_LITERAL}）：{m.group(0)!r}", self.src.span(i, m.end())
            )
        return int(digits), m.end()

    def _note_sep(self, i: int) -> int:
        return self._char(self._ws(i), ",")

    def _spanned(self, value: T, start: int, end: int) -> Spanned[T]:
        return Spanned(value, self.src.span(start, end))

    # ---- 键位与 tap ----

    def _key(self, i: int) -> tuple[Key, int]:
        if i < len(self.text) and self.text[i] in KEY_CHARS:
            return Key.from_char(self.text[i]), i + 1
        self._fail(i, "键位 1-8")

    def _tap_param(self, i: int) -> tuple[TapParams, int]:
        key, i = self._key(i)
        j = self._ws(i)
        if self._peek(j, "b"):
            return TapParams(TapVariant.BREAK, key), j + 1
        return TapParams(TapVariant.TAP, key), i

    def _tap(self, i: int) -> tuple[Spanned[RawNoteInsn], int]:
        params, end = self._tap_param(i)
        return self._spanned(params, i, end), end

    # ---- 长度 ----

    def _len_beats(self, i: int) -> tuple[NumBeats, int]:
        divisor, i = self._int(i)
        i = self._char(self._ws(i), ":")
        count, i = self._int(self._ws(i))
        return NumBeats(divisor=divisor, count=count), i

    def _absolute_duration(self, i: int) -> tuple[float, int]:
        i = self._char(i, "#")
        return self._float(self._ws(i))

    def _len_absolute(self, i: int) -> tuple[Seconds, int]:
        value, i = self._absolute_duration(i)
        return Seconds(value), i

    def _length(self, i: int) -> tuple[Length, int]:
        i = self._char(i, "[")
        length, i = self._alt(self._ws(i), (self._len_beats, self._len_absolute))
        i = self._char(self._ws(i), "]")
        return length, i

    def _slide_length_plain(self, i: int) -> tuple[SlideLength, int]:
        length, i = self._length(i)
        return SlideLength(length), i

    def _slide_length_override(self, i: int) -> tuple[SlideLength, int]:
        i = self._char(i, "[")
        x, i = self._float(self._ws(i))
        i = self._char(self._ws(i), "#")
        i = self._ws(i)

        def beats(j: int) -> tuple[SlideLength, int]:
            length, j = self._len_beats(j)
            return SlideLength(length, StopTimeBpm(x)), j

        def absolute(j: int) -> tuple[SlideLength, int]:
            length, j = self._len_absolute(j)
            return SlideLength(length, StopTimeSeconds(x)), j

        length, i = self._alt(i, (beats, absolute))
        i = self._char(self._ws(i), "]")
        return length, i

    def _slide_length(self, i: int) -> tuple[SlideLength, int]:
        return self._alt(i, (self._slide_length_plain, self._slide_length_override))

    # ---- hold / slide ----

    def _hold(self, i: int) -> tuple[Spanned[RawNoteInsn], int]:
        start = i
        key, i = self._key(i)
        i = self._char(self._ws(i), "h")
        length, i = self._length(self._ws(i))
        return self._spanned(HoldParams(key=key, length=length), start, i), i

    def _slide_track_of(self, shape: SlideShape) -> Rule:
        def rule(i: int) -> tuple[SlideTrack, int]:
            i = self._char(i, shape.marker)
            interim = None
            if shape is SlideShape.ANGLE:
                interim, i = self._tap_param(self._ws(i))
            destination, i = self._tap_param(self._ws(i))
            length, i = self._slide_length(self._ws(i))
            params = SlideTrackParams(destination=destination, length=length, interim=interim)
            return SlideTrack(shape=shape, params=params), i

        return rule

    def _slide_track(self, i: int) -> tuple[SlideTrack, int]:
        rules = tuple(self._slide_track_of(shape) for shape in SLIDE_SHAPE_ORDER)
        try:
            return self._alt(i, rules)
        except _NoMatch:
            self._fail(i, "slide 形状")

    def _slide(self, i: int) -> tuple[Spanned[RawNoteInsn], int]:
        start = i
        origin, i = self._tap_param(i)
        first, i = self._slide_track(self._ws(i))
        tracks = [first]
        while True:
            j = self._ws(i)
            if not self._peek(j, "*"):
                break
            track, i = self._slide_track(self._ws(j + 1))
            tracks.append(track)
        return self._spanned(SlideParams(start=origin, tracks=tuple(tracks)), start, i), i

    # ---- 顶层指令 ----

    def _bpm(self, i: int) -> tuple[Spanned[RawInsn], int]:
        start = i
        i = self._char(i, "(")
        bpm, i = self._float(self._ws(i))
        i = self._char(self._ws(i), ")")
        return self._spanned(SetTempo(bpm), start, i), i

    def _subdivision(self, i: int) -> tuple[Spanned[RawInsn], int]:
        start = i
        i = self._char(i, "{")

        def divisor(j: int) -> tuple[SetSubdivision, int]:
            value, j = self._int(j)
            return SetSubdivision(divisor=value), j

        def absolute(j: int) -> tuple[SetSubdivision, int]:
            value, j = self._absolute_duration(j)
            return SetSubdivision(seconds=value), j

        params, i = self._alt(self._ws(i), (divisor, absolute))
        i = self._char(self._ws(i), "}")
        return self._spanned(params, start, i), i

    def _rest(self, i: int) -> tuple[Spanned[RawInsn], int]:
        end = self._char(i, ",")
        return self._spanned(Rest(), i, end), end

    def _single(self, note_rule: Rule) -> Rule:
        def rule(i: int) -> tuple[Spanned[RawInsn], int]:
            note, j = note_rule(i)
            end = self._note_sep(j)
            return self._spanned(SingleNote(note), i, end), end

        return rule

    def _tap_multi_simplified(self, i: int) -> tuple[Spanned[RawInsn], int]:
        # 简写多押中的每个键单独记录 span；一律为普通 tap
        notes: list[Spanned[RawNoteInsn]] = []
        j = i
        while True:
            try:
                key, end = self._key(j)
            except _NoMatch:
                if len(notes) < 2:
                    raise
                break
            notes.append(self._spanned(TapParams(TapVariant.TAP, key), j, end))
            j = self._ws(end)
        end = self._note_sep(j)
        return self._spanned(NoteBundle(tuple(notes)), i, end), end

    def _bundle_note(self, i: int) -> tuple[Spanned[RawNoteInsn], int]:
        return self._alt(i, (self._hold, self._slide, self._tap))

    def _bundle(self, i: int) -> tuple[Spanned[RawInsn], int]:
        first, j = self._bundle_note(i)
        notes = [first]
        while True:
            k = self._ws(j)
            if not self._peek(k, "/"):
                if len(notes) < 2:
                    self._fail(k, "'/'")
                break
            note, j = self._bundle_note(self._ws(k + 1))
            notes.append(note)
        end = self._note_sep(j)
        return self._spanned(NoteBundle(tuple(notes)), i, end), end

    def _end_mark(self, i: int) -> tuple[Spanned[RawInsn], int]:
        end = self._char(i, "E")
        return self._spanned(EndMark(), i, end), end

    def _insn(self, i: int) -> tuple[Spanned[RawInsn], int]:
        return self._alt(
            i,
            (
                self._bpm,
                self._subdivision,
                self._rest,
                self._single(self._tap),
                self._tap_multi_simplified,
                self._single(self._hold),
                self._single(self._slide),
                self._bundle,
                self._end_mark,
            ),
        )

    def _syntax_error(self, i: int) -> SimaiSyntaxError:
        pos = max(self._furthest, i)
        end = min(pos + 1, len(self.text))
        found = self.text[pos] if pos < len(self.text) else "<EOF>"
        expected = tuple(self._expected) if pos == self._furthest else ()
        hint = "、".join(expected) if expected else "指令"
        return SimaiSyntaxError(f"无法解析的记谱：期望 {hint}，实际 {found!r}", self.src.span(pos, end), expected)

    def parse(self) -> list[Spanned[RawInsn]]:
        out: list[Spanned[RawInsn]] = []
        i = self._ws(0)
        while i < len(self.text):
            self._furthest = -1
            self._expected = []
            try:
                insn, i = self._insn(i)
            except _NoMatch:
                raise self._syntax_error(i) from None
            out.append(insn)
            i = self._ws(i)
        return out


def parse_instructions(text: str, *, origin: Position | None = None) -> list[Spanned[RawInsn]]:
    """把一个难度的指令原文解析为带 span 的指令序列。

    - origin：text[0] 在更大文本中的位置（容器层使用），缺省为 1:1。
    - 失败抛出 SimaiSyntaxError；不会返回部分结果。
    """

    insns = _InsnParser(text, origin).parse()
    logger.debug("parsed %d instructions (%d chars)", len(insns), len(text))
    return insns

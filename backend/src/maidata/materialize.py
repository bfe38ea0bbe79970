"""
物化引擎：指令序列 → 带绝对时间戳的音符事件。

定位：
- 把解析器输出的指令序列当作一条时间线重放：按顺序线性折叠，维护
  beat_duration（每拍秒数）、slot_duration（每个时间槽秒数）、cursor（当前时间）。
- 输出 `list[MaterializedNote]`，顺序与源音符一致（多押成员共享时间戳、保持源顺序；
  slide 先输出星星，再输出各条轨迹）。

约束（正确地失败）：
- BPM 必须在第一个占用时间的指令之前设定；未设定时报错，而不是按 0 处理。
- BPM/分音数非正、长度分母非正等一律抛 MaterializeError（带触发指令/音符的 span）。
- 每次调用持有自己的 MaterializationContext，不存在跨调用共享的可变状态。

时间推进：
- “推进一个槽”= 读取 cursor 作为本槽时间戳，再把 cursor 加上 slot_duration。
- slide 默认等待一拍（按星星所在槽的 BPM）；`[x#d:n]` 按 BPM x 的一拍，`[x##s]` 直接 x 秒。
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Union

from .errors import MaterializeError
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
    SlideParams,
    SlideShape,
    SlideTrack,
    StopTimeBpm,
    StopTimeSeconds,
    TapParams,
)
from .span import Span, Spanned


logger = logging.getLogger(__name__)


class TapShape(Enum):
    RING = "ring"
    BREAK = "break"
    STAR = "star"


@dataclass(frozen=True)
class MaterializedTap:
    ts: float
    key: Key
    shape: TapShape


@dataclass(frozen=True)
class MaterializedHold:
    ts: float
    dur: float
    key: Key


@dataclass(frozen=True)
class MaterializedSlideTrack:
    ts: float
    # 轨迹开始移动的时刻（ts + 等待时间）
    start_ts: float
    dur: float
    start: Key
    destination: Key
    interim: Key | None
    shape: SlideShape


MaterializedNote = Union[MaterializedTap, MaterializedHold, MaterializedSlideTrack]


def bpm_to_beat_duration(bpm: float, span: Span | None = None) -> float:
    if not math.isfinite(bpm) or bpm <= 0:
        raise MaterializeError(f"BPM 必须为正数：{bpm!r}", span)
    return 60.0 / bpm


def divide_beat(beat_duration: float, divisor: int, span: Span | None = None) -> float:
    """divisor 分音符的时长（全音符 = 4 拍）。"""

    if divisor <= 0:
        raise MaterializeError(f"分音数必须为正整数：{divisor!r}", span)
    return beat_duration * 4.0 / divisor


class MaterializationContext:
    """单次物化的时间线状态（调用方独占）。"""

    def __init__(self, offset_secs: float = 0.0) -> None:
        offset = float(offset_secs)
        if not math.isfinite(offset):
            raise MaterializeError(f"offset 必须为有限数：{offset_secs!r}")
        self.beat_duration: float | None = None
        self.subdivision: SetSubdivision | None = None
        self.slot_duration: float | None = None
        self.cursor: float = offset

    @classmethod
    def with_offset(cls, offset_secs: float) -> "MaterializationContext":
        return cls(offset_secs)

    def materialize_insns(self, insns: Iterable[Spanned[RawInsn]]) -> list[MaterializedNote]:
        out: list[MaterializedNote] = []
        for insn in insns:
            out.extend(self.materialize_insn(insn))
        return out

    def materialize_insn(self, insn: Spanned[RawInsn]) -> list[MaterializedNote]:
        """读入一条指令；若占用时间槽则推进 cursor 并物化其中的音符。"""

        value = insn.value
        if isinstance(value, SetTempo):
            self.set_bpm(value.bpm, insn.span)
            return []
        if isinstance(value, SetSubdivision):
            self.set_subdivision(value, insn.span)
            return []
        if isinstance(value, Rest):
            self.advance_time(insn.span)
            return []
        if isinstance(value, EndMark):
            # 目前不截断后续指令
            return []
        if isinstance(value, SingleNote):
            ts = self.advance_time(insn.span)
            return self.materialize_raw_note(ts, value.note)
        if isinstance(value, NoteBundle):
            ts = self.advance_time(insn.span)
            out: list[MaterializedNote] = []
            for note in value.notes:
                out.extend(self.materialize_raw_note(ts, note))
            return out
        raise MaterializeError(f"未处理的指令类型：{type(value).__name__}", insn.span)

    def set_bpm(self, bpm: float, span: Span | None = None) -> None:
        self.beat_duration = bpm_to_beat_duration(bpm, span)
        # slot 时长由 beat 时长与当前分音设置派生；绝对时长 {#s} 不受 BPM 影响
        if self.subdivision is not None and not self.subdivision.is_absolute:
            self.slot_duration = divide_beat(self.beat_duration, int(self.subdivision.divisor), span)

    def set_subdivision(self, params: SetSubdivision, span: Span | None = None) -> None:
        if params.seconds is not None:
            if not math.isfinite(params.seconds) or params.seconds <= 0:
                raise MaterializeError(f"时间槽绝对时长必须为正数：{params.seconds!r}", span)
            self.subdivision = params
            self.slot_duration = float(params.seconds)
            return

        divisor = int(params.divisor)
        if divisor <= 0:
            raise MaterializeError(f"分音数必须为正整数：{divisor!r}", span)
        self.subdivision = params
        self.slot_duration = None if self.beat_duration is None else divide_beat(self.beat_duration, divisor, span)

    def advance_time(self, span: Span | None = None) -> float:
        """推进一个槽，返回推进前的时间戳（即本槽时间戳）。"""

        # 即使是绝对时长 {#s} 的槽，也要求先设定过 BPM
        if self.beat_duration is None:
            raise MaterializeError("占用时间槽之前必须先设定 BPM（例如 `(120)`）", span)
        if self.slot_duration is None:
            raise MaterializeError("占用时间槽之前必须先设定分音（例如 `{4}` 或 `{#0.5}`）", span)
        ts = self.cursor
        self.cursor += self.slot_duration
        return ts

    def _require_beat_duration(self, span: Span | None) -> float:
        if self.beat_duration is None:
            raise MaterializeError("按拍计算的时长需要先设定 BPM", span)
        return self.beat_duration

    def resolve_length(self, length: Length, span: Span | None = None) -> float:
        if isinstance(length, NumBeats):
            if length.divisor <= 0:
                raise MaterializeError(f"长度的分音数必须为正整数：{length.divisor!r}", span)
            return divide_beat(self._require_beat_duration(span), length.divisor, span) * length.count
        if isinstance(length, Seconds):
            if not math.isfinite(length.value) or length.value < 0:
                raise MaterializeError(f"绝对时长不能为负：{length.value!r}", span)
            return float(length.value)
        raise MaterializeError(f"未处理的长度类型：{type(length).__name__}", span)

    def _stop_time(self, track: SlideTrack, span: Span | None) -> float:
        stop = track.params.length.stop_time
        if stop is None:
            return self._require_beat_duration(span)
        if isinstance(stop, StopTimeBpm):
            return bpm_to_beat_duration(stop.bpm, span)
        if isinstance(stop, StopTimeSeconds):
            if not math.isfinite(stop.seconds) or stop.seconds < 0:
                raise MaterializeError(f"slide 等待时间不能为负：{stop.seconds!r}", span)
            return float(stop.seconds)
        raise MaterializeError(f"未处理的等待时间类型：{type(stop).__name__}", span)

    def materialize_raw_note(self, ts: float, raw_note: Spanned[RawNoteInsn]) -> list[MaterializedNote]:
        note = raw_note.value
        span = raw_note.span
        if isinstance(note, TapParams):
            return [materialize_tap(ts, note)]
        if isinstance(note, HoldParams):
            return [MaterializedHold(ts=ts, dur=self.resolve_length(note.length, span), key=note.key)]
        if isinstance(note, SlideParams):
            return self._materialize_slide(ts, note, span)
        raise MaterializeError(f"未处理的音符类型：{type(note).__name__}", span)

    def _materialize_slide(self, ts: float, params: SlideParams, span: Span) -> list[MaterializedNote]:
        out: list[MaterializedNote] = [materialize_tap(ts, params.start, is_slide_start=True)]
        for track in params.tracks:
            p = track.params
            out.append(
                MaterializedSlideTrack(
                    ts=ts,
                    start_ts=ts + self._stop_time(track, span),
                    dur=self.resolve_length(p.length.length, span),
                    start=params.start.key,
                    destination=p.destination.key,
                    interim=p.interim.key if p.interim is not None else None,
                    shape=track.shape,
                )
            )
        return out


def materialize_tap(ts: float, params: TapParams, *, is_slide_start: bool = False) -> MaterializedTap:
    if is_slide_start:
        shape = TapShape.STAR
    elif params.is_break:
        shape = TapShape.BREAK
    else:
        shape = TapShape.RING
    return MaterializedTap(ts=ts, key=params.key, shape=shape)


def materialize(offset_seconds: float, instructions: Iterable[Spanned[RawInsn]]) -> list[MaterializedNote]:
    """以 offset 为零点，把指令序列物化为音符事件列表（纯函数）。"""

    ctx = MaterializationContext(offset_seconds)
    notes = ctx.materialize_insns(instructions)
    logger.debug("materialized %d notes (offset=%s, end cursor=%.6f)", len(notes), offset_seconds, ctx.cursor)
    return notes

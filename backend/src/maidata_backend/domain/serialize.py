"""
指令/音符 → 纯 dict（面向 API 与 CLI 输出）。

定位：
- API 返回 JSON、CLI 输出 JSON/YAML，都需要一份稳定的结构化表示。
- 只做结构转换，不做任何时间计算；遇到未知类型直接抛 TypeError（不静默丢弃）。
"""

from __future__ import annotations

from typing import Any

from maidata.container import DifficultyChart, Maidata
from maidata.insn import (
    EndMark,
    HoldParams,
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
    StopTimeBpm,
    StopTimeSeconds,
    TapParams,
)
from maidata.materialize import MaterializedHold, MaterializedNote, MaterializedSlideTrack, MaterializedTap
from maidata.span import Span, Spanned


def span_to_dict(span: Span | None) -> dict[str, int] | None:
    if span is None:
        return None
    return {
        "byte_offset": span.byte_offset,
        "line": span.line,
        "col": span.col,
        "end_line": span.end_line,
        "end_col": span.end_col,
        "length": span.length,
    }


def length_to_dict(length: Length) -> dict[str, Any]:
    if isinstance(length, NumBeats):
        return {"divisor": length.divisor, "count": length.count}
    if isinstance(length, Seconds):
        return {"seconds": length.value}
    raise TypeError(f"未知长度类型：{type(length).__name__}")


def slide_length_to_dict(length: SlideLength) -> dict[str, Any]:
    out = length_to_dict(length.length)
    stop = length.stop_time
    if isinstance(stop, StopTimeBpm):
        out["stop_time"] = {"bpm": stop.bpm}
    elif isinstance(stop, StopTimeSeconds):
        out["stop_time"] = {"seconds": stop.seconds}
    elif stop is not None:
        raise TypeError(f"未知等待时间类型：{type(stop).__name__}")
    return out


def tap_to_dict(tap: TapParams) -> dict[str, Any]:
    return {"key": int(tap.key), "variant": tap.variant.value}


def raw_note_to_dict(note: Spanned[RawNoteInsn]) -> dict[str, Any]:
    v = note.value
    if isinstance(v, TapParams):
        out: dict[str, Any] = {"kind": "tap", **tap_to_dict(v)}
    elif isinstance(v, HoldParams):
        out = {"kind": "hold", "key": int(v.key), "length": length_to_dict(v.length)}
    elif isinstance(v, SlideParams):
        out = {
            "kind": "slide",
            "start": tap_to_dict(v.start),
            "tracks": [
                {
                    "shape": t.shape.name.lower(),
                    "destination": tap_to_dict(t.params.destination),
                    "interim": tap_to_dict(t.params.interim) if t.params.interim is not None else None,
                    "length": slide_length_to_dict(t.params.length),
                }
                for t in v.tracks
            ],
        }
    else:
        raise TypeError(f"未知音符类型：{type(v).__name__}")
    out["span"] = span_to_dict(note.span)
    return out


def insn_to_dict(insn: Spanned[RawInsn]) -> dict[str, Any]:
    v = insn.value
    if isinstance(v, SetTempo):
        out: dict[str, Any] = {"kind": "tempo", "bpm": v.bpm}
    elif isinstance(v, SetSubdivision):
        out = {"kind": "subdivision", "divisor": v.divisor, "seconds": v.seconds}
    elif isinstance(v, Rest):
        out = {"kind": "rest"}
    elif isinstance(v, SingleNote):
        out = {"kind": "note", "note": raw_note_to_dict(v.note)}
    elif isinstance(v, NoteBundle):
        out = {"kind": "bundle", "notes": [raw_note_to_dict(n) for n in v.notes]}
    elif isinstance(v, EndMark):
        out = {"kind": "end"}
    else:
        raise TypeError(f"未知指令类型：{type(v).__name__}")
    out["text"] = str(v)
    out["span"] = span_to_dict(insn.span)
    return out


def note_to_dict(note: MaterializedNote) -> dict[str, Any]:
    if isinstance(note, MaterializedTap):
        return {"kind": "tap", "ts": note.ts, "key": int(note.key), "shape": note.shape.value}
    if isinstance(note, MaterializedHold):
        return {"kind": "hold", "ts": note.ts, "dur": note.dur, "key": int(note.key)}
    if isinstance(note, MaterializedSlideTrack):
        return {
            "kind": "slide_track",
            "ts": note.ts,
            "start_ts": note.start_ts,
            "dur": note.dur,
            "start": int(note.start),
            "destination": int(note.destination),
            "interim": int(note.interim) if note.interim is not None else None,
            "shape": note.shape.name.lower(),
        }
    raise TypeError(f"未知物化音符类型：{type(note).__name__}")


def chart_to_dict(chart: DifficultyChart, *, include_notes: bool = True) -> dict[str, Any]:
    notes = chart.materialize_notes()
    out: dict[str, Any] = {
        "difficulty": chart.difficulty.name,
        "level": str(chart.level) if chart.level is not None else None,
        "designer": chart.designer,
        "offset": chart.offset,
        "single_message": chart.single_message,
        "count": len(notes),
    }
    if include_notes:
        out["notes"] = [note_to_dict(n) for n in notes]
    return out


def maidata_to_dict(m: Maidata, *, include_notes: bool = True) -> dict[str, Any]:
    return {
        "title": m.title,
        "artist": m.artist,
        "designer": m.designer,
        "offset": m.offset,
        "single_message": m.single_message,
        "difficulties": [chart_to_dict(c, include_notes=include_notes) for c in m.difficulties],
        "extra": dict(m.extra),
    }

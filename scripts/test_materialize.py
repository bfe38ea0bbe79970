"""
物化引擎回归测试（指令序列 → 绝对时间戳）。

定位：
- BPM/分音定律、时间槽推进（时间戳取推进前的值）、多押同时性、slide 星星 + 轨迹、
  等待时间覆盖（BPM/秒）、EndMark 不截断，以及“状态未设定/数值非正必须失败”。

用法：
  python scripts/test_materialize.py
  pytest scripts/test_materialize.py
"""

from __future__ import annotations

from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parents[1]


def _ensure_backend_src_on_path(repo_root: Path) -> None:
    src_dir = repo_root / "backend" / "src"
    if not src_dir.exists():
        raise RuntimeError(f"找不到 backend/src：{src_dir}")
    if str(src_dir) not in sys.path:
        sys.path.insert(0, str(src_dir))


_ensure_backend_src_on_path(REPO_ROOT)

from maidata import (  # noqa: E402
    MaterializationContext,
    MaterializedHold,
    MaterializedSlideTrack,
    MaterializedTap,
    MaterializeError,
    Span,
    Spanned,
    TapShape,
    materialize,
    parse_instructions,
)
from maidata.insn import Key, NumBeats, SlideShape  # noqa: E402


def _notes(text: str, offset: float = 0.0) -> list:
    return materialize(offset, parse_instructions(text))


def _materialize_error(text: str) -> MaterializeError:
    insns = parse_instructions(text)
    try:
        materialize(0.0, insns)
    except MaterializeError as e:
        return e
    raise AssertionError(f"预期物化失败：{text!r}")


def test_two_taps_one_beat_apart() -> None:
    assert _notes("(120){4}1,2,") == [
        MaterializedTap(ts=0.0, key=Key.K1, shape=TapShape.RING),
        MaterializedTap(ts=0.5, key=Key.K2, shape=TapShape.RING),
    ]


def test_simplified_bundle_shares_timestamp() -> None:
    notes = _notes("(120){8}12,")
    assert [(n.ts, n.key) for n in notes] == [(0.0, Key.K1), (0.0, Key.K2)]


def test_bundle_members_keep_source_order() -> None:
    notes = _notes("(120){4},1-5[8:1]/2b/3h[4:1],")
    assert {n.ts for n in notes} == {0.5}
    assert [type(n) for n in notes] == [MaterializedTap, MaterializedSlideTrack, MaterializedTap, MaterializedHold]
    assert notes[0].shape is TapShape.STAR
    assert notes[2].shape is TapShape.BREAK and notes[2].key == Key.K2


def test_hold_duration_in_beats_and_seconds() -> None:
    (hold,) = _notes("(60){4}1h[4:4],")
    assert hold == MaterializedHold(ts=0.0, dur=4.0, key=Key.K1)

    (hold,) = _notes("(60){4}1h[#0.75],")
    assert hold.dur == 0.75


def test_slide_default_stop_time_is_one_beat() -> None:
    star, track = _notes("(60){4}1-5[4:1],")
    assert star == MaterializedTap(ts=0.0, key=Key.K1, shape=TapShape.STAR)
    assert track == MaterializedSlideTrack(
        ts=0.0,
        start_ts=1.0,
        dur=1.0,
        start=Key.K1,
        destination=Key.K5,
        interim=None,
        shape=SlideShape.LINE,
    )


def test_slide_emits_star_plus_one_event_per_track() -> None:
    notes = _notes("(120){4}1b-5[8:1]*<3[8:1]*V46[#1],")
    assert len(notes) == 1 + 3
    assert notes[0].shape is TapShape.STAR  # break 起点也强制为 star
    tracks = notes[1:]
    assert all(isinstance(t, MaterializedSlideTrack) and t.start == Key.K1 for t in tracks)
    assert [t.shape for t in tracks] == [SlideShape.LINE, SlideShape.CIRCUMFERENCE_LEFT, SlideShape.ANGLE]
    assert tracks[2].interim == Key.K4 and tracks[2].destination == Key.K6
    assert tracks[2].dur == 1.0


def test_slide_stop_time_overrides() -> None:
    _, track = _notes("(120){4}1-5[240#8:1],")
    assert track.start_ts == 0.25
    assert track.dur == 0.25

    _, track = _notes("(120){4}1-5[0.75##1.5],")
    assert (track.start_ts, track.dur) == (0.75, 1.5)


def test_rests_advance_and_timestamps_are_pre_advance() -> None:
    notes = _notes("(120){4},,,{8},,1,", offset=1.5)
    (tap,) = notes
    assert tap.ts == 1.5 + 3 * 0.5 + 2 * 0.25


def test_rest_only_sequence_is_equally_spaced() -> None:
    ctx = MaterializationContext(0.0)
    stamps = []
    for insn in parse_instructions("(120){4},,,,"):
        before = ctx.cursor
        ctx.materialize_insn(insn)
        if ctx.cursor != before:
            stamps.append(before)
    assert stamps == [0.0, 0.5, 1.0, 1.5]
    assert ctx.cursor == 2.0


def test_tempo_and_subdivision_laws() -> None:
    ctx = MaterializationContext(0.0)
    (tempo, div4) = parse_instructions("(120){4}")
    ctx.materialize_insn(tempo)
    assert ctx.beat_duration == 0.5
    ctx.materialize_insn(div4)
    assert ctx.slot_duration == ctx.beat_duration

    (div16,) = parse_instructions("{16}")
    ctx.materialize_insn(div16)
    assert ctx.slot_duration == 4 * 0.5 / 16


def test_tempo_change_rederives_slot_duration() -> None:
    notes = _notes("(120){4}1,(60)2,3,")
    assert [n.ts for n in notes] == [0.0, 0.5, 1.5]


def test_absolute_subdivision_ignores_tempo() -> None:
    notes = _notes("(120){#0.25}1,(60)2,3,")
    assert [n.ts for n in notes] == [0.0, 0.25, 0.5]

    (hold,) = _notes("(120){#0.5}1h[#1],")
    assert hold.dur == 1.0


def test_end_mark_does_not_stop_processing() -> None:
    notes = _notes("(120){4}1,E2,")
    assert [(n.ts, n.key) for n in notes] == [(0.0, Key.K1), (0.5, Key.K2)]


def test_offset_is_zero_point() -> None:
    (tap,) = _notes("(120){4}1,", offset=2.0)
    assert tap.ts == 2.0


def test_materialize_is_pure() -> None:
    insns = parse_instructions("(150){8}1,2-6[8:1],3h[2:1],")
    assert materialize(0.0, insns) == materialize(0.0, insns)


def test_non_positive_tempo_fails() -> None:
    e = _materialize_error("(0){4}1,")
    assert (e.span.line, e.span.col) == (1, 1)
    _materialize_error("(-120){4}1,")
    _materialize_error("(120){4}1-5[0#8:1],")


def test_time_slot_before_tempo_fails() -> None:
    e = _materialize_error("{4}1,")
    assert e.span.col == 4
    _materialize_error(",")
    _materialize_error("(120)1,")

    # 绝对时长的槽同样要求先设定 BPM
    e = _materialize_error("{#0.5}1,2,")
    assert e.span.col == 7
    _materialize_error("{#0.5},")
    _materialize_error("{#0.5}1h[#1],")

    ctx = MaterializationContext(0.0)
    try:
        ctx.resolve_length(NumBeats(4, 1))
    except MaterializeError:
        pass
    else:
        raise AssertionError("未设定 BPM 时按拍长度必须失败")


def test_non_positive_divisors_fail() -> None:
    _materialize_error("(120){0}")
    _materialize_error("(120){#0}")
    e = _materialize_error("(120){4}1h[0:1],")
    # 指向 hold 音符本身
    assert (e.span.col, e.span.end_col) == (9, 16)


def test_unhandled_variant_fails_explicitly() -> None:
    span = Span(byte_offset=0, line=1, col=1, end_line=1, end_col=2, length=1)
    ctx = MaterializationContext(0.0)
    try:
        ctx.materialize_insn(Spanned(object(), span))
    except MaterializeError as e:
        assert e.span == span
    else:
        raise AssertionError("未知指令类型必须失败")


def test_non_finite_offset_fails() -> None:
    try:
        materialize(float("nan"), [])
    except MaterializeError:
        pass
    else:
        raise AssertionError("offset=nan 必须失败")


def main() -> None:
    tests = [(name, fn) for name, fn in sorted(globals().items()) if name.startswith("test_") and callable(fn)]
    for name, fn in tests:
        fn()
        print(f"[OK] {name}")
    print(f"[OK] materialize: {len(tests)} checks")


if __name__ == "__main__":
    main()

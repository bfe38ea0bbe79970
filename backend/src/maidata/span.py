"""
源码位置（span）附着。

定位：
- 解析阶段为每条指令、每个子音符记录其在原文中的 [start, end) 范围，用于诊断时精确指向出错片段。
- 物化阶段只透传 span（报错时使用），不再做任何位置计算。

约定：
- line/col 从 1 开始；col 按字符计数（不是字节）。
- byte_offset/length 按 UTF-8 字节计数，便于与外部编辑器/工具对齐。
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from itertools import accumulate
from typing import Generic, TypeVar


T = TypeVar("T")

WHITESPACE = " \t\r\n"


@dataclass(frozen=True)
class Position:
    """文本中的一个位置（offset 为字符下标）。"""

    offset: int = 0
    byte_offset: int = 0
    line: int = 1
    col: int = 1


@dataclass(frozen=True)
class Span:
    byte_offset: int
    line: int
    col: int
    end_line: int
    end_col: int
    length: int

    @classmethod
    def from_start_end(cls, start: Position, end: Position) -> "Span":
        return cls(
            byte_offset=start.byte_offset,
            line=start.line,
            col=start.col,
            end_line=end.line,
            end_col=end.col,
            length=end.byte_offset - start.byte_offset,
        )

    def __str__(self) -> str:
        return f"{self.line}:{self.col}-{self.end_line}:{self.end_col}"


@dataclass(frozen=True)
class Spanned(Generic[T]):
    """附带 span 的值。

    比较只看 value：同一段记谱出现在不同位置时，解析结果视为相等。
    """

    value: T
    span: Span = field(compare=False)

    def __str__(self) -> str:
        return f"[{self.span}]{self.value}"


class SourceText:
    """把字符下标换算为 Position / Span。

    origin 表示 text[0] 在更大文本（例如整个 maidata.txt）中的位置；
    这样从容器里切出来的片段，报错时仍能给出文件级的行列号。
    """

    def __init__(self, text: str, origin: Position | None = None) -> None:
        self.text = text
        self.origin = origin or Position()
        self._line_starts = [0] + [i + 1 for i, ch in enumerate(text) if ch == "\n"]
        if text.isascii():
            self._byte_prefix: list[int] | None = None
        else:
            self._byte_prefix = [0] + list(accumulate(len(ch.encode("utf-8")) for ch in text))

    def _line_index(self, i: int) -> int:
        return bisect.bisect_right(self._line_starts, i) - 1

    def position(self, i: int) -> Position:
        if not (0 <= i <= len(self.text)):
            raise ValueError(f"位置越界：{i}（文本长度 {len(self.text)}）")

        idx = self._line_index(i)
        col = i - self._line_starts[idx] + 1
        if idx == 0:
            col += self.origin.col - 1
        byte_offset = i if self._byte_prefix is None else self._byte_prefix[i]
        return Position(
            offset=self.origin.offset + i,
            byte_offset=self.origin.byte_offset + byte_offset,
            line=self.origin.line + idx,
            col=col,
        )

    def span(self, start: int, end: int) -> Span:
        return Span.from_start_end(self.position(start), self.position(end))

    def skip_whitespace(self, i: int) -> int:
        n = len(self.text)
        while i < n and self.text[i] in WHITESPACE:
            i += 1
        return i

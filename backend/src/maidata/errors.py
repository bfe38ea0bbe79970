"""
maidata 的错误分类。

约束（正确地失败）：
- 语法错误、数值错误、状态错误一律显式抛出，不做静默降级或默认值猜测。
- 只报告第一个错误；不做跳过/恢复（时间轴一旦失真，后续时间戳没有意义）。
- 全部继承 ValueError，调用方可以和其它校验失败一样处理。
"""

from __future__ import annotations

from .span import Span


class MaidataError(ValueError):
    """带可选 span 的错误基类。"""

    def __init__(self, message: str, span: Span | None = None) -> None:
        self.message = message
        self.span = span
        if span is None:
            super().__init__(message)
        else:
            super().__init__(f"{span.line}:{span.col}: {message}")


class SimaiSyntaxError(MaidataError):
    """记谱语法错误（含数值字面量非法）。"""

    def __init__(self, message: str, span: Span | None = None, expected: tuple[str, ...] = ()) -> None:
        super().__init__(message, span)
        self.expected = tuple(expected)


class MaterializeError(MaidataError):
    """物化阶段的状态/数值错误（例如未设置 BPM、BPM 非正）。"""


class ContainerError(MaidataError):
    """maidata 容器（`&key=value`）或元数据值非法。"""

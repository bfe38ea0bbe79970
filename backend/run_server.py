"""
maidata 后端开发服务器启动脚本。

定位：
- 未执行 `pip install -e .` 时也能直接运行：启动时把 `backend/src` 加到 `sys.path`。
- `--log-level` 同时作用于 uvicorn 与 `maidata.*` 库日志（格式与 maidata-inspect 一致），
  设为 debug 即可看到每个请求的指令数/音符数。

用法：
  python backend/run_server.py
  python backend/run_server.py --reload --log-level debug
  python backend/run_server.py --host 0.0.0.0 --port 7130
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import uvicorn


APP = "maidata_backend.api.server:app"
DEFAULT_PORT = 7130
SRC_DIR = Path(__file__).resolve().parent / "src"


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="run_server", description="maidata 后端开发服务器")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--reload", action="store_true", default=False, help="源码变更时自动重启（只 watch backend/src）")
    parser.add_argument("--log-level", default="info", choices=["critical", "error", "warning", "info", "debug"])
    return parser


def main(argv: list[str] | None = None) -> None:
    if not SRC_DIR.exists():
        raise RuntimeError(f"找不到后端源码目录：{SRC_DIR}")
    if str(SRC_DIR) not in sys.path:
        sys.path.insert(0, str(SRC_DIR))

    args = build_arg_parser().parse_args(argv)

    from maidata_backend.cli import LOG_FORMAT

    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)
    logging.getLogger("maidata").setLevel(args.log_level.upper())

    uvicorn.run(
        APP,
        host=args.host,
        port=args.port,
        reload=args.reload,
        reload_dirs=[str(SRC_DIR)] if args.reload else None,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()

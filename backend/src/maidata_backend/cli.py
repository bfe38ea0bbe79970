"""
maidata-inspect：读取 maidata.txt，打印元数据与各难度的物化结果。

用法：
  maidata-inspect path/to/maidata.txt
  maidata-inspect path/to/maidata.txt --insns
  maidata-inspect path/to/maidata.txt --dump yaml

约束：
- 任一难度解析/物化失败即整体失败（退出码 1），并打印 `文件:行:列: 原因`。
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import TextIO

import yaml

from maidata import MaidataError, parse_maidata

from .domain.serialize import maidata_to_dict


logger = logging.getLogger(__name__)

NOT_SET = "<not set>"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _or_not_set(value: object) -> str:
    return NOT_SET if value is None else str(value)


def run_inspect(path: Path, *, dump: str = "none", show_insns: bool = False, out: TextIO | None = None) -> int:
    out = out or sys.stdout
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        print(f"{path}: 无法读取：{e}", file=sys.stderr)
        return 1

    try:
        m = parse_maidata(text)
        print(f"title = {_or_not_set(m.title)}", file=out)
        print(f"artist = {_or_not_set(m.artist)}", file=out)

        for chart in m.difficulties:
            insns = chart.iter_insns()
            notes = chart.materialize_notes()
            print(file=out)
            print(f"difficulty {chart.difficulty.name}", file=out)
            print(f"  level {_or_not_set(chart.level)}", file=out)
            print(f"  offset {chart.offset}", file=out)
            print(f"  designer {_or_not_set(chart.designer)}", file=out)
            print(f"  static message {_or_not_set(chart.single_message)}", file=out)
            print(f"  <{len(notes)} notes materialized>", file=out)
            if show_insns:
                for insn in insns:
                    print(f"  {insn}", file=out)

        if dump == "json":
            print(json.dumps(maidata_to_dict(m), ensure_ascii=False, indent=2), file=out)
        elif dump == "yaml":
            yaml.safe_dump(maidata_to_dict(m), out, allow_unicode=True, sort_keys=False)
    except MaidataError as e:
        if e.span is not None:
            print(f"{path}:{e.span.line}:{e.span.col}: {e.message}", file=sys.stderr)
        else:
            print(f"{path}: {e.message}", file=sys.stderr)
        return 1

    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="maidata-inspect", add_help=True)
    parser.add_argument("path", type=Path)
    parser.add_argument("--dump", choices=["none", "json", "yaml"], default="none")
    parser.add_argument("--insns", action="store_true", default=False)
    parser.add_argument("--log-level", default="warning")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)
    logger.debug("inspecting %s", args.path)
    return run_inspect(args.path, dump=args.dump, show_insns=args.insns)


if __name__ == "__main__":
    raise SystemExit(main())

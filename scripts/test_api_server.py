"""
后端 API 冒烟测试（FastAPI TestClient，不启动服务进程）。

覆盖：
- /health
- /insns：指令 + span
- /materialize：绝对时间戳
- /maidata：示例谱面端到端
- 错误输入返回 400，且 detail 里带出错位置
- backend/run_server.py 的启动参数

用法：
  python scripts/test_api_server.py
"""

from __future__ import annotations

from pathlib import Path
import runpy
import sys

from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
EXAMPLE = REPO_ROOT / "docs" / "data" / "examples" / "sample_maidata.txt"


def _ensure_backend_src_on_path(repo_root: Path) -> None:
    src_dir = repo_root / "backend" / "src"
    if not src_dir.exists():
        raise RuntimeError(f"找不到 backend/src：{src_dir}")
    if str(src_dir) not in sys.path:
        sys.path.insert(0, str(src_dir))


_ensure_backend_src_on_path(REPO_ROOT)

from maidata_backend.api.server import app  # noqa: E402

client = TestClient(app)


def test_health() -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_insns() -> None:
    r = client.post("/insns", json={"text": "(120){4}1-5[160#8:3]/2b,"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["count"] == 3
    tempo, div, bundle = body["insns"]
    assert tempo == {
        "kind": "tempo",
        "bpm": 120.0,
        "text": "(120)",
        "span": {"byte_offset": 0, "line": 1, "col": 1, "end_line": 1, "end_col": 6, "length": 5},
    }
    assert div["divisor"] == 4 and div["seconds"] is None
    assert bundle["kind"] == "bundle"
    slide, tap = bundle["notes"]
    assert slide["kind"] == "slide"
    assert slide["tracks"][0]["shape"] == "line"
    assert slide["tracks"][0]["length"] == {"divisor": 8, "count": 3, "stop_time": {"bpm": 160.0}}
    assert tap == {
        "kind": "tap",
        "key": 2,
        "variant": "break",
        "span": {"byte_offset": 21, "line": 1, "col": 22, "end_line": 1, "end_col": 24, "length": 2},
    }


def test_materialize() -> None:
    r = client.post("/materialize", json={"text": "(120){4}1,2h[4:1],", "offset": 1.0})
    assert r.status_code == 200, r.text
    assert r.json() == {
        "count": 2,
        "notes": [
            {"kind": "tap", "ts": 1.0, "key": 1, "shape": "ring"},
            {"kind": "hold", "ts": 1.5, "dur": 0.5, "key": 2},
        ],
    }


def test_errors_are_400_with_span() -> None:
    r = client.post("/insns", json={"text": "(120)\n9,"})
    assert r.status_code == 400
    detail = r.json()["detail"]
    assert detail["span"]["line"] == 2 and detail["span"]["col"] == 1
    assert detail["message"]

    r = client.post("/materialize", json={"text": "{4}1,"})
    assert r.status_code == 400
    assert r.json()["detail"]["span"]["col"] == 4

    r = client.post("/maidata", json={"text": "title=x"})
    assert r.status_code == 400

    r = client.post("/materialize", json={"text": "(120){" + "9" * 400 + "}1,"})
    assert r.status_code == 400
    assert r.json()["detail"]["span"]["col"] == 7

    # 请求体本身不合法交给 pydantic
    r = client.post("/maidata", json={"text": ""})
    assert r.status_code == 422


def test_maidata_sample() -> None:
    r = client.post("/maidata", json={"text": EXAMPLE.read_text(encoding="utf-8")})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["title"] == "Sample Song"
    assert body["extra"] == {"wholebpm": "120"}
    assert [d["difficulty"] for d in body["difficulties"]] == ["EXPERT", "MASTER"]
    master = body["difficulties"][1]
    assert (master["level"], master["offset"], master["count"]) == ("13+", 1.0, 10)
    assert master["notes"][0] == {"kind": "tap", "ts": 1.0, "key": 1, "shape": "break"}

    r = client.post("/maidata", json={"text": EXAMPLE.read_text(encoding="utf-8"), "include_notes": False})
    assert all("notes" not in d for d in r.json()["difficulties"])


def test_dev_server_arguments() -> None:
    launcher = runpy.run_path(str(REPO_ROOT / "backend" / "run_server.py"))
    assert launcher["APP"] == "maidata_backend.api.server:app"

    parser = launcher["build_arg_parser"]()
    args = parser.parse_args([])
    assert (args.host, args.port, args.reload, args.log_level) == ("127.0.0.1", 7130, False, "info")
    args = parser.parse_args(["--reload", "--port", "8000", "--log-level", "debug"])
    assert (args.port, args.reload, args.log_level) == (8000, True, "debug")


def main() -> None:
    tests = [(name, fn) for name, fn in sorted(globals().items()) if name.startswith("test_") and callable(fn)]
    for name, fn in tests:
        fn()
        print(f"[OK] {name}")
    print(f"[OK] api server: {len(tests)} checks")


if __name__ == "__main__":
    main()

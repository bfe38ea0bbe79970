"""
maidata 后端 API（FastAPI）。

约定：
- 服务端口：7130
- 无状态：每个请求独立解析/物化，不落盘、不缓存。

API 设计原则：
- 输入就是记谱原文（单个难度的指令串，或整份 maidata.txt）。
- 严格校验，宁可失败，不做静默降级：任何语法/状态错误返回 400，并附带出错位置（span）。
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from maidata import MaidataError, materialize, parse_instructions, parse_maidata

from ..domain.serialize import insn_to_dict, maidata_to_dict, note_to_dict, span_to_dict


logger = logging.getLogger(__name__)

app = FastAPI(title="Maidata Backend", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


class InsnsRequest(BaseModel):
    text: str


class MaterializeRequest(BaseModel):
    text: str
    offset: float = 0.0


class MaidataRequest(BaseModel):
    text: str = Field(min_length=1)
    include_notes: bool = True


def _bad_request(e: MaidataError) -> HTTPException:
    logger.info("rejected chart: %s", e)
    return HTTPException(status_code=400, detail={"message": e.message, "span": span_to_dict(e.span)})


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/insns")
def api_insns(req: InsnsRequest) -> dict[str, Any]:
    try:
        insns = parse_instructions(req.text)
    except MaidataError as e:
        raise _bad_request(e) from e
    return {"count": len(insns), "insns": [insn_to_dict(i) for i in insns]}


@app.post("/materialize")
def api_materialize(req: MaterializeRequest) -> dict[str, Any]:
    try:
        notes = materialize(req.offset, parse_instructions(req.text))
    except MaidataError as e:
        raise _bad_request(e) from e
    return {"count": len(notes), "notes": [note_to_dict(n) for n in notes]}


@app.post("/maidata")
def api_maidata(req: MaidataRequest) -> dict[str, Any]:
    try:
        return maidata_to_dict(parse_maidata(req.text), include_notes=req.include_notes)
    except MaidataError as e:
        raise _bad_request(e) from e

from __future__ import annotations
from fastapi import APIRouter
from pbi_embed.config import cfg


router = APIRouter()


@router.get("/api/health")
def health():
    return {"status": "ok", "env": cfg.env}

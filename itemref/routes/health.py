from __future__ import annotations

import os
from fastapi import APIRouter
from ..config import get_settings
from .. import db


router = APIRouter()


@router.get("/health")
def health():
    s = get_settings()
    return {
        "status": "ok",
        "service": s.app_name,
        "env": s.environment,
        "database": "configured" if db.SessionLocal is not None else "missing",
        "pid": os.getpid(),
    }

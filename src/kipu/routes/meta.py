"""Meta endpoints — health and version."""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["meta"])


@router.get("/health")
def health():
    return {"status": "ok", "service": "kipu"}


@router.get("/version")
def version(request: Request):
    return {"gateway": request.app.version, "backend": request.app.state.config.backend_url}

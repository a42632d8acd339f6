"""Storage router — serves documents behind time-limited signed URLs.

Endpoints:
  GET /api/storage/{path}?signature=...  — download a stored document
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException, status
from fastapi.responses import FileResponse

from consentlink.deps import Store

logger = structlog.get_logger()

router = APIRouter()


@router.get("/storage/{path:path}")
async def download_document(path: str, store: Store, signature: str = ""):
    """Stream a stored document if the signature matches the path and has not expired."""
    if not signature or not store.verify_signature(path, signature):
        logger.info("storage_signature_rejected", path=path)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired link")

    target = store.resolve(path)
    return FileResponse(path=target, filename=target.name)

"""Optional API key guard for the Kipu gateway.

Empty key disables the check (development). Otherwise every request
must carry a matching X-API-Key header.
"""

from __future__ import annotations

import logging
import secrets

from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

audit_logger = logging.getLogger("kipu.audit")


def make_api_key_checker(expected_key: str):
    """Return a FastAPI dependency enforcing ``expected_key``."""

    async def check_api_key(
        request: Request,
        api_key: str | None = Security(_api_key_header),
    ) -> str | None:
        if not expected_key:
            return None
        if api_key is None or not secrets.compare_digest(api_key, expected_key):
            audit_logger.warning("rejected %s %s: bad API key", request.method, request.url.path)
            raise HTTPException(status_code=401, detail="Invalid or missing API key")
        return api_key

    return check_api_key

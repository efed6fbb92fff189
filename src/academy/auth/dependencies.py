"""FastAPI authentication dependencies for internal callers."""

from __future__ import annotations

import secrets

from fastapi import Depends, HTTPException, Security
from fastapi.security import APIKeyHeader

from academy.config import Settings, get_settings

_service_token_header = APIKeyHeader(name="X-Service-Token", auto_error=False)


async def require_service_token(
    token: str | None = Security(_service_token_header),
    settings: Settings = Depends(get_settings),  # noqa: B008
) -> None:
    """
    Gate write endpoints to the progress and quiz subsystems.

    They present the shared ACADEMY_SERVICE_TOKEN in X-Service-Token.
    Raises 401 when the header is missing or does not match.
    """
    if not token:
        raise HTTPException(status_code=401, detail="Missing service token")
    if not secrets.compare_digest(token.encode(), settings.service_token.encode()):
        raise HTTPException(status_code=401, detail="Invalid service token")

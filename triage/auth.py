"""Optional shared-token auth for the inbound webhook."""

from __future__ import annotations

from fastapi import HTTPException, Request

from .config import settings


def _token_from_authorization(header: str | None) -> str | None:
    if not header:
        return None
    parts = header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


async def require_webhook_token(request: Request) -> None:
    expected = settings().WEBHOOK_TOKEN
    if not expected:
        return  # no auth configured

    provided = request.query_params.get("token")
    provided = provided or request.headers.get("x-webhook-token")
    provided = provided or _token_from_authorization(request.headers.get("Authorization"))

    if provided != expected:
        raise HTTPException(status_code=401, detail="Invalid webhook token")

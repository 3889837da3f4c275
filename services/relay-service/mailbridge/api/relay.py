"""Public relay endpoint receiving form submissions for a ``clientId``."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse
from starlette.datastructures import UploadFile

from ..config import get_settings
from ..domain.errors import RateLimitExceeded, ValidationError
from ..domain.relay import RelayDispatcher, Submission
from ..metrics import RELAY_RATE_LIMITED
from .routes import MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["relay"])

_FORM_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")

_METHOD_NOT_ALLOWED_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Method Not Allowed</title>
  <style>
    body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Helvetica, Arial, sans-serif;
           display: flex; justify-content: center; align-items: center; height: 100vh; margin: 0;
           background-color: #f3f4f6; }
    .container { text-align: center; background: white; padding: 2rem; border-radius: 8px;
                 box-shadow: 0 4px 6px rgba(0,0,0,0.1); max-width: 400px; }
    h1 { color: #ef4444; margin-bottom: 1rem; }
    p { color: #374151; line-height: 1.5; }
    .code { background: #f3f4f6; padding: 0.2rem 0.4rem; border-radius: 4px; font-family: monospace; font-size: 0.9em; }
  </style>
</head>
<body>
  <div class="container">
    <h1>Method Not Allowed</h1>
    <p>This endpoint only accepts <span class="code">POST</span> requests.</p>
    <p>Please send your data using JSON or FormData.</p>
  </div>
</body>
</html>
"""


def get_dispatcher(request: Request) -> RelayDispatcher:
    dispatcher: RelayDispatcher = request.app.state.relay_dispatcher
    return dispatcher


def client_ip(request: Request) -> str:
    """Return the caller address used as the rate limit key."""
    if get_settings().trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else "unknown"


async def enforce_rate_limit(request: Request) -> None:
    """Count the request against its source IP before any other relay work happens."""
    ip = client_ip(request)
    if not await request.app.state.rate_limiter.allow(f"relay:{ip}"):
        RELAY_RATE_LIMITED.inc()
        logger.warning("relay rate limit exceeded for %s", ip)
        raise RateLimitExceeded()


async def read_payload(request: Request) -> dict[str, Any]:
    """Parse a JSON object or form body into a field mapping, preserving field order.

    Repeated form fields become lists; uploaded files are not relayed.
    """
    content_type = request.headers.get("Content-Type", "").lower()
    if content_type.startswith(_FORM_TYPES):
        form = await request.form()
        payload: dict[str, Any] = {}
        for key in form.keys():
            values = []
            for value in form.getlist(key):
                if isinstance(value, UploadFile):
                    logger.info("ignoring uploaded file %r in relay submission", value.filename)
                    continue
                values.append(value)
            if values:
                payload[key] = values[0] if len(values) == 1 else values
        return payload

    body = await request.body()
    if not body.strip():
        return {}
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise ValidationError("Request body must be a JSON object or form data") from exc
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object or form data")
    return data


@router.post(
    "/{client_id}",
    response_model=MessageResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def relay_submission(
    client_id: str,
    request: Request,
    dispatcher: RelayDispatcher = Depends(get_dispatcher),
) -> MessageResponse:
    """Forward a form submission to the destinations of the account owning ``client_id``."""
    payload = await read_payload(request)
    await dispatcher.dispatch(
        Submission(client_id=client_id, payload=payload, origin=request.headers.get("Origin"))
    )
    return MessageResponse(message="Email sent successfully")


@router.get("/{client_id}", response_class=HTMLResponse, include_in_schema=False)
async def relay_wrong_method(client_id: str) -> HTMLResponse:
    return HTMLResponse(
        _METHOD_NOT_ALLOWED_PAGE,
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        headers={"Allow": "POST"},
    )

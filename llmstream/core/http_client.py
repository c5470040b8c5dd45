"""
llmstream - Streaming HTTP Transport

Thin helper that opens a Server-Sent-Events connection on an
``httpx.AsyncClient``:

- Request sent with ``stream=True`` and ``Accept: text/event-stream``
- Non-2xx responses are read (capped), closed and raised as UpstreamHTTPError
- Network failures are raised as TransportConnectError

Both are pre-stream errors: no stream object exists when they are raised.
"""

from typing import Any, Dict, Optional

import httpx

from .errors import TransportConnectError, UpstreamHTTPError
from ..observability.logging import get_logger


logger = get_logger("llmstream.http")

# Upper bound on how much of an error body is kept for the exception text
MAX_ERROR_BODY_BYTES = 4096


async def open_event_stream(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    json: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    provider: str = "",
    request_id: str = "",
) -> httpx.Response:
    """
    Send a streaming request and return the open response.

    The caller owns the returned response and must ``aclose()`` it.

    Raises:
        UpstreamHTTPError: the server answered with a non-2xx status
        TransportConnectError: the request could not be sent
    """
    request_headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
    request_headers.update(headers or {})

    request = client.build_request(method, url, json=json, headers=request_headers)

    try:
        response = await client.send(request, stream=True)
    except httpx.HTTPError as e:
        logger.warning(
            "stream request failed",
            provider=provider,
            request_id=request_id,
            error=str(e),
        )
        raise TransportConnectError(str(e), provider=provider, request_id=request_id) from e

    if response.is_success:
        return response

    try:
        body = await _read_capped(response)
    finally:
        await response.aclose()

    logger.warning(
        "stream request rejected",
        provider=provider,
        request_id=request_id,
        status_code=response.status_code,
    )
    raise UpstreamHTTPError(
        response.status_code,
        body=body,
        provider=provider,
        request_id=request_id,
    )


async def _read_capped(response: httpx.Response) -> str:
    chunks = []
    size = 0
    try:
        async for chunk in response.aiter_bytes():
            chunks.append(chunk)
            size += len(chunk)
            if size >= MAX_ERROR_BODY_BYTES:
                break
    except httpx.HTTPError:
        # Body is best-effort context for the status error
        pass
    return b"".join(chunks)[:MAX_ERROR_BODY_BYTES].decode("utf-8", errors="replace").strip()

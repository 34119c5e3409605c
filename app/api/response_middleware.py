"""Middleware to ensure successful responses use the shared envelope."""

from __future__ import annotations

import json
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.response_utils import REQUEST_ID_HEADER, build_meta, get_request_id
from app.schemas.response import ResponseEnvelope


class SuccessEnvelopeMiddleware(BaseHTTPMiddleware):
    """
    Wrap successful JSON responses in the shared response envelope.

    Search payloads carrying ``degraded`` surface it in ``meta.degraded`` so
    clients can tell fallback results apart without reading the data.
    """

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        request_id = get_request_id(request)
        response = await call_next(request)
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        if not self._should_wrap(response):
            return response

        body_bytes = await self._extract_body(response)
        if not body_bytes:
            return response

        try:
            payload = json.loads(body_bytes)
        except ValueError:
            return self._rebuild(response, body_bytes)

        if isinstance(payload, dict) and "success" in payload:
            return self._rebuild(response, body_bytes)

        degraded = payload.get("degraded") if isinstance(payload, dict) else None
        envelope = ResponseEnvelope(
            success=True,
            data=payload,
            error=None,
            meta=build_meta(request, degraded=degraded if isinstance(degraded, bool) else None),
        )

        return JSONResponse(
            status_code=response.status_code,
            content=jsonable_encoder(envelope, by_alias=True),
            headers=self._passthrough_headers(response),
        )

    async def _extract_body(self, response: Response) -> bytes | None:
        body = getattr(response, "body", None)
        if body:
            return body

        body_iterator = getattr(response, "body_iterator", None)
        if body_iterator is None:
            return None

        data: list[bytes] = []
        async for chunk in body_iterator:
            data.append(chunk)

        return b"".join(data)

    def _rebuild(self, response: Response, body: bytes) -> Response:
        # body_iterator was consumed; replay the original bytes
        return Response(
            content=body,
            status_code=response.status_code,
            headers=self._passthrough_headers(response),
        )

    @staticmethod
    def _passthrough_headers(response: Response) -> dict[str, str]:
        return {
            key: value
            for key, value in response.headers.items()
            if key.lower() != "content-length"
        }

    def _should_wrap(self, response: Response) -> bool:
        if response.status_code >= 400:
            return False
        if response.status_code in (204, 304):
            return False

        content_type = response.headers.get("content-type", "")
        return "application/json" in content_type

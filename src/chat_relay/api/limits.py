"""Shared API guardrail constants."""

from __future__ import annotations

# Request payload limits; attachments may arrive inline as data URLs
MAX_REQUEST_BODY_BYTES = 25_000_000

# Wire framing
SSE_DONE_FRAME = "data: [DONE]\n\n"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

__all__ = [
    "MAX_REQUEST_BODY_BYTES",
    "SSE_DONE_FRAME",
    "SSE_HEADERS",
]

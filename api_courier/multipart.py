"""Multipart Encoder - Wraps one binary payload in a multipart/form-data body."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

CRLF = "\r\n"


def _ascii(value: str) -> bytes:
    # Non-ASCII characters become '?' so the header block stays ASCII.
    return value.encode("ascii", errors="replace")


@dataclass(frozen=True)
class MultipartBody:
    """An encoded single-part multipart/form-data body."""

    body: bytes
    boundary: str

    @property
    def content_length(self) -> int:
        return len(self.body)

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"


def encode_multipart(
    payload: bytes,
    content_type: str,
    name: str,
    filename: str,
) -> MultipartBody:
    """Encode payload as the only part of a multipart/form-data body.

    A fresh boundary is generated on every call. The payload bytes are copied
    unchanged between the part headers and the closing boundary.

    Args:
        payload: Raw bytes of the file.
        content_type: Media type of the part.
        name: Form field name.
        filename: File name reported to the server.

    Returns:
        MultipartBody with the encoded bytes and the boundary used.
    """
    boundary = str(uuid.uuid4())

    header = _ascii(
        f"{CRLF}--{boundary}{CRLF}"
        f"Content-Disposition: form-data; name={name}; FileName={filename}{CRLF}"
        f"Content-Type: {content_type}{CRLF}{CRLF}"
    )
    trailer = _ascii(f"{CRLF}--{boundary}--{CRLF}")

    return MultipartBody(body=header + bytes(payload) + trailer, boundary=boundary)

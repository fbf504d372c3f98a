"""Binary/text codecs for moving payloads through a text-only channel."""

from __future__ import annotations

import base64
import binascii
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from typing import Any

BytesLike = bytes | bytearray | memoryview


def bytes_to_base64(data: BytesLike) -> str:
    """Encode *data* as a single-line base64 string."""
    return base64.b64encode(bytes(data)).decode("ascii")


def base64_to_bytes(text: str) -> bytes:
    """Decode base64 *text*, ignoring all whitespace (line wrapping included).

    Raises:
        ValueError: If *text* is not valid base64.
    """
    compact = "".join(text.split())
    try:
        return base64.b64decode(compact, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Invalid base64 payload: {exc}") from exc


def string_to_base64(text: str) -> str:
    return bytes_to_base64(text_to_bytes(text))


def base64_to_string(text: str) -> str:
    return bytes_to_text(base64_to_bytes(text))


def text_to_bytes(text: str) -> bytes:
    return text.encode("utf-8")


def bytes_to_text(data: BytesLike) -> str:
    return bytes(data).decode("utf-8", errors="replace")


def wrap_base64(encoded: str, width: int = 76) -> list[str]:
    """Split an encoded payload into lines of at most *width* characters."""
    return [encoded[i : i + width] for i in range(0, len(encoded), width)]


async def async_iterable_to_bytes(stream: AsyncIterable[BytesLike]) -> bytes:
    """Drain an async byte stream into one buffer."""
    buffer = bytearray()
    async for chunk in stream:
        buffer.extend(chunk)
    return bytes(buffer)


def iterable_to_bytes(chunks: Iterable[BytesLike]) -> bytes:
    buffer = bytearray()
    for chunk in chunks:
        buffer.extend(chunk)
    return bytes(buffer)


async def bytes_to_async_iterable(data: BytesLike) -> AsyncIterator[bytes]:
    """Yield *data* as a single-chunk async stream."""
    yield bytes(data)


async def payload_to_bytes(data: Any) -> bytes:
    """Normalize any supported write payload into ``bytes``.

    Accepts ``str`` (UTF-8), ``bytes``/``bytearray``/``memoryview`` and sync
    or async iterables of byte chunks.  Streams are drained completely.

    Raises:
        TypeError: For unsupported payload types.
    """
    if isinstance(data, str):
        return text_to_bytes(data)
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, AsyncIterable):
        return await async_iterable_to_bytes(data)
    if isinstance(data, Iterable):
        return iterable_to_bytes(data)
    raise TypeError(f"Unsupported write payload type: {type(data).__name__}")

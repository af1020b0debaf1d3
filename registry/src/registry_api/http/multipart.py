"""Streaming extraction of the archive field from a multipart upload.

The body is parsed as it arrives, so file bytes reach the spooler (and its
size ceiling) one network chunk at a time instead of after the whole form
has been buffered.
"""

from __future__ import annotations

from typing import AsyncIterator

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from registry_api.errors import PayloadTooLargeError, ValidationError

# Headroom for part headers and boundaries around the archive bytes.
ENVELOPE_ALLOWANCE = 64 * 1024


class _FileFieldCollector:
    """Parser callbacks that keep only the data of one named part."""

    def __init__(self, field_name: str) -> None:
        self._field_name = field_name.encode("latin-1")
        self._headers: dict[bytes, bytes] = {}
        self._header_field = b""
        self._header_value = b""
        self._active = False
        self._pending: list[bytes] = []
        self.found = False

    def callbacks(self) -> dict:
        return {
            "on_part_begin": self._on_part_begin,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
        }

    def take(self) -> list[bytes]:
        chunks, self._pending = self._pending, []
        return chunks

    def _on_part_begin(self) -> None:
        self._headers = {}
        self._active = False

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        _, options = parse_options_header(self._headers.get(b"content-disposition", b""))
        # Only the first matching part is taken.
        if options.get(b"name") == self._field_name and not self.found:
            self._active = True
            self.found = True

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._active:
            self._pending.append(bytes(data[start:end]))

    def _on_part_end(self) -> None:
        self._active = False


async def iter_file_field(
    stream: AsyncIterator[bytes],
    content_type: str,
    *,
    max_bytes: int,
    field_name: str = "file",
) -> AsyncIterator[bytes]:
    """Yield the bytes of ``field_name`` while the request body streams in.

    The raw body is capped at ``max_bytes`` plus a small envelope allowance so
    oversized non-file parts are refused as early as an oversized archive.
    """

    _, params = parse_options_header(content_type)
    boundary = params.get(b"boundary")
    if not boundary:
        raise ValidationError("Multipart upload is missing its boundary.")

    collector = _FileFieldCollector(field_name)
    parser = MultipartParser(boundary, collector.callbacks())
    received = 0
    try:
        async for chunk in stream:
            received += len(chunk)
            if received > max_bytes + ENVELOPE_ALLOWANCE:
                raise PayloadTooLargeError(f"Archive exceeds the {max_bytes} byte upload limit.")
            parser.write(chunk)
            for data in collector.take():
                yield data
        parser.finalize()
    except MultipartParseError as exc:
        raise ValidationError(f"Malformed multipart upload: {exc}") from exc
    for data in collector.take():
        yield data
    if not collector.found:
        raise ValidationError(f"Multipart upload must carry a '{field_name}' field.")


__all__ = ["ENVELOPE_ALLOWANCE", "iter_file_field"]

"""
File uploads with a local fallback.

Uploads go to `POST /files/upload` as multipart (field `file`). When that
fails for any reason, the content is kept as a data URL in the uploads map
and a response shaped like the backend's is returned, marked
`stored: "local"`.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO
from urllib.parse import unquote_to_bytes

import aiofiles
import aiohttp

from .exceptions import InvalidFileDataError, UploadFallbackError
from .id_utils import UPLOAD_PREFIX, generate_local_id, utc_now_iso
from .storage.uploads import UploadsMap
from .transport import RemoteTransport

logger = logging.getLogger(__name__)

UploadInput = bytes | bytearray | memoryview | str | Path | BinaryIO

LOCAL_STORAGE_MARKER = "local"


@dataclass
class DecodedFile:
    """Upload content normalized to bytes."""

    content: bytes
    mime_type: str
    file_name: str
    data_url: str | None = None

    def to_data_url(self) -> str:
        if self.data_url:
            return self.data_url
        encoded = base64.b64encode(self.content).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


def decode_base64(text: str) -> bytes:
    """Decode standard base64, falling back to the URL-safe alphabet.

    Raises:
        InvalidFileDataError: Neither alphabet decodes the input
    """
    cleaned = "".join(text.split())
    padded = cleaned + "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError):
        pass
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidFileDataError(str(e)) from e


def parse_data_url(data_url: str) -> tuple[str | None, bytes]:
    """Split a data URL into (mime type, bytes)."""
    header, sep, payload = data_url.partition(",")
    if not sep:
        raise InvalidFileDataError("data URL has no payload")

    params = header[len("data:"):].split(";")
    mime_type = params[0].strip() or None
    if "base64" in (p.strip().lower() for p in params[1:]):
        return mime_type, decode_base64(payload)
    return mime_type, unquote_to_bytes(payload)


def guess_extension(mime_type: str) -> str:
    return mimetypes.guess_extension(mime_type.split(";")[0].strip()) or ""


class UploadService:
    """Uploads files, storing them locally when the backend is unavailable."""

    def __init__(
        self,
        transport: RemoteTransport,
        uploads: UploadsMap,
        default_mime_type: str = "application/octet-stream",
    ) -> None:
        self.transport = transport
        self.uploads = uploads
        self.default_mime_type = default_mime_type

    async def _decode(
        self,
        file: UploadInput,
        file_name: str | None,
        mime_type: str | None,
    ) -> DecodedFile:
        data_url: str | None = None
        inferred_mime: str | None = None
        inferred_name: str | None = None

        if isinstance(file, str):
            if file.startswith("data:"):
                inferred_mime, content = parse_data_url(file)
                data_url = file
            else:
                content = decode_base64(file)
        elif isinstance(file, (bytes, bytearray, memoryview)):
            content = bytes(file)
        elif isinstance(file, Path):
            async with aiofiles.open(file, "rb") as f:
                content = await f.read()
            inferred_name = file.name
            inferred_mime = mimetypes.guess_type(file.name)[0]
        elif hasattr(file, "read"):
            content = await asyncio.to_thread(file.read)
            if not isinstance(content, bytes):
                raise InvalidFileDataError("file object must be opened in binary mode")
            name = getattr(file, "name", None)
            if isinstance(name, str):
                inferred_name = Path(name).name
                inferred_mime = mimetypes.guess_type(name)[0]
        else:
            raise InvalidFileDataError(f"unsupported upload type {type(file).__name__}")

        resolved_mime = inferred_mime if data_url else None
        resolved_mime = resolved_mime or mime_type or inferred_mime or self.default_mime_type
        resolved_name = file_name or inferred_name or f"upload{guess_extension(resolved_mime)}"

        return DecodedFile(
            content=content,
            mime_type=resolved_mime,
            file_name=resolved_name,
            data_url=data_url,
        )

    async def upload(
        self,
        file: UploadInput,
        file_name: str | None = None,
        mime_type: str | None = None,
    ) -> dict[str, Any]:
        """Upload a file.

        Args:
            file: Bytes, binary file object, Path, data URL or base64 string.
                Paths are read with aiofiles; file objects are read in a
                worker thread so the event loop is not blocked
            file_name: Name to upload under (inferred when omitted)
            mime_type: MIME type (a data URL's own type takes precedence)

        Returns:
            The backend's response, or a locally stored equivalent with
            file_url, file_id, file_name, mime_type and stored="local"

        Raises:
            InvalidFileDataError: The content could not be decoded
            UploadFallbackError: Remote upload and local fallback both failed
        """
        decoded = await self._decode(file, file_name, mime_type)

        form = aiohttp.FormData()
        form.add_field(
            "file",
            decoded.content,
            filename=decoded.file_name,
            content_type=decoded.mime_type,
        )

        try:
            return await self.transport.request("/files/upload", method="POST", data=form)
        except Exception as remote_error:
            logger.warning(f"Upload of {decoded.file_name} failed, storing locally: {remote_error}")
            try:
                return self._store_locally(decoded)
            except Exception as fallback_error:
                raise UploadFallbackError(fallback_error, remote_error) from fallback_error

    def _store_locally(self, decoded: DecodedFile) -> dict[str, Any]:
        entry = {
            "id": generate_local_id(UPLOAD_PREFIX),
            "file_name": decoded.file_name,
            "mime_type": decoded.mime_type,
            "data_url": decoded.to_data_url(),
            "created_at": utc_now_iso(),
        }
        self.uploads.put(entry)
        return {
            "file_url": entry["data_url"],
            "file_id": entry["id"],
            "file_name": entry["file_name"],
            "mime_type": entry["mime_type"],
            "created_at": entry["created_at"],
            "stored": LOCAL_STORAGE_MARKER,
        }

    def get_local(self, file_id: str) -> dict[str, Any] | None:
        """Return a locally stored upload record."""
        return self.uploads.get(file_id)

    def read_local(self, file_id: str) -> bytes | None:
        """Return the bytes of a locally stored upload."""
        entry = self.uploads.get(file_id)
        if entry is None:
            return None
        return parse_data_url(entry["data_url"])[1]

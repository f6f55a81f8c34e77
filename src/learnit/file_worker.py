import asyncio
import base64
import binascii
import logging
import mimetypes
import os
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional, Tuple

from starlette.datastructures import UploadFile

from .errors import FileReadError
from .models import FileReadReply

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[^;,]*)(?P<b64>;base64)?,(?P<data>.*)$", re.S)


def _guess_mime(name: Optional[str], content_type: Optional[str] = None) -> str:
    if content_type:
        return content_type
    if name:
        guessed, _ = mimetypes.guess_type(str(name))
        if guessed:
            return guessed
    return DEFAULT_MIME_TYPE


def read_as_data_url(handle: Any) -> str:
    """Reads a whole file synchronously and encodes it as a base64 data URL.

    Accepts a filesystem path, raw bytes, an ``UploadFile`` or any binary file
    object. Blocks the calling thread, so callers on the event loop should go
    through ``FileProcessingWorker.submit``.
    """
    if handle is None:
        raise FileReadError("no file provided")

    name: Optional[str] = None
    content_type: Optional[str] = None

    if isinstance(handle, (str, os.PathLike)):
        name = os.fspath(handle)
        with open(name, "rb") as f:
            data = f.read()
    elif isinstance(handle, (bytes, bytearray, memoryview)):
        data = bytes(handle)
    elif isinstance(handle, UploadFile):
        name = handle.filename
        content_type = handle.content_type
        handle.file.seek(0)
        data = handle.file.read()
    elif hasattr(handle, "read"):
        name = getattr(handle, "name", None)
        content_type = getattr(handle, "content_type", None)
        data = handle.read()
    else:
        raise FileReadError(f"unsupported file handle: {type(handle).__name__}")

    if not isinstance(data, (bytes, bytearray)):
        raise FileReadError("file handle did not return binary data")

    mime = _guess_mime(name, content_type)
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime};base64,{encoded}"


def decode_data_url(url: str) -> Tuple[str, bytes]:
    """Splits a data URL into its MIME type and decoded payload."""
    match = DATA_URL_PATTERN.match(url)
    if not match:
        raise ValueError("not a data URL")
    mime = match.group("mime") or DEFAULT_MIME_TYPE
    payload = match.group("data")
    if match.group("b64"):
        try:
            return mime, base64.b64decode(payload, validate=True)
        except binascii.Error as e:
            raise ValueError(f"invalid base64 payload: {e}") from e
    return mime, payload.encode("utf-8")


# --- Worker ---
class FileProcessingWorker:
    """Reads files on a dedicated thread pool.

    One message in, one reply out: ``{"file": handle}`` is answered with
    either ``{"content": <data URL>}`` or ``{"error": <message>}``. Read
    failures never escape as exceptions.
    """

    def __init__(self, max_workers: int = 4):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="file-worker"
        )

    def handle_message(self, message: Any) -> Dict[str, str]:
        try:
            if not isinstance(message, dict) or "file" not in message:
                raise FileReadError("message has no file")
            content = read_as_data_url(message["file"])
        except Exception as e:
            logger.warning(f"File read failed: {e}")
            return FileReadReply(error=f"Error reading file: {e}").model_dump(exclude_none=True)
        return FileReadReply(content=content).model_dump(exclude_none=True)

    async def submit(self, message: Any) -> Dict[str, str]:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, self.handle_message, message)
        except RuntimeError as e:
            # executor already shut down
            logger.error(f"File worker unavailable: {e}")
            return FileReadReply(error=f"Error reading file: {e}").model_dump(exclude_none=True)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

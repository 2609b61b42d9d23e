import asyncio
import re
import uuid
from pathlib import Path

from pydantic import BaseModel

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")


class UploadResult(BaseModel):
    url: str
    key: str


class LocalStorage:
    """Blob storage on the local filesystem, served under /uploads."""

    def __init__(self, root: str, public_base_url: str):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def upload_file(self, data: bytes, filename: str, folder: str) -> UploadResult:
        safe_name = _UNSAFE_CHARS_RE.sub("_", Path(filename or "file").name) or "file"
        key = f"{folder.strip('/')}/{uuid.uuid4().hex}-{safe_name}"
        await asyncio.to_thread(self._write, self.root / key, data)
        return UploadResult(url=f"{self.public_base_url}/uploads/{key}", key=key)

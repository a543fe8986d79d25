import asyncio
import logging
import os
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from config.constants import IMAGE_PUBLIC_BASE_URL, IMAGE_STORE_DIR

logger = logging.getLogger("herd_health.storage.images")


class ImageStore(ABC):
    """Stores encoded images and returns a URL detectors can fetch."""

    @abstractmethod
    async def upload(self, data: bytes, folder: str = "scans") -> str:
        """Persist `data` under `folder` and return its public URL."""

    def is_available(self) -> bool:
        return True


class LocalImageStore(ImageStore):
    """Writes images below a directory that the API serves statically."""

    def __init__(self, base_dir: Optional[str] = None, public_base_url: Optional[str] = None):
        self.base_dir = Path(base_dir or IMAGE_STORE_DIR)
        self.public_base_url = (public_base_url or IMAGE_PUBLIC_BASE_URL).rstrip("/")

    async def upload(self, data: bytes, folder: str = "scans") -> str:
        if not data:
            raise ValueError("image data must not be empty")
        relative = Path(folder.strip("/")) / f"{uuid.uuid4().hex}.jpg"
        target = self.base_dir / relative
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, target, data)
        url = f"{self.public_base_url}/{relative.as_posix()}"
        logger.debug("image_stored", extra={"url": url, "bytes": len(data)})
        return url

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def is_available(self) -> bool:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        return os.access(self.base_dir, os.W_OK)

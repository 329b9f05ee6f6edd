"""
Local Image Storage

Development stand-in for Cloudinary: writes images under
``<data_directory>/uploads/<folder>/`` and serves them from ``/uploads``.
"""

import logging
import os
import uuid
from pathlib import Path

from starlette.concurrency import run_in_threadpool

from canteen.services.storage.base import (
    ALLOWED_IMAGE_FORMATS,
    BaseImageStorage,
    StorageError,
    StoredImage,
)

logger = logging.getLogger(__name__)

URL_PREFIX = "/uploads"


class LocalImageStorage(BaseImageStorage):

    def __init__(self, root: str, folder: str):
        super().__init__(folder)
        self.root = Path(root)
        (self.root / folder).mkdir(parents=True, exist_ok=True)
        logger.info(f"LocalImageStorage initialized at {self.root / folder}")

    @property
    def provider_name(self) -> str:
        return "local"

    def _path(self, public_id: str) -> Path:
        # public ids are "<folder>/<name>.<ext>", keep them inside the root
        path = (self.root / public_id).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"Invalid public id: {public_id}")
        return path

    async def upload(self, content: bytes, filename: str) -> StoredImage:
        ext = os.path.splitext(filename)[1].lower().lstrip(".") or "png"
        if ext not in ALLOWED_IMAGE_FORMATS:
            raise StorageError(f"Unsupported image format: {ext}")

        public_id = f"{self.folder}/{uuid.uuid4().hex}.{ext}"
        path = self._path(public_id)
        await run_in_threadpool(path.write_bytes, content)

        logger.info(f"Stored image {public_id} ({len(content)} bytes)")
        return StoredImage(url=f"{URL_PREFIX}/{public_id}", public_id=public_id)

    async def delete(self, public_id: str) -> bool:
        path = self._path(public_id)
        if not path.exists():
            logger.warning(f"Image {public_id} not found for deletion")
            return False
        await run_in_threadpool(path.unlink)
        logger.info(f"Deleted image {public_id}")
        return True

    async def health_check(self) -> bool:
        return (self.root / self.folder).is_dir()

"""
Cloudinary Image Storage

Uploads payment QR images to Cloudinary, capped at 500x500 with automatic
quality. Used when ENV_MODE=staging or ENV_MODE=production.

Requirements:
    - CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET
"""

import logging
from typing import Optional

import cloudinary
import cloudinary.api
import cloudinary.exceptions
import cloudinary.uploader
from starlette.concurrency import run_in_threadpool

from canteen.services.storage.base import (
    ALLOWED_IMAGE_FORMATS,
    MAX_IMAGE_DIMENSION,
    BaseImageStorage,
    StorageError,
    StoredImage,
)

logger = logging.getLogger(__name__)


class CloudinaryImageStorage(BaseImageStorage):

    def __init__(
        self,
        folder: str,
        cloud_name: Optional[str],
        api_key: Optional[str],
        api_secret: Optional[str],
    ):
        super().__init__(folder)
        if not cloud_name:
            raise ValueError(
                "CLOUDINARY_CLOUD_NAME is required outside development mode. "
                "Set it in your .env file or environment variables."
            )

        cloudinary.config(
            cloud_name=cloud_name,
            api_key=api_key,
            api_secret=api_secret,
            secure=True,
        )
        logger.info(f"CloudinaryImageStorage initialized (cloud={cloud_name}, folder={folder})")

    @property
    def provider_name(self) -> str:
        return "cloudinary"

    async def upload(self, content: bytes, filename: str) -> StoredImage:
        try:
            result = await run_in_threadpool(
                cloudinary.uploader.upload,
                content,
                folder=self.folder,
                allowed_formats=ALLOWED_IMAGE_FORMATS,
                transformation=[
                    {"width": MAX_IMAGE_DIMENSION, "height": MAX_IMAGE_DIMENSION, "crop": "limit"},
                    {"quality": "auto"},
                ],
            )
        except cloudinary.exceptions.Error as e:
            logger.error(f"Cloudinary: Upload of {filename} failed - {e}")
            raise StorageError(str(e)) from e

        logger.info(f"Cloudinary: Uploaded {result['public_id']}")
        return StoredImage(url=result["secure_url"], public_id=result["public_id"])

    async def delete(self, public_id: str) -> bool:
        try:
            result = await run_in_threadpool(cloudinary.uploader.destroy, public_id)
        except cloudinary.exceptions.Error as e:
            logger.error(f"Cloudinary: Failed to delete {public_id} - {e}")
            raise StorageError(str(e)) from e

        deleted = result.get("result") == "ok"
        if deleted:
            logger.info(f"Cloudinary: Deleted image {public_id}")
        else:
            logger.warning(f"Cloudinary: Image {public_id} not deleted ({result.get('result')})")
        return deleted

    async def health_check(self) -> bool:
        try:
            await run_in_threadpool(cloudinary.api.ping)
        except cloudinary.exceptions.Error as e:
            logger.error(f"Cloudinary: Health check failed - {e}")
            return False
        return True

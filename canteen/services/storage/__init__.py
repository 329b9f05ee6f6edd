"""
Image Storage Factory

Environment Switching:
    - ENV_MODE=development → LocalImageStorage (files under DATA_DIRECTORY)
    - ENV_MODE=staging/production → CloudinaryImageStorage
"""

import logging
import os
from functools import lru_cache

from canteen.core.config import get_settings
from canteen.services.storage.base import BaseImageStorage, StorageError, StoredImage
from canteen.services.storage.cloudinary import CloudinaryImageStorage
from canteen.services.storage.local import LocalImageStorage

logger = logging.getLogger(__name__)


def local_upload_root() -> str:
    return os.path.join(get_settings().data_directory, "uploads")


@lru_cache()
def get_image_storage() -> BaseImageStorage:
    settings = get_settings()

    if settings.is_development:
        logger.info("Image Storage: Using LocalImageStorage (development mode)")
        return LocalImageStorage(local_upload_root(), settings.qr_upload_folder)

    logger.info(f"Image Storage: Using CloudinaryImageStorage ({settings.env_mode.value} mode)")
    return CloudinaryImageStorage(
        settings.qr_upload_folder,
        settings.cloudinary_cloud_name,
        settings.cloudinary_api_key,
        settings.cloudinary_api_secret,
    )


def reset_image_storage() -> None:
    get_image_storage.cache_clear()


__all__ = [
    "get_image_storage",
    "reset_image_storage",
    "local_upload_root",
    "BaseImageStorage",
    "StorageError",
    "StoredImage",
]

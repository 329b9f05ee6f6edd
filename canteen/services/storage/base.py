"""
Image Storage Abstract Base Class

Hosts uploaded payment QR images. Implementations return a public URL plus
the provider-side id needed to delete the image later.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

ALLOWED_IMAGE_FORMATS = ["jpg", "jpeg", "png", "gif", "webp"]
MAX_IMAGE_DIMENSION = 500


class StorageError(Exception):
    """Raised when the storage provider rejects or fails an operation."""


@dataclass
class StoredImage:
    url: str
    public_id: str


class BaseImageStorage(ABC):

    def __init__(self, folder: str):
        self.folder = folder

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Storage name ("local", "cloudinary")."""

    @abstractmethod
    async def upload(self, content: bytes, filename: str) -> StoredImage:
        """
        Store an image and return its public location.

        Raises:
            StorageError: if the provider rejects the upload
        """

    @abstractmethod
    async def delete(self, public_id: str) -> bool:
        """Remove a stored image; returns False when it did not exist."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify the storage backend is reachable."""

"""
Image hosting for assistant avatars

Factory returns the provider selected by NOVA_IMAGE_PROVIDER.
"""

import io
import re
import uuid
from pathlib import Path
from typing import Optional

import cloudinary.uploader
import structlog
from fastapi import HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool

from nova.core.config import config
from nova.core.security import SecurityConfig
from nova.services.protocols import ImageHost

logger = structlog.get_logger()

UPLOAD_URL_PREFIX = "/uploads"


def sanitize_filename(filename: Optional[str]) -> str:
    """Keep only filesystem-safe characters"""
    return re.sub(r'[^a-zA-Z0-9._-]', '_', filename or "")


def validate_image_file(file: UploadFile) -> None:
    """
    Validate uploaded image file format and size

    Args:
        file: Uploaded image file

    Raises:
        HTTPException: If file is invalid
    """
    if not file.filename or not file.filename.strip():
        raise HTTPException(status_code=400, detail="Filename is required")

    if '..' in file.filename or '/' in file.filename or '\\' in file.filename:
        raise HTTPException(
            status_code=400,
            detail="Invalid filename. Path traversal detected."
        )

    if file.size and file.size > config.MAX_IMAGE_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"File size too large. Maximum {config.MAX_IMAGE_SIZE // (1024 * 1024)}MB allowed."
        )

    file_ext = Path(sanitize_filename(file.filename)).suffix.lower()
    if file_ext not in SecurityConfig.ALLOWED_IMAGE_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file format. Allowed: {', '.join(sorted(SecurityConfig.ALLOWED_IMAGE_EXTENSIONS))}"
        )

    if not file.content_type or file.content_type not in SecurityConfig.ALLOWED_IMAGE_MIME_TYPES:
        raise HTTPException(
            status_code=400,
            detail="Invalid or missing MIME type. Expected image/* types."
        )

    logger.info(
        "image_host.file_validated",
        filename=file.filename,
        size=file.size,
        mime_type=file.content_type
    )


class LocalImageHost:
    """Stores images under UPLOAD_DIR; the app serves them at /uploads"""

    def __init__(self, upload_dir: Optional[Path] = None, url_prefix: str = UPLOAD_URL_PREFIX):
        self.upload_dir = upload_dir or config.UPLOAD_DIR
        self.url_prefix = url_prefix.rstrip("/")

    async def upload(self, filename: str, content: bytes, content_type: str) -> str:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        stored_name = f"{uuid.uuid4().hex}{Path(sanitize_filename(filename)).suffix.lower()}"
        path = self.upload_dir / stored_name

        try:
            path.write_bytes(content)
        except OSError as e:
            raise RuntimeError(f"Could not store image: {e}") from e

        logger.info("image_host.local.stored", file=stored_name, size=len(content))
        return f"{self.url_prefix}/{stored_name}"


class CloudinaryImageHost:
    """Uploads through the Cloudinary SDK, off the event loop"""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        folder: str = "nova/assistants",
    ):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder

    async def upload(self, filename: str, content: bytes, content_type: str) -> str:
        try:
            result = await run_in_threadpool(
                cloudinary.uploader.upload,
                io.BytesIO(content),
                filename=sanitize_filename(filename),
                folder=self.folder,
                resource_type="image",
                cloud_name=self.cloud_name,
                api_key=self.api_key,
                api_secret=self.api_secret,
            )
        except Exception as e:
            raise RuntimeError(f"Cloudinary upload failed: {e}") from e

        url = (result or {}).get("secure_url")
        if not url:
            raise RuntimeError("Cloudinary upload returned no secure_url")

        logger.info("image_host.cloudinary.uploaded", size=len(content))
        return url


_image_host: Optional[ImageHost] = None


def get_image_host() -> ImageHost:
    """
    Get image host instance (singleton)

    Supported providers:
    - local: files on disk, served by this app
    - cloudinary: Cloudinary SDK upload

    Raises:
        ValueError: Unknown provider
    """
    global _image_host

    if _image_host is not None:
        return _image_host

    provider = config.IMAGE_PROVIDER.lower()

    if provider == "local":
        _image_host = LocalImageHost()
    elif provider == "cloudinary":
        _image_host = CloudinaryImageHost(
            cloud_name=config.CLOUDINARY_CLOUD_NAME,
            api_key=config.CLOUDINARY_API_KEY,
            api_secret=config.CLOUDINARY_API_SECRET,
        )
    else:
        raise ValueError(
            f"Unknown image provider: '{provider}'\n"
            f"Supported providers: local, cloudinary"
        )

    logger.info("image_host.factory.ready", provider=provider)
    return _image_host

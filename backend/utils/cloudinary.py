import logging

import cloudinary
import cloudinary.uploader

from config.env import (
    CLOUDINARY_CLOUD_NAME,
    CLOUDINARY_API_KEY,
    CLOUDINARY_API_SECRET,
)

logger = logging.getLogger(__name__)

cloudinary.config(
    cloud_name=CLOUDINARY_CLOUD_NAME,
    api_key=CLOUDINARY_API_KEY,
    api_secret=CLOUDINARY_API_SECRET,
    secure=True,
)


class UploadFailed(Exception):
    pass


def upload_media(file, *, folder: str, resource_type: str) -> str:
    """
    Push a file-like object to Cloudinary and return its https URL.
    """
    try:
        result = cloudinary.uploader.upload(
            file,
            folder=f"tunehire/{folder}",
            resource_type=resource_type,
        )
    except Exception as e:
        logger.exception("CLOUDINARY_UPLOAD_ERROR folder=%s", folder)
        raise UploadFailed("Upload failed") from e

    url = result.get("secure_url")
    if not url:
        raise UploadFailed("Upload returned no URL")
    return url


def get_uploader():
    return upload_media

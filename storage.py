"""
Image upload to the asset host (Cloudinary signed upload).

Only the returned public URL is kept on the owning document.
"""
import hashlib
import logging
import time
from typing import BinaryIO, Optional

import requests

import config

logger = logging.getLogger("storefront.storage")

UPLOAD_TIMEOUT = 30


class UploadNotConfigured(RuntimeError):
    pass


class UploadError(RuntimeError):
    pass


def is_configured() -> bool:
    return bool(config.CLOUDINARY_CLOUD_NAME and config.CLOUDINARY_API_KEY and config.CLOUDINARY_API_SECRET)


def sign(timestamp: int, secret: str) -> str:
    return hashlib.sha1(f"timestamp={timestamp}{secret}".encode()).hexdigest()


def upload_image(file: BinaryIO, filename: str, content_type: Optional[str] = None) -> str:
    if not is_configured():
        raise UploadNotConfigured("Asset host credentials are not set")
    timestamp = int(time.time())
    url = f"https://api.cloudinary.com/v1_1/{config.CLOUDINARY_CLOUD_NAME}/image/upload"
    try:
        resp = requests.post(
            url,
            data={
                "api_key": config.CLOUDINARY_API_KEY,
                "timestamp": str(timestamp),
                "signature": sign(timestamp, config.CLOUDINARY_API_SECRET),
            },
            files={"file": (filename, file, content_type or "application/octet-stream")},
            timeout=UPLOAD_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.exception("Image upload failed")
        raise UploadError("Image upload failed") from e
    if not resp.ok:
        logger.error("Image upload rejected: HTTP %s %s", resp.status_code, resp.text[:200])
        raise UploadError(f"Image upload failed with HTTP {resp.status_code}")
    return resp.json()["secure_url"]

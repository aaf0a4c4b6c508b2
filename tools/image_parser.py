"""
Meal Calorie Analyzer — Image Parser Tool
=========================================
Prepares an uploaded meal photo for analysis: checks it is a real image,
works out its MIME type and base64-encodes it.
"""

import base64
import io
import os
from typing import Any, Dict, Optional

import PIL.Image
from PIL import UnidentifiedImageError

MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10 MB


def prepare_image_upload(
    data: bytes,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Validate raw upload bytes and encode them for the calorie pipeline.

    Args:
        data: Raw file bytes.
        filename: Original filename, used only in messages.
        content_type: MIME type claimed by the client; used when Pillow
            cannot name the format.

    Returns:
        {"status": "success", "data": {"image_base64", "mime_type", "width", "height"}}
        or {"status": "error", "error_message": "..."}
    """
    name = filename or "upload"

    if not data:
        return {"status": "error", "error_message": f"{name} is empty"}

    if len(data) > MAX_IMAGE_BYTES:
        size_mb = len(data) / (1024 * 1024)
        return {
            "status": "error",
            "error_message": f"{name} is {size_mb:.1f} MB; the limit is {MAX_IMAGE_BYTES // (1024 * 1024)} MB",
        }

    try:
        with PIL.Image.open(io.BytesIO(data)) as img:
            img.verify()
            image_format = img.format
            width, height = img.size
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        return {"status": "error", "error_message": f"{name} is not a readable image: {e}"}

    mime_type = PIL.Image.MIME.get(image_format or "") or content_type
    if not mime_type or not mime_type.startswith("image/"):
        return {"status": "error", "error_message": f"Unsupported image type for {name}"}

    return {
        "status": "success",
        "data": {
            "image_base64": base64.b64encode(data).decode("ascii"),
            "mime_type": mime_type,
            "width": width,
            "height": height,
        },
    }


def load_image_file(path: str) -> Dict[str, Any]:
    """prepare_image_upload() for a file on disk."""
    if not os.path.exists(path):
        return {"status": "error", "error_message": f"File not found: {path}"}

    with open(path, "rb") as f:
        data = f.read()
    return prepare_image_upload(data, filename=os.path.basename(path))


__all__ = [
    "prepare_image_upload",
    "load_image_file",
    "MAX_IMAGE_BYTES",
]

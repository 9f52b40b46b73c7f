from __future__ import annotations
from typing import Union
import base64
import io
from PIL import Image

from ..pipeline.media import MediaReference


def to_base64(image_data: Union[MediaReference, bytes, Image.Image]) -> str:
    """Normalise an image to PNG and return the bare base64 payload (no data: prefix)."""
    if isinstance(image_data, MediaReference):
        if image_data.category != "image":
            raise ValueError(f"Not an image reference: {image_data.mime_type}")
        if image_data.base_type == "image/png":
            return image_data.payload
        image_data = image_data.data

    if isinstance(image_data, bytes):
        try:
            with Image.open(io.BytesIO(image_data)) as img:
                return _png_base64(img)
        except OSError as e:  # UnidentifiedImageError and truncated data
            raise ValueError(f"Unreadable image data: {e}") from e

    elif isinstance(image_data, Image.Image):
        return _png_base64(image_data)

    else:
        raise ValueError(f"Unsupported image data type: {type(image_data)}")


def _png_base64(img: Image.Image) -> str:
    if img.mode not in ('RGB', 'RGBA', 'L', 'LA'):
        img = img.convert('RGB')
    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    return base64.b64encode(buffer.getvalue()).decode('utf-8')

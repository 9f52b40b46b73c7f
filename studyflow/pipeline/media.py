"""
Self-describing media references.

User files (PDFs, images, audio) cross every boundary of the system as
`data:<mime>;base64,<payload>` strings. This module is the one place that
builds and takes them apart.
"""
from __future__ import annotations
import base64
import binascii
import io
import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image

from .errors import UnsupportedMediaError

SCHEME = "data"
ENCODING = "base64"

_TOKEN = r"[A-Za-z0-9][A-Za-z0-9!#$&^_.+-]*"
_MIME_RE = re.compile(rf"^{_TOKEN}/{_TOKEN}(;\s*{_TOKEN}=[^;,\s]+)*$")


@dataclass(frozen=True)
class MediaReference:
    mime_type: str
    data: bytes

    @property
    def payload(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @property
    def uri(self) -> str:
        return f"{SCHEME}:{self.mime_type};{ENCODING},{self.payload}"

    @property
    def base_type(self) -> str:
        """MIME type without parameters, e.g. 'audio/webm' for 'audio/webm;codecs=opus'."""
        return self.mime_type.split(";", 1)[0].strip().lower()

    @property
    def category(self) -> str:
        return self.base_type.split("/", 1)[0]

    def __str__(self) -> str:
        return self.uri

    def __repr__(self) -> str:
        return f"MediaReference(mime_type={self.mime_type!r}, size={len(self.data)})"


def validate_mime_type(mime_type: Optional[str]) -> str:
    if not mime_type or not mime_type.strip():
        raise UnsupportedMediaError("MIME type must not be empty")
    if not _MIME_RE.match(mime_type):
        raise UnsupportedMediaError(f"Malformed MIME type: {mime_type!r}")
    return mime_type


def encode(data: bytes, mime_type: str) -> MediaReference:
    """Wrap raw bytes in a MediaReference. The content itself is not inspected."""
    return MediaReference(mime_type=validate_mime_type(mime_type), data=bytes(data))


def parse(uri: str) -> MediaReference:
    if not isinstance(uri, str):
        raise UnsupportedMediaError(f"Media reference must be a string, got {type(uri).__name__}")

    prefix = f"{SCHEME}:"
    if not uri.startswith(prefix) or "," not in uri:
        raise UnsupportedMediaError("Media reference must look like 'data:<mime>;base64,<payload>'")

    header, payload = uri[len(prefix):].split(",", 1)
    marker = f";{ENCODING}"
    if not header.endswith(marker):
        raise UnsupportedMediaError("Media reference must use base64 encoding")
    mime_type = validate_mime_type(header[:-len(marker)])

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise UnsupportedMediaError(f"Media payload is not valid base64: {e}") from e
    return MediaReference(mime_type=mime_type, data=data)


def decode(ref: Union[MediaReference, str]) -> Tuple[bytes, str]:
    if isinstance(ref, str):
        ref = parse(ref)
    return ref.data, ref.mime_type


def encode_file(path: Union[str, Path], mime_type: Optional[str] = None) -> MediaReference:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Media file not found: {path}")
    if mime_type is None:
        mime_type, _ = mimetypes.guess_type(path.name)
        if mime_type is None:
            raise UnsupportedMediaError(f"Cannot determine MIME type for {path.name}")
    return encode(path.read_bytes(), mime_type)


def encode_image(image: Image.Image, format: str = "PNG") -> MediaReference:
    if format.upper() in ("JPEG", "JPG") and image.mode in ("RGBA", "P"):
        image = image.convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format=format)
    return encode(buffer.getvalue(), Image.MIME.get(format.upper(), f"image/{format.lower()}"))

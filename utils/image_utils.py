"""Image upload handling for tool report photos."""
import io
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List

from PIL import Image, UnidentifiedImageError
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from utils.errors import ValidationError

ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "gif"}
DEFAULT_MAX_IMAGE_BYTES = 5 * 1024 * 1024  # 5 MB

_PIL_FORMATS = {
    "JPEG": "jpeg",
    "PNG": "png",
    "WEBP": "webp",
    "GIF": "gif",
}


@dataclass(frozen=True)
class ImageUpload:
    filename: str
    data: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)


def _get_mime_type(ext: str) -> str:
    mapping = {
        "jpg": "image/jpeg",
        "jpeg": "image/jpeg",
        "png": "image/png",
        "webp": "image/webp",
        "gif": "image/gif",
    }
    return mapping.get(ext, "application/octet-stream")


def _sniff_format(content: bytes) -> str | None:
    try:
        with Image.open(io.BytesIO(content)) as img:
            fmt = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return None
    return _PIL_FORMATS.get(fmt or "")


def read_image_upload(file: FileStorage) -> ImageUpload:
    """Read an uploaded file into memory after checking its name and image data."""
    filename = secure_filename(file.filename or "") if file else ""
    if not filename or "." not in filename:
        raise ValidationError({"images": "Unsupported file name"})
    ext = filename.rsplit(".", 1)[1].lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise ValidationError({"images": f"{filename}: file type not allowed"})

    content = file.read()
    if not content:
        raise ValidationError({"images": f"{filename}: empty file"})
    if _sniff_format(content) is None:
        raise ValidationError({"images": f"{filename}: invalid image data"})
    return ImageUpload(filename=filename, data=content, content_type=_get_mime_type(ext))


def read_image_uploads(files: Iterable[FileStorage]) -> List[ImageUpload]:
    return [read_image_upload(f) for f in files if f and f.filename]


def build_object_name(report_id: str, filename: str, now: datetime) -> str:
    """Storage object name: report id, millisecond timestamp, random token, original name."""
    stamp = int(now.timestamp() * 1000)
    token = secrets.token_hex(4)
    safe_name = secure_filename(filename or "") or "image"
    return f"{report_id}_{stamp}_{token}_{safe_name}"


def size_limit_label(max_bytes: int) -> str:
    megabytes = max_bytes / (1024 * 1024)
    return f"{megabytes:g}MB"

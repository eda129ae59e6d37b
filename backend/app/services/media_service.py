"""
Type detection, image probing and preview rendering for uploaded art.
"""

import io
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError
from loguru import logger

from app.core.config import settings

GENERIC_CONTENT_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


@dataclass
class IncomingFile:
    """Raw bytes of an uploaded file plus what the client said about them."""
    filename: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class PreviewImage:
    data: bytes
    width: int
    height: int
    mime: str = "image/jpeg"


@dataclass
class PreparedSource:
    """Source file analysed and ready to upload, with its preview if it is an image."""
    file: IncomingFile
    mime: str
    ext: str
    width: Optional[int] = None
    height: Optional[int] = None
    preview: Optional[PreviewImage] = None

    @property
    def is_image(self) -> bool:
        return self.width is not None


def detect_type(filename: str, content_type: Optional[str] = None) -> Tuple[str, str]:
    """
    Resolve MIME type and extension for an upload.

    The declared content type wins unless it is generic; the filename suffix
    wins for the extension.

    Returns:
        (mime, ext) with ext lower-case and without the dot
    """
    mime = (content_type or "").split(";")[0].strip().lower()
    if mime in GENERIC_CONTENT_TYPES:
        guessed, _ = mimetypes.guess_type(filename or "")
        mime = guessed or "application/octet-stream"

    ext = Path(filename or "").suffix.lower().lstrip(".")
    if not ext:
        guessed_ext = mimetypes.guess_extension(mime) or ".bin"
        ext = guessed_ext.lstrip(".")
    return mime, ext


def probe_image(data: bytes) -> Optional[Tuple[int, int]]:
    """Return (width, height) if the bytes decode as a raster image."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        logger.debug(f"Not a probeable image: {e}")
        return None


def make_preview(
    data: bytes,
    max_width: Optional[int] = None,
    quality: Optional[int] = None,
) -> PreviewImage:
    """
    Render a JPEG preview no wider than ``max_width``. Smaller images are
    re-encoded at their own size, never enlarged.
    """
    max_width = max_width or settings.PREVIEW_MAX_WIDTH
    quality = quality or settings.PREVIEW_JPEG_QUALITY

    with Image.open(io.BytesIO(data)) as img:
        img = ImageOps.exif_transpose(img)

        if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
            rgba = img.convert("RGBA")
            canvas = Image.new("RGB", rgba.size, (255, 255, 255))
            canvas.paste(rgba, mask=rgba.split()[-1])
            img = canvas
        elif img.mode != "RGB":
            img = img.convert("RGB")

        if img.width > max_width:
            height = max(1, round(img.height * max_width / img.width))
            img = img.resize((max_width, height), Image.Resampling.LANCZOS)

        out = io.BytesIO()
        img.save(out, format="JPEG", quality=quality, optimize=True)
        return PreviewImage(data=out.getvalue(), width=img.width, height=img.height)


def prepare_source(upload: IncomingFile) -> PreparedSource:
    """Detect type and, for images, probe dimensions and render the preview."""
    mime, ext = detect_type(upload.filename, upload.content_type)
    prepared = PreparedSource(file=upload, mime=mime, ext=ext)

    if mime.startswith("image/"):
        size = probe_image(upload.data)
        if size:
            prepared.width, prepared.height = size
            prepared.preview = make_preview(upload.data)
        else:
            logger.info(f"{upload.filename} declared {mime} but could not be decoded; no preview")

    return prepared


async def read_upload(upload) -> IncomingFile:
    """Read a multipart upload (anything with filename, content_type and async read) into memory."""
    data = await upload.read()
    return IncomingFile(
        filename=upload.filename or "upload",
        data=data,
        content_type=upload.content_type,
    )

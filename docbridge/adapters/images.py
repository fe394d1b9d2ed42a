"""Image plumbing shared by the adapters.

On import, raw image bytes pulled out of a container become an ``Image``
block whose ``src`` is a ``data:`` URI or an extracted file path. On
export, an ``Image.src`` is resolved back to bytes. Remote sources are
never fetched.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from pathlib import Path
from urllib.parse import unquote, unquote_to_bytes, urlparse
from urllib.request import url2pathname

from docbridge.config.models import ImageConfig
from docbridge.errors import WriteFailed
from docbridge.ir.models import ConversionWarning, Image

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w-]+=[\w.-]+)*(?P<b64>;base64)?,(?P<data>.*)$",
    re.DOTALL | re.IGNORECASE,
)

# markdown-it only accepts data URIs of these types as link destinations.
EMBEDDABLE_TYPES = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
}


def sniff_image_type(blob: bytes) -> str | None:
    """Identify common raster formats by their magic bytes."""
    if blob.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png"
    if blob.startswith(b"\xff\xd8\xff"):
        return "jpeg"
    if blob[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    if blob[:4] == b"RIFF" and blob[8:12] == b"WEBP":
        return "webp"
    if blob.startswith(b"BM"):
        return "bmp"
    if blob[:4] in (b"II*\x00", b"MM\x00*"):
        return "tiff"
    return None


class ImageSink:
    """Turns imported image bytes into Image blocks according to ``images.mode``.

    One sink lives for one import call; extracted files are numbered in
    the order they are seen.
    """

    def __init__(self, config: ImageConfig, source: Path) -> None:
        self.mode = config.mode
        if config.extract_dir:
            self.extract_dir = Path(config.extract_dir)
        else:
            self.extract_dir = source.parent / f"{source.stem}_media"
        self._count = 0

    def add(
        self, blob: bytes, ext: str | None, alt: str, warnings: list[ConversionWarning]
    ) -> Image | None:
        ext = (ext or sniff_image_type(blob) or "bin").lower().lstrip(".")
        if self.mode == "drop":
            warnings.append(ConversionWarning(code="image.dropped", message=f"dropped {ext} image"))
            return None

        if self.mode == "embed":
            mime = EMBEDDABLE_TYPES.get(ext)
            if mime is None:
                warnings.append(ConversionWarning(
                    code="image.dropped",
                    message=f"{ext} image cannot be embedded as a data URI",
                ))
                return None
            encoded = base64.b64encode(blob).decode("ascii")
            return Image(src=f"data:{mime};base64,{encoded}", alt=alt)

        self._count += 1
        target = self.extract_dir / f"image{self._count}.{ext}"
        try:
            self.extract_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(blob)
        except OSError as exc:
            raise WriteFailed(f"cannot extract image: {exc}", path=target) from exc
        logger.debug("extracted image to %s", target)
        return Image(src=target.as_posix(), alt=alt)


def load_image(src: str, base_dir: Path | None = None) -> bytes | None:
    """Resolve an ``Image.src`` to bytes, or None when it cannot be read locally."""
    match = _DATA_URI_RE.match(src.strip())
    if match:
        data = match.group("data")
        if match.group("b64"):
            try:
                return base64.b64decode(data)
            except (binascii.Error, ValueError):
                logger.debug("undecodable data URI")
                return None
        return unquote_to_bytes(data)

    parsed = urlparse(src)
    if parsed.scheme == "file":
        path = Path(url2pathname(parsed.path))
    elif len(parsed.scheme) > 1:
        # Remote (http, https, ftp, ...). Single-letter schemes are drive letters.
        return None
    else:
        path = Path(unquote(src))

    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    try:
        return path.read_bytes()
    except OSError as exc:
        logger.debug("cannot read image %s: %s", path, exc)
        return None


def unresolved(image: Image) -> ConversionWarning:
    return ConversionWarning(
        code="image.unresolved",
        message=f"image {image.src[:60]!r} could not be loaded; alt text kept",
    )

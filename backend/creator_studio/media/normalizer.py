"""Re-encode generated images into the output format the user picked."""

from __future__ import annotations

import logging
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from creator_studio.errors import DecodeError
from creator_studio.media.assets import ImageAsset

logger = logging.getLogger(__name__)

SUPPORTED_OUTPUT_FORMATS = ("image/png", "image/jpeg")

_PIL_FORMATS = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
}
# Targets without an alpha channel get a white canvas under the source image.
_OPAQUE_FORMATS = {"image/jpeg"}
LOSSY_QUALITY = 0.9


def normalize(data: bytes, from_encoding: str, to_encoding: str) -> bytes:
    """Convert ``data`` from one image encoding to another.

    Equal encodings return ``data`` untouched. Raises ``DecodeError`` when the
    source bytes are not an image.
    """
    if from_encoding == to_encoding:
        return data
    pil_format = _PIL_FORMATS.get(to_encoding)
    if pil_format is None:
        raise ValueError(f"Unsupported output format: {to_encoding}")

    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            if to_encoding in _OPAQUE_FORMATS:
                raster = _flatten_on_white(img)
            else:
                raster = img.convert("RGBA") if img.mode not in ("RGB", "RGBA", "L", "LA") else img.copy()
    except (UnidentifiedImageError, OSError) as exc:
        logger.error("Could not decode %s image for conversion: %s", from_encoding, exc)
        raise DecodeError(f"Image loading failed for conversion: {exc}") from exc

    output = BytesIO()
    if to_encoding in _OPAQUE_FORMATS:
        raster.save(output, format=pil_format, quality=int(LOSSY_QUALITY * 100))
    else:
        raster.save(output, format=pil_format)
    logger.debug("Converted image %s -> %s (%d bytes)", from_encoding, to_encoding, output.tell())
    return output.getvalue()


def _flatten_on_white(img: Image.Image) -> Image.Image:
    background = Image.new("RGB", img.size, (255, 255, 255))
    # Palette and colour-keyed images carry transparency in info, not a band.
    if img.mode in ("P", "PA") or "transparency" in img.info:
        img = img.convert("RGBA")
    if img.mode in ("RGBA", "LA"):
        background.paste(img.convert("RGBA"), mask=img.split()[-1])
    else:
        background.paste(img.convert("RGB"))
    return background


def normalize_asset(asset: ImageAsset, to_encoding: str) -> ImageAsset:
    if asset.mime_type == to_encoding:
        return asset
    return ImageAsset(raw_bytes=normalize(asset.raw_bytes, asset.mime_type, to_encoding), mime_type=to_encoding)

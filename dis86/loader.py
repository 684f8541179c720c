"""Load code images from flat binaries or Intel HEX / S-record / TI-TXT files."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path
from typing import Dict, Optional, Union

import bincopy  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

# Filler for address gaps between segments of a hex image (nop).
GAP_FILL = b"\x90"


class ImageFormat(str, Enum):
    AUTO = "auto"
    BINARY = "binary"
    IHEX = "ihex"
    SREC = "srec"
    TI_TXT = "ti-txt"


EXTENSION_FORMATS: Dict[str, ImageFormat] = {
    ".hex": ImageFormat.IHEX,
    ".ihex": ImageFormat.IHEX,
    ".ihx": ImageFormat.IHEX,
    ".srec": ImageFormat.SREC,
    ".s19": ImageFormat.SREC,
    ".s28": ImageFormat.SREC,
    ".s37": ImageFormat.SREC,
    ".mot": ImageFormat.SREC,
    ".txt": ImageFormat.TI_TXT,
}


class ImageLoadError(Exception):
    pass


@dataclass(frozen=True)
class Image:
    data: bytes
    origin: int
    fmt: ImageFormat

    @property
    def end(self) -> int:
        return self.origin + len(self.data)


def detect_format(path: Union[str, Path]) -> ImageFormat:
    return EXTENSION_FORMATS.get(Path(path).suffix.lower(), ImageFormat.BINARY)


def image_from_binfile(binfile: bincopy.BinFile, fmt: ImageFormat) -> Image:
    if binfile.minimum_address is None:
        return Image(b"", 0, fmt)
    origin = binfile.minimum_address
    data = binfile.as_binary(padding=GAP_FILL)
    if len(binfile.segments) > 1:
        logger.warning(
            "%d segments in image; gaps filled with %s",
            len(binfile.segments),
            GAP_FILL.hex(),
        )
    return Image(bytes(data), origin, fmt)


def parse_image_text(text: str, fmt: ImageFormat) -> Image:
    binfile = bincopy.BinFile()
    try:
        if fmt is ImageFormat.IHEX:
            binfile.add_ihex(text)
        elif fmt is ImageFormat.SREC:
            binfile.add_srec(text)
        elif fmt is ImageFormat.TI_TXT:
            binfile.add_ti_txt(text)
        else:
            raise ImageLoadError(f"{fmt.value} is not a text image format")
    except bincopy.Error as exc:
        raise ImageLoadError(f"invalid {fmt.value} image: {exc}") from exc
    return image_from_binfile(binfile, fmt)


def load_image(
    path: Union[str, Path],
    fmt: Union[ImageFormat, str] = ImageFormat.AUTO,
    origin: Optional[int] = None,
) -> Image:
    """
    Read a code image from `path`.

    Flat binaries load at `origin` (default 0). Hex formats carry their own
    addresses; the lowest one becomes the image origin and `origin`, when
    given, must agree with it.
    """
    fmt = ImageFormat(fmt)
    if fmt is ImageFormat.AUTO:
        fmt = detect_format(path)

    try:
        if fmt is ImageFormat.BINARY:
            raw = Path(path).read_bytes()
        else:
            text = Path(path).read_text()
    except OSError as exc:
        raise ImageLoadError(f"cannot read {path}: {exc}") from exc

    if fmt is ImageFormat.BINARY:
        image = Image(raw, origin or 0, fmt)
    else:
        image = parse_image_text(text, fmt)
        if origin is not None and image.data and origin != image.origin:
            raise ImageLoadError(
                f"origin {origin:#x} does not match image start {image.origin:#x}"
            )

    logger.debug(
        "loaded %d byte(s) from %s as %s at %#x", len(image.data), path, fmt.value, image.origin
    )
    return image


__all__ = [
    "EXTENSION_FORMATS",
    "GAP_FILL",
    "Image",
    "ImageFormat",
    "ImageLoadError",
    "detect_format",
    "load_image",
    "parse_image_text",
]

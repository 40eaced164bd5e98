"""Image capture for chat screenshot messages.

A capture source is any callable returning PNG bytes or raising
CaptureFailed. It holds no state between calls.
"""

import io
import logging
from pathlib import Path
from typing import Protocol

from PIL import Image, ImageGrab, UnidentifiedImageError

from .errors import CaptureFailed

logger = logging.getLogger(__name__)


class CaptureSource(Protocol):
    def __call__(self) -> bytes: ...


def _to_png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class ScreenCapture:
    """Capture the primary display as PNG."""

    def __init__(self, all_screens: bool = False):
        self.all_screens = all_screens

    def __call__(self) -> bytes:
        try:
            image = ImageGrab.grab(all_screens=self.all_screens)
        except OSError as e:
            logger.debug(f"Screen grab failed: {e}")
            raise CaptureFailed(str(e)) from e
        if image is None:
            raise CaptureFailed("no image returned")
        return _to_png_bytes(image)


class FileCapture:
    """Load an existing image file and re-encode it as PNG."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def __call__(self) -> bytes:
        if not self.path.is_file():
            raise CaptureFailed(f"image file not found: {self.path}")
        try:
            with Image.open(self.path) as image:
                image.load()
                return _to_png_bytes(image)
        except (UnidentifiedImageError, OSError) as e:
            raise CaptureFailed(f"unreadable image {self.path}: {e}") from e

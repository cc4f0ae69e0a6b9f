"""Raw image buffers handed over by the UI layer."""

import base64
import io
import logging
from dataclasses import dataclass

from PIL import Image

logger = logging.getLogger(__name__)

_CHANNELS = {"L": 1, "RGB": 3, "RGBA": 4}


@dataclass(frozen=True)
class RawImage:
    """
    Uncompressed pixel buffer.

    Attributes:
        width: Width in pixels
        height: Height in pixels
        mode: Pixel layout ("RGBA", "RGB" or "L")
        data: Row-major pixel bytes, ``width * height * channels`` long
    """

    width: int
    height: int
    mode: str
    data: bytes

    def __post_init__(self):
        if self.mode not in _CHANNELS:
            raise ValueError(f"Unsupported image mode: {self.mode}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid image size {self.width}x{self.height}")
        expected = self.width * self.height * _CHANNELS[self.mode]
        if len(self.data) != expected:
            raise ValueError(f"Image buffer has {len(self.data)} bytes, expected {expected}")

    @classmethod
    def from_pil(cls, image: Image.Image) -> "RawImage":
        if image.mode not in _CHANNELS:
            image = image.convert("RGBA")
        return cls(width=image.width, height=image.height, mode=image.mode, data=image.tobytes())

    @classmethod
    def open(cls, path: str) -> "RawImage":
        with Image.open(path) as image:
            image.load()
            return cls.from_pil(image)

    def to_pil(self) -> Image.Image:
        """Decode to an RGB image (alpha dropped; vision encoders expect RGB)."""
        image = Image.frombytes(self.mode, (self.width, self.height), self.data)
        if image.mode != "RGB":
            logger.debug(f"Converting image from {image.mode} to RGB")
            image = image.convert("RGB")
        return image

    def to_data_uri(self) -> str:
        """PNG-encoded ``data:`` URI."""
        buffer = io.BytesIO()
        self.to_pil().save(buffer, format="PNG")
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        return f"data:image/png;base64,{encoded}"

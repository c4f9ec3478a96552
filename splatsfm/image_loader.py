"""Loading images into normalised grayscale arrays for feature detection."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image

_SUPPORTED_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "bmp", "tiff", "tif", "webp"})


@dataclass
class ImageData:
    """A loaded image together with its normalised grayscale pixels."""

    path: Path
    width: int
    height: int
    data: np.ndarray
    original: Image.Image

    def extract_exif_focal_length(self) -> Optional[float]:
        """Approximate the focal length in pixels from the image diagonal."""
        diagonal = math.sqrt(self.width * self.width + self.height * self.height)
        return diagonal * 0.8

    def principal_point(self) -> tuple[float, float]:
        """Return the image centre."""
        return self.width / 2.0, self.height / 2.0


class ImageLoader:
    """Loads images from disk, optionally shrinking them to a maximum dimension."""

    def __init__(self, max_dimension: Optional[int] = None) -> None:
        self.max_dimension = max_dimension

    def with_max_dimension(self, max_dim: int) -> "ImageLoader":
        self.max_dimension = max_dim
        return self

    def is_supported_format(self, path: Union[str, Path]) -> bool:
        suffix = Path(path).suffix
        return bool(suffix) and suffix[1:].lower() in _SUPPORTED_EXTENSIONS

    def load(self, path: Union[str, Path]) -> ImageData:
        """Load *path*; raises ``OSError`` if the file cannot be read as an image."""
        path = Path(path)
        try:
            with Image.open(path) as opened:
                opened.load()
                img = opened.copy()
        except OSError as exc:
            raise OSError(f"Failed to load image: {path}") from exc

        if self.max_dimension is not None:
            img = self._resize_if_needed(img, self.max_dimension)

        width, height = img.size
        gray = np.asarray(img.convert("L"), dtype=np.float32).reshape(-1)
        return ImageData(
            path=path,
            width=width,
            height=height,
            data=gray / np.float32(255.0),
            original=img,
        )

    @staticmethod
    def _resize_if_needed(img: Image.Image, max_dim: int) -> Image.Image:
        width, height = img.size
        largest = max(width, height)
        if largest <= max_dim:
            return img
        scale = max_dim / largest
        new_size = (max(1, int(width * scale)), max(1, int(height * scale)))
        return img.resize(new_size, Image.Resampling.LANCZOS)
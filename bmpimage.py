# bmpimage.py
"""
In-memory images produced by the BMP decoder.

Pixels are stored top row first, so (0, 0) is always the visual top-left
no matter how the rows were laid out on disk.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
from PIL import Image

RGBA = Tuple[int, int, int, int]
Palette = Tuple[RGBA, ...]

# RGB row type alias, same shape the row-based processing helpers use
RGBRows = List[List[Tuple[int, int, int]]]

OPAQUE_BLACK: RGBA = (0, 0, 0, 255)


class BMPImage(ABC):
    """Common surface of decoded images: size, pixel lookup, conversions."""

    width: int
    height: int

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def _check_bounds(self, x: int, y: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"pixel ({x}, {y}) outside {self.width}x{self.height} image")

    @abstractmethod
    def at(self, x: int, y: int) -> RGBA:
        ...

    @abstractmethod
    def to_array(self) -> np.ndarray:
        """8-bit RGBA array of shape (height, width, 4)."""

    def to_rgb_rows(self) -> RGBRows:
        arr = self.to_array()
        return [[(int(r), int(g), int(b)) for (r, g, b, _) in row] for row in arr]

    def to_pil(self) -> Image.Image:
        return Image.frombytes("RGBA", self.size, self.to_array().tobytes())


@dataclass(frozen=True, eq=False)
class PalettedImage(BMPImage):
    """1/4/8-bit image: per-pixel palette indices plus the shared palette."""

    width: int
    height: int
    indices: np.ndarray
    palette: Palette

    def index_at(self, x: int, y: int) -> int:
        self._check_bounds(x, y)
        return int(self.indices[y, x])

    def at(self, x: int, y: int) -> RGBA:
        idx = self.index_at(x, y)
        if idx < len(self.palette):
            return self.palette[idx]
        return OPAQUE_BLACK

    def _lookup_table(self) -> np.ndarray:
        # indices are 8-bit; anything past the palette end reads as black
        lut = np.zeros((256, 4), dtype=np.uint8)
        lut[:, 3] = 255
        entries = self.palette[:256]
        if entries:
            lut[:len(entries)] = np.array(entries, dtype=np.uint8)
        return lut

    def to_array(self) -> np.ndarray:
        return self._lookup_table()[self.indices]

    def to_pil(self) -> Image.Image:
        img = Image.frombytes("P", self.size, self.indices.tobytes())
        img.putpalette(self._lookup_table()[:, :3].tobytes())
        return img


@dataclass(frozen=True, eq=False)
class RGBAImage(BMPImage):
    """Direct-color image. `depth` is bits per channel: 16 for 16-bit sources, else 8."""

    width: int
    height: int
    pixels: np.ndarray
    depth: int = 8

    def at(self, x: int, y: int) -> RGBA:
        self._check_bounds(x, y)
        r, g, b, a = self.pixels[y, x]
        return int(r), int(g), int(b), int(a)

    def to_array(self) -> np.ndarray:
        if self.depth == 16:
            return (self.pixels >> 8).astype(np.uint8)
        return self.pixels

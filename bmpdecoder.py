#!/usr/bin/env python3
"""
bmpdecoder.py: Windows BMP / DIB decoder

Reads:
- File header and the 12-byte core or 40-byte info header
- Color table for indexed images
- BI_BITFIELDS channel masks
- Pixel rows for 1/4/8-bit indexed, 16-bit packed, 24-bit and 32-bit images
Returns:
    PalettedImage or RGBAImage (see bmpimage.py), rows top-first
"""

from __future__ import annotations
import argparse
import io
import logging
import struct
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Optional, Tuple, Union

import numpy as np

from bmpimage import BMPImage, Palette, PalettedImage, RGBAImage

logger = logging.getLogger(__name__)

BMP_SIGNATURE = b"BM"
FILE_HEADER_SIZE = 14
CORE_HEADER_SIZE = 12   # BITMAPCOREHEADER
INFO_HEADER_SIZE = 40   # BITMAPINFOHEADER

BI_RGB = 0
BI_BITFIELDS = 3
COMPRESSION_NAMES = {
    0: "BI_RGB",
    1: "BI_RLE8",
    2: "BI_RLE4",
    3: "BI_BITFIELDS",
    4: "BI_JPEG",
    5: "BI_PNG",
}

SUPPORTED_BIT_COUNTS = (1, 4, 8, 16, 24, 32)

Masks = Tuple[int, int, int, int]   # red, green, blue, alpha
NO_MASKS: Masks = (0, 0, 0, 0)

# (bit count, compression) -> default channel masks when no bit fields are given
DEFAULT_MASKS: Dict[Tuple[int, int], Masks] = {
    (16, BI_RGB): (0xF800, 0x07E0, 0x001F, 0),
    (32, BI_RGB): (0x00FF0000, 0x0000FF00, 0x000000FF, 0xFF000000),
}


class BMPError(Exception):
    """Base class for everything the decoder raises."""


class FormatError(BMPError, ValueError):
    """Structurally invalid or unsupported BMP data."""


class StreamError(BMPError, IOError):
    """The stream ended early or could not be positioned."""


@dataclass(frozen=True)
class FileHeader:
    signature: bytes
    file_size: int
    reserved: int
    data_offset: int


@dataclass(frozen=True)
class InfoHeader:
    size: int
    width: int
    height: int
    planes: int
    bit_count: int
    compression: int = BI_RGB
    size_image: int = 0
    x_pels_per_meter: int = 0
    y_pels_per_meter: int = 0
    clr_used: int = 0
    clr_important: int = 0
    red_mask: int = 0
    green_mask: int = 0
    blue_mask: int = 0
    alpha_mask: int = 0

    @property
    def abs_height(self) -> int:
        return abs(self.height)

    @property
    def top_down(self) -> bool:
        return self.height < 0

    @property
    def masks(self) -> Masks:
        return self.red_mask, self.green_mask, self.blue_mask, self.alpha_mask


# ==== Stream helpers ====

def read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    try:
        data = stream.read(size)
    except OSError as e:
        raise StreamError(f"Failed to read {what}: {e}") from e
    if data is None or len(data) != size:
        got = 0 if data is None else len(data)
        raise StreamError(f"Truncated {what}: expected {size} bytes, got {got}")
    return data


def seek_to(stream: BinaryIO, offset: int) -> int:
    """Position the stream at `offset` and return how many bytes follow it."""
    try:
        stream.seek(0, io.SEEK_END)
        end = stream.tell()
        stream.seek(offset, io.SEEK_SET)
    except (OSError, ValueError) as e:
        raise StreamError(f"Cannot seek to pixel data at offset {offset}: {e}") from e
    return end - offset


# ==== Header parser ====

def read_file_header(stream: BinaryIO) -> FileHeader:
    data = read_exact(stream, FILE_HEADER_SIZE, "file header")
    header = FileHeader(*struct.unpack("<2sIII", data))
    if header.signature != BMP_SIGNATURE:
        raise FormatError(f"Invalid BMP signature {header.signature!r}")
    logger.debug("File header: size=%d data_offset=%d", header.file_size, header.data_offset)
    return header


def parse_core_header(raw: bytes) -> InfoHeader:
    """BITMAPCOREHEADER fields after the size tag; no compression field."""
    width, height, planes, bit_count = struct.unpack_from("<HHHH", raw, 0)
    return InfoHeader(CORE_HEADER_SIZE, width, height, planes, bit_count, BI_RGB)


def parse_info_header(raw: bytes) -> InfoHeader:
    """BITMAPINFOHEADER fields after the size tag."""
    width, height = struct.unpack_from("<ii", raw, 0)
    planes, bit_count = struct.unpack_from("<HH", raw, 8)
    compression, size_image = struct.unpack_from("<II", raw, 12)
    x_ppm, y_ppm = struct.unpack_from("<ii", raw, 20)
    clr_used, clr_important = struct.unpack_from("<II", raw, 28)
    return InfoHeader(
        INFO_HEADER_SIZE, width, height, planes, bit_count, compression,
        size_image, x_ppm, y_ppm, clr_used, clr_important,
    )


HEADER_PARSERS: Dict[int, Callable[[bytes], InfoHeader]] = {
    CORE_HEADER_SIZE: parse_core_header,
    INFO_HEADER_SIZE: parse_info_header,
}


def validate_header(info: InfoHeader) -> None:
    if info.bit_count not in SUPPORTED_BIT_COUNTS:
        raise FormatError(f"Unsupported bit depth: {info.bit_count}")
    if info.width <= 0 or info.height == 0:
        raise FormatError(f"Invalid image dimensions: {info.width}x{info.height}")
    if info.compression not in (BI_RGB, BI_BITFIELDS):
        name = COMPRESSION_NAMES.get(info.compression, str(info.compression))
        raise FormatError(f"Unsupported compression: {name}")


def read_info_header(stream: BinaryIO) -> InfoHeader:
    (size,) = struct.unpack("<I", read_exact(stream, 4, "header size"))
    parser = HEADER_PARSERS.get(size)
    if parser is None:
        raise FormatError(f"Unsupported BMP header variant (size {size})")
    info = parser(read_exact(stream, size - 4, "info header"))
    validate_header(info)
    logger.debug(
        "Info header: size=%d %dx%d bpp=%d compression=%d clr_used=%d",
        info.size, info.width, info.height, info.bit_count, info.compression, info.clr_used,
    )
    return info


# ==== Palette & bit fields ====

def read_palette(stream: BinaryIO, info: InfoHeader) -> Palette:
    if info.bit_count > 8 and info.clr_used == 0:
        return ()
    entries = info.clr_used or (1 << info.bit_count)
    palette = []
    for i in range(entries):
        b, g, r, _ = read_exact(stream, 4, f"color table entry {i}")
        palette.append((r, g, b, 255))
    logger.debug("Color table: %d entries", entries)
    return tuple(palette)


def read_bitfield_masks(stream: BinaryIO, info: InfoHeader, available: int) -> InfoHeader:
    """
    Read the R, G, B, A masks that follow the header in BI_BITFIELDS mode.
    A plain BITMAPINFOHEADER often stores only three; the alpha mask is read
    only when `available` bytes before the pixel data can hold all four, so a
    file with a 12-byte mask block yields three masks rather than four.
    """
    count = 4 if available >= 16 else 3
    masks = struct.unpack(f"<{count}I", read_exact(stream, 4 * count, "bit field masks"))
    red, green, blue = masks[:3]
    alpha = masks[3] if count == 4 else 0
    logger.debug("Bit field masks: R=%#010x G=%#010x B=%#010x A=%#010x", red, green, blue, alpha)
    return replace(info, red_mask=red, green_mask=green, blue_mask=blue, alpha_mask=alpha)


def resolve_masks(info: InfoHeader) -> Masks:
    if info.compression == BI_BITFIELDS:
        return info.masks
    return DEFAULT_MASKS.get((info.bit_count, info.compression), NO_MASKS)


def mask_shift(mask: int) -> Tuple[int, int]:
    """Return (shift, width) of the lowest run of set bits; (0, 0) for an empty mask."""
    if mask == 0:
        return 0, 0
    shift = 0
    while not mask & 1:
        mask >>= 1
        shift += 1
    width = 0
    while mask & 1:
        mask >>= 1
        width += 1
    return shift, width


def expand_channel(values, width: int):
    """Widen `width`-bit samples to 16 bits by replicating their high bits."""
    if width == 0:
        return values * 0
    if width >= 16:
        return values >> (width - 16)
    out = values << (16 - width)
    filled = width
    while filled < 16:
        out = out | (out >> filled)
        filled *= 2
    return out


# ==== Pixel decoder ====

def row_stride(width: int, bit_count: int) -> int:
    """On-disk bytes per scanline, padded to a 4-byte boundary."""
    return (width * bit_count + 31) // 32 * 4


def target_row(source_row: int, info: InfoHeader) -> int:
    if info.top_down:
        return source_row
    return info.abs_height - 1 - source_row


def read_rows(stream: BinaryIO, info: InfoHeader, out: np.ndarray,
              decode_row: Callable[[bytes], np.ndarray]) -> np.ndarray:
    stride = row_stride(info.width, info.bit_count)
    logger.debug("Reading %d rows of %d bytes (%s)", info.abs_height, stride,
                 "top-down" if info.top_down else "bottom-up")
    for y in range(info.abs_height):
        row = read_exact(stream, stride, f"pixel row {y}")
        out[target_row(y, info)] = decode_row(row)
    out.setflags(write=False)
    return out


def read_indexed(stream: BinaryIO, info: InfoHeader, palette: Palette) -> PalettedImage:
    width, bpp = info.width, info.bit_count
    # MSB-first field weights, e.g. [8, 4, 2, 1] for 4-bit
    weights = 1 << np.arange(bpp - 1, -1, -1)

    def decode_row(row: bytes) -> np.ndarray:
        bits = np.unpackbits(np.frombuffer(row, dtype=np.uint8))[:width * bpp]
        return bits.reshape(width, bpp) @ weights

    indices = np.zeros((info.abs_height, width), dtype=np.uint8)
    read_rows(stream, info, indices, decode_row)
    return PalettedImage(width, info.abs_height, indices, palette)


def read_direct16(stream: BinaryIO, info: InfoHeader, palette: Palette) -> RGBAImage:
    width = info.width
    channels = [(mask, *mask_shift(mask)) for mask in resolve_masks(info)[:3]]

    def decode_row(row: bytes) -> np.ndarray:
        words = np.frombuffer(row, dtype="<u2", count=width).astype(np.uint32)
        out = np.empty((width, 4), dtype=np.uint16)
        for i, (mask, shift, bits) in enumerate(channels):
            out[:, i] = expand_channel((words & mask) >> shift, bits)
        out[:, 3] = 0xFFFF
        return out

    pixels = np.zeros((info.abs_height, width, 4), dtype=np.uint16)
    read_rows(stream, info, pixels, decode_row)
    return RGBAImage(width, info.abs_height, pixels, depth=16)


def read_direct24(stream: BinaryIO, info: InfoHeader, palette: Palette) -> RGBAImage:
    width = info.width

    def decode_row(row: bytes) -> np.ndarray:
        bgr = np.frombuffer(row, dtype=np.uint8, count=width * 3).reshape(width, 3)
        out = np.empty((width, 4), dtype=np.uint8)
        out[:, :3] = bgr[:, ::-1]
        out[:, 3] = 255
        return out

    pixels = np.zeros((info.abs_height, width, 4), dtype=np.uint8)
    read_rows(stream, info, pixels, decode_row)
    return RGBAImage(width, info.abs_height, pixels)


def read_direct32(stream: BinaryIO, info: InfoHeader, palette: Palette) -> RGBAImage:
    width = info.width
    masks = resolve_masks(info)
    channels = [(mask, mask_shift(mask)[0]) for mask in masks]

    def decode_row(row: bytes) -> np.ndarray:
        words = np.frombuffer(row, dtype="<u4", count=width)
        out = np.empty((width, 4), dtype=np.uint8)
        for i, (mask, shift) in enumerate(channels):
            out[:, i] = ((words & mask) >> shift) & 0xFF
        if masks[3] == 0:
            out[:, 3] = 255
        return out

    pixels = np.zeros((info.abs_height, width, 4), dtype=np.uint8)
    read_rows(stream, info, pixels, decode_row)
    return RGBAImage(width, info.abs_height, pixels)


PIXEL_DECODERS: Dict[int, Callable[[BinaryIO, InfoHeader, Palette], BMPImage]] = {
    1: read_indexed,
    4: read_indexed,
    8: read_indexed,
    16: read_direct16,
    24: read_direct24,
    32: read_direct32,
}


# ==== Public API ====

def read_headers(stream: BinaryIO) -> Tuple[FileHeader, InfoHeader, Palette]:
    """Parse everything up to the pixel data: headers, color table, bit fields."""
    file_header = read_file_header(stream)
    info = read_info_header(stream)
    palette = read_palette(stream, info)
    if info.compression == BI_BITFIELDS:
        consumed = FILE_HEADER_SIZE + info.size + 4 * len(palette)
        info = read_bitfield_masks(stream, info, file_header.data_offset - consumed)
    return file_header, info, palette


def decode_pixels(stream: BinaryIO, file_header: FileHeader, info: InfoHeader,
                  palette: Palette) -> BMPImage:
    available = seek_to(stream, file_header.data_offset)
    needed = row_stride(info.width, info.bit_count) * info.abs_height
    if needed > available:
        raise StreamError(f"Truncated pixel data: expected {needed} bytes, got {max(available, 0)}")
    return PIXEL_DECODERS[info.bit_count](stream, info, palette)


def decode(stream: BinaryIO) -> BMPImage:
    """Decode a complete BMP from a seekable binary stream."""
    file_header, info, palette = read_headers(stream)
    return decode_pixels(stream, file_header, info, palette)


def decode_bytes(data: bytes) -> BMPImage:
    return decode(io.BytesIO(data))


def decode_bmp(path: Union[str, Path]) -> BMPImage:
    with open(path, "rb") as fp:
        return decode(fp)


def header_info(file_header: FileHeader, info: InfoHeader, palette: Palette) -> dict:
    """Human-readable header summary, keyed by display label."""
    summary = {
        "Signature": file_header.signature.decode("ascii"),
        "File Size": f"{file_header.file_size} bytes",
        "Data Offset": file_header.data_offset,
        "Header": "BITMAPCOREHEADER" if info.size == CORE_HEADER_SIZE else "BITMAPINFOHEADER",
        "Image Dimensions": f"{info.width} × {info.abs_height}",
        "Row Order": "top-down" if info.top_down else "bottom-up",
        "Planes": info.planes,
        "Bits per Pixel": info.bit_count,
        "Compression": COMPRESSION_NAMES.get(info.compression, str(info.compression)),
        "Image Size": f"{info.size_image} bytes",
        "HPPM": info.x_pels_per_meter,
        "VPPM": info.y_pels_per_meter,
        "Colors Used": info.clr_used,
        "Palette Entries": len(palette),
    }
    if info.compression == BI_BITFIELDS:
        summary["Masks"] = " ".join(
            f"{name}={mask:#010x}" for name, mask in zip("RGBA", info.masks)
        )
    return summary


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Decode a BMP file and print its header.")
    parser.add_argument("input", help="Path to the BMP file")
    parser.add_argument("-s", "--save", help="Save the decoded image (format from extension)")
    parser.add_argument("-p", "--pixel", nargs=2, type=int, metavar=("X", "Y"),
                        help="Print the RGBA value at X Y (0,0 is top-left)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log decoding steps")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    try:
        with open(args.input, "rb") as fp:
            file_header, info, palette = read_headers(fp)
            image = decode_pixels(fp, file_header, info, palette)
    except (BMPError, OSError) as e:
        print(f"Error: {e}")
        return 1

    for k, v in header_info(file_header, info, palette).items():
        print(f"{k}: {v}")

    if args.pixel:
        x, y = args.pixel
        if not (0 <= x < image.width and 0 <= y < image.height):
            print(f"Error: pixel ({x}, {y}) outside {image.width}x{image.height} image")
            return 1
        line = f"Pixel ({x}, {y}): RGBA{image.at(x, y)}"
        if isinstance(image, PalettedImage):
            line += f" index {image.index_at(x, y)}"
        print(line)

    if args.save:
        image.to_pil().save(args.save)
        print(f"Saved to {args.save}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

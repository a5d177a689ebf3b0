import io
import struct
import unittest

import bmpdecoder
from bmpdecoder import (
    BI_BITFIELDS, BI_RGB, FormatError, InfoHeader, StreamError,
    decode_bytes, expand_channel, header_info, mask_shift, read_headers,
    resolve_masks, row_stride, target_row,
)
from tests import testing


def minimal_24bit(**kwargs) -> bytes:
    return testing.build_bmp(1, 1, 24, [b"\x01\x02\x03"], **kwargs)


class TestHeaderParser(unittest.TestCase):
    def test_info_header_fields(self):
        data = testing.build_bmp(3, -2, 8, [b"\x00\x01\x02"] * 2,
                                 palette=testing.gray_palette(3), clr_used=3)
        file_header, info, palette = read_headers(io.BytesIO(data))
        self.assertEqual(file_header.signature, b"BM")
        self.assertEqual(file_header.data_offset, 14 + 40 + 3 * 4)
        self.assertEqual(file_header.file_size, len(data))
        self.assertEqual(info.size, 40)
        self.assertEqual((info.width, info.height, info.abs_height), (3, -2, 2))
        self.assertTrue(info.top_down)
        self.assertEqual(info.bit_count, 8)
        self.assertEqual(info.compression, BI_RGB)
        self.assertEqual(info.clr_used, 3)
        self.assertEqual(info.x_pels_per_meter, 2835)
        self.assertEqual(len(palette), 3)

    def test_core_header(self):
        data = testing.build_bmp(2, 1, 24, [b"\x00" * 6], core=True)
        file_header, info, palette = read_headers(io.BytesIO(data))
        self.assertEqual(info.size, 12)
        self.assertEqual((info.width, info.height), (2, 1))
        self.assertEqual(info.compression, BI_RGB)
        self.assertFalse(info.top_down)
        self.assertEqual(palette, ())
        self.assertEqual(file_header.data_offset, 26)

    def test_bad_signature(self):
        with self.assertRaises(FormatError):
            decode_bytes(minimal_24bit(signature=b"BA"))

    def test_format_error_is_value_error(self):
        with self.assertRaises(ValueError):
            decode_bytes(minimal_24bit(signature=b"PN"))

    def test_unsupported_header_size(self):
        data = bytearray(minimal_24bit())
        struct.pack_into("<I", data, 14, 108)
        with self.assertRaises(FormatError) as ctx:
            decode_bytes(bytes(data))
        self.assertIn("header variant", str(ctx.exception))

    def test_unsupported_bit_depth(self):
        for bit_count in (0, 2, 12, 48):
            data = bytearray(minimal_24bit())
            struct.pack_into("<H", data, 28, bit_count)
            with self.assertRaises(FormatError):
                decode_bytes(bytes(data))

    def test_invalid_dimensions(self):
        with self.assertRaises(FormatError):
            decode_bytes(testing.build_bmp(0, 1, 24, [b""]))
        with self.assertRaises(FormatError):
            decode_bytes(testing.build_bmp(1, 0, 24, []))

    def test_rle_compression_rejected(self):
        data = testing.build_bmp(2, 1, 8, [b"\x00\x00"], palette=[testing.BLACK],
                                 clr_used=1, compression=1)
        with self.assertRaises(FormatError) as ctx:
            decode_bytes(data)
        self.assertIn("BI_RLE8", str(ctx.exception))


class TestStreamErrors(unittest.TestCase):
    def test_truncated_file_header(self):
        with self.assertRaises(StreamError):
            decode_bytes(b"BM\x00\x00")

    def test_stream_error_is_io_error(self):
        with self.assertRaises(IOError):
            decode_bytes(minimal_24bit()[:20])

    def test_truncated_palette(self):
        data = testing.build_bmp(2, 1, 8, [b"\x00\x01"], palette=testing.gray_palette(256))
        with self.assertRaises(StreamError):
            decode_bytes(data[:14 + 40 + 100])

    def test_truncated_pixel_rows(self):
        data = testing.build_bmp(2, 2, 24, [b"\x00" * 6, b"\x00" * 6])
        with self.assertRaises(StreamError):
            decode_bytes(data[:-1])

    def test_seek_failure(self):
        class NoSeek(io.BytesIO):
            def seek(self, *args):
                raise OSError("not seekable")

        with self.assertRaises(StreamError):
            bmpdecoder.decode(NoSeek(minimal_24bit()))

    def test_pixel_offset_past_end(self):
        data = bytearray(minimal_24bit())
        struct.pack_into("<I", data, 10, 4096)
        with self.assertRaises(StreamError):
            decode_bytes(bytes(data))

    def test_declared_size_beyond_stream(self):
        data = bytearray(testing.build_bmp(2, 1, 8, [b"\x00\x01"],
                                           palette=testing.gray_palette(2), clr_used=2))
        struct.pack_into("<ii", data, 18, 200000, 200000)
        with self.assertRaises(StreamError):
            decode_bytes(bytes(data))

    def test_maximum_dimensions_32bit(self):
        data = bytearray(testing.build_bmp(1, 1, 32, [b"\x00" * 4]))
        struct.pack_into("<ii", data, 18, 0x7FFFFFFF, 0x7FFFFFFF)
        with self.assertRaises(StreamError):
            decode_bytes(bytes(data))


class TestBitFields(unittest.TestCase):
    def test_four_masks(self):
        masks = (0x00FF0000, 0x0000FF00, 0x000000FF, 0xFF000000)
        data = testing.build_bmp(1, 1, 32, [b"\x00" * 4], compression=BI_BITFIELDS, masks=masks)
        _, info, _ = read_headers(io.BytesIO(data))
        self.assertEqual(info.masks, masks)
        self.assertEqual(resolve_masks(info), masks)

    def test_three_masks_leave_alpha_empty(self):
        data = testing.build_bmp(1, 1, 16, [b"\xff\xff"], compression=BI_BITFIELDS,
                                 masks=(0x7C00, 0x03E0, 0x001F))
        _, info, _ = read_headers(io.BytesIO(data))
        self.assertEqual(info.masks, (0x7C00, 0x03E0, 0x001F, 0))

    def test_default_masks(self):
        info16 = InfoHeader(40, 1, 1, 1, 16)
        info32 = InfoHeader(40, 1, 1, 1, 32)
        info24 = InfoHeader(40, 1, 1, 1, 24)
        self.assertEqual(resolve_masks(info16), (0xF800, 0x07E0, 0x001F, 0))
        self.assertEqual(resolve_masks(info32), (0x00FF0000, 0x0000FF00, 0x000000FF, 0xFF000000))
        self.assertEqual(resolve_masks(info24), (0, 0, 0, 0))

    def test_mask_shift(self):
        self.assertEqual(mask_shift(0), (0, 0))
        self.assertEqual(mask_shift(0xF800), (11, 5))
        self.assertEqual(mask_shift(0x07E0), (5, 6))
        self.assertEqual(mask_shift(0x001F), (0, 5))
        self.assertEqual(mask_shift(0xFF000000), (24, 8))

    def test_expand_channel(self):
        self.assertEqual(expand_channel(0x1F, 5), 0xFFFF)
        self.assertEqual(expand_channel(0x3F, 6), 0xFFFF)
        self.assertEqual(expand_channel(0x10, 5), 0x8421)
        self.assertEqual(expand_channel(0x80, 8), 0x8080)
        self.assertEqual(expand_channel(0, 5), 0)
        self.assertEqual(expand_channel(7, 0), 0)
        self.assertEqual(expand_channel(0x3FFFF, 18), 0xFFFF)


class TestRowGeometry(unittest.TestCase):
    def test_row_stride(self):
        self.assertEqual(row_stride(1, 1), 4)
        self.assertEqual(row_stride(33, 1), 8)
        self.assertEqual(row_stride(9, 4), 8)
        self.assertEqual(row_stride(5, 8), 8)
        self.assertEqual(row_stride(3, 16), 8)
        self.assertEqual(row_stride(2, 16), 4)
        self.assertEqual(row_stride(3, 24), 12)
        self.assertEqual(row_stride(5, 24), 16)
        self.assertEqual(row_stride(3, 32), 12)

    def test_target_row(self):
        bottom_up = InfoHeader(40, 1, 3, 1, 24)
        top_down = InfoHeader(40, 1, -3, 1, 24)
        self.assertEqual([target_row(y, bottom_up) for y in range(3)], [2, 1, 0])
        self.assertEqual([target_row(y, top_down) for y in range(3)], [0, 1, 2])


class TestHeaderInfo(unittest.TestCase):
    def test_summary(self):
        data = testing.build_bmp(2, 2, 16, [b"\x00" * 4] * 2, compression=BI_BITFIELDS,
                                 masks=(0xF800, 0x07E0, 0x001F, 0))
        info = header_info(*read_headers(io.BytesIO(data)))
        self.assertEqual(info["Bits per Pixel"], 16)
        self.assertEqual(info["Compression"], "BI_BITFIELDS")
        self.assertEqual(info["Row Order"], "bottom-up")
        self.assertEqual(info["Header"], "BITMAPINFOHEADER")
        self.assertEqual(info["Palette Entries"], 0)
        self.assertIn("R=0x0000f800", info["Masks"])

    def test_summary_without_masks(self):
        info = header_info(*read_headers(io.BytesIO(minimal_24bit())))
        self.assertNotIn("Masks", info)
        self.assertEqual(info["Compression"], "BI_RGB")


if __name__ == '__main__':
    unittest.main()

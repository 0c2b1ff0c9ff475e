import numpy as np
import pytest
from PIL import Image

from conftest import encode_image, jpeg_bytes, noisy_rgb
from imgset_converter import decode
from imgset_converter.decode import DecodeError, decode_image, decode_source
from imgset_shared.records import SourceImage


def test_jpeg_dimensions_match(small_jpeg: bytes) -> None:
    buffer = decode_image(small_jpeg, "image/jpeg")
    assert (buffer.width, buffer.height) == (64, 48)
    assert buffer.pixels.shape == (48, 64, 4)
    assert buffer.pixels.dtype == np.uint8
    assert (buffer.pixels[:, :, 3] == 255).all()


def test_decoded_pixels_are_read_only(small_jpeg: bytes) -> None:
    buffer = decode_image(small_jpeg, "image/jpeg")
    assert not buffer.pixels.flags.writeable


def test_png_alpha_is_preserved() -> None:
    rgba = np.zeros((10, 20, 4), dtype=np.uint8)
    rgba[..., 0] = 200
    rgba[..., 3] = 255
    rgba[0, 0, 3] = 0
    data = encode_image(Image.fromarray(rgba), "PNG")

    buffer = decode_image(data, "image/png")
    assert (buffer.width, buffer.height) == (20, 10)
    assert buffer.pixels[0, 0, 3] == 0
    assert buffer.pixels[5, 5].tolist() == [200, 0, 0, 255]


def test_grayscale_png_becomes_rgba() -> None:
    data = encode_image(Image.new("L", (7, 3), 90), "PNG")
    buffer = decode_image(data, "image/png")
    assert buffer.pixels.shape == (3, 7, 4)
    assert buffer.pixels[1, 1].tolist() == [90, 90, 90, 255]


def test_16_bit_grayscale_png_is_scaled_not_clipped() -> None:
    gray = np.full((4, 6), 32768, dtype=np.uint16)
    gray[0, 0] = 65535
    gray[0, 1] = 0
    data = encode_image(Image.fromarray(gray), "PNG")

    dedicated = decode_image(data, "image/png")
    generic = decode_image(data, "image/x-unknown")

    assert (dedicated.width, dedicated.height) == (6, 4)
    assert dedicated.pixels[2, 2].tolist() == [128, 128, 128, 255]
    assert dedicated.pixels[0, 0].tolist() == [255, 255, 255, 255]
    assert dedicated.pixels[0, 1].tolist() == [0, 0, 0, 255]
    assert np.array_equal(dedicated.pixels, generic.pixels)


def test_webp_route() -> None:
    data = encode_image(Image.fromarray(noisy_rgb(30, 20)), "WEBP", quality=80)
    buffer = decode_image(data, "image/webp")
    assert (buffer.width, buffer.height) == (30, 20)


def test_gif_uses_first_frame() -> None:
    frames = [Image.new("RGB", (16, 12), color) for color in ("red", "blue", "green")]
    data = encode_image(frames[0], "GIF", save_all=True, append_images=frames[1:])
    buffer = decode_image(data, "image/gif")
    assert (buffer.width, buffer.height) == (16, 12)
    r, g, b, a = buffer.pixels[0, 0].tolist()
    assert r > 200 and g < 50 and b < 50 and a == 255


def test_exif_orientation_is_applied() -> None:
    exif = Image.Exif()
    exif[0x0112] = 6
    data = encode_image(Image.fromarray(noisy_rgb(40, 20)), "JPEG", exif=exif)
    buffer = decode_image(data, "image/jpeg")
    assert (buffer.width, buffer.height) == (20, 40)


def test_unregistered_type_uses_generic_route() -> None:
    data = encode_image(Image.new("RGB", (9, 5), (255, 0, 0)), "BMP")
    buffer = decode_image(data, "image/bmp")
    assert (buffer.width, buffer.height) == (9, 5)
    assert buffer.pixels[2, 2].tolist() == [255, 0, 0, 255]


def test_mismatched_declared_type_falls_back_to_generic(small_jpeg: bytes) -> None:
    buffer = decode_image(small_jpeg, "image/png")
    assert (buffer.width, buffer.height) == (64, 48)


def test_media_type_parameters_are_ignored(small_jpeg: bytes) -> None:
    buffer = decode_image(small_jpeg, "IMAGE/JPEG; charset=binary")
    assert buffer.width == 64


def test_decode_source() -> None:
    src = SourceImage(name="a.jpg", media_type="image/jpeg", data=jpeg_bytes(12, 8))
    buffer = decode_source(src)
    assert (buffer.width, buffer.height) == (12, 8)


@pytest.mark.parametrize("media_type", ["image/jpeg", "image/png", "application/octet-stream", ""])
def test_garbage_raises_decode_error(media_type: str) -> None:
    with pytest.raises(DecodeError):
        decode_image(b"definitely not an image" * 4, media_type)


def test_empty_input_raises_decode_error() -> None:
    with pytest.raises(DecodeError) as excinfo:
        decode_image(b"", "image/jpeg")
    assert excinfo.value.media_type == "image/jpeg"
    assert "empty" in excinfo.value.reason


def test_oversized_image_is_rejected(monkeypatch, small_jpeg: bytes) -> None:
    monkeypatch.setattr(decode, "MAX_PIXELS", 100)
    with pytest.raises(DecodeError, match="exceeds"):
        decode_image(small_jpeg, "image/jpeg")
    with pytest.raises(DecodeError, match="exceeds"):
        decode_image(small_jpeg, "image/x-unknown")

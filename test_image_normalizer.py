"""Tests for image normalization."""

import base64
import io

import pytest
from PIL import Image

from compliance_lens.plugins.image_normalizer import ImageNormalizer, scaled_dimensions
from compliance_lens.utils.errors import ErrorType, ImageCaptureError


def _decoded_size(data: bytes):
    with Image.open(io.BytesIO(data)) as img:
        return img.size, img.format, img.mode


def test_large_landscape_image_is_bounded(make_image_bytes):
    normalizer = ImageNormalizer()
    image = normalizer.normalize(make_image_bytes(4000, 3000))

    assert image.normalized is True
    assert image.mime_type == "image/jpeg"
    assert (image.width, image.height) == (1280, 960)
    size, fmt, mode = _decoded_size(image.data)
    assert size == (1280, 960)
    assert fmt == "JPEG"
    assert mode == "RGB"


def test_large_portrait_keeps_aspect_ratio(make_image_bytes):
    image = ImageNormalizer().normalize(make_image_bytes(1000, 3000))

    assert max(image.width, image.height) <= 1280
    assert image.height == 1280
    assert image.width == 427
    assert abs(image.width / image.height - 1000 / 3000) < 0.01


def test_small_image_is_not_upscaled(make_image_bytes):
    image = ImageNormalizer().normalize(make_image_bytes(800, 600))

    assert (image.width, image.height) == (800, 600)
    assert _decoded_size(image.data)[0] == (800, 600)


def test_edge_exactly_at_limit_is_kept(make_image_bytes):
    image = ImageNormalizer().normalize(make_image_bytes(1280, 720))
    assert (image.width, image.height) == (1280, 720)


def test_transparent_png_is_flattened_to_jpeg(make_image_bytes):
    png = make_image_bytes(300, 200, fmt="PNG", mode="RGBA", color=(0, 0, 255, 0))
    image = ImageNormalizer().normalize(png)

    size, fmt, mode = _decoded_size(image.data)
    assert fmt == "JPEG"
    assert mode == "RGB"
    with Image.open(io.BytesIO(image.data)) as img:
        r, g, b = img.getpixel((150, 100))
    # Fully transparent pixels end up on the white canvas
    assert min(r, g, b) > 240


def test_undecodable_payload_falls_back_to_original():
    raw = b"definitely not an image"
    image = ImageNormalizer().normalize(raw)

    assert image.normalized is False
    assert image.data == raw
    assert image.width is None
    assert image.height is None
    assert image.mime_type == "image/jpeg"


def test_data_url_source(make_image_bytes):
    payload = base64.b64encode(make_image_bytes(2000, 1000, fmt="PNG")).decode("ascii")
    image = ImageNormalizer().normalize(f"data:image/png;base64,{payload}")

    assert (image.width, image.height) == (1280, 640)
    assert image.to_data_url().startswith("data:image/jpeg;base64,")


def test_path_and_stream_sources(tmp_path, make_image_bytes):
    path = tmp_path / "site.jpg"
    path.write_bytes(make_image_bytes(1600, 1200))

    normalizer = ImageNormalizer()
    from_path = normalizer.normalize(path)
    with open(path, "rb") as f:
        from_stream = normalizer.normalize(f)

    assert (from_path.width, from_path.height) == (1280, 960)
    assert (from_stream.width, from_stream.height) == (1280, 960)


def test_missing_file_is_a_capture_failure(tmp_path):
    with pytest.raises(ImageCaptureError) as excinfo:
        ImageNormalizer().normalize(tmp_path / "missing.jpg")
    assert excinfo.value.error_type == ErrorType.CAPTURE_FAILED
    assert excinfo.value.user_message == "Failed to process image. Please try again."


def test_empty_payload_is_a_capture_failure():
    with pytest.raises(ImageCaptureError):
        ImageNormalizer().normalize(b"")


def test_bad_data_url_is_a_capture_failure():
    with pytest.raises(ImageCaptureError):
        ImageNormalizer().normalize("data:image/png;base64,@@not-base64@@")


def test_custom_limits(make_image_bytes):
    image = ImageNormalizer(max_dimension=640, quality=0.5).normalize(make_image_bytes(1280, 960))
    assert (image.width, image.height) == (640, 480)


@pytest.mark.parametrize("kwargs", [{"max_dimension": 0}, {"quality": 0}, {"quality": 1.5}])
def test_invalid_settings_rejected(kwargs):
    with pytest.raises(ValueError):
        ImageNormalizer(**kwargs)


def test_scaled_dimensions_never_collapse_to_zero():
    assert scaled_dimensions(2561, 1, 1280) == (1280, 1)
    assert scaled_dimensions(640, 480, 1280) == (640, 480)

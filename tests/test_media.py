import pytest

from dreamhouse.pipeline.errors import ValidationFailure
from dreamhouse.pipeline.media import decode_data_url, encode_data_url, verify_image

from conftest import png_data_url


@pytest.mark.parametrize(
    "mime_type,payload",
    [
        ("image/png", b"\x89PNG\r\n\x1a\n\x00\x01\x02"),
        ("image/jpeg", bytes(range(256))),
        ("video/mp4", b""),
    ],
)
def test_encode_decode_round_trip(mime_type, payload):
    assert decode_data_url(encode_data_url(mime_type, payload)) == (mime_type, payload)


def test_encode_rejects_bad_media_type():
    with pytest.raises(ValidationFailure):
        encode_data_url("png", b"abc")


@pytest.mark.parametrize(
    "value",
    [
        "",
        "https://picsum.photos/1920/1080",
        "data:image/png;base64",
        "data:image/png,aGVsbG8=",
        "data:png;base64,aGVsbG8=",
        "data:image/png;base64,not base64!!",
    ],
)
def test_decode_rejects_malformed(value):
    with pytest.raises(ValidationFailure):
        decode_data_url(value)


def test_verify_image_accepts_real_png():
    mime_type, payload = verify_image(png_data_url())
    assert mime_type == "image/png"
    assert payload.startswith(b"\x89PNG")


def test_verify_image_rejects_garbage_bytes():
    with pytest.raises(ValidationFailure):
        verify_image(encode_data_url("image/png", b"definitely not an image"))


def test_verify_image_rejects_non_image_type():
    with pytest.raises(ValidationFailure):
        verify_image(encode_data_url("video/mp4", b"\x00\x01"))

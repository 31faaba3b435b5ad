"""
Tests for the signature image filter.
"""

import io

from PIL import Image

from extraction_schema import Attachment
from signature_filter import SignatureFilter, is_image_filename


def png_bytes(width: int, height: int, noise: bool = True) -> bytes:
    image = Image.effect_noise((width, height), 80).convert("RGB") if noise else Image.new("RGB", (width, height))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def make_attachment(filename: str, content: bytes, content_type: str = "image/png") -> Attachment:
    return Attachment(filename=filename, content_type=content_type, content=content)


def test_is_image_filename():
    assert is_image_filename("plaque.JPG")
    assert not is_image_filename("rfq.pdf")
    assert not is_image_filename("noextension")


def test_filename_patterns_flag_signature_images():
    signature_filter = SignatureFilter(check_dimensions=False)
    content = b"x" * 50000
    for name in ("image001.png", "Outlook-abc.jpg", "logo_company.png", "linkedin.png", "ATT00001.jpg"):
        check = signature_filter.check(make_attachment(name, content))
        assert check.is_signature, name
        assert check.reason.startswith("signature")


def test_small_images_are_signatures():
    check = SignatureFilter(check_dimensions=False).check(make_attachment("plaque.png", b"x" * 2000))
    assert check.is_signature
    assert "smaller than 10 KB" in check.reason


def test_filename_patterns_ignore_documents():
    check = SignatureFilter().check(make_attachment("header_rfq.pdf", b"%PDF" * 100, "application/pdf"))
    assert not check.is_signature


def test_mail_artifacts_are_filtered_whatever_the_extension():
    check = SignatureFilter().check(make_attachment("winmail.dat", b"x" * 50000, "application/ms-tnef"))
    assert check.is_signature


def test_dimension_rules():
    signature_filter = SignatureFilter(max_signature_bytes=0)

    banner = signature_filter.check(make_attachment("photo1.png", png_bytes(900, 100)))
    assert banner.is_signature
    assert (banner.width, banner.height) == (900, 100)

    tiny = signature_filter.check(make_attachment("photo2.png", png_bytes(60, 60)))
    assert tiny.is_signature

    nameplate = signature_filter.check(make_attachment("photo3.png", png_bytes(640, 480)))
    assert not nameplate.is_signature


def test_undecodable_image_is_kept():
    check = SignatureFilter().check(make_attachment("plaque.jpg", b"not an image" * 2000))
    assert not check.is_signature

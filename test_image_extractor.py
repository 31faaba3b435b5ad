"""
Tests for nameplate image extraction.
"""

import asyncio

from extraction_config import ExtractionConfig
from extraction_schema import Attachment, FormatKind
from image_extractor import UNCONCLUSIVE_NOTE, ImageExtractor, extract_nameplate_info
from ocr_fallback import OcrAttempt, score_text

NAMEPLATE_TEXT = "DANA SPICER\nMODEL: 16.6HR36000\nP/N: 4209-1234\nSERIAL: AB778899\n"


class FakeOcr:
    def __init__(self, text=""):
        self.text = text
        self.calls = 0

    async def ocr_image(self, content, suffix=".png", try_rotations=False):
        self.calls += 1
        return OcrAttempt(text=self.text, rotation=0, score=score_text(self.text))


def photo(filename: str, size: int = 50000) -> Attachment:
    return Attachment(filename=filename, content_type="image/jpeg", content=b"x" * size)


def extract(attachment: Attachment, ocr_text: str = ""):
    ocr = FakeOcr(ocr_text)
    document = asyncio.run(ImageExtractor(ExtractionConfig(), ocr=ocr).extract(attachment))
    return document, ocr


def test_signature_images_are_skipped_without_ocr():
    document, ocr = extract(photo("image001.png", 3000))

    assert document.extraction_method == "skipped_signature"
    assert document.items == []
    assert ocr.calls == 0


def test_nameplate_fields():
    document, _ = extract(photo("chargeuse.jpg"), NAMEPLATE_TEXT)

    assert document.format_kind == FormatKind.IMAGE
    assert document.extraction_method == "image_ocr"
    assert document.needs_verification
    assert document.rfq_number is None
    item = document.items[0]
    assert item.description == "DANA SPICER - OFF-HIGHWAY COMPONENT"
    assert item.supplier_code == "4209-1234"
    assert item.brand == "DANA SPICER"
    assert item.notes == "Model: 16.6HR36000 | S/N: AB778899 | Équipement: CHARGEUSE"
    assert item.needs_manual_review


def test_unconclusive_ocr_gives_placeholder_item():
    document, _ = extract(photo("photo.jpg"), "")

    assert len(document.items) == 1
    item = document.items[0]
    assert item.description == "Pièce à identifier (voir image: photo.jpg)"
    assert item.is_estimated
    assert item.notes == UNCONCLUSIVE_NOTE
    assert item.needs_manual_review


def test_extract_nameplate_info_part_number_and_short_serial_label():
    info = extract_nameplate_info("PART NO: 710 0321\nSN 12345\n", "pompe.jpg", ("SKF",))

    assert info.found
    assert info.part_number == "710 0321"
    assert info.serial == "12345"
    assert info.brand is None
    assert info.equipment == "POMPE"


def test_brand_from_filename():
    info = extract_nameplate_info("MODEL: 966H", "CATERPILLAR.jpg", ("CATERPILLAR",))
    assert info.brand == "CATERPILLAR"
    assert info.equipment is None


def test_short_brand_nameplate_gets_full_description():
    document, _ = extract(photo("gearbox_plate.jpg"), "ZF\nP/N: 4139 301 012")

    item = document.items[0]
    assert item.description == "Pièce ZF 4139 301 012"
    assert len(item.description) >= ExtractionConfig().min_description_length
    assert item.brand == "ZF"
    assert item.supplier_code == "4139 301 012"


def test_model_only_nameplate_without_brand_points_to_image():
    document, _ = extract(photo("x.jpg"), "MODEL: 7B")

    assert document.items[0].description == "Pièce détachée (voir image: x.jpg)"
    assert document.items[0].notes == "Model: 7B | Équipement: X"

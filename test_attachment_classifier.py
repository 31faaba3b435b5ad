"""
Tests for attachment classification and brand grouping.
"""

from attachment_classifier import (
    AttachmentClassifier, classify_attachments, extract_rfq_number_from_filename
)
from extraction_config import ExtractionConfig
from extraction_schema import Attachment, AttachmentCategory


def make_attachment(filename: str, size: int = 120000, content_type: str = "application/pdf") -> Attachment:
    return Attachment(filename=filename, content_type=content_type, content=b"x" * size)


def classify(*attachments):
    return AttachmentClassifier(ExtractionConfig()).classify(list(attachments))


def test_extract_rfq_number_from_filename():
    assert extract_rfq_number_from_filename("BI-19716 pompe.pdf") == "BI-19716"
    assert extract_rfq_number_from_filename("pr_4500123.xlsx") == "PR_4500123"
    assert extract_rfq_number_from_filename("demande 4500123.pdf") == "4500123"
    assert extract_rfq_number_from_filename("catalogue.pdf") is None


def test_signature_image_is_classified_as_image_with_signature_reason():
    classified = classify(make_attachment("image001.png", 3000, "image/png"))[0]
    assert classified.category == AttachmentCategory.IMAGE
    assert "signature" in classified.reason
    assert classified.confidence == 100


def test_spreadsheet_with_reference_is_rfq():
    classified = classify(make_attachment("PR-4500123 liste pieces.xlsx"))[0]
    assert classified.category == AttachmentCategory.RFQ
    assert classified.rfq_number_hint == "PR-4500123"
    assert classified.confidence >= 50


def test_datasheet_is_technical_sheet_related_to_sole_rfq():
    rfq, sheet = classify(
        make_attachment("BI-19716 demande.pdf"),
        make_attachment("datasheet pompe.pdf"),
    )
    assert rfq.category == AttachmentCategory.RFQ
    assert sheet.category == AttachmentCategory.TECHNICAL_SHEET
    assert sheet.related_to == "BI-19716 demande.pdf"


def test_technical_sheet_prefers_rfq_with_same_brand():
    classified = classify(
        make_attachment("RFQ-20001 SKF roulements.pdf"),
        make_attachment("RFQ-20002 PARKER flexibles.pdf"),
        make_attachment("fiche technique PARKER.pdf"),
    )
    sheet = classified[2]
    assert sheet.category == AttachmentCategory.TECHNICAL_SHEET
    assert sheet.related_to == "RFQ-20002 PARKER flexibles.pdf"


def test_small_pdf_without_signal_leans_technical_but_stays_rfq():
    classified = classify(make_attachment("scan.pdf", 20000))[0]
    # +10 technical is below the technical threshold, the document type makes it an RFQ
    assert classified.category == AttachmentCategory.RFQ


def test_unknown_extension_without_signal_is_unknown():
    classified = classify(make_attachment("archive.zip", 20000, "application/zip"))[0]
    assert classified.category == AttachmentCategory.UNKNOWN


def test_all_same_brand_and_grouping():
    classified = classify(
        make_attachment("RFQ-20001 SKF roulements.pdf"),
        make_attachment("RFQ-20002 PARKER flexibles.pdf"),
        make_attachment("liste.xlsx"),
    )
    assert not AttachmentClassifier.all_same_brand(classified)
    groups = AttachmentClassifier.group_by_brand(classified)
    assert list(groups) == ["SKF", "PARKER", "UNKNOWN"]

    same = classify(make_attachment("RFQ-20001 SKF.pdf"), make_attachment("PR-4500123 SKF suite.pdf"))
    assert AttachmentClassifier.all_same_brand(same)


def test_convenience_function():
    classified = classify_attachments([make_attachment("commande.pdf")], ExtractionConfig())
    assert classified[0].category == AttachmentCategory.RFQ

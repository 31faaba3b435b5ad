"""
Attachment Classification Module

Scores every attachment of a request email as a request for quotation, a
technical sheet, an image or unknown, using filename keyword tables, the
file extension and size priors. A second pass links each technical sheet to
the RFQ attachment it supplements, and helpers group RFQs by detected brand.
"""

import re
import logging
from collections import OrderedDict
from typing import Dict, List, Optional

from extraction_config import ExtractionConfig, get_config
from extraction_schema import Attachment, AttachmentCategory, ClassifiedAttachment
from item_normalizer import detect_brand
from signature_filter import SignatureFilter, is_image_filename

logger = logging.getLogger(__name__)

RFQ_FILENAME_PATTERNS = [
    re.compile(r"(?<![a-z0-9])(BI|PR|RFQ|REF)[-_]?(\d{4,})", re.IGNORECASE),
    re.compile(r"(?<!\d)(\d{6,8})(?!\d)"),
]

SPREADSHEET_EXTENSIONS = ('xls', 'xlsx', 'csv')
DOCUMENT_EXTENSIONS = ('pdf', 'xls', 'xlsx', 'csv', 'doc', 'docx')


def extract_rfq_number_from_filename(filename: str) -> Optional[str]:
    """Find a request reference (BI-19716, PR_123456, a 6-8 digit number) in a filename."""
    for pattern in RFQ_FILENAME_PATTERNS:
        match = pattern.search(filename)
        if match:
            return match.group(0).upper()
    return None


def filename_parts(filename: str) -> List[str]:
    stem = re.sub(r"\.[^.]+$", "", filename.lower())
    return [part for part in re.split(r"[-_\s.]+", stem) if len(part) > 2]


class AttachmentClassifier:
    """
    Classifies attachments and relates technical sheets to RFQ documents.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None,
                 signature_filter: Optional[SignatureFilter] = None):
        """
        Initialize the classifier.

        Args:
            config: Shared extraction configuration (keyword and brand vocabularies)
            signature_filter: Filter used to recognise signature images
        """
        self.config = config or get_config()
        self.signature_filter = signature_filter or SignatureFilter(
            max_signature_bytes=self.config.signature_max_bytes
        )

    def classify(self, attachments: List[Attachment]) -> List[ClassifiedAttachment]:
        """
        Classify every attachment, then link technical sheets to RFQs.

        Args:
            attachments: Attachments of one email

        Returns:
            One ClassifiedAttachment per input, in input order
        """
        classified = [self.classify_attachment(attachment) for attachment in attachments]

        rfqs = [c for c in classified if c.category == AttachmentCategory.RFQ]
        for sheet in classified:
            if sheet.category != AttachmentCategory.TECHNICAL_SHEET:
                continue
            match = self.find_matching_rfq(sheet, rfqs)
            if match is not None:
                sheet.related_to = match.filename
                logger.debug(f"Technical sheet {sheet.filename} related to {match.filename}")

        summary = ", ".join(f"{c.filename}={c.category.value}" for c in classified)
        logger.info(f"Classified {len(classified)} attachment(s): {summary}")
        return classified

    def classify_attachment(self, attachment: Attachment) -> ClassifiedAttachment:
        """Score a single attachment from its filename, extension and size."""
        filename = attachment.filename.lower()
        stem = re.sub(r"\.[^.]+$", "", filename)
        extension = attachment.extension

        brand = detect_brand(filename, self.config.brands)
        rfq_number = extract_rfq_number_from_filename(attachment.filename)

        if is_image_filename(filename) or extension in ('dat', 'tmp'):
            check = self.signature_filter.check(attachment)
            if check.is_signature:
                return ClassifiedAttachment(attachment, AttachmentCategory.IMAGE, 100, check.reason, brand=brand)
        if is_image_filename(filename):
            return ClassifiedAttachment(
                attachment, AttachmentCategory.IMAGE, 80,
                "image potentially useful (nameplate or part photo)", brand=brand
            )

        tech_score = 0
        tech_reasons = []
        for keyword in self.config.technical_keywords:
            if keyword in stem:
                tech_score += 20
                tech_reasons.append(f'keyword "{keyword}"')

        rfq_score = 0
        rfq_reasons = []
        for keyword in self.config.rfq_keywords:
            if keyword in stem:
                rfq_score += 15
                rfq_reasons.append(f'keyword "{keyword}"')

        if rfq_number:
            rfq_score += 25
            rfq_reasons.append(f"reference number {rfq_number}")

        if extension in SPREADSHEET_EXTENSIONS:
            rfq_score += 20
            rfq_reasons.append("spreadsheet format")

        if extension == 'pdf' and tech_score == 0 and rfq_score == 0:
            if attachment.size and attachment.size < self.config.small_pdf_bytes:
                tech_score += 10
                tech_reasons.append("small PDF without other signal")
            else:
                rfq_score += 10
                rfq_reasons.append("PDF without other signal")

        if tech_score > rfq_score and tech_score >= 20:
            return ClassifiedAttachment(
                attachment, AttachmentCategory.TECHNICAL_SHEET, min(100, tech_score),
                "; ".join(tech_reasons), brand=brand, rfq_number_hint=rfq_number
            )

        if rfq_score >= 10 or extension in DOCUMENT_EXTENSIONS:
            return ClassifiedAttachment(
                attachment, AttachmentCategory.RFQ, min(100, max(50, rfq_score)),
                "; ".join(rfq_reasons) or "standard document treated as RFQ",
                brand=brand, rfq_number_hint=rfq_number
            )

        return ClassifiedAttachment(
            attachment, AttachmentCategory.UNKNOWN, 30, "type not determined",
            brand=brand, rfq_number_hint=rfq_number
        )

    def find_matching_rfq(self, sheet: ClassifiedAttachment,
                          rfqs: List[ClassifiedAttachment]) -> Optional[ClassifiedAttachment]:
        """
        Find the RFQ attachment a technical sheet belongs to.

        Same detected brand wins, then the best filename token overlap,
        then the sole RFQ when there is only one.
        """
        if not rfqs:
            return None

        if sheet.brand:
            for rfq in rfqs:
                if rfq.brand == sheet.brand:
                    return rfq

        sheet_parts = filename_parts(sheet.filename)
        best, best_score = None, 0
        for rfq in rfqs:
            rfq_parts = set(filename_parts(rfq.filename))
            score = sum(len(part) for part in sheet_parts if part in rfq_parts and len(part) > 3)
            if score > 10 and score > best_score:
                best, best_score = rfq, score
        if best is not None:
            return best

        if len(rfqs) == 1:
            return rfqs[0]
        return None

    @staticmethod
    def group_by_brand(classified: List[ClassifiedAttachment]) -> Dict[str, List[ClassifiedAttachment]]:
        """Group attachments by detected brand, brandless ones under UNKNOWN."""
        groups: Dict[str, List[ClassifiedAttachment]] = OrderedDict()
        for item in classified:
            groups.setdefault(item.brand or 'UNKNOWN', []).append(item)
        return groups

    @staticmethod
    def all_same_brand(classified: List[ClassifiedAttachment]) -> bool:
        """True when every RFQ attachment with a detected brand shares the same one."""
        rfqs = [c for c in classified if c.category == AttachmentCategory.RFQ]
        if len(rfqs) <= 1:
            return True
        brands = {c.brand for c in rfqs if c.brand}
        if not brands:
            return True
        return len(brands) == 1


def classify_attachments(attachments: List[Attachment],
                         config: Optional[ExtractionConfig] = None) -> List[ClassifiedAttachment]:
    """
    Convenience function for attachment classification.

    Args:
        attachments: Attachments of one email
        config: Optional configuration snapshot

    Returns:
        Classified attachments
    """
    return AttachmentClassifier(config).classify(attachments)

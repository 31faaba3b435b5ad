"""
Image Extraction Module

Handles image attachments, which are usually photos of equipment nameplates.
Signature images are skipped; everything else is OCR'd directly (no
rasterization step) and searched for part number, model, serial number and
brand. Image-derived documents always need verification.
"""

import re
import logging
from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional

from extraction_config import ExtractionConfig, get_config
from extraction_schema import Attachment, ExtractedDocument, FormatKind, LineItem
from item_normalizer import collapse_whitespace, detect_brand
from line_item_engine import LineItemExtractionEngine
from ocr_fallback import OcrFallback
from signature_filter import SignatureFilter

logger = logging.getLogger(__name__)

PART_NUMBER_PATTERNS = [
    re.compile(r"P/N[:\s]*([A-Z0-9\-/][A-Z0-9\-/ \t]*)", re.IGNORECASE),
    re.compile(r"PART\s*(?:NO|NUMBER|#)?[:\s]*([A-Z0-9\-/][A-Z0-9\-/ \t]*)", re.IGNORECASE),
    re.compile(r"(\d{3}\s*\d{4})"),
    re.compile(r"REF[:\s]*([A-Z0-9\-/]+)", re.IGNORECASE),
]

MODEL_PATTERN = re.compile(r"MODEL[:\s]*([A-Z0-9.\-/]+)", re.IGNORECASE)

SERIAL_PATTERNS = [
    re.compile(r"SERIAL[:\s]*([A-Z0-9]+)", re.IGNORECASE),
    re.compile(r"S/N[:\s]*([A-Z0-9]+)", re.IGNORECASE),
    re.compile(r"\bSN[:\s]*([A-Z0-9]+)", re.IGNORECASE),
]

UNCONCLUSIVE_NOTE = "⚠️ OCR non concluant - vérification manuelle requise"


@dataclass
class NameplateInfo:
    """Fields read from an equipment nameplate."""
    part_number: Optional[str] = None
    model: Optional[str] = None
    serial: Optional[str] = None
    brand: Optional[str] = None
    description: Optional[str] = None
    equipment: Optional[str] = None

    @property
    def found(self) -> bool:
        return bool(self.part_number or self.model)


def extract_nameplate_info(ocr_text: str, filename: str, brands) -> NameplateInfo:
    """Parse nameplate fields from OCR text, using the filename for brand and equipment."""
    info = NameplateInfo()
    text = (ocr_text or "").upper()

    for pattern in PART_NUMBER_PATTERNS:
        match = pattern.search(text)
        if match:
            info.part_number = collapse_whitespace(match.group(1)) or None
            break

    model = MODEL_PATTERN.search(text)
    if model:
        info.model = model.group(1).strip()

    for pattern in SERIAL_PATTERNS:
        match = pattern.search(text)
        if match:
            info.serial = match.group(1).strip()
            break

    info.brand = detect_brand(text, brands) or detect_brand(filename, brands)
    if 'SPICER' in text or 'DANA' in text:
        info.brand = 'DANA SPICER'
        info.description = 'OFF-HIGHWAY COMPONENT'

    equipment = PurePath(filename).stem.upper() if '.' in filename else filename.upper()
    if equipment and equipment != info.brand:
        info.equipment = equipment
    return info


class ImageExtractor:
    """
    Nameplate-oriented image extractor.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None,
                 engine: Optional[LineItemExtractionEngine] = None,
                 ocr: Optional[OcrFallback] = None,
                 signature_filter: Optional[SignatureFilter] = None):
        self.config = config or get_config()
        self.engine = engine or LineItemExtractionEngine(self.config)
        self.ocr = ocr or OcrFallback(self.config)
        self.signature_filter = signature_filter or SignatureFilter(
            max_signature_bytes=self.config.signature_max_bytes
        )

    async def extract(self, attachment: Attachment) -> ExtractedDocument:
        """
        Extract an image attachment.

        Args:
            attachment: Image attachment

        Returns:
            A skipped_signature document without items, or an image_ocr
            document with exactly one item
        """
        filename = attachment.filename
        check = self.signature_filter.check(attachment)
        if check.is_signature:
            logger.info(f"Skipping {filename}: {check.reason}")
            return ExtractedDocument(
                filename=filename,
                format_kind=FormatKind.IMAGE,
                extraction_method="skipped_signature",
            )

        suffix = f".{attachment.extension}" if attachment.extension else ".png"
        attempt = await self.ocr.ocr_image(attachment.content, suffix)
        text = attempt.text or ""
        logger.info(f"{filename}: image OCR gave {len(text.strip())} chars")

        info = extract_nameplate_info(text, filename, self.config.nameplate_brands)
        if info.found:
            description = " - ".join(part for part in (info.brand, info.description) if part)
            if len(description) < self.config.min_description_length:
                identifier = info.part_number or info.model
                description = f"Pièce {info.brand} {identifier}" if info.brand else ""
            notes = [
                label for label in (
                    f"Model: {info.model}" if info.model else None,
                    f"S/N: {info.serial}" if info.serial else None,
                    f"Équipement: {info.equipment}" if info.equipment else None,
                ) if label
            ]
            item = LineItem(
                description=description or f"Pièce détachée (voir image: {filename})",
                quantity=1,
                unit='pcs',
                supplier_code=info.part_number,
                reference=info.part_number,
                brand=info.brand,
                notes=" | ".join(notes) or None,
            )
        else:
            item = LineItem(
                description=f"Pièce à identifier (voir image: {filename})",
                quantity=1,
                unit='pcs',
                is_estimated=True,
                notes=UNCONCLUSIVE_NOTE,
            )

        document = ExtractedDocument(
            filename=filename,
            format_kind=FormatKind.IMAGE,
            raw_text=text,
            items=[item],
            needs_verification=True,
            extraction_method="image_ocr",
        )
        return self.engine.finalize_document(document)

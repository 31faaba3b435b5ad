"""
Document Extraction Pipeline

This module is the entry point used by the request-processing side. It
classifies the attachments of a request email, dispatches each attachment to
the extractor for its format, extracts the email body, and assembles the
per-document outputs into one ExtractionResult.

Sibling attachments are extracted concurrently, bounded by max_concurrency.
A failure in one attachment is logged and turned into a placeholder document,
so it never aborts the others.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

from attachment_classifier import AttachmentClassifier
from email_body_extractor import EmailBodyExtractor
from excel_extractor import ExcelExtractor
from extraction_config import ExtractionConfig, get_config
from extraction_schema import (
    Attachment, ClassifiedAttachment, ExtractedDocument, ExtractionResult, FormatKind
)
from image_extractor import ImageExtractor
from line_item_engine import LineItemExtractionEngine
from ocr_fallback import OcrFallback
from pdf_extractor import PdfExtractor
from signature_filter import IMAGE_EXTENSIONS, SignatureFilter
from word_extractor import WordExtractor

logger = logging.getLogger(__name__)

EXTENSION_FORMATS = {
    'pdf': FormatKind.PDF,
    'xlsx': FormatKind.EXCEL,
    'xlsm': FormatKind.EXCEL,
    'xls': FormatKind.EXCEL,
    'csv': FormatKind.EXCEL,
    'docx': FormatKind.WORD,
    'doc': FormatKind.WORD,
}
EXTENSION_FORMATS.update({extension: FormatKind.IMAGE for extension in IMAGE_EXTENSIONS})

MIME_FORMATS = [
    ('application/pdf', FormatKind.PDF),
    ('spreadsheet', FormatKind.EXCEL),
    ('excel', FormatKind.EXCEL),
    ('text/csv', FormatKind.EXCEL),
    ('wordprocessing', FormatKind.WORD),
    ('msword', FormatKind.WORD),
    ('image/', FormatKind.IMAGE),
]


def detect_format(attachment: Attachment) -> Optional[FormatKind]:
    """Format of an attachment from its extension, then its MIME type."""
    kind = EXTENSION_FORMATS.get(attachment.extension)
    if kind is not None:
        return kind
    content_type = (attachment.content_type or "").lower()
    for marker, mime_kind in MIME_FORMATS:
        if marker in content_type:
            return mime_kind
    return None


class DocumentPipeline:
    """
    Classification, per-format extraction and result assembly for one request.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None,
                 engine: Optional[LineItemExtractionEngine] = None,
                 ocr: Optional[OcrFallback] = None,
                 extractors: Optional[Dict[FormatKind, object]] = None):
        """
        Initialize the pipeline.

        Args:
            config: Shared extraction configuration (process-wide default when None)
            engine: Line item engine shared by every extractor
            ocr: OCR fallback shared by the PDF and image extractors
            extractors: Per-format extractors overriding the defaults
        """
        self.config = config or get_config()
        self.engine = engine or LineItemExtractionEngine(self.config)
        self.ocr = ocr or OcrFallback(self.config)
        self.signature_filter = SignatureFilter(max_signature_bytes=self.config.signature_max_bytes)
        self.classifier = AttachmentClassifier(self.config, self.signature_filter)

        self.extractors = {
            FormatKind.PDF: PdfExtractor(self.config, self.engine, self.ocr),
            FormatKind.EXCEL: ExcelExtractor(self.config, self.engine),
            FormatKind.WORD: WordExtractor(self.config, self.engine),
            FormatKind.IMAGE: ImageExtractor(self.config, self.engine, self.ocr, self.signature_filter),
        }
        if extractors:
            self.extractors.update(extractors)
        self.email_extractor = EmailBodyExtractor(self.config, self.engine)

    def classify_attachments(self, attachments: List[Attachment]) -> List[ClassifiedAttachment]:
        return self.classifier.classify(attachments)

    @staticmethod
    def all_same_brand(classified: List[ClassifiedAttachment]) -> bool:
        return AttachmentClassifier.all_same_brand(classified)

    @staticmethod
    def group_by_brand(classified: List[ClassifiedAttachment]) -> Dict[str, List[ClassifiedAttachment]]:
        return AttachmentClassifier.group_by_brand(classified)

    async def extract_document(self, attachment: Attachment) -> ExtractedDocument:
        """
        Extract one attachment with the extractor for its format.

        Args:
            attachment: Attachment to extract

        Returns:
            ExtractedDocument; failures produce a "failed" placeholder document
        """
        start_time = time.time()
        kind = detect_format(attachment)
        logger.info(f"Extracting {attachment.filename} ({attachment.size} bytes) as "
                    f"{kind.value if kind else 'unknown format'}")

        try:
            if kind is None:
                raise ValueError(f"Unsupported attachment format: {attachment.filename} ({attachment.content_type})")
            document = await self.extractors[kind].extract(attachment)
        except Exception as e:
            logger.error(f"Extraction failed for {attachment.filename}: {e}")
            document = self.failed_document(attachment, kind)

        logger.info(f"{attachment.filename}: {len(document.items)} item(s) via {document.extraction_method} "
                    f"in {time.time() - start_time:.2f}s")
        return document

    async def extract_email_body(self, body: str, subject: str = "") -> ExtractedDocument:
        try:
            return await self.email_extractor.extract(body, subject)
        except Exception as e:
            logger.error(f"Email body extraction failed: {e}")
            document = ExtractedDocument(
                filename="email_body",
                format_kind=FormatKind.EMAIL,
                raw_text=body or "",
                needs_verification=True,
                extraction_method="failed",
            )
            return self.engine.finalize_document(document)

    async def extract_documents(self, attachments: List[Attachment]) -> List[ExtractedDocument]:
        """
        Extract sibling attachments concurrently, in input order.

        At most max_concurrency extractions run at once.
        """
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))

        async def bounded(attachment: Attachment) -> ExtractedDocument:
            async with semaphore:
                return await self.extract_document(attachment)

        return list(await asyncio.gather(*(bounded(attachment) for attachment in attachments)))

    async def process_request(self, attachments: List[Attachment], body: Optional[str] = None,
                              subject: str = "") -> ExtractionResult:
        """Extract every attachment (and the body when given) and assemble the result."""
        documents = await self.extract_documents(attachments)
        if body:
            documents.append(await self.extract_email_body(body, subject))
        return self.assemble(documents)

    def assemble(self, documents: List[ExtractedDocument]) -> ExtractionResult:
        """
        Merge per-document outputs.

        Items keep document order, the first reference number found wins, and
        the result needs manual review when any document needs verification.
        """
        result = ExtractionResult(documents=list(documents))
        for document in documents:
            result.items.extend(document.items)
            if result.rfq_number is None and document.rfq_number:
                result.rfq_number = document.rfq_number
        result.needs_manual_review = (
            any(document.needs_verification for document in documents)
            or any(item.needs_manual_review for item in result.items)
        )
        logger.info(f"Assembled {len(result.items)} item(s) from {len(documents)} document(s), "
                    f"rfq {result.rfq_number}, manual review: {result.needs_manual_review}")
        return result

    def failed_document(self, attachment: Attachment, kind: Optional[FormatKind]) -> ExtractedDocument:
        document = ExtractedDocument(
            filename=attachment.filename,
            format_kind=kind or FormatKind.PDF,
            needs_verification=True,
            extraction_method="failed",
        )
        return self.engine.finalize_document(document)

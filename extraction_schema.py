"""
Extraction Schema Module

This module defines the records exchanged by the extraction pipeline:
incoming attachments, their classification, positioned PDF tokens and rows,
extracted line items and the per-document extraction output. Records are
plain dataclasses created and consumed within one extraction call.
"""

import json
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Any, Optional


class FormatKind(Enum):
    """Source format of an extracted document."""
    PDF = "pdf"
    EXCEL = "excel"
    WORD = "word"
    EMAIL = "email"
    IMAGE = "image"


class AttachmentCategory(Enum):
    """Category assigned to an attachment by the classifier."""
    RFQ = "rfq"
    TECHNICAL_SHEET = "technical_sheet"
    IMAGE = "image"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Attachment:
    """Raw attachment bytes supplied by the mail-ingestion side."""
    filename: str
    content_type: str
    content: bytes
    size: Optional[int] = None

    def __post_init__(self):
        if self.size is None:
            object.__setattr__(self, "size", len(self.content))

    @property
    def extension(self) -> str:
        name = self.filename.lower()
        return name.rsplit(".", 1)[-1] if "." in name else ""


@dataclass
class ClassifiedAttachment:
    """Classification of one attachment."""
    attachment: Attachment
    category: AttachmentCategory
    confidence: int
    reason: str
    related_to: Optional[str] = None
    brand: Optional[str] = None
    rfq_number_hint: Optional[str] = None

    @property
    def filename(self) -> str:
        return self.attachment.filename


@dataclass
class LineItem:
    """One requested product/quantity row."""
    description: str
    quantity: float
    unit: str = "pcs"
    internal_code: Optional[str] = None
    supplier_code: Optional[str] = None
    brand: Optional[str] = None
    reference: Optional[str] = None
    original_line_number: Optional[int] = None
    is_estimated: bool = False
    needs_manual_review: bool = False
    notes: Optional[str] = None


@dataclass
class EmailMetadata:
    """Contact and scheduling details scanned from an email body."""
    deadline: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_role: Optional[str] = None
    is_urgent: bool = False


@dataclass
class ExtractedDocument:
    """Extraction output for one attachment or email body."""
    filename: str
    format_kind: FormatKind
    raw_text: str = ""
    items: List[LineItem] = field(default_factory=list)
    rfq_number: Optional[str] = None
    needs_verification: bool = False
    extraction_method: str = ""
    email_metadata: Optional[EmailMetadata] = None

    def to_dict(self) -> Dict[str, Any]:
        return _to_camel(asdict(self))


@dataclass(frozen=True)
class PdfToken:
    """A positioned run of text from the PDF text layer (y grows upwards)."""
    text: str
    x: float
    y: float
    width: float
    height: float
    page: int


@dataclass
class PdfRow:
    """Tokens clustered into one visual row and split into cells."""
    raw_text: str
    cells: List[str]
    page: int
    row_index_within_document: int
    y: float


@dataclass
class LayoutStats:
    """Aggregate statistics of a reconstructed layout."""
    total_pages: int = 0
    total_tokens: int = 0
    total_rows: int = 0
    avg_cells_per_row: float = 0.0
    median_gap_x: float = 0.0


@dataclass
class ExtractionResult:
    """Merged output of all documents of one request."""
    documents: List[ExtractedDocument] = field(default_factory=list)
    items: List[LineItem] = field(default_factory=list)
    rfq_number: Optional[str] = None
    needs_manual_review: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return _to_camel(asdict(self))

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def _camel_case(name: str) -> str:
    head, *tail = name.split("_")
    return head + "".join(part.capitalize() for part in tail)


def _to_camel(data: Any) -> Any:
    """
    Recursively convert dataclass dictionaries to the camelCase wire shape.

    None values are dropped, enums become their values and raw bytes are
    never serialized.
    """
    if isinstance(data, dict):
        converted = {}
        for key, value in data.items():
            if value is None or isinstance(value, bytes):
                continue
            converted[_camel_case(key)] = _to_camel(value)
        return converted
    if isinstance(data, list):
        return [_to_camel(item) for item in data if item is not None]
    if isinstance(data, Enum):
        return data.value
    return data

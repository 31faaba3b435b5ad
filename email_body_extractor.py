"""
Email Body Extraction Module

Extracts requested items and contact metadata from the plain-text body of a
request email. French request phrasing ("cotation de 2 unités", "appareil
dénommé ...") and a vocabulary of technical terms are tried first; when they
find nothing the generic line item cascade runs over the body. Items read
from an email body are always flagged for verification.
"""

import re
import logging
from dataclasses import dataclass
from typing import List, Optional

from extraction_config import ExtractionConfig, get_config
from extraction_schema import EmailMetadata, ExtractedDocument, FormatKind, LineItem
from line_item_engine import LineItemExtractionEngine

logger = logging.getLogger(__name__)

EMAIL_BODY_FILENAME = "email_body"

QUANTITY_PATTERNS = [
    re.compile(r"cotation\s+de\s+(\d+)\s+unit[ée]s?", re.IGNORECASE),
    re.compile(r"(\d+)\s+unit[ée]s?\s+de\s+ce", re.IGNORECASE),
    re.compile(r"commander\s+(\d+)\s+(?:unit[ée]s?|pi[èe]ces?|pcs)", re.IGNORECASE),
    re.compile(r"besoin\s+de\s+(\d+)\s+(?:unit[ée]s?|pi[èe]ces?)", re.IGNORECASE),
    re.compile(r"acqu[ée]rir\s+(\d+)\s+(?:unit[ée]s?|pi[èe]ces?)", re.IGNORECASE),
    re.compile(r"(\d+)\s+(?:unit[ée]s?|pi[èe]ces?|pcs)\s+(?:de|du|des)\b", re.IGNORECASE),
]

PRODUCT_PATTERNS = [
    re.compile(r"appareil\s+(?:d[ée]nomm[ée]|appel[ée])\s+([^.]+?)(?:\s+qui|\s+permet|\s+pour|,|\.|$)", re.IGNORECASE),
    re.compile(r"mat[ée]riel\s+(?:d[ée]nomm[ée]|appel[ée])\s+([^.]+?)(?:\s+qui|\s+permet|\s+pour|,|\.|$)", re.IGNORECASE),
    re.compile(r"(?:un|une|des)\s+([a-zéèàùâêîôûç\-]+(?:\s+(?:ou|/)\s+[a-zéèàùâêîôûç\-]+)?)\s+"
               r"(?:qui\s+permet|pour\s+mesurer|pour\s+le|servant)", re.IGNORECASE),
]

TECHNICAL_TERM_PATTERNS = [
    re.compile(pattern, re.IGNORECASE) for pattern in (
        r"compact[\-\s]?m[eè]tre",
        r"p[ée]n[ée]trom[eè]tre",
        r"manom[eè]tre",
        r"thermom[eè]tre",
        r"hygrom[eè]tre",
        r"d[ée]bitm[eè]tre",
        r"voltm[eè]tre",
        r"amp[eè]rem[eè]tre",
        r"analyseur\s+[a-zéèàù]+",
        r"capteur\s+[a-zéèàù]+",
        r"pompe\s+[a-zéèàù]+",
        r"moteur\s+[a-zéèàù]+",
        r"filtre\s+[a-zéèàù]+",
        r"vanne\s+[a-zéèàù]+",
    )
]

USAGE_PATTERN = re.compile(r"(?:qui\s+)?permet(?:tant)?\s+de\s+([^.]+)", re.IGNORECASE)

REQUEST_NOTES = [
    (re.compile(r"fiche\s+technique", re.IGNORECASE), "Fiche technique demandée"),
    (re.compile(r"d[ée]lai\s+de\s+livraison", re.IGNORECASE), "Délai de livraison à préciser"),
    (re.compile(r"urgent", re.IGNORECASE), "⚠️ URGENT"),
    (re.compile(r"certificat", re.IGNORECASE), "Certificat demandé"),
]

DEADLINE_PATTERNS = [
    re.compile(r"d[ée]lai\s+de\s+r[ée]ponse[:\s]+([^.\n]+)", re.IGNORECASE),
    re.compile(r"r[ée]ponse\s+avant\s+le[:\s]+([^.\n]+)", re.IGNORECASE),
    re.compile(r"date\s+limite[:\s]+([^.\n]+)", re.IGNORECASE),
    re.compile(r"deadline[:\s]+([^.\n]+)", re.IGNORECASE),
]

CONTACT_NAME_PATTERN = re.compile(
    r"(?:cordialement|cdlt|regards|salutations)[,.\s]*\n+([A-ZÉÈÀÙÂÊÎÔÛÇ][A-ZÉÈÀÙÂÊÎÔÛÇ \t]+)\n", re.IGNORECASE
)

ROLE_PATTERNS = [
    re.compile(r"(acheteur[\s\-]?(?:projet)?)", re.IGNORECASE),
    re.compile(r"(responsable\s+(?:achat|procurement|approvisionnement)[^\n]*)", re.IGNORECASE),
    re.compile(r"(buyer|procurement\s+(?:officer|manager)?)", re.IGNORECASE),
    re.compile(r"(chef\s+de\s+(?:projet|service)[^\n]*)", re.IGNORECASE),
]

CONTACT_PHONE_PATTERN = re.compile(r"(?:CEL|TEL|T[ée]l|Mobile|Phone|GSM)[.\s:]*([0-9\s\-.+]+)", re.IGNORECASE)

SUPPLIER_EMAIL_PATTERN = re.compile(r"[\w.-]+@[\w.-]+\.\w{2,}")
SUPPLIER_PHONE_PATTERN = re.compile(r"(?:\+\d{1,3}[\s.-]?)?\(?\d{2,4}\)?[\s.-]?\d{2,4}[\s.-]?\d{2,4}[\s.-]?\d{0,4}")
SUPPLIER_NAME_PATTERNS = [
    re.compile(r"\b(?:société|entreprise|company|ets|sarl|sas|sa|eurl|ltd|inc|corp)\b[ \t]*[:\-]?[ \t]*"
               r"([A-ZÀ-Ü][\wÀ-ü \t&'.,-]+)", re.IGNORECASE),
    re.compile(r"\b(?:fournisseur|vendeur|supplier|from)\b[ \t]*[:\-]?[ \t]*([A-ZÀ-Ü][\wÀ-ü \t&'.,-]+)", re.IGNORECASE),
]


@dataclass
class SupplierInfo:
    """Sender details found in a supplier's message."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


def extract_email_metadata(body: str) -> EmailMetadata:
    """Deadline, contact name/role/phone and urgency, each from an independent scan."""
    metadata = EmailMetadata(is_urgent=bool(re.search(r"urgent", body, re.IGNORECASE)))

    for pattern in DEADLINE_PATTERNS:
        match = pattern.search(body)
        if match:
            metadata.deadline = match.group(1).strip()
            break

    name = CONTACT_NAME_PATTERN.search(body)
    if name:
        metadata.contact_name = name.group(1).strip()

    for pattern in ROLE_PATTERNS:
        match = pattern.search(body)
        if match:
            metadata.contact_role = match.group(1).strip()
            break

    phone = CONTACT_PHONE_PATTERN.search(body)
    if phone:
        metadata.contact_phone = re.sub(r"\s+", " ", phone.group(1)).strip() or None

    return metadata


def extract_supplier_info(text: str) -> SupplierInfo:
    """Email address, phone number (8+ digits) and company name of a sender."""
    info = SupplierInfo()

    email = SUPPLIER_EMAIL_PATTERN.search(text)
    if email:
        info.email = email.group(0)

    phone = SUPPLIER_PHONE_PATTERN.search(text)
    if phone and len(re.sub(r"\D", "", phone.group(0))) >= 8:
        info.phone = phone.group(0).strip()

    for pattern in SUPPLIER_NAME_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1):
            info.name = match.group(1).strip()[:100]
            break

    return info


class EmailBodyExtractor:
    """
    Extractor for the body text of a request email.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None,
                 engine: Optional[LineItemExtractionEngine] = None):
        self.config = config or get_config()
        self.engine = engine or LineItemExtractionEngine(self.config)

    async def extract(self, body: str, subject: str = "") -> ExtractedDocument:
        return self.parse(body, subject)

    def parse(self, body: str, subject: str = "") -> ExtractedDocument:
        """
        Extract items and metadata from an email body.

        Args:
            body: Plain-text body
            subject: Email subject, also searched for the request reference

        Returns:
            ExtractedDocument of kind email, always needing verification
        """
        body = body or ""
        items = self.extract_request_items(body)
        if items:
            logger.info(f"Email body: {len(items)} item(s) from request phrasing")
        else:
            items = self.engine.extract_items(body)
            logger.info(f"Email body: {len(items)} item(s) from text cascade")

        document = ExtractedDocument(
            filename=EMAIL_BODY_FILENAME,
            format_kind=FormatKind.EMAIL,
            raw_text=body,
            items=items,
            rfq_number=self.engine.extract_rfq_number(f"{subject} {body}"),
            needs_verification=True,
            extraction_method="email_body",
            email_metadata=extract_email_metadata(body),
        )
        return self.engine.finalize_document(document)

    def extract_request_items(self, body: str) -> List[LineItem]:
        """Single item described by French request phrasing, or an empty list."""
        quantity = 1
        for pattern in QUANTITY_PATTERNS:
            match = pattern.search(body)
            if match:
                quantity = int(match.group(1))
                break

        product_name = ""
        for pattern in PRODUCT_PATTERNS:
            match = pattern.search(body)
            if match:
                product_name = match.group(1).strip()
                break

        terms: List[str] = []
        for pattern in TECHNICAL_TERM_PATTERNS:
            for match in pattern.finditer(body):
                term = match.group(0).upper()
                if term not in terms:
                    terms.append(term)

        description = " / ".join(terms) if terms else product_name.upper()
        if not description or quantity <= 0:
            return []

        usage = USAGE_PATTERN.search(body)
        if usage:
            description += f" ({usage.group(1).strip()})"

        notes = [label for pattern, label in REQUEST_NOTES if pattern.search(body)]
        item = LineItem(
            description=description,
            quantity=quantity,
            unit='pcs',
            notes=" | ".join(notes) or None,
            needs_manual_review=True,
        )
        return self.engine.refine_items([item])

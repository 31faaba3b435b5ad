"""
Line Item Normalization Module

Pure helpers shared by every extractor: unit normalization, quantity parsing
and plausibility checks, description cleanup, brand and supplier-code
detection, letterhead/email-header filters and client reference extraction.
None of these functions keep state between calls.
"""

import math
import re
import logging
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any, Iterable, List, Optional, Tuple

from extraction_config import DEFAULT_BRANDS

logger = logging.getLogger(__name__)

MAX_QUANTITY = 100000

UNIT_ALIASES = {
    'pcs': ('pcs', 'pc', 'pce', 'pces', 'piece', 'pieces', 'pièce', 'pièces',
            'ea', 'each', 'unit', 'units', 'unité', 'unités', 'unite', 'unites',
            'u', 'un', 'off', 'nos', 'no'),
    'kg': ('kg', 'kgs', 'kilo', 'kilos', 'kilogramme', 'kilogrammes'),
    'm': ('m', 'mtr', 'mtrs', 'ml', 'metre', 'metres', 'mètre', 'mètres', 'meter', 'meters'),
    'l': ('l', 'ltr', 'ltrs', 'litre', 'litres', 'liter', 'liters'),
    'lot': ('lot', 'lots'),
    'set': ('set', 'sets', 'kit', 'kits', 'jeu', 'jeux'),
    'box': ('box', 'boxes', 'boite', 'boites', 'boîte', 'boîtes', 'carton', 'cartons'),
    'roll': ('roll', 'rolls', 'rouleau', 'rouleaux'),
}

_UNIT_LOOKUP = {alias: unit for unit, aliases in UNIT_ALIASES.items() for alias in aliases}

CURRENCY_CODES = "USD|EUR|XOF"

EMAIL_METADATA_PATTERNS = [
    re.compile(r"^(From|To|Cc|Bcc|Subject|Sent|Date|Re:|Fwd:|De:|À:|Objet:)\s*:", re.IGNORECASE),
    re.compile(r"^(Monday|Tuesday|Wednesday|Thursday|Friday|Saturday|Sunday),?\s+\w+\s+\d{1,2},?\s+\d{4}", re.IGNORECASE),
    re.compile(r"^(Lundi|Mardi|Mercredi|Jeudi|Vendredi|Samedi|Dimanche),?\s+\d{1,2}\s+\w+\s+\d{4}", re.IGNORECASE),
    re.compile(r"^\s*(From|Sent|Subject|To|Cc)\s+", re.IGNORECASE),
    re.compile(r"\d{1,2}:\d{2}\s*(AM|PM)?\s*$", re.IGNORECASE),
]

COMPANY_HEADER_PATTERNS = [
    re.compile(r"\b(Capital\s+social|RCCM|RC\s*:|NIF|SIRET|SIREN)\b", re.IGNORECASE),
    re.compile(r"\b(Bon\s+de\s+commande|Purchase\s+Order)\b.*\b(Num[eé]ro|Number|No\.?)(?!\w)", re.IGNORECASE),
    re.compile(r"\bTEL/FAX\s*:", re.IGNORECASE),
    re.compile(r"\bBP\s+\d+\s+Abidjan", re.IGNORECASE),
    re.compile(r"\bC[oô]te\s+d['’]?Ivoire\b", re.IGNORECASE),
    re.compile(r"\bSoci[eé]t[eé]\s+de\s+Mines", re.IGNORECASE),
    re.compile(r"\bEndeavour\s+Mining\b.*\b(Si[eè]ge|rue|ancien)\b", re.IGNORECASE),
    re.compile(r"^\s*CIV\s*$", re.IGNORECASE),
]

RFQ_NUMBER_PATTERNS = [
    re.compile(r"Purchase\s+Requisitions?\s+No[:\s]*(\d+)", re.IGNORECASE),
    re.compile(r"PR[\s\-_]*(\d{6,})", re.IGNORECASE),
    re.compile(r"(?:RFQ|RFP|REF|N°|No\.|Référence|Reference|Demande)\s*[:\-#]?\s*([A-Z0-9][\w\-/]+)", re.IGNORECASE),
    re.compile(r"(?:Quotation|Quote|Devis)\s*(?:Request)?\s*[:\-#]?\s*([A-Z0-9][\w\-/]+)", re.IGNORECASE),
    re.compile(r"([A-Z]{2,4}[\-/]?\d{4,}[\-/]?\d{0,4})"),
]

SUPPLIER_CODE_PATTERNS = [
    re.compile(r"\b([A-Z]{2,}-[A-Z0-9\-]+)\b", re.IGNORECASE),          # HTM-56-4T, SKF-6205
    re.compile(r"\b([A-Z]{2,}\d+[A-Z0-9]*/[A-Z0-9]+)\b", re.IGNORECASE),  # AL105NXDC024R/R
    re.compile(r"\b(\d{3,}\s+\d{3,})\b"),                                 # 710 0321
    re.compile(r"\b([A-Z]{2,}\d{3,}[A-Z0-9\-]*)\b", re.IGNORECASE),      # SKF6205, HTM564T
]

SUPPLIER_CODE_STOPWORDS = {'USD', 'EUR', 'PCS', 'UNIT', 'TOTAL'}

FILENAME_REFERENCE_PATTERNS = [
    re.compile(r"\b(BI)[_\-]?(\d{4,})", re.IGNORECASE),
    re.compile(r"\b(PR)[_\-]?(\d{4,})", re.IGNORECASE),
    re.compile(r"\b(RFQ|REF)[_\-]?(\d{4,})", re.IGNORECASE),
    re.compile(r"[_\-](\d{5,})[_\-]"),
]

FILENAME_BRANDS = (
    'KOMATSU', 'CATERPILLAR', 'CAT', 'TEREX', 'VOLVO', 'HITACHI', 'LIEBHERR',
    'SANDVIK', 'EPIROC', 'METSO', 'ATLAS COPCO', 'JOHN DEERE', 'BELL',
)


@dataclass
class FilenameInfo:
    """Information recovered from an attachment filename alone."""
    reference: Optional[str] = None
    description: Optional[str] = None
    brand: Optional[str] = None


def normalize_unit(raw: Optional[str]) -> str:
    """
    Map a unit-of-measure token to the fixed vocabulary.

    Unknown or empty units fall back to "pcs".
    """
    if raw is None:
        return 'pcs'
    token = str(raw).strip().lower().rstrip('.')
    if not token:
        return 'pcs'
    if token in _UNIT_LOOKUP:
        return _UNIT_LOOKUP[token]
    if token.endswith('s') and token[:-1] in _UNIT_LOOKUP:
        return _UNIT_LOOKUP[token[:-1]]
    return 'pcs'


def parse_quantity(value: Any) -> Optional[float]:
    """
    Parse a quantity cell or regex capture into a number.

    Commas are treated as decimal separators and non-numeric characters are
    dropped ("25 M" -> 25.0). Returns None when nothing numeric remains.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        cleaned = re.sub(r"[^\d.]", "", str(value).replace(',', '.'))
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def is_valid_quantity(quantity: Optional[float], max_quantity: float = MAX_QUANTITY) -> bool:
    """Plausible quantities are finite and in (0, max_quantity]."""
    if quantity is None or isinstance(quantity, bool):
        return False
    try:
        return math.isfinite(quantity) and 0 < quantity <= max_quantity
    except TypeError:
        return False


def tidy_quantity(quantity: float) -> float:
    """Return whole numbers as int so that 5.0 serializes as 5."""
    if isinstance(quantity, float) and quantity.is_integer():
        return int(quantity)
    return quantity


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def strip_row_suffixes(description: str) -> str:
    """Remove GL/cost-code columns and trailing price columns from a table row."""
    description = re.sub(r"\s+1500\d+.*$", "", description, flags=re.IGNORECASE)
    description = re.sub(rf"\s+\d+\s+\d+\s*({CURRENCY_CODES}).*$", "", description, flags=re.IGNORECASE)
    description = re.sub(rf"\s+\d+\s+({CURRENCY_CODES}).*$", "", description, flags=re.IGNORECASE)
    description = re.sub(r"\s+0\s+0\s*$", "", description)
    return collapse_whitespace(description)


def clean_description(description: str) -> str:
    """
    Normalize a candidate description.

    Strips GL/cost codes, currency and amount suffixes, orphan zeros,
    collapses whitespace and collapses "X - X" self-repetition.
    """
    if not description:
        return ""
    text = strip_row_suffixes(description)
    text = re.sub(rf"\s+\d+(?:[.,]\d+)?\s*({CURRENCY_CODES})\b", "", text, flags=re.IGNORECASE)
    text = re.sub(rf"(^|\s)({CURRENCY_CODES})(?=\s|$)", " ", text, flags=re.IGNORECASE)
    text = collapse_whitespace(text)

    parts = text.split(' - ')
    if len(parts) == 2:
        first, second = parts[0].strip(), parts[1].strip()
        if first and (second.lower().startswith(first[:15].lower())
                      or first[:20].lower() == second[:20].lower()):
            text = first

    text = re.sub(r"\s+0+\s*$", "", text)
    return text.strip(" \t-–:;,|")


def detect_brand(text: Optional[str], brands: Iterable[str] = DEFAULT_BRANDS) -> Optional[str]:
    """Return the first vocabulary brand appearing as a whole word in text."""
    if not text:
        return None
    upper = text.upper()
    for brand in brands:
        if re.search(rf"(?<![A-Z0-9]){re.escape(brand.upper())}(?![A-Z0-9])", upper):
            return brand.upper()
    return None


def extract_supplier_code(description: Optional[str]) -> Optional[str]:
    """Find a manufacturer part number inside a description."""
    if not description:
        return None
    for pattern in SUPPLIER_CODE_PATTERNS:
        for match in pattern.finditer(description):
            code = match.group(1)
            if len(code) >= 5 and code.upper() not in SUPPLIER_CODE_STOPWORDS:
                return code
    return None


def is_email_metadata(text: str) -> bool:
    """True for mail header lines (From:, Sent:, dates, send times)."""
    return any(pattern.search(text) for pattern in EMAIL_METADATA_PATTERNS)


def is_company_header(text: str) -> bool:
    """True for letterhead/legal lines of the buyer's company."""
    return any(pattern.search(text) for pattern in COMPANY_HEADER_PATTERNS)


def extract_rfq_number(text: Optional[str]) -> Optional[str]:
    """
    Find the client's reference number in free text.

    Patterns are tried in priority order; a candidate must be at least four
    characters long and contain a digit.
    """
    if not text:
        return None
    for pattern in RFQ_NUMBER_PATTERNS:
        for match in pattern.finditer(text):
            candidate = match.group(1)
            if candidate and len(candidate) >= 4 and re.search(r"\d", candidate):
                return candidate
    return None


def extract_filename_info(filename: str, brands: Tuple[str, ...] = FILENAME_BRANDS) -> FilenameInfo:
    """Recover a reference, description and brand from a filename."""
    info = FilenameInfo()
    stem = PurePath(filename).stem if '.' in filename else filename

    for pattern in FILENAME_REFERENCE_PATTERNS:
        match = pattern.search(stem)
        if match:
            if match.lastindex and match.lastindex >= 2:
                info.reference = f"{match.group(1).upper()}-{match.group(2)}"
            else:
                info.reference = match.group(1)
            break

    description = re.sub(r"^(BI|PR|RFQ|REF)[_\-]?\d+[_\-]?", "", stem, flags=re.IGNORECASE)
    description = collapse_whitespace(re.sub(r"_+", " ", description))

    info.brand = detect_brand(description, brands)
    if len(description) > 5:
        info.description = description
    return info


def dedup_key(item_description: str, quantity: float, internal_code: Optional[str] = None) -> Tuple[Any, ...]:
    """Per-document uniqueness key: the internal code when present, else description + quantity."""
    if internal_code:
        return ('code', internal_code)
    return ('text', collapse_whitespace(item_description).lower(), float(quantity))


def split_lines(text: str) -> List[str]:
    return (text or "").replace('\r\n', '\n').replace('\r', '\n').split('\n')

"""
Line Item Extraction Engine

This module turns raw document text (optionally pre-split into rows and
cells by the layout reconstructor) into structured line items. Extraction is
an ordered cascade of strategy objects, most specific first:

1. Purchase Requisition tables, itself an ordered list of row parsers
2. Line-number driven positional parsing
3. Generic freeform line patterns

The cascade stops at the first strategy yielding items. Every result then
goes through the same post-processing: description cleanup, unit
normalization, brand and supplier-code enrichment, "Additional Description"
merge and validation of the line item invariants.
"""

import re
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from data_validator import DataValidator
from extraction_config import ExtractionConfig, get_config
from extraction_schema import ExtractedDocument, LineItem, PdfRow
from item_normalizer import (
    CURRENCY_CODES, clean_description, collapse_whitespace, detect_brand,
    extract_rfq_number, extract_supplier_code, is_company_header, is_email_metadata,
    is_valid_quantity, normalize_unit, parse_quantity, split_lines, strip_row_suffixes
)

logger = logging.getLogger(__name__)

PLACEHOLDER_DESCRIPTION = "Article à définir (aucun article détecté automatiquement)"
PLACEHOLDER_NOTE = "⚠️ Aucun article détecté - vérification manuelle requise"

PR_UNITS = ('EA', 'PCS', 'PC', 'KG', 'M', 'L', 'SET', 'UNIT', 'LOT', 'OFF', 'EACH')
_UNIT_ALTERNATION = "EA|PCS|PC|KG|M|L|SET|UNIT|LOT"

PR_DIRECT_ROW = re.compile(r"\b\d{1,2}\s+\d+\s+EA\s+\d{5,6}\s+[A-Z]", re.IGNORECASE)

# Row closed by a GL/cost-code column; tolerant of collapsed spacing between columns
GL_TERMINATED_ROW = re.compile(
    rf"(?<!\d)(\d{{1,3}})\s+(\d+)\s*({_UNIT_ALTERNATION})\s*(\d{{5,8}})\s*"
    rf"([A-Z][A-Z0-9 \t\-./&,()]*?)"
    rf"(?=[ \t]*1500\d+|[ \t]+\d+[ \t]+\d+[ \t]*(?:{CURRENCY_CODES})?|[ \t]*$)",
    re.IGNORECASE | re.MULTILINE,
)

PART_NUMBER_ROW = re.compile(
    r"\b(\d{1,2})\s+(\d+)\s+(EA|PCS|PC|KG|M|L|SET|UNIT)\s+(\d{3,}[ \t]+\d{3,}|\d{5,})[ \t]+([A-Z][A-Z \t]+)",
    re.IGNORECASE,
)

MULTILINE_ROW_START = re.compile(
    r"^\s*(\d{1,2})\s+(\d+)\s+(EA|PCS|PC|KG|M|L|SET|UNIT)\s+(\d{5,6})\s+(.+)", re.IGNORECASE
)

DIRECT_ITEM_CODE = re.compile(r"\b(\d{5,6})\s+([A-Z][A-Z0-9 \t\-./&,]+)", re.IGNORECASE)

CONTINUATION_STOP = re.compile(r"^(Additional|Total|Page|\d{1,3}\s+\d+\s+(EA|PCS))", re.IGNORECASE)
TABLE_HEADER_LINE = re.compile(r"^(Line|Quantity|UOM|Item|Sub|Activity|GL|Code|Cost|USD|EUR|XOF)", re.IGNORECASE)
CURRENCY_ONLY_LINE = re.compile(rf"^({CURRENCY_CODES}|\d+\s*({CURRENCY_CODES}))$", re.IGNORECASE)

ADDITIONAL_START = re.compile(r"^Additional\s*(Description)?", re.IGNORECASE)
ADDITIONAL_STOP = re.compile(r"^\s*Line\s+Quantity|^\s*\d{1,2}\s+\d+\s+(EA|PCS)|^Total\s+in", re.IGNORECASE)
SERIAL_PATTERN = re.compile(r"SERIAL\s*:\s*([A-Z0-9]+)", re.IGNORECASE)

FREEFORM_UNITS = r"pcs?|unités?|kg|m|l|pièces?|ea|each"


@dataclass
class ExtractionContext:
    """Input shared by all strategies for one document."""
    text: str
    rows: Optional[List[PdfRow]] = None
    lines: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.lines:
            self.lines = split_lines(self.text)


class ExtractionStrategy(ABC):
    """One way of recognising line items; returns an empty list when it does not match."""

    name = "strategy"

    @abstractmethod
    def extract(self, context: ExtractionContext) -> List[LineItem]:
        pass


def _is_noise(description: str) -> bool:
    return is_email_metadata(description) or is_company_header(description)


def _usable(items: List[LineItem], min_length: int = 5) -> List[LineItem]:
    """Pre-check used by row parsers to decide whether a tier produced anything."""
    return [
        item for item in items
        if is_valid_quantity(item.quantity) and len(item.description.strip()) >= min_length
        and not _is_noise(item.description)
    ]


def _continuation_text(line: str) -> Optional[str]:
    trimmed = line.strip()
    if TABLE_HEADER_LINE.match(trimmed):
        return None
    if len(trimmed) <= 3 or not re.match(r"^[A-Z]", trimmed, re.IGNORECASE):
        return None
    text = re.sub(rf"\s+({CURRENCY_CODES}).*$", "", trimmed, flags=re.IGNORECASE).strip()
    text = re.sub(r"\s+\d+\s*$", "", text).strip()
    return text if len(text) > 3 else None


def _append_unique(description: str, additions: List[str], prefix: int) -> str:
    for addition in additions:
        if addition.lower()[:prefix] not in description.lower():
            description += " " + addition
    return description


def _collapse_repetition(description: str) -> str:
    parts = description.split(' - ')
    if len(parts) == 2 and parts[0].lower()[:20] == parts[1].lower()[:20]:
        return parts[0].strip()
    return description


def _pr_unit(raw: str) -> str:
    return 'pcs' if raw.upper() == 'EA' else raw.lower()


class ColumnRowStrategy(ExtractionStrategy):
    """
    Purchase Requisition rows rebuilt from token coordinates.

    The first four atomic values (line, quantity, UOM, item code) may share a
    cell; the description is the next column, so trailing GL/cost columns
    never leak into it.
    """

    name = "pr_columns"

    def extract(self, context: ExtractionContext) -> List[LineItem]:
        rows = context.rows or []
        items: List[LineItem] = []
        current: Optional[LineItem] = None
        continuations: List[str] = []

        def close():
            if current is not None:
                current.description = _append_unique(current.description, continuations, 15)
                items.append(current)

        for row in rows:
            parsed = self._parse_row(row.cells)
            if parsed is not None:
                close()
                current, continuations = parsed, []
                continue
            if current is None:
                continue

            first = row.cells[0].strip() if row.cells else ""
            if not first or CONTINUATION_STOP.match(first):
                close()
                current, continuations = None, []
                continue
            if len(row.cells) <= 2:
                text = _continuation_text(first)
                if text:
                    continuations.append(text)
        close()
        return _usable(items)

    @staticmethod
    def _parse_row(cells: List[str]) -> Optional[LineItem]:
        head: List[str] = []
        remainder_cells: List[str] = []
        for index, cell in enumerate(cells):
            parts = cell.split()
            needed = 4 - len(head)
            head.extend(parts[:needed])
            if len(head) == 4:
                rest = " ".join(parts[needed:])
                remainder_cells = ([rest] if rest else []) + cells[index + 1:]
                break
        if len(head) < 4 or not remainder_cells:
            return None

        line_no, qty_raw, uom, code = head
        if not (line_no.isdigit() and 1 <= int(line_no) <= 999):
            return None
        if uom.upper() not in PR_UNITS or not re.fullmatch(r"\d{5,8}", code):
            return None
        quantity = parse_quantity(qty_raw)
        if not qty_raw.replace('.', '', 1).isdigit() or not is_valid_quantity(quantity):
            return None

        description = remainder_cells[0]
        supplier_code = None
        if re.fullmatch(r"[\d\s\-/]+", description) and len(remainder_cells) > 1:
            supplier_code = collapse_whitespace(description)
            description = remainder_cells[1]
        description = strip_row_suffixes(description)
        if not re.match(r"^[A-Z]", description, re.IGNORECASE):
            return None

        return LineItem(
            description=description,
            quantity=quantity,
            unit=_pr_unit(uom),
            internal_code=code,
            supplier_code=supplier_code.replace(" ", "") if supplier_code else None,
            reference=supplier_code,
            original_line_number=int(line_no),
        )


class GlTerminatedRowStrategy(ExtractionStrategy):
    """Single regex over the whole text, anchored on the GL/cost-code suffix of each row."""

    name = "pr_gl_terminated"

    def extract(self, context: ExtractionContext) -> List[LineItem]:
        text = context.text.replace('\r\n', '\n').replace('\r', '\n')
        found: List[Tuple[LineItem, int]] = []
        seen_codes = set()

        for match in GL_TERMINATED_ROW.finditer(text):
            line_no, qty_raw, uom, code, raw_description = match.groups()
            description = strip_row_suffixes(raw_description.strip())
            if _is_noise(description):
                logger.debug(f"Skipped metadata row: {description[:50]}")
                continue
            quantity = float(qty_raw)
            if not is_valid_quantity(quantity):
                logger.debug(f"Skipped implausible quantity {qty_raw}: {description[:50]}")
                continue
            if len(description) > 5 and code not in seen_codes:
                seen_codes.add(code)
                found.append((LineItem(
                    description=description,
                    quantity=quantity,
                    unit=_pr_unit(uom),
                    internal_code=code,
                    original_line_number=int(line_no),
                ), match.end()))

        items = []
        for item, end in found:
            continuations = []
            for line in text[end:].split('\n')[1:]:
                trimmed = line.strip()
                if not trimmed or CONTINUATION_STOP.match(trimmed):
                    break
                addition = _continuation_text(trimmed)
                if addition:
                    continuations.append(addition)
            item.description = _collapse_repetition(_append_unique(item.description, continuations, 15))
            items.append(item)
        return _usable(items)


class PartNumberRowStrategy(ExtractionStrategy):
    """Spaced row variant with a separate Part Number column (two-token codes allowed)."""

    name = "pr_part_number"

    def extract(self, context: ExtractionContext) -> List[LineItem]:
        if 'part number' not in context.text.lower():
            return []
        items = []
        for match in PART_NUMBER_ROW.finditer(context.text):
            _, qty_raw, uom, part_number, raw_description = match.groups()
            description = re.sub(r"\s+Max\s+Stock.*$", "", raw_description.strip(), flags=re.IGNORECASE).strip()
            part_number = collapse_whitespace(part_number)
            if len(description) > 3:
                items.append(LineItem(
                    description=description,
                    quantity=float(qty_raw),
                    unit=_pr_unit(uom),
                    supplier_code=part_number,
                    reference=part_number.replace(" ", ""),
                ))
        return _usable(items)


class MultilineRowStrategy(ExtractionStrategy):
    """
    Line-by-line state machine for layouts split over several lines.

    A row start opens an item; following non-header lines are appended as
    description continuations until the next row start or a terminator.
    """

    name = "pr_multiline"

    def extract(self, context: ExtractionContext) -> List[LineItem]:
        items: List[LineItem] = []
        current: Optional[LineItem] = None
        extra_lines: List[str] = []
        collecting = False

        def finalize():
            if current is None:
                return
            description = clean_description(_append_unique(current.description, extra_lines, 10))
            if len(description) >= 5:
                current.description = description
                items.append(current)

        for line in context.lines:
            trimmed = line.strip()
            match = MULTILINE_ROW_START.match(line)
            if match:
                finalize()
                line_no, qty_raw, uom, code, raw_description = match.groups()
                current = LineItem(
                    description=strip_row_suffixes(raw_description.strip()),
                    quantity=float(qty_raw),
                    unit=_pr_unit(uom),
                    internal_code=code,
                    original_line_number=int(line_no),
                )
                extra_lines = []
                collecting = True
                continue

            if not collecting or current is None:
                continue
            if (trimmed.startswith('Additional Description') or trimmed.startswith('Total in USD')
                    or trimmed.startswith('Page ')):
                collecting = False
                continue
            if not trimmed or TABLE_HEADER_LINE.match(trimmed) or CURRENCY_ONLY_LINE.match(trimmed):
                continue

            text_match = re.match(r"^([A-Z0-9][A-Z0-9\s\-./&,]+)", trimmed, re.IGNORECASE)
            if text_match and len(text_match.group(1)) > 3:
                addition = re.sub(r"\s+USD.*$", "", text_match.group(1).strip(), flags=re.IGNORECASE)
                addition = re.sub(r"\s+\d+\s*$", "", addition)
                if len(addition) > 3:
                    extra_lines.append(addition)

        finalize()
        return _usable(items)


class DirectItemCodeStrategy(ExtractionStrategy):
    """Last resort: any `<5-6 digit code> <description>` run; quantity defaults to 1."""

    name = "pr_direct_code"

    def extract(self, context: ExtractionContext) -> List[LineItem]:
        items: List[LineItem] = []
        codes = set()
        for line in context.lines:
            match = DIRECT_ITEM_CODE.search(line)
            if not match:
                continue
            code, description = match.group(1), match.group(2).strip()
            if code.startswith('1500') or re.match(r"^(USD|EUR|XOF|Total|Cost|Max)", description, re.IGNORECASE):
                continue
            description = re.sub(r"\s+1500\d+.*$", "", description, flags=re.IGNORECASE).strip()
            description = re.sub(rf"\s+\d+\s*({CURRENCY_CODES}).*$", "", description, flags=re.IGNORECASE).strip()
            description = re.sub(r"\s+0\s*$", "", description).strip()
            if len(description) > 5 and code not in codes:
                codes.add(code)
                items.append(LineItem(description=description, quantity=1, unit='pcs', internal_code=code))
        return _usable(items)


class PurchaseRequisitionStrategy(ExtractionStrategy):
    """Tabular Purchase Requisition detector with its ordered row parsers."""

    name = "purchase_requisition"

    def __init__(self, parsers: Optional[List[ExtractionStrategy]] = None):
        self.parsers = parsers or [
            ColumnRowStrategy(),
            GlTerminatedRowStrategy(),
            PartNumberRowStrategy(),
            MultilineRowStrategy(),
            DirectItemCodeStrategy(),
        ]
        self.last_parser: Optional[str] = None

    @staticmethod
    def applies(text: str) -> bool:
        lower = text.lower()
        return ('purchase requisition' in lower or 'item code' in lower or 'item description' in lower
                or PR_DIRECT_ROW.search(text) is not None)

    def extract(self, context: ExtractionContext) -> List[LineItem]:
        if not self.applies(context.text):
            return []
        logger.info("Purchase Requisition layout detected")
        for parser in self.parsers:
            items = parser.extract(context)
            if items:
                self.last_parser = parser.name
                logger.info(f"Purchase Requisition parser {parser.name}: {len(items)} item(s)")
                return items
        return []


class LineNumberStrategy(ExtractionStrategy):
    """
    Positional parser for rows starting with a table ordinal.

    `<line> <qty> <uom> [item code] [part number] <description>`; rows whose
    quantity or description fail validation are dropped.
    """

    name = "line_number"

    def extract(self, context: ExtractionContext) -> List[LineItem]:
        items = []
        for line in context.lines:
            raw = line.strip()
            if not re.match(r"^\d{1,3}\s+", raw):
                continue
            item = self.parse_row(raw)
            if item is not None:
                items.append(item)
        return _usable(items)

    @staticmethod
    def parse_row(raw: str) -> Optional[LineItem]:
        parts = raw.split()
        if len(parts) < 3 or not parts[0].isdigit():
            return None
        line_no = int(parts[0])
        if not 1 <= line_no <= 999:
            return None

        if not re.fullmatch(r"\d+(\.\d+)?", parts[1]):
            return None
        quantity = float(parts[1])
        if not is_valid_quantity(quantity):
            return None

        uom = parts[2]
        valid_uom = uom.upper() in PR_UNITS
        index = 3 if valid_uom else 2

        item_code = None
        if index < len(parts) and re.fullmatch(r"\d{5,8}", parts[index]):
            item_code = parts[index]
            index += 1

        part_number = None
        if (index + 1 < len(parts) and re.fullmatch(r"\d{3}", parts[index])
                and re.fullmatch(r"\d{4}", parts[index + 1])):
            part_number = f"{parts[index]} {parts[index + 1]}"
            index += 2
        elif index < len(parts) and re.search(r"[-/]", parts[index]):
            part_number = parts[index]
            index += 1
        elif index < len(parts) and re.match(r"^[A-Z]{1,3}\d+", parts[index], re.IGNORECASE):
            part_number = parts[index]
            index += 1

        description = strip_row_suffixes(" ".join(parts[index:]))
        if len(description) < 5:
            return None
        lower = description.lower()
        if 'total' in lower or lower.startswith('line') or lower.startswith('quantity'):
            return None

        return LineItem(
            description=description,
            quantity=quantity,
            unit=_pr_unit(uom) if valid_uom else 'pcs',
            internal_code=item_code,
            supplier_code=part_number.replace(" ", "") if part_number else None,
            reference=part_number or item_code,
            original_line_number=line_no,
        )


@dataclass
class FreeformPattern:
    """A line pattern with a function mapping its match to (reference, description, quantity, unit)."""
    regex: "re.Pattern"
    fields: Callable[["re.Match"], Tuple[Optional[str], str, str, Optional[str]]]
    description: str


FREEFORM_PATTERNS = [
    FreeformPattern(
        re.compile(rf"^([A-Z0-9][\w\-]+)\s*[-–:]\s*(.{{10,}}?)\s*[-–:]\s*(\d+(?:[.,]\d+)?)\s*({FREEFORM_UNITS})?", re.IGNORECASE),
        lambda m: (m.group(1), m.group(2), m.group(3), m.group(4)),
        "reference - description - quantity [unit]",
    ),
    FreeformPattern(
        re.compile(r"^(\d+(?:[.,]\d+)?)\s*[xX×]\s*(.{10,})"),
        lambda m: (None, m.group(2), m.group(1), None),
        "quantity x description",
    ),
    FreeformPattern(
        re.compile(rf"^(.{{10,}}?)\s*:\s*(\d+(?:[.,]\d+)?)\s*({FREEFORM_UNITS})?", re.IGNORECASE),
        lambda m: (None, m.group(1), m.group(2), m.group(3)),
        "description: quantity [unit]",
    ),
    FreeformPattern(
        re.compile(r"^\d+[.)]\s*(.{10,}?)\s*[-–:]\s*(\d+(?:[.,]\d+)?)\s*(pcs?|unités?)?", re.IGNORECASE),
        lambda m: (None, m.group(1), m.group(2), m.group(3)),
        "numbered line",
    ),
    FreeformPattern(
        re.compile(r"^[-•]\s*(.{10,}?)\s*[-–:]\s*(\d+(?:[.,]\d+)?)"),
        lambda m: (None, m.group(1), m.group(2), None),
        "bulleted line",
    ),
]


class FreeformPatternStrategy(ExtractionStrategy):
    """Generic line patterns for unstructured text, deduplicated by lower-cased description."""

    name = "freeform"

    def __init__(self, max_items: int = 100, patterns: Optional[List[FreeformPattern]] = None):
        self.max_items = max_items
        self.patterns = patterns or FREEFORM_PATTERNS

    def extract(self, context: ExtractionContext) -> List[LineItem]:
        items: List[LineItem] = []
        seen = set()
        for line in context.lines:
            trimmed = line.strip()
            if len(trimmed) < 10 or len(trimmed) > 500:
                continue
            for pattern in self.patterns:
                match = pattern.regex.match(trimmed)
                if not match:
                    continue
                reference, description, quantity_raw, unit = pattern.fields(match)
                description = (description or "").strip()
                quantity = parse_quantity(quantity_raw)
                if quantity is None or quantity <= 0:
                    quantity = 1
                if len(description) > 5 and description.lower() not in seen:
                    seen.add(description.lower())
                    items.append(LineItem(
                        description=description,
                        quantity=quantity,
                        unit=normalize_unit(unit),
                        reference=reference.strip() if reference else None,
                    ))
                    break
            if len(items) >= self.max_items:
                break
        return _usable(items[:self.max_items])


@dataclass
class AdditionalDescription:
    """Free text of an "Additional Description" block and what it names."""
    text: str
    brand: Optional[str] = None
    serial: Optional[str] = None


class LineItemExtractionEngine:
    """
    Runs the strategy cascade and the uniform post-processing.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None,
                 strategies: Optional[List[ExtractionStrategy]] = None,
                 validator: Optional[DataValidator] = None):
        """
        Initialize the engine.

        Args:
            config: Shared extraction configuration
            strategies: Ordered strategies (defaults to PR, line-number, freeform)
            validator: Line item validator
        """
        self.config = config or get_config()
        self.strategies = strategies or [
            PurchaseRequisitionStrategy(),
            LineNumberStrategy(),
            FreeformPatternStrategy(max_items=self.config.max_freeform_items),
        ]
        self.validator = validator or DataValidator(
            max_quantity=self.config.max_quantity,
            min_description_length=self.config.min_description_length,
        )

    def extract_items(self, text: str, rows: Optional[List[PdfRow]] = None) -> List[LineItem]:
        """
        Extract line items from document text.

        Args:
            text: Plain document text
            rows: Optional rows from the layout reconstructor

        Returns:
            Validated, deduplicated line items (possibly empty)
        """
        if not text or not text.strip():
            return []

        context = ExtractionContext(text=text, rows=rows)
        for strategy in self.strategies:
            try:
                candidates = strategy.extract(context)
            except re.error as e:
                logger.error(f"Strategy {strategy.name} has an invalid pattern: {e}")
                continue
            if not candidates:
                continue
            items = self.refine_items(candidates, text)
            if items:
                logger.info(f"Strategy {strategy.name} extracted {len(items)} item(s)")
                return items
        logger.info("No strategy produced line items")
        return []

    def extract_rfq_number(self, text: str) -> Optional[str]:
        return extract_rfq_number(text)

    def refine_items(self, items: List[LineItem], text: str = "") -> List[LineItem]:
        """
        Uniform post-processing and validation of candidate items.

        Args:
            items: Candidates from any strategy or extractor
            text: Source text, scanned for an "Additional Description" block

        Returns:
            Items satisfying the line item invariants
        """
        refined = []
        for item in items:
            description = clean_description(item.description)
            if not description or _is_noise(description):
                continue
            item.description = description
            item.unit = normalize_unit(item.unit)
            item.brand = item.brand or detect_brand(description, self.config.brands)
            item.supplier_code = item.supplier_code or extract_supplier_code(description)
            item.reference = item.reference or item.supplier_code or item.internal_code
            refined.append(item)

        additional = self.parse_additional_description(text) if text else None
        if additional is not None:
            self._merge_additional(refined, additional)

        accepted, report = self.validator.validate_items(refined)
        if report.warnings:
            logger.debug(f"Validation: {'; '.join(report.warnings)}")
        return accepted

    def parse_additional_description(self, text: str) -> Optional[AdditionalDescription]:
        """Collect the content of an "Additional Description" block, if the text has one."""
        found = False
        content: List[str] = []
        for line in split_lines(text):
            trimmed = line.strip()
            if ADDITIONAL_START.match(trimmed):
                found = True
                same_line = re.sub(r"^Additional\s*(Description)?[:\s]*", "", trimmed, flags=re.IGNORECASE).strip()
                if len(same_line) > 5 and not re.match(r"^HOD", same_line, re.IGNORECASE):
                    content.append(same_line)
                continue
            if not found:
                continue
            if ADDITIONAL_STOP.search(trimmed):
                break
            if not trimmed or re.match(r"^(HOD|signature|name\s*&)", trimmed, re.IGNORECASE):
                continue
            cleaned = re.sub(r"\s+HOD\s+name.*$", "", trimmed, flags=re.IGNORECASE).strip()
            cleaned = re.sub(r"\s+signature.*$", "", cleaned, flags=re.IGNORECASE).strip()
            if len(cleaned) > 3:
                content.append(cleaned)

        joined = collapse_whitespace(" ".join(content))
        if not joined:
            return None
        serial = SERIAL_PATTERN.search(joined)
        return AdditionalDescription(
            text=joined,
            brand=detect_brand(joined, self.config.brands),
            serial=serial.group(1) if serial else None,
        )

    @staticmethod
    def _merge_additional(items: List[LineItem], additional: AdditionalDescription):
        for item in items:
            if not item.brand and additional.brand:
                item.brand = additional.brand
            if not item.notes:
                item.notes = additional.text
            if additional.serial and additional.serial not in (item.notes or ""):
                item.notes = f"{item.notes} | S/N: {additional.serial}" if item.notes else f"S/N: {additional.serial}"

    def finalize(self, items: List[LineItem], needs_verification: bool,
                 filename: Optional[str] = None) -> List[LineItem]:
        """
        Apply the per-document item guarantees.

        An empty list is replaced by one placeholder item, and when the
        document needs verification every item is flagged for manual review.
        """
        if not items:
            logger.warning(f"No line items for {filename or 'document'}, using placeholder item")
            items = [self.placeholder_item(filename)]

        if needs_verification:
            for item in items:
                item.needs_manual_review = True
        return items

    def finalize_document(self, document: ExtractedDocument) -> ExtractedDocument:
        """Run finalize on a document; a placeholder always makes it need verification."""
        if not document.items:
            document.needs_verification = True
        document.items = self.finalize(document.items, document.needs_verification, document.filename)
        return document

    @staticmethod
    def placeholder_item(filename: Optional[str] = None) -> LineItem:
        notes = PLACEHOLDER_NOTE if not filename else f"{PLACEHOLDER_NOTE} ({filename})"
        return LineItem(
            description=PLACEHOLDER_DESCRIPTION,
            quantity=1,
            unit='pcs',
            is_estimated=True,
            needs_manual_review=True,
            notes=notes,
        )

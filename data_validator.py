"""
Line Item Validation Module

This module enforces the line item invariants on every candidate produced by
the extraction strategies: plausible quantity, non-trivial description and
per-document uniqueness. Candidates failing a check are dropped, never
corrected, and the reasons are collected in a ValidationResult.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple, Any

from extraction_schema import LineItem
from item_normalizer import (
    MAX_QUANTITY, collapse_whitespace, dedup_key, is_valid_quantity, tidy_quantity
)

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of validating a batch of candidate line items."""
    is_valid: bool
    total_candidates: int
    accepted: int
    rejected_quantity: int = 0
    rejected_description: int = 0
    duplicates: int = 0
    warnings: List[str] = field(default_factory=list)


class DataValidator:
    """
    Validator for extracted line items.
    """

    def __init__(self, max_quantity: float = MAX_QUANTITY, min_description_length: int = 5):
        """
        Initialize the validator.

        Args:
            max_quantity: Largest plausible quantity (larger values are table ordinals or codes)
            min_description_length: Shortest acceptable description after cleaning
        """
        self.max_quantity = max_quantity
        self.min_description_length = min_description_length

    def validate_items(self, items: List[LineItem],
                       seen: Optional[Set[Tuple[Any, ...]]] = None) -> Tuple[List[LineItem], ValidationResult]:
        """
        Keep only the candidates satisfying the line item invariants.

        Args:
            items: Candidate line items in extraction order
            seen: Dedup keys already emitted for the same document (updated in place)

        Returns:
            Tuple of accepted items and the validation report
        """
        seen = set() if seen is None else seen
        accepted: List[LineItem] = []
        result = ValidationResult(is_valid=True, total_candidates=len(items), accepted=0)

        for item in items:
            item.description = collapse_whitespace(item.description)

            if not is_valid_quantity(item.quantity, self.max_quantity):
                result.rejected_quantity += 1
                logger.debug(f"Rejected implausible quantity {item.quantity!r}: {item.description[:50]}")
                continue

            if len(item.description) < self.min_description_length:
                result.rejected_description += 1
                logger.debug(f"Rejected short description: {item.description!r}")
                continue

            item.quantity = tidy_quantity(item.quantity)
            key = dedup_key(item.description, item.quantity, item.internal_code)
            if key in seen:
                result.duplicates += 1
                continue
            seen.add(key)
            accepted.append(item)

        result.accepted = len(accepted)
        if result.total_candidates and not accepted:
            result.is_valid = False
            result.warnings.append("No candidate passed validation")
        if result.duplicates:
            result.warnings.append(f"{result.duplicates} duplicate item(s) removed")

        return accepted, result

"""
Tests for line item validation.
"""

from data_validator import DataValidator
from extraction_schema import LineItem


def test_invalid_candidates_are_dropped_not_corrected():
    items = [
        LineItem("RELAY OVERLOAD", 5.0),
        LineItem("FUSE HOLDER 32A", 0),
        LineItem("JOINT TORIQUE", 250000),
        LineItem("Kit", 1),
    ]
    accepted, report = DataValidator().validate_items(items)

    assert [item.description for item in accepted] == ["RELAY OVERLOAD"]
    assert isinstance(accepted[0].quantity, int)
    assert report.rejected_quantity == 2
    assert report.rejected_description == 1
    assert report.is_valid


def test_duplicates_across_calls_with_shared_keys():
    seen = set()
    validator = DataValidator()
    first, _ = validator.validate_items([LineItem("Filtre  à huile", 2)], seen)
    second, report = validator.validate_items([LineItem("filtre à huile", 2.0), LineItem("Filtre à air", 2)], seen)

    assert len(first) == 1
    assert [item.description for item in second] == ["Filtre à air"]
    assert report.duplicates == 1


def test_same_internal_code_is_a_duplicate():
    accepted, _ = DataValidator().validate_items([
        LineItem("RELAY OVERLOAD", 5, internal_code="201368"),
        LineItem("RELAY OVERLOAD THERMAL", 5, internal_code="201368"),
    ])
    assert len(accepted) == 1


def test_nothing_accepted_is_reported():
    accepted, report = DataValidator().validate_items([LineItem("Kit", 1)])
    assert accepted == []
    assert not report.is_valid
    assert report.warnings

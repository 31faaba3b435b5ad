"""
Tests for the line item normalization helpers.
"""

import math

from item_normalizer import (
    clean_description, dedup_key, detect_brand, extract_filename_info, extract_rfq_number,
    extract_supplier_code, is_company_header, is_email_metadata, is_valid_quantity,
    normalize_unit, parse_quantity, tidy_quantity
)


def test_normalize_unit_maps_aliases_to_vocabulary():
    assert normalize_unit("EA") == "pcs"
    assert normalize_unit("Each") == "pcs"
    assert normalize_unit("Pièces") == "pcs"
    assert normalize_unit("KGS") == "kg"
    assert normalize_unit("mtr") == "m"
    assert normalize_unit("Rolls") == "roll"
    assert normalize_unit("SET") == "set"


def test_normalize_unit_falls_back_to_pieces():
    assert normalize_unit(None) == "pcs"
    assert normalize_unit("") == "pcs"
    assert normalize_unit("widgets") == "pcs"


def test_parse_quantity():
    assert parse_quantity("25 M") == 25.0
    assert parse_quantity("1,5") == 1.5
    assert parse_quantity(3) == 3.0
    assert parse_quantity("abc") is None
    assert parse_quantity(None) is None


def test_quantity_plausibility_bounds():
    assert is_valid_quantity(1)
    assert is_valid_quantity(100000)
    assert not is_valid_quantity(100001)
    assert not is_valid_quantity(0)
    assert not is_valid_quantity(-2)
    assert not is_valid_quantity(None)
    assert not is_valid_quantity(math.nan)


def test_tidy_quantity_returns_whole_numbers_as_int():
    assert tidy_quantity(5.0) == 5 and isinstance(tidy_quantity(5.0), int)
    assert tidy_quantity(2.5) == 2.5


def test_clean_description_strips_gl_code_and_zero_columns():
    assert clean_description("RELAY OVERLOAD 1500405 0 0") == "RELAY OVERLOAD"


def test_clean_description_strips_amount_and_currency():
    assert clean_description("FILTRE HUILE MOTEUR 25 USD") == "FILTRE HUILE MOTEUR"


def test_clean_description_collapses_self_repetition():
    assert clean_description("POMPE A EAU  -  POMPE A EAU") == "POMPE A EAU"


def test_detect_brand_matches_whole_words_only():
    assert detect_brand("Roulement SKF 6205 2RS") == "SKF"
    assert detect_brand("Filtre à air pour CATERPILLAR 966H") == "CATERPILLAR"
    assert detect_brand("LOCATION DE MATERIEL") is None
    assert detect_brand("") is None


def test_extract_supplier_code():
    assert extract_supplier_code("VANNE HTM-56-4T DN50") == "HTM-56-4T"
    assert extract_supplier_code("JOINT TORIQUE") is None


def test_extract_rfq_number():
    assert extract_rfq_number("Purchase Requisition No: 123456\nItem Code") == "123456"
    assert extract_rfq_number("Merci de coter la demande PR-4500123") == "4500123"
    assert extract_rfq_number("Demande de prix") is None


def test_email_metadata_and_letterhead_filters():
    assert is_email_metadata("From: buyer@mine.ci")
    assert is_email_metadata("Sent: Monday, March 4, 2024 10:15 AM")
    assert not is_email_metadata("ROULEMENT A BILLES 6205")
    assert is_company_header("RCCM: CI-ABJ-2010-B-1234")
    assert not is_company_header("POMPE HYDRAULIQUE")


def test_extract_filename_info():
    info = extract_filename_info("BI-19716_POMPE_HYDRAULIQUE_KOMATSU.pdf")
    assert info.reference == "BI-19716"
    assert info.description == "POMPE HYDRAULIQUE KOMATSU"
    assert info.brand == "KOMATSU"


def test_extract_filename_info_without_reference():
    info = extract_filename_info("scan.pdf")
    assert info.reference is None
    assert info.description is None


def test_dedup_key_prefers_internal_code():
    assert dedup_key("Relay", 5, "201368") == ("code", "201368")
    assert dedup_key("Relay  Overload", 5) == dedup_key("relay overload", 5.0)

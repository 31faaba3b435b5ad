"""
Tests for configuration loading.
"""

from pathlib import Path

from extraction_config import ConfigurationManager, ExtractionConfig


def test_bundled_config_matches_defaults():
    bundled = Path(__file__).parent / "config"
    assert ConfigurationManager(bundled, environ={}).load() == ExtractionConfig()


def test_yaml_sections_and_environment_overrides(tmp_path):
    config_file = tmp_path / "extraction.yaml"
    config_file.write_text(
        "ocr:\n"
        "  ocr_dpi: 200\n"
        "  ocr_rotations: [0, 180]\n"
        "max_concurrency: 2\n"
        "bogus_key: 1\n",
        encoding="utf-8",
    )
    environ = {
        "RFQ_EXTRACTION_OCR_DPI": "150",
        "RFQ_EXTRACTION_LAYOUT_DYNAMIC_GAP": "false",
        "RFQ_EXTRACTION_BRANDS": "SKF, PARKER",
        "HOME": "/root",
    }

    config = ConfigurationManager(config_file, environ=environ).load()

    assert config.ocr_dpi == 150
    assert config.ocr_rotations == (0, 180)
    assert config.max_concurrency == 2
    assert config.layout_dynamic_gap is False
    assert config.brands == ("SKF", "PARKER")
    assert not hasattr(config, "bogus_key")


def test_invalid_values_are_ignored(tmp_path):
    environ = {"RFQ_EXTRACTION_MIN_TEXT_CHARS": "plenty"}
    config = ConfigurationManager(tmp_path / "missing", environ=environ).load()
    assert config.min_text_chars == ExtractionConfig().min_text_chars


def test_malformed_file_falls_back_to_defaults(tmp_path):
    config_file = tmp_path / "extraction.yaml"
    config_file.write_text("- just\n- a list\n", encoding="utf-8")
    environ = {"RFQ_EXTRACTION_MAX_OCR_PAGES": "3"}

    config = ConfigurationManager(config_file, environ=environ).load()

    assert config.ocr_dpi == 300
    assert config.max_ocr_pages == 3


def test_config_property_is_cached(tmp_path):
    manager = ConfigurationManager(tmp_path, environ={})
    assert manager.config is manager.config

"""
Extraction Configuration Module

This module holds the read-only configuration shared by every extractor:
OCR settings, text-yield thresholds, layout reconstruction tuning and the
keyword/brand vocabularies. Values come from built-in defaults, optionally
overridden by YAML files in the ``config`` directory and by environment
variables prefixed with ``RFQ_EXTRACTION_``.
"""

import os
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Any, Optional, Tuple, Union

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "RFQ_EXTRACTION_"

DEFAULT_BRANDS = (
    # Heavy equipment
    'TEREX', 'CATERPILLAR', 'CAT', 'KOMATSU', 'HITACHI', 'VOLVO', 'LIEBHERR',
    'SANDVIK', 'EPIROC', 'METSO', 'ATLAS COPCO', 'JOHN DEERE', 'BELL',
    # Bearings
    'SKF', 'FAG', 'NSK', 'NTN', 'TIMKEN', 'INA', 'KOYO',
    # Electrical
    'SIEMENS', 'ABB', 'SCHNEIDER', 'ALLEN BRADLEY', 'ROCKWELL', 'OMRON',
    # Hydraulics
    'PARKER', 'REXROTH', 'BOSCH', 'FESTO', 'SMC', 'EATON', 'VICKERS',
    # Transmission
    'DANA', 'CARRARO', 'ZF', 'CLARK', 'ALLISON', 'SPICER',
    # Engines and filtration
    'CUMMINS', 'PERKINS', 'DEUTZ', 'SCANIA', 'MAN', 'MERCEDES',
    'GATES', 'DONALDSON', 'FLEETGUARD', 'MANN', 'HENGST',
    # Other
    'HTM', 'FLUKE', '3M', 'LOCTITE',
)

DEFAULT_NAMEPLATE_BRANDS = (
    'SPICER', 'DANA', 'CATERPILLAR', 'KOMATSU', 'VOLVO', 'LIEBHERR', 'TEREX',
    'SANDVIK', 'EPIROC', 'ATLAS COPCO', 'CUMMINS', 'PERKINS', 'DEUTZ', 'ZF',
    'ALLISON', 'CARRARO', 'CLARK', 'PARKER', 'REXROTH', 'EATON', 'SIEMENS',
    'ABB', 'SKF', 'TIMKEN',
)

DEFAULT_TECHNICAL_KEYWORDS = (
    'fiche technique', 'fiche_technique', 'fiche-technique', 'fichetechnique',
    'datasheet', 'data_sheet', 'data-sheet', 'specification', 'spécification',
    'spec', 'technical', 'technique', 'catalogue', 'catalog', 'documentation',
    'doc', 'brochure', 'manuel', 'manual', 'notice', 'plan', 'drawing',
    'dessin', 'schema', 'schéma', '_ft_', '-ft-', '_ft.', '-ft.', '_ds_',
    '-ds-', '_ds.', '-ds.', '_tech_', '-tech-',
)

DEFAULT_RFQ_KEYWORDS = (
    'rfq', 'rfi', 'rfp', 'demande', 'request', 'quotation', 'quote',
    'requisition', 'pr-', 'pr_', 'commande', 'order', 'bi_', 'bi-', 'devis',
    'cotation', 'achat', 'purchase',
)


@dataclass(frozen=True)
class ExtractionConfig:
    """Immutable configuration snapshot passed by reference to every extractor."""
    # OCR
    ocr_languages: str = "fra+eng"
    ocr_dpi: int = 300
    ocr_psm: int = 6
    min_chars_per_page: int = 40
    max_ocr_pages: int = 10
    ocr_good_score: int = 50
    ocr_rotations: Tuple[int, ...] = (0, 90, 270, 180)

    # Text tiers
    min_text_chars: int = 50
    min_ocr_chars: int = 20

    # External process timeouts (seconds)
    text_tool_timeout: float = 30.0
    rasterizer_timeout: float = 60.0
    ocr_timeout: float = 60.0

    # Layout reconstruction
    layout_y_tolerance: float = 3.0
    layout_min_gap: float = 10.0
    layout_dynamic_gap: bool = True
    layout_gap_multiplier: float = 1.8

    # Line item engine
    max_freeform_items: int = 100
    max_quantity: float = 100000
    min_description_length: int = 5

    # Attachment classification
    signature_max_bytes: int = 10000
    small_pdf_bytes: int = 50000

    # Concurrency
    max_concurrency: int = 4

    # Vocabularies
    brands: Tuple[str, ...] = DEFAULT_BRANDS
    nameplate_brands: Tuple[str, ...] = DEFAULT_NAMEPLATE_BRANDS
    technical_keywords: Tuple[str, ...] = DEFAULT_TECHNICAL_KEYWORDS
    rfq_keywords: Tuple[str, ...] = DEFAULT_RFQ_KEYWORDS


class ConfigurationManager:
    """Loads the extraction configuration from YAML files and the environment."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None,
                 environ: Optional[Dict[str, str]] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: YAML file or directory of YAML files (defaults to ./config beside this module)
            environ: Environment mapping used for overrides (defaults to os.environ)
        """
        self.config_path = Path(config_path) if config_path else Path(__file__).parent / "config"
        self.environ = os.environ if environ is None else environ
        self._field_types = {f.name: f.type for f in fields(ExtractionConfig)}
        self._config: Optional[ExtractionConfig] = None

    @property
    def config(self) -> ExtractionConfig:
        if self._config is None:
            self._config = self.load()
        return self._config

    def load(self) -> ExtractionConfig:
        """Build a configuration snapshot from defaults, YAML files and environment."""
        overrides: Dict[str, Any] = {}
        try:
            overrides.update(self._load_from_files(self.config_path))
        except Exception as e:
            logger.warning(f"Failed to load configuration from {self.config_path}: {e}. Using defaults.")
            overrides = {}

        overrides.update(self._load_from_environment())

        config = ExtractionConfig()
        if overrides:
            config = replace(config, **overrides)
        logger.debug(f"Extraction configuration loaded with overrides: {sorted(overrides)}")
        return config

    def _load_from_files(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}

        files = [path] if path.is_file() else sorted(path.glob("*.yaml")) + sorted(path.glob("*.yml"))
        values: Dict[str, Any] = {}
        for config_file in files:
            with open(config_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError(f"Configuration file {config_file} must contain a mapping")
            for key, value in self._flatten(data).items():
                coerced = self._coerce(key, value)
                if coerced is not None:
                    values[key] = coerced
            logger.info(f"Loaded extraction config from {config_file}")
        return values

    def _load_from_environment(self) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for name, raw in self.environ.items():
            if not name.startswith(ENV_PREFIX):
                continue
            key = name[len(ENV_PREFIX):].lower()
            coerced = self._coerce(key, raw)
            if coerced is not None:
                values[key] = coerced
        return values

    def _flatten(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Allow grouped sections (ocr:, layout:, ...) as well as flat keys."""
        flat = {}
        for key, value in data.items():
            if isinstance(value, dict) and key not in self._field_types:
                flat.update(value)
            else:
                flat[key] = value
        return flat

    def _coerce(self, key: str, value: Any) -> Any:
        field_type = self._field_types.get(key)
        if field_type is None:
            logger.warning(f"Ignoring unknown configuration key: {key}")
            return None

        type_name = field_type if isinstance(field_type, str) else getattr(field_type, "__name__", str(field_type))
        try:
            if "Tuple" in str(type_name) or "tuple" in str(type_name):
                items = value.split(",") if isinstance(value, str) else list(value)
                if key == "ocr_rotations":
                    return tuple(int(str(item).strip()) for item in items)
                return tuple(str(item).strip() for item in items if str(item).strip())
            if type_name == "bool":
                if isinstance(value, str):
                    return value.strip().lower() in ("1", "true", "yes", "on")
                return bool(value)
            if type_name == "int":
                return int(value)
            if type_name == "float":
                return float(value)
            return str(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Invalid value for configuration key {key}: {value!r} ({e})")
            return None


_default_manager: Optional[ConfigurationManager] = None


def get_config() -> ExtractionConfig:
    """Return the process-wide configuration snapshot."""
    global _default_manager
    if _default_manager is None:
        _default_manager = ConfigurationManager()
    return _default_manager.config

"""YAML config loading with env var expansion."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import DocBridgeConfig

logger = logging.getLogger(__name__)

PROJECT_CONFIG = "docbridge.yaml"
_ENV_REF = re.compile(r"\$\{(\w+)\}")


def config_candidates(cli_path: str | None = None) -> list[Path]:
    """Files consulted in priority order: explicit, project-local, user-global."""
    candidates = [Path(PROJECT_CONFIG), Path.home() / ".docbridge" / "config.yaml"]
    if cli_path:
        candidates.insert(0, Path(cli_path).expanduser())
    return candidates


def load_config(cli_path: str | None = None) -> DocBridgeConfig:
    """Return the first non-empty config file's settings, or the defaults.

    An explicit ``cli_path`` that does not exist is an error rather than a
    silent fall-through. Raises ValueError naming the file for bad YAML or
    values that fail validation.
    """
    if cli_path and not Path(cli_path).expanduser().is_file():
        raise ValueError(f"Config file not found: {cli_path}")

    for path in config_candidates(cli_path):
        if not path.is_file():
            continue
        raw = _read_yaml(path)
        if raw is None:
            continue
        if not isinstance(raw, dict):
            raise ValueError(f"Invalid config in {path}: top level must be a mapping")
        try:
            config = DocBridgeConfig.model_validate(_expand_env_vars(raw))
        except ValidationError as e:
            raise ValueError(f"Invalid config in {path}: {e}") from e
        logger.debug("loaded config from %s", path)
        return config

    return DocBridgeConfig()


def _read_yaml(path: Path) -> object:
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e


def _expand_env_vars(obj: object) -> object:
    """Replace ${VAR} with its environment value (empty when unset), recursively."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    if isinstance(obj, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), obj)
    return obj


# Default YAML template for `docbridge config init`
DEFAULT_CONFIG_TEMPLATE = """\
# docbridge.yaml

# Worker pool for background conversions
engine:
  max_workers: 4

# Markdown output
markdown:
  list_indent: 2               # spaces per nested list level (2-5)
  pad_tables: false            # width-pad table columns

# Images found on import / referenced on export
images:
  mode: "embed"                # embed | extract | drop
  # base_dir: "."              # resolves relative image paths on export
  # extract_dir: "./media"     # where extract mode writes image files
  max_width_in: 6.0

# Word-processor (.docx)
docx:
  code_font: "Courier New"
  max_list_depth: 3

# Spreadsheet (.xlsx)
xlsx:
  coerce_values: true          # "36" -> 36, "TRUE" -> True on export
  header_bold: true

# Presentation (.pptx)
pptx:
  include_notes: false         # import speaker notes as blockquotes
  code_font: "Courier New"

# Fixed-layout (.pdf)
pdf:
  page_size: "a4"              # a4 | letter
  margin_pt: 56
  body_font_size: 11
  h1_ratio: 1.8                # heading detection thresholds on import
  h2_ratio: 1.4
  h3_ratio: 1.15
  max_heading_chars: 120
  # font_file: "/path/to/font.ttf"

# Logging
log_level: "info"              # debug | info | warn | error
log_format: "text"             # text | json
"""

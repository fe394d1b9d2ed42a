"""Tests for docbridge.config — models and YAML loader."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from pydantic import ValidationError

from docbridge.config.loader import (
    DEFAULT_CONFIG_TEMPLATE,
    _expand_env_vars,
    config_candidates,
    load_config,
)
from docbridge.config.models import (
    DocBridgeConfig,
    DocxConfig,
    ImageConfig,
    MarkdownConfig,
    PdfConfig,
    XlsxConfig,
)


# ── DocBridgeConfig defaults ────────────────────────────────────────


class TestDocBridgeConfigDefaults:
    def test_default_log_level(self, sample_config):
        assert sample_config.log_level == "info"

    def test_default_log_format(self, sample_config):
        assert sample_config.log_format == "text"

    def test_default_workers(self, sample_config):
        assert sample_config.engine.max_workers == 4

    def test_default_markdown(self, sample_config):
        assert sample_config.markdown.list_indent == 2
        assert sample_config.markdown.pad_tables is False

    def test_default_image_mode(self, sample_config):
        assert sample_config.images.mode == "embed"
        assert sample_config.images.base_dir is None

    def test_notes_excluded_by_default(self, sample_config):
        assert sample_config.pptx.include_notes is False

    def test_template_matches_defaults(self):
        assert DocBridgeConfig(**yaml.safe_load(DEFAULT_CONFIG_TEMPLATE)) == DocBridgeConfig()


# ── Individual config model validations ─────────────────────────────


class TestMarkdownConfig:
    def test_indent_bounds(self):
        with pytest.raises(ValidationError):
            MarkdownConfig(list_indent=1)
        assert MarkdownConfig(list_indent=4).list_indent == 4

    def test_indent_that_would_open_code_block_rejected(self):
        with pytest.raises(ValidationError):
            MarkdownConfig(list_indent=6)
        assert MarkdownConfig(list_indent=5).list_indent == 5


class TestImageConfig:
    def test_invalid_mode_rejected(self):
        with pytest.raises(ValidationError):
            ImageConfig(mode="link")

    def test_width_must_be_positive(self):
        with pytest.raises(ValidationError):
            ImageConfig(max_width_in=0)


class TestDocxConfig:
    def test_defaults(self):
        cfg = DocxConfig()
        assert cfg.code_font == "Courier New"
        assert cfg.max_list_depth == 3

    def test_depth_limited_to_builtin_styles(self):
        with pytest.raises(ValidationError):
            DocxConfig(max_list_depth=4)


class TestXlsxConfig:
    def test_defaults(self):
        cfg = XlsxConfig()
        assert cfg.coerce_values is True
        assert cfg.header_bold is True


class TestPdfConfig:
    def test_defaults(self):
        cfg = PdfConfig()
        assert cfg.page_size == "a4"
        assert cfg.body_font_size == 11.0
        assert (cfg.h1_ratio, cfg.h2_ratio, cfg.h3_ratio) == (1.8, 1.4, 1.15)
        assert cfg.font_file is None

    def test_invalid_page_size(self):
        with pytest.raises(ValidationError):
            PdfConfig(page_size="a3")

    def test_ratio_must_exceed_one(self):
        with pytest.raises(ValidationError):
            PdfConfig(h3_ratio=1.0)


def test_invalid_log_level_rejected():
    with pytest.raises(ValidationError):
        DocBridgeConfig(log_level="trace")


# ── env var expansion ───────────────────────────────────────────────


class TestExpandEnvVars:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("${MEDIA_ROOT}", "/srv/media"),
            ("${MEDIA_ROOT}/extracted", "/srv/media/extracted"),
            ("${DOCBRIDGE_UNSET}", ""),
            ("prefix-${DOCBRIDGE_UNSET}-suffix", "prefix--suffix"),
            ("no references", "no references"),
            ("$MEDIA_ROOT", "$MEDIA_ROOT"),
        ],
    )
    def test_string_values(self, raw, expected):
        with patch.dict(os.environ, {"MEDIA_ROOT": "/srv/media"}, clear=True):
            assert _expand_env_vars(raw) == expected

    def test_walks_sections_and_lists(self):
        raw = {"images": {"extract_dir": "${MEDIA_ROOT}"}, "extra": ["${FONT}", "plain"]}
        with patch.dict(os.environ, {"MEDIA_ROOT": "/m", "FONT": "mono.ttf"}):
            assert _expand_env_vars(raw) == {
                "images": {"extract_dir": "/m"},
                "extra": ["mono.ttf", "plain"],
            }

    @pytest.mark.parametrize("value", [4, 1.15, False, None])
    def test_scalars_untouched(self, value):
        assert _expand_env_vars(value) is value


# ── load_config ─────────────────────────────────────────────────────


class TestLoadConfig:
    @pytest.fixture(autouse=True)
    def _isolate(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr("pathlib.Path.home", lambda: tmp_path / "fakehome")

    def test_returns_defaults_when_no_file_exists(self):
        assert load_config() == DocBridgeConfig()

    def test_loads_valid_yaml(self, tmp_path):
        (tmp_path / "docbridge.yaml").write_text(
            "pdf:\n  page_size: letter\nimages:\n  mode: extract\nlog_level: debug\n"
        )
        config = load_config()
        assert config.pdf.page_size == "letter"
        assert config.images.mode == "extract"
        assert config.log_level == "debug"

    def test_raises_on_invalid_yaml(self, tmp_path):
        (tmp_path / "docbridge.yaml").write_text("  bad:\nyaml: [unterminated")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config()

    def test_raises_on_invalid_config_values(self, tmp_path):
        (tmp_path / "docbridge.yaml").write_text("engine:\n  max_workers: 0\n")
        with pytest.raises(ValueError, match="Invalid config"):
            load_config()

    def test_cli_path_takes_priority(self, tmp_path):
        (tmp_path / "docbridge.yaml").write_text("pdf:\n  page_size: letter\n")
        cli_file = tmp_path / "custom.yaml"
        cli_file.write_text("pdf:\n  page_size: a4\n  margin_pt: 36\n")

        config = load_config(cli_path=str(cli_file))
        assert config.pdf.page_size == "a4"
        assert config.pdf.margin_pt == 36

    def test_user_global_config_used_as_fallback(self, tmp_path):
        user_dir = tmp_path / "fakehome" / ".docbridge"
        user_dir.mkdir(parents=True)
        (user_dir / "config.yaml").write_text("log_format: json\n")
        assert load_config().log_format == "json"

    def test_env_vars_expanded_in_loaded_config(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DOCBRIDGE_MEDIA", "/tmp/media")
        (tmp_path / "docbridge.yaml").write_text("images:\n  extract_dir: ${DOCBRIDGE_MEDIA}\n")
        assert load_config().images.extract_dir == "/tmp/media"

    def test_empty_yaml_file_returns_defaults(self, tmp_path):
        (tmp_path / "docbridge.yaml").write_text("")
        assert load_config() == DocBridgeConfig()

    def test_missing_explicit_path_is_an_error(self, tmp_path):
        with pytest.raises(ValueError, match="Config file not found"):
            load_config(cli_path=str(tmp_path / "nope.yaml"))

    def test_non_mapping_top_level_rejected(self, tmp_path):
        (tmp_path / "docbridge.yaml").write_text("- just\n- a list\n")
        with pytest.raises(ValueError, match="top level must be a mapping"):
            load_config()

    def test_candidates_order(self, tmp_path):
        paths = config_candidates("custom.yaml")
        assert paths[0] == Path("custom.yaml")
        assert paths[1] == Path("docbridge.yaml")
        assert paths[2] == tmp_path / "fakehome" / ".docbridge" / "config.yaml"

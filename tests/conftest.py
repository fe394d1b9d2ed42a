"""Shared test fixtures for docbridge."""

import base64

import pymupdf
import pytest

from docbridge.config.models import DocBridgeConfig


@pytest.fixture
def sample_config():
    return DocBridgeConfig()


@pytest.fixture
def png_bytes():
    """A 4x3 solid red PNG, rendered by PyMuPDF."""
    pixmap = pymupdf.Pixmap(pymupdf.csRGB, pymupdf.IRect(0, 0, 4, 3), False)
    pixmap.set_rect(pixmap.irect, (255, 0, 0))
    return pixmap.tobytes("png")


@pytest.fixture
def png_data_uri(png_bytes):
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")


@pytest.fixture
def sample_markdown():
    return (
        "# Quarterly Report\n"
        "\n"
        "Revenue grew **strongly** this quarter, see [the site](https://example.com).\n"
        "\n"
        "- alpha\n"
        "- beta\n"
        "  - gamma\n"
        "\n"
        "1. first\n"
        "2. second\n"
        "\n"
        "> quoted line\n"
        "\n"
        "```\n"
        "print('hi')\n"
        "```\n"
        "\n"
        "| Name | Age |\n"
        "| --- | --- |\n"
        "| Ada | 36 |\n"
    )

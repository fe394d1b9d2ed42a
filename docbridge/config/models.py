from pydantic import BaseModel, Field
from typing import Literal


class EngineConfig(BaseModel):
    max_workers: int = Field(default=4, gt=0)


class MarkdownConfig(BaseModel):
    list_indent: int = Field(default=2, ge=2, le=5)
    pad_tables: bool = False


class ImageConfig(BaseModel):
    mode: Literal["embed", "extract", "drop"] = "embed"
    base_dir: str | None = None
    extract_dir: str | None = None
    max_width_in: float = Field(default=6.0, gt=0)


class DocxConfig(BaseModel):
    code_font: str = "Courier New"
    max_list_depth: int = Field(default=3, ge=1, le=3)


class XlsxConfig(BaseModel):
    coerce_values: bool = True
    header_bold: bool = True


class PptxConfig(BaseModel):
    include_notes: bool = False
    code_font: str = "Courier New"


class PdfConfig(BaseModel):
    page_size: Literal["a4", "letter"] = "a4"
    margin_pt: float = Field(default=56.0, ge=0)
    body_font_size: float = Field(default=11.0, gt=0)
    h1_ratio: float = Field(default=1.8, gt=1)
    h2_ratio: float = Field(default=1.4, gt=1)
    h3_ratio: float = Field(default=1.15, gt=1)
    max_heading_chars: int = Field(default=120, gt=0)
    font_file: str | None = None


class DocBridgeConfig(BaseModel):
    engine: EngineConfig = Field(default_factory=EngineConfig)
    markdown: MarkdownConfig = Field(default_factory=MarkdownConfig)
    images: ImageConfig = Field(default_factory=ImageConfig)
    docx: DocxConfig = Field(default_factory=DocxConfig)
    xlsx: XlsxConfig = Field(default_factory=XlsxConfig)
    pptx: PptxConfig = Field(default_factory=PptxConfig)
    pdf: PdfConfig = Field(default_factory=PdfConfig)
    log_level: Literal["debug", "info", "warn", "error"] = "info"
    log_format: Literal["text", "json"] = "text"

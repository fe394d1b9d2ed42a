"""Abstract adapter interface and the atomic output helper."""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from docbridge.config.models import DocBridgeConfig
from docbridge.errors import SourceUnreadable, WriteFailed
from docbridge.ir.models import ConversionWarning, Document

logger = logging.getLogger(__name__)


class AdapterOutput(BaseModel):
    """What an adapter's reader hands back: the IR plus repair notes."""

    document: Document
    warnings: list[ConversionWarning] = Field(default_factory=list)


@contextmanager
def atomic_output(dest: str | Path) -> Iterator[Path]:
    """Yield a temporary sibling of ``dest`` and move it into place on success.

    Missing parent directories are created. On any failure the temporary
    file is removed and whatever was at ``dest`` before stays untouched.
    OSErrors surface as WriteFailed.
    """
    dest = Path(dest)
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.", suffix=".tmp")
        os.close(fd)
    except OSError as exc:
        raise WriteFailed(f"cannot create destination: {exc}", path=dest) from exc

    tmp = Path(tmp_name)
    try:
        yield tmp
        # mkstemp creates 0600; keep the mode of the file being replaced
        mode = stat.S_IMODE(dest.stat().st_mode) if dest.exists() else 0o644
        os.chmod(tmp, mode)
        os.replace(tmp, dest)
    except OSError as exc:
        raise WriteFailed(f"cannot write destination: {exc}", path=dest) from exc
    finally:
        if tmp.exists():
            tmp.unlink()
            logger.debug("removed partial output %s", tmp)


class FormatAdapter(ABC):
    """Reads one external format into the IR and writes the IR back out.

    Subclasses implement ``_read`` (container → AdapterOutput), ``_build``
    (Document → native in-memory object) and ``_save`` (native object →
    file). ``write`` routes the save through ``atomic_output`` so a failed
    export never leaves a half-written file behind.
    """

    format_tag: ClassVar[str]
    extensions: ClassVar[tuple[str, ...]]
    label: ClassVar[str]

    def __init__(self, config: DocBridgeConfig | None = None) -> None:
        self.config = config or DocBridgeConfig()

    def read(self, path: str | Path) -> AdapterOutput:
        path = Path(path)
        _check_readable(path)
        output = self._read(path)
        logger.info(
            "read %s: %d block(s), %d warning(s)",
            path, len(output.document.blocks), len(output.warnings),
        )
        return output

    def write(self, document: Document, path: str | Path) -> list[ConversionWarning]:
        path = Path(path)
        warnings: list[ConversionWarning] = []
        native = self._build(document, path, warnings)
        try:
            with atomic_output(path) as tmp:
                self._save(native, tmp)
        finally:
            self._discard(native)
        logger.info("wrote %s (%d warning(s))", path, len(warnings))
        return warnings

    @abstractmethod
    def _read(self, path: Path) -> AdapterOutput:
        """Open the container at ``path`` and map it to the IR."""
        ...

    @abstractmethod
    def _build(self, document: Document, dest: Path, warnings: list[ConversionWarning]) -> Any:
        """Construct the native object for ``document`` in memory."""
        ...

    @abstractmethod
    def _save(self, native: Any, path: Path) -> None:
        """Serialize the native object to ``path``."""
        ...

    def _discard(self, native: Any) -> None:
        """Release the native object once the save has finished or failed."""


_MONOSPACE_HINTS = ("courier", "consolas", "menlo", "monaco", "mono", "lucida console", "code")


def is_monospace_font(font_name: str | None) -> bool:
    return bool(font_name) and any(hint in font_name.lower() for hint in _MONOSPACE_HINTS)


OLE_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


def is_ole_container(path: Path) -> bool:
    """True for legacy binary Office files and password-encrypted OOXML packages."""
    with open(path, "rb") as fh:
        return fh.read(len(OLE_MAGIC)) == OLE_MAGIC


def _check_readable(path: Path) -> None:
    if not path.exists():
        raise SourceUnreadable("file not found", path=path)
    if not path.is_file():
        raise SourceUnreadable("not a regular file", path=path)
    if not os.access(path, os.R_OK):
        raise SourceUnreadable("permission denied", path=path)

"""Tests for the thread-pool conversion engine."""

import threading

import pytest

from docbridge.config.models import DocBridgeConfig, EngineConfig
from docbridge.converter import ConversionEngine, FormatTag
from docbridge.converter import orchestrator
from docbridge.errors import SourceUnreadable, UnsupportedFormat

NAME_AGE = "| Name | Age |\n| --- | --- |\n| Ada | 36 |\n"


class TestConversionEngine:
    def test_worker_count_from_config(self):
        config = DocBridgeConfig(engine=EngineConfig(max_workers=2))
        with ConversionEngine(config=config) as engine:
            assert engine.max_workers == 2
        with ConversionEngine(max_workers=5, config=config) as engine:
            assert engine.max_workers == 5

    def test_concurrent_exports_are_independent(self, tmp_path):
        with ConversionEngine(max_workers=4) as engine:
            futures = [
                engine.submit("export", tag, (f"# Doc {n}\n\nbody {n}\n", tmp_path / f"doc{n}.{tag}"))
                for n, tag in enumerate(["docx", "pptx", "pdf", "xlsx"] * 2)
            ]
            results = [future.result(timeout=60) for future in futures]

        assert [r.format for r in results] == [FormatTag(t) for t in ["docx", "pptx", "pdf", "xlsx"] * 2]
        for n, result in enumerate(results):
            assert result.output_path.endswith(f"doc{n}.{result.format.value}")
        assert len(list(tmp_path.iterdir())) == 8

    def test_runs_off_the_calling_thread(self, tmp_path, monkeypatch):
        seen = []
        real_convert = orchestrator.convert

        def recording_convert(*args, **kwargs):
            seen.append(threading.current_thread().name)
            return real_convert(*args, **kwargs)

        monkeypatch.setattr("docbridge.converter.engine.convert", recording_convert)
        with ConversionEngine(max_workers=1) as engine:
            engine.submit("export", "xlsx", (NAME_AGE, tmp_path / "a.xlsx")).result(timeout=60)
        assert seen and seen[0].startswith("docbridge")

    def test_bad_tag_fails_in_caller(self, tmp_path):
        with ConversionEngine(max_workers=1) as engine:
            with pytest.raises(UnsupportedFormat) as exc_info:
                engine.submit("import", "odt", tmp_path / "a.odt")
        assert exc_info.value.path == str(tmp_path / "a.odt")

    def test_errors_surface_through_future(self, tmp_path):
        with ConversionEngine(max_workers=1) as engine:
            future = engine.submit("import", "docx", tmp_path / "missing.docx")
            with pytest.raises(SourceUnreadable):
                future.result(timeout=60)

    @pytest.mark.asyncio
    async def test_convert_async(self, tmp_path):
        dest = tmp_path / "people.xlsx"
        with ConversionEngine(max_workers=2) as engine:
            await engine.convert_async("export", "xlsx", (NAME_AGE, dest))
            result = await engine.convert_async("import", "xlsx", dest)
        assert result.markdown == NAME_AGE

    @pytest.mark.asyncio
    async def test_convert_async_raises_conversion_errors(self, tmp_path):
        with ConversionEngine(max_workers=1) as engine:
            with pytest.raises(SourceUnreadable):
                await engine.convert_async("import", "pptx", tmp_path / "missing.pptx")

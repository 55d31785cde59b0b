"""Tests for the read, search and find-usage pipelines."""

import pytest

from deminify.config import Config
from deminify.core.formatting import SOURCE_LEGEND
from deminify.errors import InvalidPatternError, MapUnavailableError, NotFoundError
from deminify.smart import find_usage, smart_read, smart_search


class TestSmartRead:
    """Tests for smart_read."""

    @pytest.mark.asyncio
    async def test_read_whole_file(self, write_source, minified_code, config):
        path = write_source("app.min.js", minified_code)

        result = await smart_read(path, config=config)

        assert result.success
        assert not result.used_fallback
        assert result.position_map is not None
        assert SOURCE_LEGEND in result.report
        assert "L1:" in result.report
        assert "return x + y" in result.code

    @pytest.mark.asyncio
    async def test_read_range(self, write_source, multiline_code, config):
        path = write_source("app.js", multiline_code)

        result = await smart_read(path, 2, 3, config=config)

        assert "(2-3/" in result.report.split("\n")[0]
        assert "Use next start_line=4" in result.report
        assert len(result.code.split("\n")) == 2

    @pytest.mark.asyncio
    async def test_start_past_end(self, write_source, config):
        path = write_source("app.js", "var a=1;")

        result = await smart_read(path, 50, config=config)

        assert not result.success
        assert result.error.startswith("Start line 50 exceeds total lines")

    @pytest.mark.asyncio
    async def test_missing_file_is_reported(self, tmp_path, config):
        result = await smart_read(tmp_path / "missing.js", config=config)

        assert not result.success
        assert "File not found" in result.error

    @pytest.mark.asyncio
    async def test_long_literal_truncated_without_moving_lines(self, write_source, config):
        source = 'var s="' + "k" * 1000 + '";var t=2;'
        path = write_source("app.js", source)

        result = await smart_read(path, config=config)

        assert "...[TRUNCATED 1000 CHARS]..." in result.code
        assert "var t = 2;" in result.code

    @pytest.mark.asyncio
    async def test_fallback_has_note(self, write_source, config):
        path = write_source("data.json", '{"a":1}')

        result = await smart_read(path, config=config)

        assert result.success
        assert result.used_fallback
        assert "No original positions" in result.report

    @pytest.mark.asyncio
    async def test_save_local_is_reported(self, write_source, config):
        path = write_source("app.js", "var a=1;")

        result = await smart_read(path, config=config, save_local=True)

        assert result.local_path == path.with_name("app.beautified.js")
        assert f"LOCAL: {result.local_path}" in result.report
        assert "MAP: " in result.report

    @pytest.mark.asyncio
    async def test_uses_cache(self, write_source, cache):
        path = write_source("app.js", "var a=1;")
        config = Config()

        await smart_read(path, config=config, cache=cache)

        assert list(cache.cache_dir.glob("*.json"))


class TestSmartSearch:
    """Tests for smart_search."""

    @pytest.mark.asyncio
    async def test_finds_match_with_original_position(self, write_source, multiline_code, config):
        path = write_source("app.js", multiline_code)

        result = await smart_search(path, "decrypt", config=config)

        assert result.search.total_matches == 1
        match = result.search.matches[0]
        assert "Decrypt" in match.content
        assert match.original.line == 5
        assert "Matches: 1" in result.report
        assert ">>" in result.report

    @pytest.mark.asyncio
    async def test_no_matches(self, write_source, config):
        path = write_source("app.js", "var a=1;")

        result = await smart_search(path, "missing", config=config)

        assert "Matches: None" in result.report

    @pytest.mark.asyncio
    async def test_invalid_regex(self, write_source, config):
        path = write_source("app.js", "var a=1;")

        with pytest.raises(InvalidPatternError):
            await smart_search(path, "(", is_regex=True, config=config)

    @pytest.mark.asyncio
    async def test_requires_map(self, write_source, config):
        path = write_source("data.json", '{"a":1}')

        with pytest.raises(MapUnavailableError):
            await smart_search(path, "a", config=config)

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path, config):
        with pytest.raises(NotFoundError):
            await smart_search(tmp_path / "missing.js", "a", config=config)


class TestFindUsage:
    """Tests for find_usage."""

    @pytest.mark.asyncio
    async def test_reports_binding(self, write_source, multiline_code, config):
        path = write_source("app.js", multiline_code)

        result = await find_usage(path, "key", config=config)

        assert len(result.analysis.bindings) == 1
        binding = result.analysis.bindings[0]
        assert binding.kind == "var"
        assert binding.definition.original.line == 1
        assert binding.total_reference_count == 2
        assert "Bindings: 1" in result.report
        assert "References (2):" in result.report

    @pytest.mark.asyncio
    async def test_targeted_lookup(self, write_source, multiline_code, config):
        path = write_source("app.js", multiline_code)
        rendered = (await smart_read(path, config=config)).code.split("\n")
        line = next(number for number, text in enumerate(rendered, start=1) if "console.log(err)" in text)

        result = await find_usage(path, "err", line=line, config=config)

        assert result.analysis.is_targeted
        assert result.analysis.bindings[0].kind == "catch"
        assert "<-- hit" in result.report

    @pytest.mark.asyncio
    async def test_global_identifier(self, write_source, config):
        path = write_source("app.js", "foo();foo();")

        result = await find_usage(path, "foo", config=config)

        assert result.analysis.bindings == []
        assert "Bindings: None" in result.report

    @pytest.mark.asyncio
    async def test_requires_map(self, write_source, config):
        path = write_source("data.json", '{"a":1}')

        with pytest.raises(MapUnavailableError):
            await find_usage(path, "a", config=config)

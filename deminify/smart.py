"""Read, search, find-usage and dispatcher detection pipelines over rendered files."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from deminify.cache import CacheStore, get_default_cache
from deminify.config import Config
from deminify.core.analyzer import AnalysisResult, LocationInfo, analyze_bindings
from deminify.core.dispatcher import (
    DetectionResult,
    format_code_for_analysis,
    format_detection_result,
    parse_detection_result,
)
from deminify.core.formatting import format_analysis_result, format_read_result, format_search_result
from deminify.core.line_index import TextBuffer
from deminify.core.position_map import PositionMap
from deminify.core.renderer import Fallback, Rendered, RenderResult, render
from deminify.core.search import SearchResult, search_in_code
from deminify.core.truncator import truncate, truncate_fallback, truncate_long_lines
from deminify.errors import DeminifyError, MapUnavailableError
from deminify.llm.base import BaseLLMClient

logger = logging.getLogger(__name__)


@dataclass
class ProcessingResult:
    """Outcome of a pipeline run over one file."""
    code: str
    position_map: Optional[PositionMap] = None
    language: str = "javascript"
    used_fallback: bool = False
    report: str = ""
    local_path: Optional[Path] = None
    local_map_path: Optional[Path] = None
    local_save_error: Optional[str] = None
    cache_warning: Optional[str] = None
    search: Optional[SearchResult] = None
    analysis: Optional[AnalysisResult] = None
    detection: Optional[DetectionResult] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


def _cache_for(config: Config, cache: Optional[CacheStore]) -> Optional[CacheStore]:
    if cache is not None:
        return cache
    if not config.use_cache:
        return None
    return get_default_cache(config.cache_dir)


def _require_map(rendered: RenderResult, file_path: Union[str, Path], operation: str) -> Rendered:
    if isinstance(rendered, Fallback):
        raise MapUnavailableError(
            f"{operation} needs a position map, none is available for {file_path}: {rendered.reason}"
        )
    return rendered


def _base_result(rendered: RenderResult, code: str) -> ProcessingResult:
    result = ProcessingResult(
        code=code,
        position_map=rendered.map,
        language=rendered.language,
        used_fallback=rendered.used_fallback,
    )
    if isinstance(rendered, Rendered):
        result.local_path = rendered.local_path
        result.local_map_path = rendered.local_map_path
        result.local_save_error = rendered.local_save_error
        result.cache_warning = rendered.cache_warning
    return result


async def smart_read(
    file_path: Union[str, Path],
    start_line: Optional[int] = None,
    end_line: Optional[int] = None,
    *,
    char_limit: Optional[int] = None,
    max_line_chars: Optional[int] = None,
    save_local: Optional[bool] = None,
    config: Optional[Config] = None,
    cache: Optional[CacheStore] = None,
) -> ProcessingResult:
    """Render a file and return a line range with original positions.

    Long literals and long lines are truncated without changing line
    numbers. Failures are reported in ``error`` instead of being raised.
    """
    config = config or Config()
    char_limit = char_limit or config.char_limit
    max_line_chars = max_line_chars or config.max_line_chars

    try:
        rendered = await render(file_path, cache=_cache_for(config, cache), config=config, save_local=save_local)
    except DeminifyError as e:
        return ProcessingResult(code="", used_fallback=True, error=e.message)

    if isinstance(rendered, Fallback):
        text = truncate_fallback(rendered.text, max_line_chars)
        note = f"No original positions: {rendered.reason}"
    else:
        text = truncate(rendered.text, char_limit, config.preview_length, rendered.language)
        text = truncate_long_lines(text, max_line_chars)
        note = None

    buffer = TextBuffer.of(text)
    total = buffer.total_lines
    start = max(1, start_line or 1)
    end = min(total, end_line or total)
    result = _base_result(rendered, "")
    if start > total:
        result.error = f"Start line {start} exceeds total lines {total}"
        return result

    position_map = rendered.map
    lines = [
        (number, position_map.resolve_line(number) if position_map else None, buffer.line(number))
        for number in range(start, end + 1)
    ]
    result.code = "\n".join(content for _, _, content in lines)
    result.report = format_read_result(
        str(file_path),
        lines,
        total,
        local_path=str(result.local_path) if result.local_path else None,
        local_map_path=str(result.local_map_path) if result.local_map_path else None,
        local_save_error=result.local_save_error,
        note=note,
    )
    return result


async def smart_search(
    file_path: Union[str, Path],
    query: str,
    *,
    is_regex: bool = False,
    case_sensitive: bool = False,
    context_lines: Optional[int] = None,
    max_matches: Optional[int] = None,
    timeout_ms: Optional[int] = None,
    char_limit: Optional[int] = None,
    max_line_chars: Optional[int] = None,
    config: Optional[Config] = None,
    cache: Optional[CacheStore] = None,
) -> ProcessingResult:
    """Search a rendered file and report matches with original positions.

    Raises:
        NotFoundError: If the file does not exist
        MapUnavailableError: If the file has no position map
        InvalidPatternError: If the query is not a valid pattern
    """
    config = config or Config()
    context_lines = config.context_lines if context_lines is None else context_lines
    max_matches = max_matches or config.max_matches
    timeout_ms = timeout_ms or config.search_timeout_ms
    char_limit = char_limit or config.char_limit
    max_line_chars = max_line_chars or config.max_line_chars

    rendered = _require_map(
        await render(file_path, cache=_cache_for(config, cache), config=config),
        file_path,
        "Search",
    )
    text = truncate(rendered.text, char_limit, config.preview_length, rendered.language)
    search = await asyncio.to_thread(
        search_in_code,
        text,
        rendered.map,
        query,
        is_regex=is_regex,
        case_sensitive=case_sensitive,
        context_lines=context_lines,
        max_matches=max_matches,
        timeout_ms=timeout_ms,
    )

    result = _base_result(rendered, text)
    result.search = search
    report = format_search_result(
        str(file_path),
        query,
        search,
        case_sensitive=case_sensitive,
        is_regex=is_regex,
        max_matches=max_matches,
    )
    result.report = truncate_long_lines(report, max_line_chars)
    return result


def _with_display_lines(locations: list[Optional[LocationInfo]], buffer: TextBuffer) -> None:
    for location in locations:
        if location is not None and 1 <= location.line <= buffer.total_lines:
            location.line_content = buffer.line(location.line)


async def find_usage(
    file_path: Union[str, Path],
    identifier: str,
    *,
    line: Optional[int] = None,
    max_references: Optional[int] = None,
    char_limit: Optional[int] = None,
    max_line_chars: Optional[int] = None,
    config: Optional[Config] = None,
    cache: Optional[CacheStore] = None,
) -> ProcessingResult:
    """Find the bindings of an identifier in a rendered file.

    Analysis runs on the full rendered text; the report shows truncated
    lines.

    Raises:
        NotFoundError: If the file does not exist
        MapUnavailableError: If the file has no position map
        ParseError: If the rendered text cannot be parsed
    """
    config = config or Config()
    if max_references is None:
        max_references = config.targeted_max_references if line is not None else config.max_references
    char_limit = char_limit or config.char_limit
    max_line_chars = max_line_chars or config.max_line_chars

    rendered = _require_map(
        await render(file_path, cache=_cache_for(config, cache), config=config),
        file_path,
        "Binding analysis",
    )
    analysis = await asyncio.to_thread(
        analyze_bindings,
        rendered.text,
        rendered.map,
        identifier,
        target_line=line,
        max_references=max_references,
        language=rendered.language,
    )

    display = TextBuffer.of(truncate(rendered.text, char_limit, config.preview_length, rendered.language))
    for binding in analysis.bindings:
        _with_display_lines([binding.definition, binding.hit_location, *binding.references], display)

    result = _base_result(rendered, rendered.text)
    result.analysis = analysis
    result.report = truncate_long_lines(format_analysis_result(str(file_path), analysis), max_line_chars)
    return result


async def find_jsvmp_dispatcher(
    file_path: Union[str, Path],
    start_line: int,
    end_line: int,
    client: BaseLLMClient,
    *,
    char_limit: Optional[int] = None,
    config: Optional[Config] = None,
    cache: Optional[CacheStore] = None,
) -> ProcessingResult:
    """Ask an LLM which parts of a rendered line range look like a JSVMP.

    The model sees the truncated rendered lines labelled with their original
    positions and answers with dispatcher regions by rendered line number.

    Raises:
        NotFoundError: If the file does not exist
        MapUnavailableError: If the file has no position map
        LLMRequestError: If the LLM request fails
        LLMResponseError: If the answer is not a valid detection result
    """
    config = config or Config()
    char_limit = char_limit or config.char_limit

    rendered = _require_map(
        await render(file_path, cache=_cache_for(config, cache), config=config),
        file_path,
        "Dispatcher detection",
    )
    text = truncate(rendered.text, char_limit, config.preview_length, rendered.language)
    formatted = format_code_for_analysis(text, rendered.map, start_line, end_line)
    logger.debug(
        "Analyzing lines %d-%d of %d for dispatchers",
        formatted.start_line,
        formatted.end_line,
        formatted.total_lines,
    )

    detection = parse_detection_result(await client.find_dispatchers(formatted.content))

    result = _base_result(rendered, formatted.content)
    result.detection = detection
    result.report = format_detection_result(str(file_path), detection, formatted.start_line, formatted.end_line)
    return result

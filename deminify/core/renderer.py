"""Rendering of raw source into readable text plus a position map."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from rich.console import Console

from deminify.cache import CacheKey, CacheStore, describe_write_error
from deminify.config import Config
from deminify.core.language import LanguageInfo, detect_language, get_language_info
from deminify.core.parser import grammar_for
from deminify.core.position_map import PositionMap
from deminify.core.printer import PrintResult, beautify_plain, print_with_map
from deminify.errors import NotFoundError, ParseError, PositionMapError

logger = logging.getLogger(__name__)
console = Console(stderr=True)

LOCAL_SUFFIX = ".beautified.js"


@dataclass
class Rendered:
    """Readable text with a map from rendered positions to the original file."""
    text: str
    map: PositionMap
    language: str = "javascript"
    from_cache: bool = False
    local_path: Optional[Path] = None
    local_map_path: Optional[Path] = None
    cache_warning: Optional[str] = None
    local_save_error: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return False


@dataclass
class Fallback:
    """Text returned without a position map (unparseable or non-code input)."""
    text: str
    reason: str
    language: str = "unknown"

    @property
    def used_fallback(self) -> bool:
        return True

    @property
    def map(self) -> None:
        return None


RenderResult = Union[Rendered, Fallback]


@dataclass(frozen=True)
class LocalPaths:
    """Where a rendering is saved next to its original."""
    beautified: Path
    map: Path


def get_local_paths(original: Path) -> LocalPaths:
    """Paths of the local copy: ``app.min.js`` -> ``app.min.beautified.js``."""
    base = original.name
    for suffix in (".js", ".mjs", ".cjs", ".jsx", ".ts", ".mts", ".cts", ".tsx"):
        if base.endswith(suffix):
            base = base[: -len(suffix)]
            break
    beautified = original.with_name(f"{base}{LOCAL_SUFFIX}")
    return LocalPaths(beautified=beautified, map=beautified.with_name(f"{beautified.name}.map"))


def _read_local_copy(paths: LocalPaths, mtime_ms: float, language: str) -> Optional[Rendered]:
    """Read back a saved local copy if it is at least as new as the original."""
    try:
        if paths.beautified.stat().st_mtime_ns / 1_000_000 < mtime_ms:
            return None
        text = paths.beautified.read_text(encoding="utf-8")
        position_map = PositionMap.from_json(paths.map.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, PositionMapError) as e:
        logger.debug("Ignoring unusable local copy %s: %s", paths.beautified, e)
        return None
    return Rendered(
        text=text,
        map=position_map,
        language=language,
        from_cache=True,
        local_path=paths.beautified,
        local_map_path=paths.map,
    )


def _save_local_copy(result: Rendered, paths: LocalPaths) -> None:
    """Write the rendering next to the original; failures are recorded on the result."""
    try:
        paths.beautified.write_text(result.text, encoding="utf-8")
        paths.map.write_text(result.map.to_json(), encoding="utf-8")
    except OSError as e:
        result.local_save_error = describe_write_error(e, paths.beautified.parent, "Failed to save locally")
        return
    result.local_path = paths.beautified
    result.local_map_path = paths.map


async def render(
    source_path: Union[str, Path],
    cache: Optional[CacheStore] = None,
    config: Optional[Config] = None,
    save_local: Optional[bool] = None,
    language: Optional[str] = None,
) -> RenderResult:
    """Render a source file into readable text with a position map.

    Args:
        source_path: File to render
        cache: Cache store to consult and fill (no caching when None)
        config: Settings for the printer and the fallback threshold
        save_local: Also write the rendering next to the original
            (defaults to ``config.save_local``)
        language: Explicit language name instead of extension detection

    Returns:
        Rendered, or Fallback when the file has no usable syntax tree

    Raises:
        NotFoundError: If the source file does not exist
    """
    config = config or Config()
    if save_local is None:
        save_local = config.save_local

    path = Path(source_path).resolve()
    try:
        stat = await asyncio.to_thread(path.stat)
    except FileNotFoundError:
        raise NotFoundError(f"File not found: {path}") from None
    if not path.is_file():
        raise NotFoundError(f"File not found: {path}")

    info: LanguageInfo = get_language_info(language) if language else detect_language(path)
    source_code = await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")

    if not info.supports_source_map:
        logger.debug("No position map support for %s (%s)", path, info.language)
        return Fallback(
            text=beautify_plain(source_code, info.language),
            reason=f"No position map support for {info.language} files",
            language=info.language,
        )

    key = CacheKey(path=str(path), mtime_ms=stat.st_mtime_ns / 1_000_000)
    local_paths = get_local_paths(path)

    if save_local:
        local = await asyncio.to_thread(_read_local_copy, local_paths, key.mtime_ms, info.language)
        if local is not None:
            logger.debug("Using local copy %s", local_paths.beautified)
            return local

    if cache is not None:
        entry = await asyncio.to_thread(cache.get, key)
        if entry is not None:
            logger.debug("Cache hit for %s", path)
            result = Rendered(
                text=entry.text,
                map=entry.position_map,
                language=info.language,
                from_cache=True,
            )
            if save_local:
                await asyncio.to_thread(_save_local_copy, result, local_paths)
            return result

    try:
        printed: PrintResult = await asyncio.to_thread(
            print_with_map,
            source_code,
            path.name,
            grammar_for(info.language),
            config.indent_size,
            config.max_error_ratio,
        )
    except ParseError as e:
        console.print(f"[yellow]Warning: {e.message}, showing original text[/yellow]")
        return Fallback(text=source_code, reason=e.message, language=info.language)
    except Exception as e:
        logger.debug("Printer failed for %s", path, exc_info=True)
        console.print(f"[yellow]Warning: Failed to render {path.name}: {e}[/yellow]")
        return Fallback(text=source_code, reason=f"Printer failed: {e}", language=info.language)

    result = Rendered(text=printed.text, map=printed.map, language=info.language)

    if cache is not None:
        warning = await asyncio.to_thread(cache.put, key, printed.text, printed.map)
        if warning:
            console.print(f"[yellow]Warning: {warning}[/yellow]")
            result.cache_warning = warning

    if save_local:
        await asyncio.to_thread(_save_local_copy, result, local_paths)
        if result.local_save_error:
            console.print(f"[yellow]Warning: {result.local_save_error}[/yellow]")

    return result

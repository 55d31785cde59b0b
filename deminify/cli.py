"""CLI interface for deminify."""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from tqdm import tqdm

from deminify import __version__
from deminify.cache import get_default_cache
from deminify.config import Config
from deminify.core.line_index import count_lines
from deminify.core.renderer import Rendered, render
from deminify.errors import DeminifyError, LLMNotConfiguredError
from deminify.llm import OpenAIClient
from deminify.plugins import apply_custom_transform
from deminify.smart import find_jsvmp_dispatcher, find_usage, smart_read, smart_search

console = Console()

# Debug logger
debug_logger = None
debug_log_file = None


def setup_debug_logger(log_path: Optional[Path] = None) -> logging.Logger:
    """Setup debug logger for detailed logging.

    Library modules log under the ``deminify`` logger, so their debug
    records end up in the same file.
    """
    global debug_logger, debug_log_file

    if log_path is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = Path(f"deminify_debug_{timestamp}.log")

    debug_log_file = log_path

    logger = logging.getLogger("deminify")
    logger.setLevel(logging.DEBUG)

    # Clear existing handlers
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []

    # File handler
    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setLevel(logging.DEBUG)

    # Detailed format
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    fh.setFormatter(formatter)
    logger.addHandler(fh)

    debug_logger = logger
    return logger


def debug_log(level: str, message: str, data: dict = None):
    """Log debug message with optional structured data."""
    if debug_logger is None:
        return

    log_func = getattr(debug_logger, level.lower(), debug_logger.info)

    if data:
        data_str = json.dumps(data, ensure_ascii=False, indent=2, default=str)
        log_func(f"{message}\n{data_str}")
    else:
        log_func(message)


def create_llm_client(config: Config) -> OpenAIClient:
    """Create LLM client based on configuration."""
    if not config.llm_api_key:
        raise LLMNotConfiguredError(
            "LLM is not configured. Set OPENAI_API_KEY (or DEMINIFY_LLM_API_KEY) to enable JSVMP dispatcher detection."
        )
    return OpenAIClient(
        api_key=config.llm_api_key,
        model=config.llm_model,
        base_url=config.llm_base_url,
        max_tokens=config.llm_max_tokens,
        temperature=config.llm_temperature,
    )


def _build_config(**overrides) -> Config:
    """Create config, only overriding values given on the command line."""
    try:
        config = Config(**{key: value for key, value in overrides.items() if value is not None})
    except ValidationError as e:
        messages = "; ".join(error["msg"] for error in e.errors())
        debug_log("error", "Invalid configuration", {"errors": messages})
        console.print(f"[red]Error: {escape(messages)}[/red]")
        raise SystemExit(1)
    debug_log("info", "Configuration loaded", config.model_dump(mode="json", exclude={"llm_api_key"}))
    return config


def _fail(error: DeminifyError) -> None:
    debug_log("error", error.message, {"code": error.code})
    console.print(f"[red]Error: {escape(error.message)}[/red]")
    raise SystemExit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--debug", is_flag=True, help="Enable debug logging to file")
@click.option("--debug-file", type=click.Path(path_type=Path), help="Debug log file path (default: deminify_debug_TIMESTAMP.log)")
def main(debug: bool, debug_file: Optional[Path]):
    """Deminify - read, search and analyze minified JavaScript with original positions."""
    if debug or debug_file:
        setup_debug_logger(debug_file)
        console.print(f"[yellow]Debug logging enabled: {debug_log_file}[/yellow]")


@main.command()
@click.argument("file_path", type=click.Path(path_type=Path))
@click.option("--start", "start_line", type=click.IntRange(min=1), help="First line to show (1-based)")
@click.option("--end", "end_line", type=click.IntRange(min=1), help="Last line to show (1-based)")
@click.option("--char-limit", type=click.IntRange(min=50), help="Truncate string literals longer than this")
@click.option("--preview-length", type=click.IntRange(min=1), help="Characters kept at each end of a truncated literal")
@click.option("--max-line-chars", type=click.IntRange(min=80), help="Truncate lines longer than this")
@click.option("--save-local", is_flag=True, help="Save the rendered file next to the original")
def read(
    file_path: Path,
    start_line: Optional[int],
    end_line: Optional[int],
    char_limit: Optional[int],
    preview_length: Optional[int],
    max_line_chars: Optional[int],
    save_local: bool,
):
    """Render FILE_PATH and print a line range with original positions."""
    config = _build_config(char_limit=char_limit, preview_length=preview_length, max_line_chars=max_line_chars)
    debug_log("info", f"Reading {file_path}", {"start": start_line, "end": end_line})

    result = asyncio.run(smart_read(
        file_path,
        start_line,
        end_line,
        save_local=save_local or None,
        config=config,
    ))
    if result.error:
        console.print(f"[red]Error: {escape(result.error)}[/red]")
        raise SystemExit(1)
    click.echo(result.report)


@main.command()
@click.argument("file_path", type=click.Path(path_type=Path))
@click.argument("query")
@click.option("--regex", "is_regex", is_flag=True, help="Treat QUERY as a regular expression")
@click.option("--case-sensitive", is_flag=True, help="Match case exactly")
@click.option("--context", "context_lines", type=click.IntRange(min=0), help="Context lines around each match")
@click.option("--max-matches", type=click.IntRange(min=1), help="Maximum matches shown")
@click.option("--timeout-ms", type=click.IntRange(min=1), help="Soft time budget for the search")
def search(
    file_path: Path,
    query: str,
    is_regex: bool,
    case_sensitive: bool,
    context_lines: Optional[int],
    max_matches: Optional[int],
    timeout_ms: Optional[int],
):
    """Search the rendered FILE_PATH for QUERY."""
    config = _build_config(context_lines=context_lines, max_matches=max_matches, search_timeout_ms=timeout_ms)
    debug_log("info", f"Searching {file_path}", {"query": query, "regex": is_regex})

    try:
        result = asyncio.run(smart_search(
            file_path,
            query,
            is_regex=is_regex,
            case_sensitive=case_sensitive,
            config=config,
        ))
    except DeminifyError as e:
        _fail(e)
    click.echo(result.report)


@main.command("find-usage")
@click.argument("file_path", type=click.Path(path_type=Path))
@click.argument("identifier")
@click.option("--line", type=click.IntRange(min=1), help="Line where the identifier is seen (recommended)")
@click.option("--max-references", type=click.IntRange(min=1), help="References shown per binding")
def find_usage_command(
    file_path: Path,
    identifier: str,
    line: Optional[int],
    max_references: Optional[int],
):
    """Find definitions and references of IDENTIFIER in the rendered FILE_PATH."""
    config = _build_config()
    debug_log("info", f"Finding usage in {file_path}", {"identifier": identifier, "line": line})

    try:
        result = asyncio.run(find_usage(
            file_path,
            identifier,
            line=line,
            max_references=max_references,
            config=config,
        ))
    except DeminifyError as e:
        _fail(e)
    click.echo(result.report)


@main.command("find-jsvmp-dispatcher")
@click.argument("file_path", type=click.Path(path_type=Path))
@click.option("--start", "start_line", type=click.IntRange(min=1), required=True, help="First line to analyze (1-based)")
@click.option("--end", "end_line", type=click.IntRange(min=1), required=True, help="Last line to analyze (1-based)")
@click.option("--char-limit", type=click.IntRange(min=50), help="Truncate string literals longer than this")
@click.option("--model", "llm_model", help="Model name (default: gpt-4o-mini)")
def find_jsvmp_dispatcher_command(
    file_path: Path,
    start_line: int,
    end_line: int,
    char_limit: Optional[int],
    llm_model: Optional[str],
):
    """Ask an LLM to locate JSVMP dispatchers in a line range of FILE_PATH."""
    config = _build_config(char_limit=char_limit, llm_model=llm_model)
    debug_log("info", f"Detecting dispatchers in {file_path}", {"start": start_line, "end": end_line, "model": config.llm_model})

    async def run():
        client = create_llm_client(config)
        try:
            return await find_jsvmp_dispatcher(
                file_path,
                start_line,
                end_line,
                client,
                config=config,
            )
        finally:
            await client.close()

    console.print(f"[blue]Analyzing[/blue] {escape(str(file_path))} [dim]({escape(config.llm_model)})[/dim]")
    try:
        result = asyncio.run(run())
    except DeminifyError as e:
        _fail(e)
    click.echo(result.report)


@main.command()
@click.argument("file_path", type=click.Path(path_type=Path))
@click.argument("script_path", type=click.Path(path_type=Path))
@click.option("--suffix", "output_suffix", help="Suffix for the output file name (default: _deob)")
def transform(file_path: Path, script_path: Path, output_suffix: Optional[str]):
    """Apply the plugin SCRIPT_PATH to FILE_PATH and write the result with a map."""
    config = _build_config(output_suffix=output_suffix)
    debug_log("info", f"Transforming {file_path}", {"script": str(script_path)})

    try:
        result = asyncio.run(apply_custom_transform(
            file_path,
            script_path,
            output_suffix=config.output_suffix,
            cache=get_default_cache(config.cache_dir) if config.use_cache else None,
            config=config,
        ))
    except DeminifyError as e:
        _fail(e)

    console.print("[green]Transform completed successfully![/green]")
    console.print(f"Output file: {escape(str(result.output_path))}")
    console.print(f"Source map: {escape(str(result.map_path))}")


@main.command("render")
@click.argument("files", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option("--save-local", is_flag=True, help="Save rendered files next to the originals")
@click.option("--no-cache", is_flag=True, help="Render without reading or writing the cache")
def render_command(files: tuple[Path, ...], save_local: bool, no_cache: bool):
    """Render FILES ahead of time so later reads hit the cache."""
    config = _build_config(use_cache=False if no_cache else None)
    cache = get_default_cache(config.cache_dir) if config.use_cache else None

    async def run():
        results = []
        for file_path in tqdm(files, desc="Rendering", unit="file"):
            try:
                rendered = await render(file_path, cache=cache, config=config, save_local=save_local or None)
            except DeminifyError as e:
                results.append({"file": str(file_path), "error": e.message})
                continue
            entry = {
                "file": str(file_path),
                "lines": count_lines(rendered.text),
                "mapped": isinstance(rendered, Rendered),
                "cached": isinstance(rendered, Rendered) and rendered.from_cache,
            }
            if rendered.used_fallback:
                entry["note"] = rendered.reason
            results.append(entry)
        return results

    results = asyncio.run(run())

    # Print summary
    table = Table(title="Rendering Summary")
    table.add_column("File")
    table.add_column("Lines")
    table.add_column("Position Map")
    table.add_column("Status")

    for r in results:
        if "error" in r:
            table.add_row(r["file"], "-", "-", f"✗ {r['error']}")
            continue
        status = "✓ cached" if r["cached"] else "✓"
        table.add_row(r["file"], str(r["lines"]), "yes" if r["mapped"] else "no", status)

    console.print(table)
    debug_log("info", "Rendering complete", {"results": results})

    if any("error" in r for r in results):
        raise SystemExit(1)


if __name__ == "__main__":
    main()

"""Custom transforms loaded from user plugin scripts."""

import asyncio
import errno
import importlib.util
import inspect
import logging
import re
import sys
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from types import ModuleType
from typing import Optional, Union

from deminify.cache import CacheStore
from deminify.config import Config
from deminify.core.position_map import PositionMap, compose
from deminify.core.renderer import Fallback, render
from deminify.errors import (
    DeminifyError,
    MapUnavailableError,
    NoSpaceError,
    NotFoundError,
    PermissionDeniedError,
    TransformScriptError,
)
from deminify.plugins.base import PluginChain, TransformContext, TransformPlugin, VisitorPlugin

logger = logging.getLogger(__name__)

_DEOB_SUFFIX = re.compile(r"_deob[^/\\]*$")


@dataclass
class OutputPaths:
    """Where transform output is written."""
    output_path: Path
    map_path: Path


@dataclass
class TransformResult:
    """Written transform output."""
    code: str
    map: PositionMap
    output_path: Path
    map_path: Path
    replacements: int = 0


def clean_basename(filename: Union[str, Path]) -> str:
    """Strip ``.js``, a ``_deob*`` suffix and ``.beautified`` from a file name.

    ``main.beautified_deob_v2.js`` -> ``main``
    """
    name = Path(filename).name
    if name.endswith(".js"):
        name = name[:-3]
    name = _DEOB_SUFFIX.sub("", name)
    if name.endswith(".beautified"):
        name = name[: -len(".beautified")]
    return name


def get_output_paths(target_file: Union[str, Path], output_suffix: str = "_deob") -> OutputPaths:
    absolute = Path(target_file).resolve()
    output_path = absolute.with_name(f"{clean_basename(absolute)}{output_suffix}.js")
    return OutputPaths(output_path=output_path, map_path=output_path.with_name(f"{output_path.name}.map"))


def _plugin_from_module(module: ModuleType, script_path: Path) -> TransformPlugin:
    """Pick the plugin a script exports."""
    exported = getattr(module, "plugin", None)
    if isinstance(exported, TransformPlugin):
        return exported
    if inspect.isclass(exported) and issubclass(exported, TransformPlugin):
        return exported()

    for value in vars(module).values():
        if (
            inspect.isclass(value)
            and issubclass(value, TransformPlugin)
            and value.__module__ == module.__name__
            and not inspect.isabstract(value)
        ):
            return value()

    handlers = getattr(module, "visitor", None)
    if isinstance(handlers, dict):
        not_callable = [key for key, handler in handlers.items() if not callable(handler)]
        if not_callable:
            raise TransformScriptError(
                f"Invalid transform plugin {script_path}: visitor entries must be callable "
                f"(got {', '.join(map(str, not_callable))})"
            )
        return VisitorPlugin(handlers, name=script_path.stem)

    raise TransformScriptError(
        f"Invalid transform plugin {script_path}: script must define `plugin`, "
        f"a TransformPlugin subclass or a `visitor` dict"
    )


def load_transform_plugin(script_path: Union[str, Path]) -> TransformPlugin:
    """Import a plugin script. Each call imports the file afresh.

    Raises:
        NotFoundError: If the script does not exist
        TransformScriptError: If the script fails to import or exports no plugin
    """
    path = Path(script_path).resolve()
    if not path.is_file():
        raise NotFoundError(f"Script not found: {path}")

    module_name = f"deminify_transform_{uuid.uuid4().hex}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise TransformScriptError(f"Failed to load script {path}: not an importable Python file")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise TransformScriptError(f"Failed to load script {path}: {e}") from e
    finally:
        sys.modules.pop(module_name, None)

    return _plugin_from_module(module, path)


def _write_outputs(paths: OutputPaths, code: str, map_json: str) -> None:
    try:
        paths.output_path.write_text(code, encoding="utf-8")
        paths.map_path.write_text(map_json, encoding="utf-8")
    except PermissionError:
        raise PermissionDeniedError(f"Permission denied: Cannot write to {paths.output_path.parent}") from None
    except OSError as e:
        if e.errno == errno.ENOSPC:
            raise NoSpaceError(f"Insufficient disk space: Cannot write to {paths.output_path.parent}") from None
        raise DeminifyError(f"Failed to write output files: {e.strerror or e}") from e


async def apply_custom_transform(
    target_file: Union[str, Path],
    script_path: Union[str, Path],
    output_suffix: str = "_deob",
    cache: Optional[CacheStore] = None,
    config: Optional[Config] = None,
) -> TransformResult:
    """Render a file, run a plugin script over it and write the result.

    The written map leads from the transformed file straight back to the
    original (unrendered) file.

    Args:
        target_file: File to transform
        script_path: Python plugin script
        output_suffix: Suffix of the output file name
        cache: Cache store used for rendering
        config: Settings for rendering and re-printing

    Returns:
        TransformResult with the written paths

    Raises:
        NotFoundError: If the target or the script does not exist
        TransformScriptError: If the script is not a valid plugin
        MapUnavailableError: If the target cannot be rendered with a map
        PermissionDeniedError: If the output directory is not writable
        NoSpaceError: If the disk is full
    """
    config = config or Config()
    target = Path(target_file).resolve()
    if not target.is_file():
        raise NotFoundError(f"File not found: {target_file}")

    plugin = load_transform_plugin(script_path)

    rendered = await render(target, cache=cache, config=config, save_local=False)
    if isinstance(rendered, Fallback):
        raise MapUnavailableError(f"Cannot transform {target}: no position map ({rendered.reason})")

    context = TransformContext(source_code=rendered.text, file_path=target, language=rendered.language)
    output = await PluginChain().add_plugin(plugin).run(
        context,
        reformat=config.reformat_transform_output,
        indent_size=config.indent_size,
    )
    final_map = rendered.map if output.map is None else compose(output.map, rendered.map)

    paths = get_output_paths(target, output_suffix)
    final_map = replace(final_map, file=paths.output_path.name)
    code = f"{output.text}\n//# sourceMappingURL={paths.map_path.name}"
    await asyncio.to_thread(_write_outputs, paths, code, final_map.to_json(indent=2))

    logger.debug("Wrote %s (%d replacements)", paths.output_path, output.replacements)
    return TransformResult(
        code=code,
        map=final_map,
        output_path=paths.output_path,
        map_path=paths.map_path,
        replacements=output.replacements,
    )

"""Transform plugin system for deminify."""

from deminify.plugins.base import (
    PluginChain,
    TransformContext,
    TransformOutput,
    TransformPlugin,
    VisitorPlugin,
    apply_visitor,
)
from deminify.plugins.transform import (
    apply_custom_transform,
    clean_basename,
    get_output_paths,
    load_transform_plugin,
)

__all__ = [
    "PluginChain",
    "TransformContext",
    "TransformOutput",
    "TransformPlugin",
    "VisitorPlugin",
    "apply_visitor",
    "apply_custom_transform",
    "clean_basename",
    "get_output_paths",
    "load_transform_plugin",
]

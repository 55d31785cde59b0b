"""Deminify - readable rendering of minified JavaScript with original positions."""

__version__ = "0.1.0"
__author__ = "deminify"

from deminify.config import Config
from deminify.core.position_map import Position, PositionMap, compose, compose_chain
from deminify.core.renderer import Fallback, Rendered, render
from deminify.core.search import search_in_code
from deminify.core.analyzer import analyze_bindings
from deminify.core.truncator import truncate
from deminify.smart import ProcessingResult, find_usage, smart_read, smart_search

__all__ = [
    "__version__",
    "Config",
    "Position",
    "PositionMap",
    "compose",
    "compose_chain",
    "Fallback",
    "Rendered",
    "render",
    "search_in_code",
    "analyze_bindings",
    "truncate",
    "ProcessingResult",
    "find_usage",
    "smart_read",
    "smart_search",
]

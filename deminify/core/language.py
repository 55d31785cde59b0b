"""Language detection by file extension."""

from dataclasses import dataclass
from pathlib import Path
from typing import Union


@dataclass(frozen=True)
class LanguageInfo:
    """Processing capabilities of a language."""
    language: str
    supports_ast: bool
    supports_beautify: bool
    supports_source_map: bool


LANGUAGE_CONFIG: dict[str, LanguageInfo] = {
    "javascript": LanguageInfo("javascript", True, True, True),
    "typescript": LanguageInfo("typescript", True, True, True),
    "tsx": LanguageInfo("tsx", True, True, True),
    "json": LanguageInfo("json", False, True, False),
    "html": LanguageInfo("html", False, True, False),
    "xml": LanguageInfo("xml", False, True, False),
    "css": LanguageInfo("css", False, True, False),
    "unknown": LanguageInfo("unknown", False, False, False),
}

EXTENSION_MAP: dict[str, str] = {
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".json": "json",
    ".html": "html",
    ".htm": "html",
    ".xml": "xml",
    ".svg": "xml",
    ".css": "css",
}


def detect_language(file_path: Union[str, Path]) -> LanguageInfo:
    """Detect language from a file path based on its extension."""
    suffix = Path(file_path).suffix.lower()
    return LANGUAGE_CONFIG[EXTENSION_MAP.get(suffix, "unknown")]


def get_language_info(language: str) -> LanguageInfo:
    """Get language info by explicit language name."""
    try:
        return LANGUAGE_CONFIG[language]
    except KeyError:
        raise ValueError(
            f"Unsupported language: {language!r} (expected one of {', '.join(LANGUAGE_CONFIG)})"
        ) from None


def is_fully_supported_language(language: str) -> bool:
    """Whether a language gets AST processing, beautification and a position map."""
    info = LANGUAGE_CONFIG.get(language, LANGUAGE_CONFIG["unknown"])
    return info.supports_ast and info.supports_beautify and info.supports_source_map


def get_supported_extensions() -> list[str]:
    return list(EXTENSION_MAP)


def is_extension_supported(ext: str) -> bool:
    normalized = ext.lower() if ext.startswith(".") else f".{ext.lower()}"
    return normalized in EXTENSION_MAP

"""Configuration management for deminify."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

# Load .env from multiple locations
# 1. Current working directory
load_dotenv()
# 2. Project directory (where this package is installed)
_package_dir = Path(__file__).parent
load_dotenv(_package_dir.parent / ".env")
# 3. Home directory config
load_dotenv(Path.home() / ".config" / "deminify" / ".env")

DEFAULT_LLM_MODEL = "gpt-4o-mini"


class Config(BaseSettings):
    """Configuration for deminify."""

    # LLM Settings
    llm_model: Optional[str] = Field(default=None, validate_default=True, description="Model name to use")
    llm_api_key: Optional[str] = Field(default=None, validate_default=True, description="API key for the OpenAI-compatible endpoint")
    llm_base_url: Optional[str] = Field(default=None, validate_default=True, description="Base URL for API (for custom endpoints)")
    llm_max_tokens: int = Field(default=4096, description="Maximum tokens for LLM response")
    llm_temperature: float = Field(default=0.1, ge=0.0, le=2.0, description="Temperature for LLM generation")

    # Rendering Settings
    cache_dir: Optional[Path] = Field(default=None, description="Cache directory (default: system temp dir)")
    use_cache: bool = Field(default=True, description="Reuse rendered output cached by path and mtime")
    save_local: bool = Field(default=False, description="Also save rendered file next to the original")
    indent_size: int = Field(default=2, description="Indent width used by the printer")
    max_error_ratio: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Largest share of the file covered by syntax errors before falling back to raw text",
    )

    # Truncation Settings
    char_limit: int = Field(default=300, description="String literals longer than this are truncated")
    preview_length: int = Field(default=50, description="Characters kept at each end of a truncated literal")
    max_line_chars: int = Field(default=500, description="Lines longer than this are truncated when reading")

    # Search Settings
    context_lines: int = Field(default=2, ge=0, description="Context lines around each search match")
    max_matches: int = Field(default=50, description="Maximum search matches returned")
    search_timeout_ms: int = Field(default=500, description="Soft time budget for one search")

    # Analysis Settings
    max_references: int = Field(default=10, description="References shown per binding")
    targeted_max_references: int = Field(default=15, description="References shown for a line-targeted lookup")

    # Transform Settings
    output_suffix: str = Field(default="_deob", description="Suffix for transformed output files")
    reformat_transform_output: bool = Field(default=True, description="Re-print transformed code for readability")

    model_config = {
        "env_prefix": "DEMINIFY_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator(
        "indent_size",
        "char_limit",
        "preview_length",
        "max_line_chars",
        "max_matches",
        "search_timeout_ms",
        "max_references",
        "targeted_max_references",
        "llm_max_tokens",
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        """Reject limits that would disable or invert truncation and capping."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive, got {v}")
        return v

    @field_validator("output_suffix")
    @classmethod
    def validate_suffix(cls, v: str) -> str:
        if not v or "/" in v or "\\" in v:
            raise ValueError(f"output_suffix must be a non-empty file-name fragment, got {v!r}")
        return v

    @field_validator("llm_api_key", mode="before")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        """Fall back to the standard OpenAI environment variable."""
        return v or os.environ.get("OPENAI_API_KEY") or None

    @field_validator("llm_base_url", mode="before")
    @classmethod
    def validate_base_url(cls, v: Optional[str]) -> Optional[str]:
        return v or os.environ.get("OPENAI_BASE_URL") or None

    @field_validator("llm_model", mode="before")
    @classmethod
    def set_default_model(cls, v: Optional[str]) -> str:
        """Set default model if not specified."""
        return v or os.environ.get("OPENAI_MODEL") or DEFAULT_LLM_MODEL

    @model_validator(mode="after")
    def validate_preview_fits_limit(self) -> "Config":
        """Truncated literals must keep less than they remove."""
        if 2 * self.preview_length >= self.char_limit:
            raise ValueError(
                f"preview_length ({self.preview_length}) must be less than half of char_limit ({self.char_limit})"
            )
        return self


# LLM Prompt templates
PROMPTS = {
    "find_jsvmp_dispatcher_system": """You are a JavaScript reverse engineering expert who specializes in recognizing JSVMP (JavaScript Virtual Machine Protection) code.

JSVMP compiles JavaScript into bytecode and runs it on an embedded virtual machine. Typical parts:
1. Virtual stack: a central array holding operands and results
2. Dispatcher: a large switch statement or nested if-else chain selecting an operation by opcode
3. Instruction array: an array holding the bytecode
4. Main loop: a while loop that keeps fetching and executing instructions

Confidence rules:
- ultra_high: main loop, dispatcher and stack operations appear together; the dispatcher has more than 20 cases or more than 10 levels of nesting; clear push/pop or index-based stack access
- high: a standalone large dispatcher (switch with more than 20 cases, or if-else nested more than 10 levels deep); a clear instruction array with a program counter
- medium: isolated stack operations or a suspicious while loop; some JSVMP traits but not all
- low: generic obfuscation patterns; structures that may be related but are uncertain

Each input line is "LineNo SourceLoc Code", where SourceLoc is the position in the original file.
Report regions using LineNo values. Respond with a JSON object only:

{
  "summary": "short analysis summary",
  "regions": [
    {
      "start": <start line number>,
      "end": <end line number>,
      "type": "If-Else Dispatcher" | "Switch Dispatcher" | "Instruction Array" | "Stack Operation",
      "confidence": "ultra_high" | "high" | "medium" | "low",
      "description": "what the region does"
    }
  ]
}

If no JSVMP traits are found, return an empty "regions" array.""",

    "find_jsvmp_dispatcher": """Analyze the following code and identify JSVMP protection structures:

{code}""",
}

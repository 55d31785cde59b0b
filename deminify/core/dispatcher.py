"""JSVMP dispatcher detection: labelled code for the LLM and its validated answer."""

from dataclasses import dataclass
from typing import Any, Literal, Optional

from pydantic import BaseModel, StrictInt, StrictStr, ValidationError

from deminify.core.formatting import format_code_line
from deminify.core.line_index import TextBuffer
from deminify.core.position_map import PositionMap
from deminify.errors import LLMResponseError

DetectionType = Literal["If-Else Dispatcher", "Switch Dispatcher", "Instruction Array", "Stack Operation"]
ConfidenceLevel = Literal["ultra_high", "high", "medium", "low"]

_LINE_NUMBER_WIDTH = 5


class DetectionRegion(BaseModel):
    """A line range of rendered code the model flagged."""

    start: StrictInt
    end: StrictInt
    type: DetectionType
    confidence: ConfidenceLevel
    description: StrictStr


class DetectionResult(BaseModel):
    """Summary and flagged regions returned by the model."""

    summary: StrictStr
    regions: list[DetectionRegion]


@dataclass
class FormattedCode:
    """Rendered lines labelled for analysis."""
    content: str
    total_lines: int
    start_line: int
    end_line: int


def format_code_for_analysis(
    text: str,
    position_map: Optional[PositionMap],
    start_line: int,
    end_line: int,
) -> FormattedCode:
    """Label each line of a range as ``LineNo SourceLoc Code``.

    The range is clamped to the text, so out-of-range requests still yield
    at least one line.
    """
    buffer = TextBuffer.of(text)
    total = buffer.total_lines
    start = max(1, min(total, start_line))
    end = max(start, min(total, end_line))

    lines = []
    for number in range(start, end + 1):
        position = position_map.resolve_line(number) if position_map else None
        lines.append(format_code_line(number, position, buffer.line(number), _LINE_NUMBER_WIDTH))

    return FormattedCode(content="\n".join(lines), total_lines=total, start_line=start, end_line=end)


def parse_detection_result(data: Any) -> DetectionResult:
    """Validate the model's JSON answer.

    Raises:
        LLMResponseError: If a field is missing, mistyped or outside its
            allowed values
    """
    try:
        return DetectionResult.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'response'}: {error['msg']}"
            for error in e.errors()
        )
        raise LLMResponseError(f"Invalid LLM response format: {problems}") from None


def format_detection_result(file_path: str, result: DetectionResult, start_line: int, end_line: int) -> str:
    """Format detected regions for display."""
    parts = [
        "=== JSVMP Dispatcher Detection Result ===",
        f"File: {file_path} ({start_line}-{end_line})",
        "",
        f"Summary: {result.summary}",
        "",
    ]
    if not result.regions:
        parts.append("No JSVMP dispatcher patterns detected.")
        return "\n".join(parts)

    parts.append("Detected Regions:")
    for region in result.regions:
        parts.append(f"[{region.confidence}] Lines {region.start}-{region.end}: {region.type}")
        parts.append(f"  {region.description}")
        parts.append("")
    return "\n".join(parts).rstrip("\n")

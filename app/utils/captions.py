"""Caption file rendering from Deepgram utterances.

Deepgram returns utterances as dicts with "start", "end" (seconds) and
"transcript". These helpers turn them into WebVTT or SubRip bodies.

Usage:
    from app.utils.captions import render_captions

    body = render_captions(utterances, "webvtt")
"""

from collections.abc import Iterable, Mapping
from typing import Any

from app.constants import CAPTION_FORMATS


def format_timestamp(seconds: float, separator: str = ".") -> str:
    """Format seconds as HH:MM:SS<sep>mmm.

    Example:
        >>> format_timestamp(3723.5)
        '01:02:03.500'
        >>> format_timestamp(1.25, separator=",")
        '00:00:01,250'
    """
    total_ms = max(0, int(round(seconds * 1000)))
    hours, remainder = divmod(total_ms, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    secs, millis = divmod(remainder, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}{separator}{millis:03d}"


def _cues(utterances: Iterable[Mapping[str, Any]]) -> list[tuple[float, float, str]]:
    cues = []
    for utterance in utterances:
        text = str(utterance.get("transcript", "")).strip()
        if not text:
            continue
        start = float(utterance.get("start", 0.0))
        end = float(utterance.get("end", start))
        cues.append((start, max(start, end), text))
    return cues


def to_webvtt(utterances: Iterable[Mapping[str, Any]]) -> str:
    lines = ["WEBVTT", ""]
    for start, end, text in _cues(utterances):
        lines.append(f"{format_timestamp(start)} --> {format_timestamp(end)}")
        lines.append(text)
        lines.append("")
    return "\n".join(lines)


def to_srt(utterances: Iterable[Mapping[str, Any]]) -> str:
    lines = []
    for index, (start, end, text) in enumerate(_cues(utterances), start=1):
        lines.append(str(index))
        lines.append(f"{format_timestamp(start, ',')} --> {format_timestamp(end, ',')}")
        lines.append(text)
        lines.append("")
    return "\n".join(lines)


def render_captions(utterances: Iterable[Mapping[str, Any]], caption_format: str) -> str:
    """Render utterances in the requested caption format.

    Args:
        utterances: Deepgram utterance dicts.
        caption_format: "webvtt" or "srt".

    Raises:
        ValueError: If caption_format is not supported.
    """
    if caption_format not in CAPTION_FORMATS:
        raise ValueError(f"Unsupported caption format: {caption_format}")
    if caption_format == "webvtt":
        return to_webvtt(utterances)
    return to_srt(utterances)

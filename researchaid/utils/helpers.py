"""
Common utility functions and helpers.
"""
from typing import Optional
import logging
import os
import re
import uuid

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 200


def word_count(text: str) -> int:
    """
    Count whitespace-separated words.

    Args:
        text: Text to count

    Returns:
        Number of non-empty tokens
    """
    return len(text.split()) if text else 0


def reading_time_minutes(text: str) -> int:
    """Estimated reading time, at least one minute for non-empty text."""
    words = word_count(text)
    if not words:
        return 0
    return max(1, round(words / WORDS_PER_MINUTE))


def normalize_text(text: str) -> str:
    """
    Tidy extracted text while keeping its line structure.

    Runs of spaces and tabs are collapsed, trailing spaces dropped and
    three or more consecutive newlines reduced to two.

    Args:
        text: Raw text string

    Returns:
        Normalized text
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t\f\v]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def truncate_text(text: str, max_length: int = 200, suffix: str = "...") -> str:
    """
    Truncate text to maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def new_document_id() -> str:
    return uuid.uuid4().hex


def file_extension(filename: Optional[str]) -> str:
    """Lower-cased extension including the dot, or "" when there is none."""
    if not filename:
        return ""
    return os.path.splitext(filename)[1].lower()


def safe_remove(path: str) -> None:
    """Delete a file if it exists; log rather than raise on failure."""
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning("Could not remove temp file %s: %s", path, e)

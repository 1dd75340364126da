"""
Error taxonomy shared by the formatting core, the completion client and the
HTTP layer.

Classification never raises: ``ClassificationDegraded`` is only ever recorded
(logged) when a line falls through to the paragraph rule for lack of a better
match.  Everything else propagates until an exception handler in ``main.py``
turns it into a JSON response.
"""
from __future__ import annotations

from typing import List, Optional, Sequence


class ResearchAidError(Exception):
    """Base class for every error raised by this package."""


class ClassificationDegraded(ResearchAidError):
    """A line was interpreted as a plain paragraph because no rule matched it."""

    def __init__(self, line: str, line_no: int) -> None:
        super().__init__(f"line {line_no} degraded to paragraph: {line[:80]!r}")
        self.line = line
        self.line_no = line_no


class RenderUnavailable(ResearchAidError):
    """Every PDF engine in the fallback chain failed."""

    def __init__(self, message: str, attempts: Optional[Sequence] = None) -> None:
        super().__init__(message)
        self.attempts: List = list(attempts or [])


class ParseFailure(ResearchAidError):
    """An uploaded file could not be turned into text."""


class SerializationFailure(ResearchAidError):
    """The word-processing document could not be written to bytes."""


# ---------------------------------------------------------------------------
# Completion oracle failures
# ---------------------------------------------------------------------------

class OracleFailure(ResearchAidError):
    """
    The completion API did not return usable text.

    ``user_message`` is safe to show to an end user; ``status_code`` is the
    HTTP status the API layer answers with.
    """

    status_code: int = 502
    user_message: str = "The language model request failed."

    def __init__(self, message: str = "", user_message: Optional[str] = None) -> None:
        super().__init__(message or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class AuthFailure(OracleFailure):
    status_code = 500
    user_message = "OpenAI API key is not configured"


class RateLimited(OracleFailure):
    status_code = 429
    user_message = "Rate limit exceeded. Please try again in a few moments."


class OracleTimeout(OracleFailure):
    status_code = 504
    user_message = (
        "Request timeout. The generation is taking too long. "
        "Please try with a shorter input."
    )


class UnknownOracleFailure(OracleFailure):
    status_code = 502

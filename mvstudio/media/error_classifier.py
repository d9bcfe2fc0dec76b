"""
Error Classifier

Maps raw provider failures onto a fixed set of categories. The provider has
no structured error taxonomy, so classification is based on HTTP status,
message substrings and response block signals. This module is the only
place that inspects raw error text; retry policy depends on the enum alone.
"""

from enum import Enum
from typing import Iterable, Optional, Union

from mvstudio.core.logging_config import get_logger

logger = get_logger("media.error_classifier")


class ErrorCategory(Enum):
    """Classified failure of a single generation attempt."""
    MALFORMED_REQUEST = "malformed_request"   # Request shape rejected outright
    CONTENT_FILTERED = "content_filtered"     # Declined on policy grounds
    TRANSIENT = "transient"                   # Network, overload, rate limit, 5xx
    NO_OUTPUT = "no_output"                   # Returned fine, but without an image

    @property
    def retryable(self) -> bool:
        """Whether the same request shape is worth sending again."""
        return self in (ErrorCategory.TRANSIENT, ErrorCategory.NO_OUTPUT)

    @property
    def diagnostic_rank(self) -> int:
        """Higher ranks explain a final failure better to the user."""
        return _DIAGNOSTIC_RANK[self]


_DIAGNOSTIC_RANK = {
    ErrorCategory.TRANSIENT: 0,
    ErrorCategory.NO_OUTPUT: 1,
    ErrorCategory.CONTENT_FILTERED: 2,
    ErrorCategory.MALFORMED_REQUEST: 3,
}

# Lowercase substrings
MALFORMED_PATTERNS = [
    "invalid_argument",
    "invalid argument",
    "invalid value at",
    "unsupported mime type",
]

CONTENT_FILTER_PATTERNS = [
    "prohibited_content",
    "blockreason",
    "block_reason",
    "safety",
    "content filter",
    "filtered",
    "content policy",
    "blocklist",
]

FILTER_FINISH_REASONS = {
    "SAFETY",
    "IMAGE_SAFETY",
    "PROHIBITED_CONTENT",
    "IMAGE_PROHIBITED_CONTENT",
    "BLOCKLIST",
    "SPII",
}

MALFORMED_STATUS_CODES = {400}

# Key or project problems; never a verdict on the content
ACCESS_DENIED_STATUS_CODES = {401, 403}


def classify_error(error: Union[BaseException, str], status_code: Optional[int] = None) -> ErrorCategory:
    """
    Classify a failure raised during a generation call.

    Args:
        error: The raised exception or its message
        status_code: HTTP status of the failed response, when there was one

    Returns:
        MALFORMED_REQUEST, CONTENT_FILTERED or TRANSIENT
    """
    message = str(error).lower()

    if status_code in MALFORMED_STATUS_CODES or any(p in message for p in MALFORMED_PATTERNS):
        return ErrorCategory.MALFORMED_REQUEST

    if status_code in ACCESS_DENIED_STATUS_CODES:
        return ErrorCategory.TRANSIENT

    if any(p in message for p in CONTENT_FILTER_PATTERNS):
        return ErrorCategory.CONTENT_FILTERED

    return ErrorCategory.TRANSIENT


def classify_response(
    has_image: bool,
    block_reason: Optional[str] = None,
    finish_reasons: Iterable[str] = ()
) -> Optional[ErrorCategory]:
    """
    Classify a response that came back without raising.

    Returns:
        None when the response carries an image, CONTENT_FILTERED when it
        carries a block signal, NO_OUTPUT otherwise
    """
    if has_image:
        return None
    if block_reason:
        return ErrorCategory.CONTENT_FILTERED
    if any(str(reason).upper() in FILTER_FINISH_REASONS for reason in finish_reasons):
        return ErrorCategory.CONTENT_FILTERED
    return ErrorCategory.NO_OUTPUT


def describe_failure(category: ErrorCategory, detail: str = "") -> str:
    """Build the human-readable message for a classified failure."""
    detail = detail.strip()
    if category == ErrorCategory.MALFORMED_REQUEST:
        text = "Request rejected by provider as malformed"
    elif category == ErrorCategory.CONTENT_FILTERED:
        text = "Content filtered by provider"
    elif category == ErrorCategory.NO_OUTPUT:
        text = "Provider returned no image, possibly rate limited or silently filtered"
    else:
        text = "Provider call failed"
    return f"{text}: {detail}" if detail else text

"""
Response classification for analysis runs.

Turns the (status, body) pair of a finished request into exactly one
``ClassifiedOutcome``. Pure: no I/O, no clock reads (``now`` is passed in),
and no input makes it raise.
"""

import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence, Tuple

import httpx

from models import (
    AnalysisFlow,
    AnalysisOptions,
    ClassifiedOutcome,
    ErrorKind,
    OutcomeKind,
    RateLimitInfo,
)
from utils.parsing.json import body_field, parse_response_body

LOGIN_REQUIRED_MESSAGE = "You must be logged in to run analyses. Redirecting to login..."
EMPTY_RESPONSE_MESSAGE = "Analysis completed but returned an empty response."
UNEXPECTED_RESPONSE_MESSAGE = "Analysis completed but returned an unexpected response."
DEFAULT_FAILURE_MESSAGE = "Analysis failed"

# Keys of an error body that describe the failure rather than carry analysis data
PARTIAL_IGNORED_FIELDS = frozenset(
    {"error", "details", "message", "hint", "success", "limit", "remaining", "reset"}
)

NETWORK_ERROR_MESSAGE = "Network error. Please check your connection and try again."
REQUEST_TIMEOUT_MESSAGE = "Request timed out. The page may be too slow to analyze. Please try again."
UNKNOWN_ERROR_MESSAGE = "Something went wrong. Please try again or contact support if the issue persists."


@dataclass(frozen=True)
class ErrorRule:
    """Friendlier wording for a raw backend error. First matching rule wins."""

    name: str
    matches: Callable[[str], bool]
    message: str
    warnings: Tuple[str, ...] = ()


ERROR_RULES: Sequence[ErrorRule] = (
    ErrorRule(
        name="vision-unavailable",
        matches=lambda text: "Anthropic API" in text,
        message="Visual analysis is temporarily unavailable. We've completed a text-based analysis instead.",
        warnings=("Claude Vision AI is currently unavailable", "Results may be less detailed than usual"),
    ),
    ErrorRule(
        name="screenshot-failed",
        matches=lambda text: "screenshot" in text,
        message="Unable to capture screenshots. Continuing with text-based analysis.",
        warnings=("Screenshot capture failed", "Visual insights unavailable"),
    ),
    ErrorRule(
        name="page-timeout",
        matches=lambda text: "timeout" in text or "Timeout" in text,
        message="The page took too long to load. Please try a faster-loading page or try again later.",
    ),
    ErrorRule(
        name="quota-exhausted",
        matches=lambda text: "rate limit" in text,
        message="You've reached the analysis limit for this page. Please try again later or analyze a different page.",
    ),
)


@dataclass(frozen=True)
class ClassifierContext:
    """What the run asked for; decides which empty sections deserve a warning."""

    flow: AnalysisFlow = AnalysisFlow.INSIGHTS
    options: AnalysisOptions = field(default_factory=AnalysisOptions)
    login_path: str = "/login"


def translate_error(raw_message: str, rules: Sequence[ErrorRule] = ERROR_RULES) -> Tuple[str, List[str]]:
    """Apply the first matching rule; unmatched messages pass through verbatim."""
    for rule in rules:
        if rule.matches(raw_message):
            return rule.message, list(rule.warnings)
    return raw_message, []


def format_wait(seconds: int) -> str:
    """125 -> '2m 5s', 45 -> '45s'."""
    seconds = max(0, int(seconds))
    if seconds >= 60:
        minutes, remainder = divmod(seconds, 60)
        return f"{minutes}m {remainder}s"
    return f"{seconds}s"


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return None
    return None


def parse_reset_ms(reset: Any) -> Optional[int]:
    """
    Normalise a rate-limit ``reset`` value to epoch milliseconds.

    Accepts epoch milliseconds (number or numeric string) or an ISO-8601
    timestamp; timestamps without an offset are taken as UTC.
    """
    numeric = _as_int(reset)
    if numeric is not None:
        return numeric
    if not isinstance(reset, str) or not reset.strip():
        return None
    try:
        parsed = datetime.fromisoformat(reset.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return round(parsed.timestamp() * 1000)


def _rate_limited(body: Any, now: float) -> ClassifiedOutcome:
    limit = _as_int(body_field(body, "limit"))
    remaining = _as_int(body_field(body, "remaining"))
    reset_ms = parse_reset_ms(body_field(body, "reset"))

    wait_seconds = None
    if reset_ms is not None:
        delta_ms = max(0, reset_ms - round(now * 1000))
        wait_seconds = math.ceil(delta_ms / 1000)

    if limit is not None:
        message = f"Rate limit exceeded ({limit} analyses allowed)."
    else:
        message = "Rate limit exceeded."
    if wait_seconds:
        message += f" Please try again in {format_wait(wait_seconds)}."
    elif wait_seconds == 0:
        message += " You can try again now."
    else:
        message += " Please try again later."

    return ClassifiedOutcome(
        kind=OutcomeKind.RATE_LIMITED,
        message=message,
        error_kind=ErrorKind.RATE_LIMITED,
        rate_limit=RateLimitInfo(
            limit=limit,
            remaining=remaining,
            reset_at_ms=reset_ms,
            wait_seconds=wait_seconds,
        ),
    )


def _raw_error_message(body: Any, text: Optional[str]) -> str:
    for key in ("error", "details", "message"):
        value = body_field(body, key)
        if value not in (None, ""):
            return value if isinstance(value, str) else json.dumps(value)
    if text:
        return text
    return DEFAULT_FAILURE_MESSAGE


def _non_success(body: Any, text: Optional[str]) -> ClassifiedOutcome:
    message, warnings = translate_error(_raw_error_message(body, text))

    # Partial data: no error field, and something beyond failure metadata
    if isinstance(body, dict) and not body.get("error") and set(body) - PARTIAL_IGNORED_FIELDS:
        return ClassifiedOutcome(
            kind=OutcomeKind.PARTIAL_SUCCESS,
            warnings=[message] + warnings,
            result=body,
            error_kind=ErrorKind.PARTIAL_FAILURE,
        )

    return ClassifiedOutcome(
        kind=OutcomeKind.HARD_FAILURE,
        message=message,
        warnings=warnings,
        error_kind=ErrorKind.HARD_FAILURE,
    )


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (list, dict)) and len(value) == 0)


def success_warnings(body: dict, context: ClassifierContext) -> List[str]:
    """Degraded-but-usable signals found inside a successful payload."""
    warnings = []

    vision_error = body.get("visionAnalysisError")
    if vision_error:
        detail = vision_error if isinstance(vision_error, str) else json.dumps(vision_error)
        warnings.append(f"Screenshot analysis unavailable: {detail}")

    if context.flow == AnalysisFlow.PAGE:
        if _is_empty(body.get("visualAnalysis")):
            warnings.append("Claude Vision analysis unavailable - showing text-based analysis only")
        return warnings

    if "insights" in body and _is_empty(body.get("insights")):
        warnings.append("No insights could be extracted from this page")
    if context.options.generate_themes and _is_empty(body.get("themes")):
        warnings.append("No themes could be generated from insights")
    if context.options.generate_hypotheses and _is_empty(body.get("hypotheses")):
        warnings.append("No hypotheses could be generated from themes")
    return warnings


def classify_response(
    status_code: int,
    body_text: Optional[str],
    now: float,
    context: Optional[ClassifierContext] = None,
) -> ClassifiedOutcome:
    """
    Classify a completed, non-cancelled analysis request.

    Args:
        status_code: HTTP status of the response
        body_text: Raw body text; may be None, empty, or not JSON
        now: Current time in epoch seconds, used for rate-limit waits
        context: Flow and options of the run that produced the response

    Returns:
        ClassifiedOutcome with exactly one OutcomeKind
    """
    context = context or ClassifierContext()
    body = parse_response_body(body_text)

    if status_code == 401:
        return ClassifiedOutcome(
            kind=OutcomeKind.AUTH_REQUIRED,
            message=LOGIN_REQUIRED_MESSAGE,
            error_kind=ErrorKind.AUTH_REQUIRED,
            redirect_to=context.login_path,
        )

    if status_code == 429:
        return _rate_limited(body, now)

    if not 200 <= status_code < 300:
        return _non_success(body, body_text)

    if body is None:
        return ClassifiedOutcome(
            kind=OutcomeKind.HARD_FAILURE,
            message=EMPTY_RESPONSE_MESSAGE,
            error_kind=ErrorKind.MALFORMED_RESPONSE,
        )

    if not isinstance(body, dict):
        return ClassifiedOutcome(
            kind=OutcomeKind.HARD_FAILURE,
            message=UNEXPECTED_RESPONSE_MESSAGE,
            error_kind=ErrorKind.MALFORMED_RESPONSE,
        )

    error = body.get("error")
    if error:
        message = error if isinstance(error, str) else json.dumps(error)
        hint = body.get("hint")
        if hint:
            message += f"\n\n{hint}"
        return ClassifiedOutcome(
            kind=OutcomeKind.HARD_FAILURE,
            message=message,
            error_kind=ErrorKind.HARD_FAILURE,
        )

    if body.get("success") is False:
        return ClassifiedOutcome(
            kind=OutcomeKind.HARD_FAILURE,
            message=DEFAULT_FAILURE_MESSAGE,
            error_kind=ErrorKind.HARD_FAILURE,
        )

    return ClassifiedOutcome(
        kind=OutcomeKind.SUCCESS,
        warnings=success_warnings(body, context),
        result=body,
    )


def classify_exception(exc: BaseException) -> ClassifiedOutcome:
    """Map an exception raised while awaiting the response to a generic category."""
    if isinstance(exc, httpx.TimeoutException):
        message, kind = REQUEST_TIMEOUT_MESSAGE, ErrorKind.TIMEOUT
    elif isinstance(exc, httpx.TransportError):
        message, kind = NETWORK_ERROR_MESSAGE, ErrorKind.CONNECTIVITY
    else:
        message, kind = UNKNOWN_ERROR_MESSAGE, ErrorKind.UNKNOWN
    return ClassifiedOutcome(kind=OutcomeKind.HARD_FAILURE, message=message, error_kind=kind)

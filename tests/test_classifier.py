import json

import httpx
import pytest

from analyzer.classifier import (
    DEFAULT_FAILURE_MESSAGE,
    EMPTY_RESPONSE_MESSAGE,
    LOGIN_REQUIRED_MESSAGE,
    NETWORK_ERROR_MESSAGE,
    REQUEST_TIMEOUT_MESSAGE,
    UNEXPECTED_RESPONSE_MESSAGE,
    UNKNOWN_ERROR_MESSAGE,
    ClassifierContext,
    classify_exception,
    classify_response,
    format_wait,
    parse_reset_ms,
    translate_error,
)
from models import AnalysisFlow, AnalysisOptions, ErrorKind, OutcomeKind

NOW = 1_760_000_000.0


def _classify(status, body, context=None):
    text = body if isinstance(body, str) or body is None else json.dumps(body)
    return classify_response(status, text, now=NOW, context=context)


def test_401_requires_login_and_redirects():
    outcome = _classify(401, {"error": "Unauthorized"})

    assert outcome.kind == OutcomeKind.AUTH_REQUIRED
    assert outcome.message == LOGIN_REQUIRED_MESSAGE
    assert outcome.redirect_to == "/login"
    assert outcome.error_kind == ErrorKind.AUTH_REQUIRED
    assert outcome.is_error


def test_401_uses_login_path_from_context():
    outcome = _classify(401, "", ClassifierContext(login_path="/auth/sign-in"))
    assert outcome.redirect_to == "/auth/sign-in"


def test_429_reports_limit_and_wait_time():
    reset_ms = int(NOW * 1000) + 125_000
    outcome = _classify(429, {"limit": 10, "remaining": 0, "reset": reset_ms})

    assert outcome.kind == OutcomeKind.RATE_LIMITED
    assert outcome.message == "Rate limit exceeded (10 analyses allowed). Please try again in 2m 5s."
    assert outcome.rate_limit.wait_seconds == 125
    assert outcome.rate_limit.remaining == 0
    assert outcome.result is None


def test_429_accepts_iso_reset_time():
    # NOW is 2025-10-09T08:53:20Z
    outcome = _classify(429, {"limit": 5, "reset": "2025-10-09T08:54:05Z"})
    assert "Please try again in 45s." in outcome.message


def test_429_without_details_still_classifies():
    outcome = _classify(429, "Too Many Requests")

    assert outcome.kind == OutcomeKind.RATE_LIMITED
    assert outcome.message == "Rate limit exceeded. Please try again later."


def test_429_with_reset_in_the_past():
    outcome = _classify(429, {"limit": 10, "reset": int(NOW * 1000) - 5000})
    assert outcome.message.endswith("You can try again now.")


def test_error_status_with_vision_failure_gets_friendly_message():
    outcome = _classify(500, {"error": "Anthropic API error: overloaded"})

    assert outcome.kind == OutcomeKind.HARD_FAILURE
    assert outcome.message.startswith("Visual analysis is temporarily unavailable")
    assert outcome.warnings == [
        "Claude Vision AI is currently unavailable",
        "Results may be less detailed than usual",
    ]


def test_error_status_with_unmatched_error_passes_through():
    outcome = _classify(500, {"error": "Database connection refused"})

    assert outcome.message == "Database connection refused"
    assert outcome.warnings == []


def test_error_status_with_plain_text_body():
    outcome = _classify(502, "Bad Gateway")
    assert outcome.kind == OutcomeKind.HARD_FAILURE
    assert outcome.message == "Bad Gateway"


def test_error_status_with_empty_body_uses_default_message():
    outcome = _classify(500, "")
    assert outcome.message == DEFAULT_FAILURE_MESSAGE


def test_error_status_with_data_is_partial_success():
    body = {"message": "screenshot capture failed", "insights": [{"title": "Weak CTA"}]}
    outcome = _classify(500, body)

    assert outcome.kind == OutcomeKind.PARTIAL_SUCCESS
    assert outcome.error_kind == ErrorKind.PARTIAL_FAILURE
    assert outcome.result == body
    assert outcome.warnings == [
        "Unable to capture screenshots. Continuing with text-based analysis.",
        "Screenshot capture failed",
        "Visual insights unavailable",
    ]
    assert not outcome.is_error


@pytest.mark.parametrize(
    "body, message",
    [
        ({"details": "Database connection refused"}, "Database connection refused"),
        ({"message": "Internal Server Error"}, "Internal Server Error"),
        ({"success": False, "message": "Worker crashed", "hint": "Retry shortly"}, "Worker crashed"),
    ],
)
def test_error_status_with_only_error_fields_is_hard_failure(body, message):
    outcome = _classify(500, body)

    assert outcome.kind == OutcomeKind.HARD_FAILURE
    assert outcome.error_kind == ErrorKind.HARD_FAILURE
    assert outcome.message == message
    assert outcome.result is None


@pytest.mark.parametrize("body", ["", "   ", "definitely not json"])
def test_2xx_without_usable_body_is_malformed(body):
    outcome = _classify(200, body)

    assert outcome.kind == OutcomeKind.HARD_FAILURE
    assert outcome.error_kind == ErrorKind.MALFORMED_RESPONSE
    assert outcome.message == EMPTY_RESPONSE_MESSAGE


def test_2xx_with_non_object_body_is_unexpected():
    outcome = _classify(200, [1, 2, 3])
    assert outcome.message == UNEXPECTED_RESPONSE_MESSAGE
    assert outcome.error_kind == ErrorKind.MALFORMED_RESPONSE


def test_2xx_with_error_field_appends_hint():
    outcome = _classify(200, {"error": "Could not reach page", "hint": "Check the URL is public."})

    assert outcome.kind == OutcomeKind.HARD_FAILURE
    assert outcome.message == "Could not reach page\n\nCheck the URL is public."


def test_2xx_with_success_false():
    outcome = _classify(200, {"success": False})
    assert outcome.message == DEFAULT_FAILURE_MESSAGE


def test_success_with_requested_but_empty_themes_warns():
    context = ClassifierContext(options=AnalysisOptions(generate_themes=True))
    body = {"success": True, "insights": [{"title": "a"}, {"title": "b"}, {"title": "c"}], "themes": []}
    outcome = _classify(200, body, context)

    assert outcome.kind == OutcomeKind.SUCCESS
    assert outcome.warnings == ["No themes could be generated from insights"]
    assert outcome.result == body
    assert outcome.message is None


def test_success_with_empty_insights_warns():
    context = ClassifierContext(options=AnalysisOptions(generate_themes=True, generate_hypotheses=True))
    outcome = _classify(200, {"success": True, "insights": [], "themes": [], "hypotheses": []}, context)

    assert outcome.warnings == [
        "No insights could be extracted from this page",
        "No themes could be generated from insights",
        "No hypotheses could be generated from themes",
    ]


def test_success_without_requested_sections_has_no_warnings():
    outcome = _classify(200, {"success": True, "insights": [{"title": "a"}]})
    assert outcome.warnings == []


def test_page_flow_warns_when_vision_missing():
    context = ClassifierContext(flow=AnalysisFlow.PAGE)
    body = {"success": True, "visualAnalysis": None, "visionAnalysisError": "timeout"}
    outcome = _classify(200, body, context)

    assert outcome.kind == OutcomeKind.SUCCESS
    assert outcome.warnings == [
        "Screenshot analysis unavailable: timeout",
        "Claude Vision analysis unavailable - showing text-based analysis only",
    ]


def test_classification_is_deterministic():
    body = {"limit": 10, "reset": int(NOW * 1000) + 30_000}
    assert _classify(429, body) == _classify(429, body)


def test_translate_error_first_rule_wins():
    message, warnings = translate_error("Anthropic API rejected the screenshot")
    assert message.startswith("Visual analysis is temporarily unavailable")
    assert len(warnings) == 2


@pytest.mark.parametrize(
    "seconds, expected",
    [(125, "2m 5s"), (45, "45s"), (60, "1m 0s"), (0, "0s")],
)
def test_format_wait(seconds, expected):
    assert format_wait(seconds) == expected


def test_parse_reset_ms_formats():
    assert parse_reset_ms(1_760_000_125_000) == 1_760_000_125_000
    assert parse_reset_ms("1760000125000") == 1_760_000_125_000
    assert parse_reset_ms("2025-10-09T08:53:20Z") == 1_760_000_000_000
    assert parse_reset_ms("2025-10-09T08:53:20") == 1_760_000_000_000
    assert parse_reset_ms("soon") is None
    assert parse_reset_ms(None) is None


def test_classify_exception_categories():
    request = httpx.Request("POST", "http://backend.test/api/analyze-v2")

    timeout = classify_exception(httpx.ReadTimeout("slow", request=request))
    assert timeout.error_kind == ErrorKind.TIMEOUT
    assert timeout.message == REQUEST_TIMEOUT_MESSAGE

    network = classify_exception(httpx.ConnectError("refused", request=request))
    assert network.error_kind == ErrorKind.CONNECTIVITY
    assert network.message == NETWORK_ERROR_MESSAGE

    other = classify_exception(RuntimeError("boom"))
    assert other.error_kind == ErrorKind.UNKNOWN
    assert other.message == UNKNOWN_ERROR_MESSAGE
    assert all(o.kind == OutcomeKind.HARD_FAILURE for o in (timeout, network, other))

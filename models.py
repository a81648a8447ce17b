from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class AnalysisStage(str, Enum):
    IDLE = "idle"
    SCRAPING = "scraping"
    SCREENSHOTS = "screenshots"
    HERO_ANALYSIS = "hero-analysis"
    SOCIAL_PROOF_ANALYSIS = "social-proof-analysis"
    CTA_ANALYSIS = "cta-analysis"
    GENERATING_RECOMMENDATIONS = "generating-recommendations"
    COMPLETE = "complete"


class AnalysisFlow(str, Enum):
    PAGE = "page"  # /api/analyze
    INSIGHTS = "insights"  # /api/analyze-v2


class LLMProvider(str, Enum):
    GPT = "gpt"
    CLAUDE = "claude"


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial-success"
    AUTH_REQUIRED = "auth-required"
    RATE_LIMITED = "rate-limited"
    HARD_FAILURE = "hard-failure"


class ErrorKind(str, Enum):
    AUTH_REQUIRED = "auth-required"
    RATE_LIMITED = "rate-limited"
    TIMEOUT = "timeout"
    USER_CANCELLED = "user-cancelled"
    PARTIAL_FAILURE = "partial-failure-with-data"
    HARD_FAILURE = "hard-failure"
    MALFORMED_RESPONSE = "malformed-response"
    CONNECTIVITY = "connectivity"
    UNKNOWN = "unknown"


# Request models
class AnalysisContext(BaseModel):
    traffic_source: str = "mixed"
    product_type: str = ""
    price_point: str = ""


class AnalysisOptions(BaseModel):
    generate_themes: bool = False
    generate_hypotheses: bool = False


class AnalysisRequest(BaseModel):
    url: str
    context: Optional[AnalysisContext] = None
    metrics: Optional[Dict[str, float]] = None
    llm: Optional[LLMProvider] = None
    workspace_id: Optional[str] = None
    options: AnalysisOptions = Field(default_factory=AnalysisOptions)
    flow: AnalysisFlow = AnalysisFlow.INSIGHTS

    @field_validator("url")
    @classmethod
    def _url_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("URL is required")
        return value


# Response models
class RateLimitInfo(BaseModel):
    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset_at_ms: Optional[int] = None
    wait_seconds: Optional[int] = None


class ClassifiedOutcome(BaseModel):
    kind: OutcomeKind
    message: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    result: Optional[Any] = None
    error_kind: Optional[ErrorKind] = None
    redirect_to: Optional[str] = None
    rate_limit: Optional[RateLimitInfo] = None

    @property
    def is_error(self) -> bool:
        return self.kind not in (OutcomeKind.SUCCESS, OutcomeKind.PARTIAL_SUCCESS)


# Run state
class AnalysisRunState(BaseModel):
    """One analysis run as the dashboard sees it. Never persisted."""

    run_id: int = 0
    stage: AnalysisStage = AnalysisStage.IDLE
    progress: int = 0
    message: str = ""
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    result: Optional[Any] = None
    active: bool = False
    redirect_to: Optional[str] = None
    url: Optional[str] = None


class AnalysisStatus(BaseModel):
    """Server-side status of a saved analysis, as reported by the status endpoint."""

    analysis_id: str
    status: str  # "processing" | "completed" | "failed"
    progress: int = 0
    stage: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    analysis: Optional[Dict[str, Any]] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed")

"""Data models for WAF traffic tests."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, List, Dict, Any

# Safety limits enforced before a test starts
MAX_TOTAL_REQUESTS = 10000
MAX_DURATION_SECONDS = 3600

TRAFFIC_TYPES = {"normal", "attack"}
TEST_MODES = {"baseline", "burst"}
USER_AGENT_TYPES = {"legitimate", "scanner"}

# Status codes commonly returned by WAFs and rate limiters
BLOCKED_STATUS_CODES = {403, 406, 429}

MAX_RESPONSE_BODY_CHARS = 500
TRUNCATION_MARKER = "... (truncated)"


class ConfigError(ValueError):
    """Raised when a test configuration is rejected."""


def _parse_time(value: Optional[str]) -> datetime:
    """Parse an ISO timestamp, falling back to now for missing values."""
    if not value:
        return datetime.now()
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class TestConfig:
    """Configuration for a single WAF test run."""

    __test__ = False

    target_url: str = ""
    total_requests: int = 0
    duration: int = 0

    traffic_type: str = ""  # "normal" or "attack"
    test_mode: str = ""  # "baseline" or "burst"
    http_method: str = ""

    custom_headers: Dict[str, str] = field(default_factory=dict)
    request_body: str = ""

    user_agent_type: str = ""  # "legitimate" or "scanner"
    custom_user_agent: str = ""

    # Forces 404s by appending a random path (normal traffic only)
    error_mode: bool = False

    @property
    def is_attack(self) -> bool:
        return self.traffic_type == "attack"

    @property
    def is_burst(self) -> bool:
        return self.test_mode == "burst"

    def validate(self) -> None:
        """
        Check the configuration against the safety limits.

        Raises:
            ConfigError: If any field is out of range or unknown
        """
        if not self.target_url:
            raise ConfigError("target_url is required")
        if self.total_requests <= 0:
            raise ConfigError("total_requests must be greater than 0")
        if self.total_requests > MAX_TOTAL_REQUESTS:
            raise ConfigError(
                f"total_requests cannot exceed {MAX_TOTAL_REQUESTS} (safety limit)"
            )
        if self.duration <= 0:
            raise ConfigError("duration must be greater than 0")
        if self.duration > MAX_DURATION_SECONDS:
            raise ConfigError(
                f"duration cannot exceed {MAX_DURATION_SECONDS} seconds (1 hour)"
            )
        if self.traffic_type and self.traffic_type not in TRAFFIC_TYPES:
            raise ConfigError("traffic_type must be 'normal' or 'attack'")
        if self.test_mode and self.test_mode not in TEST_MODES:
            raise ConfigError("test_mode must be 'baseline' or 'burst'")
        if self.user_agent_type and self.user_agent_type not in USER_AGENT_TYPES:
            raise ConfigError("user_agent_type must be 'legitimate' or 'scanner'")

    def with_defaults(self) -> "TestConfig":
        """Return a copy with unset optional fields filled in."""
        return replace(
            self,
            traffic_type=self.traffic_type or "normal",
            test_mode=self.test_mode or "baseline",
            http_method=(self.http_method or "GET").upper(),
            custom_headers=dict(self.custom_headers),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestConfig":
        """Build a config from its JSON representation."""
        if not isinstance(data, dict):
            raise ConfigError("config must be a JSON object")

        headers = data.get("custom_headers") or {}
        if not isinstance(headers, dict):
            raise ConfigError("custom_headers must be an object")

        error_mode = data.get("error_mode")
        if error_mode is None:
            error_mode = False
        elif not isinstance(error_mode, bool):
            raise ConfigError("error_mode must be true or false")

        try:
            return cls(
                target_url=str(data.get("target_url") or ""),
                total_requests=int(data.get("total_requests") or 0),
                duration=int(data.get("duration") or 0),
                traffic_type=str(data.get("traffic_type") or ""),
                test_mode=str(data.get("test_mode") or ""),
                http_method=str(data.get("http_method") or ""),
                custom_headers={str(k): str(v) for k, v in headers.items()},
                request_body=str(data.get("request_body") or ""),
                user_agent_type=str(data.get("user_agent_type") or ""),
                custom_user_agent=str(data.get("custom_user_agent") or ""),
                error_mode=error_mode,
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid config: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            "target_url": self.target_url,
            "total_requests": self.total_requests,
            "duration": self.duration,
            "traffic_type": self.traffic_type,
            "error_mode": self.error_mode,
            "user_agent_type": self.user_agent_type,
            "test_mode": self.test_mode,
            "http_method": self.http_method,
            "custom_headers": dict(self.custom_headers),
            "request_body": self.request_body,
        }
        if self.custom_user_agent:
            data["custom_user_agent"] = self.custom_user_agent
        return data


@dataclass(frozen=True)
class RequestOutcome:
    """Result of a single request sent during a test."""

    id: int
    timestamp: datetime
    url: str
    method: str

    request_headers: Dict[str, str] = field(default_factory=dict)
    request_body: str = ""

    # 0 when the request could not be sent
    status: int = 0
    status_text: str = ""
    response_headers: Dict[str, str] = field(default_factory=dict)
    response_body: str = ""

    response_time: int = 0  # milliseconds
    error: str = ""
    was_blocked: bool = False

    # e.g. "sql (query parameter)"; empty for normal traffic
    attack_info: str = ""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_error(self) -> bool:
        return self.status >= 400 or bool(self.error)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            "id": self.id,
            "status": self.status,
            "status_text": self.status_text,
            "url": self.url,
            "method": self.method,
            "request_headers": dict(self.request_headers),
            "response_headers": dict(self.response_headers),
            "response_time": self.response_time,
            "timestamp": self.timestamp.isoformat(),
            "was_blocked": self.was_blocked,
        }
        if self.request_body:
            data["request_body"] = self.request_body
        if self.response_body:
            data["response_body"] = self.response_body
        if self.error:
            data["error"] = self.error
        if self.attack_info:
            data["attack_info"] = self.attack_info
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RequestOutcome":
        """Rebuild an outcome from its serialized form."""
        return cls(
            id=int(data.get("id", 0)),
            timestamp=_parse_time(data.get("timestamp")),
            url=data.get("url", ""),
            method=data.get("method", ""),
            request_headers=dict(data.get("request_headers") or {}),
            request_body=data.get("request_body", ""),
            status=int(data.get("status", 0)),
            status_text=data.get("status_text", ""),
            response_headers=dict(data.get("response_headers") or {}),
            response_body=data.get("response_body", ""),
            response_time=int(data.get("response_time", 0)),
            error=data.get("error", ""),
            was_blocked=bool(data.get("was_blocked", False)),
            attack_info=data.get("attack_info", ""),
        )


@dataclass
class RunningStats:
    """Statistics over the outcomes received so far."""

    success_count: int = 0
    error_count: int = 0
    blocked_count: int = 0
    avg_response: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "success_count": self.success_count,
            "error_count": self.error_count,
            "blocked_count": self.blocked_count,
            "avg_response": self.avg_response,
        }


@dataclass
class FinalResult:
    """Complete results of a finished test."""

    test_id: str
    total_requests: int

    success_count: int
    error_count: int
    blocked_count: int

    # Response times (milliseconds)
    avg_response: int
    min_response: int
    max_response: int
    p50_response: int
    p95_response: int
    p99_response: int

    # First blocked request, sticky once set
    rate_limit_hit: bool
    rate_limit_at: int

    start_time: datetime
    end_time: datetime
    duration: float
    requests_per_sec: float

    requests: List[RequestOutcome] = field(default_factory=list, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "test_id": self.test_id,
            "total_requests": self.total_requests,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "blocked_count": self.blocked_count,
            "avg_response": self.avg_response,
            "min_response": self.min_response,
            "max_response": self.max_response,
            "p50_response": self.p50_response,
            "p95_response": self.p95_response,
            "p99_response": self.p99_response,
            "requests": [r.to_dict() for r in self.requests],
            "rate_limit_hit": self.rate_limit_hit,
            "rate_limit_at": self.rate_limit_at,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration": self.duration,
            "requests_per_sec": self.requests_per_sec,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FinalResult":
        """Rebuild a result from its serialized form."""
        return cls(
            test_id=data.get("test_id", ""),
            total_requests=int(data.get("total_requests", 0)),
            success_count=int(data.get("success_count", 0)),
            error_count=int(data.get("error_count", 0)),
            blocked_count=int(data.get("blocked_count", 0)),
            avg_response=int(data.get("avg_response", 0)),
            min_response=int(data.get("min_response", 0)),
            max_response=int(data.get("max_response", 0)),
            p50_response=int(data.get("p50_response", 0)),
            p95_response=int(data.get("p95_response", 0)),
            p99_response=int(data.get("p99_response", 0)),
            rate_limit_hit=bool(data.get("rate_limit_hit", False)),
            rate_limit_at=int(data.get("rate_limit_at", 0)),
            start_time=_parse_time(data.get("start_time")),
            end_time=_parse_time(data.get("end_time")),
            duration=float(data.get("duration", 0.0)),
            requests_per_sec=float(data.get("requests_per_sec", 0.0)),
            requests=[RequestOutcome.from_dict(r) for r in data.get("requests") or []],
        )


@dataclass
class ProgressEvent:
    """One event on a streaming session's progress stream."""

    type: str  # "progress", "complete", "cancelled" or "error"
    test_id: str
    completed: int
    total: int
    percentage: int = 0

    new_requests: Optional[List[RequestOutcome]] = None
    current_stats: Optional[RunningStats] = None
    final_result: Optional[FinalResult] = None
    error: Optional[str] = None

    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_terminal(self) -> bool:
        return self.type in ("complete", "cancelled", "error")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization, omitting unset fields."""
        data: Dict[str, Any] = {
            "type": self.type,
            "test_id": self.test_id,
            "completed": self.completed,
            "total": self.total,
            "percentage": self.percentage,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.new_requests:
            data["new_requests"] = [r.to_dict() for r in self.new_requests]
        if self.current_stats is not None:
            data["current_stats"] = self.current_stats.to_dict()
        if self.final_result is not None:
            data["final_result"] = self.final_result.to_dict()
        if self.error:
            data["error"] = self.error
        return data

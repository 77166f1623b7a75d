"""Core traffic generation and measurement components."""

from .models import (
    ConfigError,
    FinalResult,
    ProgressEvent,
    RequestOutcome,
    RunningStats,
    TestConfig,
)
from .executor import RequestExecutor
from .pacing import PacingScheduler, calculate_interval_ms
from .payloads import PayloadPool
from .session import Session, SessionCoordinator, SessionRegistry
from .stats import build_final_result, calculate_percentile, calculate_running_stats

__all__ = [
    "ConfigError",
    "FinalResult",
    "ProgressEvent",
    "RequestOutcome",
    "RunningStats",
    "TestConfig",
    "RequestExecutor",
    "PacingScheduler",
    "calculate_interval_ms",
    "PayloadPool",
    "Session",
    "SessionCoordinator",
    "SessionRegistry",
    "build_final_result",
    "calculate_percentile",
    "calculate_running_stats",
]

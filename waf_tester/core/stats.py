"""Latency percentiles and test statistics."""

from datetime import datetime
from typing import List, Sequence, Tuple

from .models import FinalResult, RequestOutcome, RunningStats


def calculate_percentile(sorted_values: Sequence[int], percentile: float) -> int:
    """
    Nearest-rank percentile of an ascending sequence.

    The index is ``percentile/100 * (n-1)`` rounded half up and clamped to
    the sequence bounds. An empty sequence yields 0.
    """
    if not sorted_values:
        return 0
    index = int((percentile / 100.0) * (len(sorted_values) - 1) + 0.5)
    index = max(0, min(index, len(sorted_values) - 1))
    return sorted_values[index]


def response_time_percentiles(response_times: Sequence[int]) -> Tuple[int, int, int]:
    """Return (p50, p95, p99) of unsorted response times."""
    if not response_times:
        return 0, 0, 0
    sorted_times = sorted(response_times)
    return (
        calculate_percentile(sorted_times, 50),
        calculate_percentile(sorted_times, 95),
        calculate_percentile(sorted_times, 99),
    )


def calculate_running_stats(outcomes: Sequence[RequestOutcome]) -> RunningStats:
    """Summarize every outcome received so far."""
    stats = RunningStats()
    total_response_time = 0

    for outcome in outcomes:
        if outcome.is_success:
            stats.success_count += 1
        if outcome.is_error:
            stats.error_count += 1
        if outcome.was_blocked:
            stats.blocked_count += 1
        total_response_time += outcome.response_time

    if outcomes:
        stats.avg_response = total_response_time // len(outcomes)

    return stats


def find_rate_limit(outcomes: Sequence[RequestOutcome]) -> Tuple[bool, int]:
    """Return (hit, request id) for the first blocked outcome in id order."""
    for outcome in sorted(outcomes, key=lambda o: o.id):
        if outcome.was_blocked:
            return True, outcome.id
    return False, 0


def build_final_result(
    test_id: str,
    outcomes: List[RequestOutcome],
    start_time: datetime,
    end_time: datetime = None,
) -> FinalResult:
    """
    Compute the final statistics of a finished test.

    Min latency ignores zero latencies so failed sends do not pass for the
    fastest response; max, average and percentiles use every outcome.
    """
    end_time = end_time or datetime.now()
    running = calculate_running_stats(outcomes)

    response_times = [o.response_time for o in outcomes]
    positive_times = [t for t in response_times if t > 0]
    min_response = min(positive_times) if positive_times else 0
    max_response = max(response_times) if response_times else 0
    p50, p95, p99 = response_time_percentiles(response_times)

    rate_limit_hit, rate_limit_at = find_rate_limit(outcomes)

    duration = (end_time - start_time).total_seconds()
    requests_per_sec = len(outcomes) / duration if duration > 0 else 0.0

    return FinalResult(
        test_id=test_id,
        total_requests=len(outcomes),
        success_count=running.success_count,
        error_count=running.error_count,
        blocked_count=running.blocked_count,
        avg_response=running.avg_response,
        min_response=min_response,
        max_response=max_response,
        p50_response=p50,
        p95_response=p95,
        p99_response=p99,
        rate_limit_hit=rate_limit_hit,
        rate_limit_at=rate_limit_at,
        start_time=start_time,
        end_time=end_time,
        duration=duration,
        requests_per_sec=requests_per_sec,
        requests=list(outcomes),
    )

"""Chart generation for WAF test results."""

import matplotlib.pyplot as plt
from collections import Counter
from datetime import datetime
from typing import Optional

from ..core.models import BLOCKED_STATUS_CODES, FinalResult


def generate_charts(
    result: FinalResult,
    output_path: Optional[str] = None,
    show: bool = False,
) -> Optional[str]:
    """
    Generate response-time and blocking charts for a finished test.

    Args:
        result: Final result to plot
        output_path: Path to save the chart (auto-generated if None)
        show: Whether to display the chart

    Returns:
        Path to saved chart file, or None if there was nothing to plot
    """
    if not result.requests:
        print("No requests to chart.")
        return None

    ids = [r.id for r in result.requests]
    latencies = [r.response_time for r in result.requests]
    blocked_ids = [r.id for r in result.requests if r.was_blocked]
    blocked_latencies = [r.response_time for r in result.requests if r.was_blocked]

    fig, ((ax1, ax2), (ax3, ax4)) = plt.subplots(2, 2, figsize=(15, 12))
    fig.suptitle(f"WAF Test Results ({result.test_id})", fontsize=16, fontweight="bold")

    # Response time per request, blocked requests highlighted
    ax1.plot(ids, latencies, "b-", linewidth=1, alpha=0.7, label="Response time")
    if blocked_ids:
        ax1.scatter(blocked_ids, blocked_latencies, color="red", s=20, label="Blocked", zorder=3)
    if result.rate_limit_hit:
        ax1.axvline(
            result.rate_limit_at, color="red", linestyle="--", alpha=0.5,
            label=f"First block (#{result.rate_limit_at})",
        )
    ax1.set_xlabel("Request #")
    ax1.set_ylabel("Response Time (ms)")
    ax1.set_title("Response Time per Request")
    ax1.legend()
    ax1.grid(True, alpha=0.3)

    # Status code distribution
    status_counts = Counter(r.status for r in result.requests)
    statuses = sorted(status_counts)
    colors = [_status_color(s) for s in statuses]
    ax2.bar([str(s) for s in statuses], [status_counts[s] for s in statuses], color=colors)
    ax2.set_xlabel("Status Code (0 = failed)")
    ax2.set_ylabel("Requests")
    ax2.set_title("Status Code Distribution")
    ax2.grid(True, alpha=0.3, axis="y")

    # Latency summary
    labels = ["Min", "Avg", "p50", "p95", "p99", "Max"]
    values = [
        result.min_response,
        result.avg_response,
        result.p50_response,
        result.p95_response,
        result.p99_response,
        result.max_response,
    ]
    ax3.bar(labels, values, color="green", alpha=0.7)
    ax3.set_ylabel("Response Time (ms)")
    ax3.set_title("Response Time Summary")
    ax3.grid(True, alpha=0.3, axis="y")

    # Cumulative blocked requests
    cumulative = []
    blocked_so_far = 0
    for r in result.requests:
        blocked_so_far += int(r.was_blocked)
        cumulative.append(blocked_so_far)
    ax4.plot(ids, cumulative, color="purple", linewidth=2)
    ax4.set_xlabel("Request #")
    ax4.set_ylabel("Blocked Requests")
    ax4.set_title("Cumulative Blocked Requests")
    ax4.grid(True, alpha=0.3)

    plt.tight_layout()

    if output_path:
        saved_path = output_path
    else:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        saved_path = f"waf_test_{timestamp}.png"

    plt.savefig(saved_path, dpi=150, bbox_inches="tight")
    print(f"\nChart saved as: {saved_path}")

    if show:
        plt.show()
    plt.close(fig)

    return saved_path


def _status_color(status: int) -> str:
    if status in BLOCKED_STATUS_CODES:
        return "red"
    if 200 <= status < 300:
        return "green"
    if status == 0 or status >= 500:
        return "black"
    return "orange"

"""Result breakdowns and console reporting."""

import pandas as pd
from typing import Dict, Optional

from ..core.models import FinalResult


class ResultAggregator:
    """Groups the requests of a finished test for reporting."""

    def __init__(self, result: FinalResult):
        self.result = result

    def to_dataframe(self) -> pd.DataFrame:
        """Per-request DataFrame used for grouping."""
        data = [
            {
                "id": r.id,
                "status": r.status,
                "response_time": r.response_time,
                "was_blocked": r.was_blocked,
                "error": r.error,
                "attack": r.attack_info.split(" ")[0] if r.attack_info else "",
            }
            for r in self.result.requests
        ]
        return pd.DataFrame(
            data, columns=["id", "status", "response_time", "was_blocked", "error", "attack"]
        )

    def status_breakdown(self) -> pd.DataFrame:
        """Count and latency per status code (0 = request failed)."""
        df = self.to_dataframe()
        if df.empty:
            return pd.DataFrame(columns=["Status", "Count", "Blocked", "Avg_ms", "Max_ms"])

        grouped = df.groupby("status").agg(
            Count=("id", "count"),
            Blocked=("was_blocked", "sum"),
            Avg_ms=("response_time", "mean"),
            Max_ms=("response_time", "max"),
        )
        grouped = grouped.reset_index().rename(columns={"status": "Status"})
        grouped["Blocked"] = grouped["Blocked"].astype(int)
        grouped["Avg_ms"] = grouped["Avg_ms"].map(lambda v: f"{v:.1f}")
        return grouped

    def attack_breakdown(self) -> pd.DataFrame:
        """Sent and blocked counts per attack category."""
        df = self.to_dataframe()
        df = df[df["attack"] != ""]
        if df.empty:
            return pd.DataFrame(columns=["Attack", "Sent", "Blocked", "Block%"])

        grouped = df.groupby("attack").agg(
            Sent=("id", "count"),
            Blocked=("was_blocked", "sum"),
        )
        grouped = grouped.reset_index().rename(columns={"attack": "Attack"})
        grouped["Blocked"] = grouped["Blocked"].astype(int)
        grouped["Block%"] = (grouped["Blocked"] / grouped["Sent"] * 100).map(
            lambda v: f"{v:.1f}"
        )
        return grouped

    def error_counts(self) -> Dict[str, int]:
        """Occurrences of each distinct transport error (first 100 chars)."""
        counts: Dict[str, int] = {}
        for r in self.result.requests:
            if r.error:
                key = r.error[:100]
                counts[key] = counts.get(key, 0) + 1
        return counts

    def print_results(self, title: Optional[str] = None) -> None:
        """Print test results in a formatted way."""
        result = self.result
        success_rate = (
            result.success_count / result.total_requests * 100
            if result.total_requests
            else 0.0
        )

        print("\n" + "=" * 60)
        print(title or "WAF TEST RESULTS")
        print("=" * 60)
        print(f"Test ID:             {result.test_id}")
        print(f"Total Requests:      {result.total_requests}")
        print(f"Successful (2xx):    {result.success_count}")
        print(f"Errors:              {result.error_count}")
        print(f"Blocked:             {result.blocked_count}")
        print(f"Success Rate:        {success_rate:.1f}%")
        if result.rate_limit_hit:
            print(f"Rate Limit Hit:      yes, at request #{result.rate_limit_at}")
        else:
            print("Rate Limit Hit:      no")
        print()
        print("RESPONSE TIMES (ms)")
        print("-" * 30)
        print(f"Average:             {result.avg_response}")
        print(f"Minimum:             {result.min_response}")
        print(f"Maximum:             {result.max_response}")
        print(f"p50 (Median):        {result.p50_response}")
        print(f"p95:                 {result.p95_response}")
        print(f"p99:                 {result.p99_response}")
        print()
        print("THROUGHPUT")
        print("-" * 30)
        print(f"Duration:            {result.duration:.2f}s")
        print(f"Actual Throughput:   {result.requests_per_sec:.2f} requests/second")
        print("=" * 60)

        if result.requests:
            print("\nSTATUS CODES")
            print("-" * 30)
            print(self.status_breakdown().to_string(index=False))

            attacks = self.attack_breakdown()
            if not attacks.empty:
                print("\nATTACK CATEGORIES")
                print("-" * 30)
                print(attacks.to_string(index=False))

        errors = self.error_counts()
        if errors:
            print("\nERROR SUMMARY")
            print("-" * 30)
            for error, count in errors.items():
                print(f"Error ({count} occurrences): {error}")

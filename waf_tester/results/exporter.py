"""Export of finished test results to JSON and CSV."""

import csv
import io
import json
import logging
import pandas as pd
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..core.models import FinalResult, TestConfig

DEFAULT_EXPORTS_DIR = "exports"
EXPORT_FORMATS = ("json", "csv")

logger = logging.getLogger(__name__)


def requests_dataframe(result: FinalResult, include_attack_info: bool = False) -> pd.DataFrame:
    """One row per request, in sequence order."""
    data = []
    for r in result.requests:
        row = {
            "Request ID": r.id,
            "Timestamp": r.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            "Status Code": r.status,
            "Status Text": r.status_text,
            "Response Time (ms)": r.response_time,
            "Was Blocked": str(r.was_blocked).lower(),
            "URL": r.url,
            "Method": r.method,
            "User-Agent": r.request_headers.get("User-Agent", ""),
            "Error": r.error,
        }
        if include_attack_info:
            row["Attack Info"] = r.attack_info
        data.append(row)

    columns = [
        "Request ID", "Timestamp", "Status Code", "Status Text", "Response Time (ms)",
        "Was Blocked", "URL", "Method", "User-Agent", "Error",
    ]
    if include_attack_info:
        columns.append("Attack Info")
    return pd.DataFrame(data, columns=columns)


def summary_rows(config: TestConfig, result: FinalResult) -> List[List[str]]:
    """Summary, statistics and response time blocks that head the CSV export."""
    success_rate = (
        result.success_count / result.total_requests * 100 if result.total_requests else 0.0
    )

    rows = [
        ["TEST SUMMARY"],
        ["Test ID", result.test_id],
        ["Target URL", config.target_url],
        ["Total Requests", str(result.total_requests)],
        ["Duration (seconds)", f"{result.duration:.2f}"],
        ["Traffic Type", config.traffic_type],
        ["Test Mode", config.test_mode],
        ["HTTP Method", config.http_method],
        ["Error Mode", str(config.error_mode).lower()],
        ["User Agent Type", config.user_agent_type],
    ]
    if config.custom_user_agent:
        rows.append(["Custom User Agent", config.custom_user_agent])
    rows.append([])

    rows += [
        ["STATISTICS"],
        ["Success Count", str(result.success_count)],
        ["Error Count", str(result.error_count)],
        ["Blocked Count", str(result.blocked_count)],
        ["Success Rate", f"{success_rate:.1f}%"],
        ["Rate Limit Hit", str(result.rate_limit_hit).lower()],
    ]
    if result.rate_limit_hit:
        rows.append(["Rate Limit At Request", str(result.rate_limit_at)])
    rows.append(["Requests Per Second", f"{result.requests_per_sec:.2f}"])
    rows.append([])

    rows += [
        ["RESPONSE TIMES (milliseconds)"],
        ["Average", str(result.avg_response)],
        ["Minimum", str(result.min_response)],
        ["Maximum", str(result.max_response)],
        ["p50 (Median)", str(result.p50_response)],
        ["p95", str(result.p95_response)],
        ["p99", str(result.p99_response)],
        [],
        ["INDIVIDUAL REQUESTS"],
    ]
    return rows


def to_csv_string(config: TestConfig, result: FinalResult) -> str:
    """Render the full CSV export."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(summary_rows(config, result))

    df = requests_dataframe(result, include_attack_info=config.is_attack)
    df.to_csv(buffer, index=False, lineterminator="\n")
    return buffer.getvalue()


def to_json_string(config: TestConfig, result: FinalResult) -> str:
    """Render the full JSON export."""
    export = {
        "config": config.to_dict(),
        "results": result.to_dict(),
        "exported_at": datetime.now().isoformat(),
    }
    return json.dumps(export, indent=2)


def export_results(
    config: TestConfig,
    result: FinalResult,
    fmt: str,
    exports_dir: str = DEFAULT_EXPORTS_DIR,
) -> str:
    """
    Write a test result to a timestamped file.

    Args:
        config: Configuration the test ran with
        result: Final result of the test
        fmt: "json" or "csv"
        exports_dir: Directory to write to (created if missing)

    Returns:
        Path of the written file

    Raises:
        ValueError: If the format is not supported
    """
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"unsupported format: {fmt} (use 'json' or 'csv')")

    directory = Path(exports_dir)
    directory.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    path = directory / f"test_{timestamp}.{fmt}"

    if fmt == "json":
        content = to_json_string(config, result)
    else:
        content = to_csv_string(config, result)

    path.write_text(content, encoding="utf-8")
    logger.info(f"Results exported to {path}")
    return str(path)


def list_exports(exports_dir: str = DEFAULT_EXPORTS_DIR) -> List[str]:
    """Names of the files in the exports directory."""
    directory = Path(exports_dir)
    if not directory.exists():
        return []
    return sorted(p.name for p in directory.iterdir() if p.is_file())


def get_export_path(exports_dir: Optional[str] = None) -> str:
    return str(Path(exports_dir or DEFAULT_EXPORTS_DIR).resolve())

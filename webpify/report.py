from __future__ import annotations

import csv
import json
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from .batch import RunSummary
from .results import ConversionResult


BYTE_UNITS = ("B", "KB", "MB", "GB")
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S %Z"
RULE_WIDTH = 50


# ----- Human-readable formatting -----

def format_bytes(n: int) -> str:
    # 1024-based, capped at GB: 1536 -> "1.50 KB"
    size = float(n)
    unit = 0
    while size >= 1024.0 and unit < len(BYTE_UNITS) - 1:
        size /= 1024.0
        unit += 1
    return f"{size:.2f} {BYTE_UNITS[unit]}"


def format_duration(seconds: float) -> str:
    if seconds < 1.0:
        return f"{int(seconds * 1000)}ms"
    minutes = int(seconds // 60)
    secs = seconds - minutes * 60
    if minutes > 0:
        return f"{minutes}m {secs:.1f}s"
    return f"{secs:.1f}s"


def format_timestamp(ts: datetime) -> str:
    return ts.strftime(TIMESTAMP_FORMAT).strip()


def progress_line(index: int, total: int, r: ConversionResult) -> str:
    name = Path(r.src_path).name
    if r.success:
        return (
            f"[{index}/{total}] ✓ {name}: "
            f"{format_bytes(r.original_bytes)} → {format_bytes(r.new_bytes)} "
            f"({r.savings_percent:.2f}% saved)"
        )
    return f"[{index}/{total}] ✗ {name}: {r.message}"


def summary_lines(summary: RunSummary) -> List[str]:
    lines = [
        "=" * RULE_WIDTH,
        "CONVERSION SUMMARY",
        "=" * RULE_WIDTH,
        f"  • Total files:      {summary.total_files}",
        f"  • Successful:       {summary.successful}",
        f"  • Failed:           {summary.failed}",
    ]

    # Sizes mean nothing if nothing was converted.
    if summary.successful > 0:
        lines += [
            f"  • Original size:    {format_bytes(summary.total_original_bytes)}",
            f"  • New size:         {format_bytes(summary.total_new_bytes)}",
            f"  • Total savings:    {summary.savings_percent:.2f}%",
        ]

    lines += [
        f"  • Start time:       {format_timestamp(summary.started_at)}",
        f"  • End time:         {format_timestamp(summary.finished_at)}",
        f"  • Time elapsed:     {format_duration(summary.elapsed_seconds)}",
    ]
    return lines


# ----- Machine-readable run report -----

@dataclass(frozen=True)
class FileReport:
    src_path: str
    out_path: str
    success: bool
    message: str
    original_bytes: int
    new_bytes: int
    savings_percent: float


@dataclass(frozen=True)
class RunReport:
    created_utc: str
    summary: dict
    files: List[FileReport]


def build_report(results: List[ConversionResult], summary: RunSummary) -> RunReport:
    created_utc = datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")

    files: List[FileReport] = []
    for r in results:
        files.append(
            FileReport(
                src_path=str(r.src_path),
                out_path=str(r.out_path),
                success=r.success,
                message=r.message,
                original_bytes=r.original_bytes,
                new_bytes=r.new_bytes,
                savings_percent=r.savings_percent,
            )
        )

    summary_dict = {
        "total_found": summary.total_found,
        "skipped": summary.skipped,
        "total_files": summary.total_files,
        "successful": summary.successful,
        "failed": summary.failed,
        "total_original_bytes": summary.total_original_bytes,
        "total_new_bytes": summary.total_new_bytes,
        "savings_percent": summary.savings_percent,
        "started_at": summary.started_at.isoformat(timespec="seconds"),
        "finished_at": summary.finished_at.isoformat(timespec="seconds"),
        "elapsed_seconds": round(summary.elapsed_seconds, 3),
    }

    return RunReport(created_utc=created_utc, summary=summary_dict, files=files)


def save_report_json(report: RunReport, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", encoding="utf-8") as f:
        json.dump(asdict(report), f, indent=2, ensure_ascii=False)


def save_report_csv(report: RunReport, path: Path) -> None:
    """One row per file; the summary only goes into the JSON report."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    columns = [f.name for f in fields(FileReport)]
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns)
        writer.writeheader()
        for row in report.files:
            writer.writerow(asdict(row))


def save_report(report: RunReport, path: Path) -> Path:
    path = Path(path)
    if path.suffix.lower() == ".csv":
        save_report_csv(report, path)
    else:
        save_report_json(report, path)
    return path

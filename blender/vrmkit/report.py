"""
VRMKit Report Generation Module

This module handles writing generation reports for avatar export runs.
Reports include success/failure status, metrics, warnings, output paths, and timing.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional


def write_report(report_path: Path, ok: bool, error: Optional[str] = None,
                 metrics: Optional[Dict] = None, warnings: Optional[List[str]] = None,
                 output_path: Optional[str] = None,
                 duration_ms: Optional[int] = None) -> None:
    """Write the generation report JSON."""
    report = {
        "ok": ok,
    }
    if error:
        report["error"] = error
    if metrics:
        report["metrics"] = metrics
    if warnings:
        report["warnings"] = list(warnings)
    if output_path:
        report["output_path"] = output_path
    if duration_ms is not None:
        report["duration_ms"] = duration_ms

    with open(report_path, 'w') as f:
        json.dump(report, f, indent=2)

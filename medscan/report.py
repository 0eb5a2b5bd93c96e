"""Plain-text report export for analysis results."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from .schema import AnalysisResult

REPORT_TITLE = "MEDICAL IMAGING ANALYSIS REPORT"

DISCLAIMER = (
    "This AI output is for clinical assistance only and must be reviewed\n"
    "by a certified medical professional. This tool does not provide\n"
    "final diagnosis."
)

POOR_QUALITY_NOTICE = (
    "The image quality was insufficient for a conclusive analysis.\n"
    "Please provide a clearer scan (avoid photographs of screens and blur)."
)


def _section(title: str, body: str) -> str:
    return f"{title}\n{'-' * len(title)}\n{body}"


def _items(entries: Iterable[tuple[str, str]]) -> str:
    return "\n\n".join(f"• {headline}\n  {detail}" for headline, detail in entries)


def format_timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def export_report(result: AnalysisResult | None) -> str | None:
    """Render ``result`` as a human-readable text document.

    Sections whose underlying list is empty are left out entirely. The output
    depends only on ``result``, so repeated calls produce identical text.
    Returns None when there is no result to export.
    """
    if result is None:
        return None

    sections = [
        f"{REPORT_TITLE}\n{'=' * len(REPORT_TITLE)}\n"
        f"Generated: {format_timestamp(result.analysis_timestamp)}",
        _section(
            "SCAN INFORMATION",
            f"Scan Type: {result.scan_type.value}\nImage Quality: {result.image_quality.value}",
        ),
        _section(
            "AI FINDING SUMMARY",
            f"Status: {result.status.value}\n"
            f"Overall Confidence: {result.overall_confidence}%\n"
            f"Urgency Level: {result.urgency_level.value.upper()}",
        ),
    ]

    if result.is_poor_quality_failure:
        sections.append(_section("IMAGE QUALITY NOTICE", POOR_QUALITY_NOTICE))

    if result.suspected_conditions:
        sections.append(
            _section(
                "SUSPECTED CONDITIONS",
                _items(
                    (f"{item.name} ({item.confidence}% confidence)", item.description)
                    for item in result.suspected_conditions
                ),
            )
        )

    if result.highlighted_regions:
        sections.append(
            _section(
                "HIGHLIGHTED REGIONS",
                _items(
                    (f"{region.location} ({region.severity.value} severity)", region.description)
                    for region in result.highlighted_regions
                ),
            )
        )

    if result.differential_diagnoses:
        sections.append(
            _section(
                "DIFFERENTIAL DIAGNOSES",
                _items(
                    (
                        f"{item.name} ({item.confidence}% confidence)",
                        "; ".join(item.evidence) or "No supporting evidence listed.",
                    )
                    for item in result.differential_diagnoses
                ),
            )
        )

    sections.append(_section("RECOMMENDATION", result.recommendation))
    sections.append(_section("DISCLAIMER", DISCLAIMER))
    return "\n\n".join(sections) + "\n"


def report_filename(now: datetime | None = None) -> str:
    """Return a timestamp-based file name such as ``medscan-report-1700000000000.txt``."""
    moment = now or datetime.now(timezone.utc)
    return f"medscan-report-{int(moment.timestamp() * 1000)}.txt"


def write_report(result: AnalysisResult, target: Path) -> Path | None:
    """Write the report to ``target``, a file path or an existing directory."""
    document = export_report(result)
    if document is None:
        return None
    path = target / report_filename() if target.is_dir() else target
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(document, encoding="utf-8")
    return path

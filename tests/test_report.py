"""Tests for the plain-text report export."""

from __future__ import annotations

from datetime import datetime, timezone

from medscan.report import DISCLAIMER, export_report, report_filename, write_report
from medscan.schema import AnalysisResult, coerce_result

TIMESTAMP = datetime(2024, 3, 9, 8, 15, 0, tzinfo=timezone.utc)


def _abnormal() -> AnalysisResult:
    return coerce_result(
        {
            "scanType": "CT",
            "imageQuality": "Good",
            "status": "Abnormal",
            "overallConfidence": 77,
            "urgencyLevel": "high",
            "recommendation": "Urgent surgical consult.",
            "suspectedConditions": [
                {"name": "Appendicitis", "confidence": 71, "description": "Dilated appendix."}
            ],
            "highlightedRegions": [
                {
                    "id": "r1",
                    "location": "Right lower quadrant",
                    "description": "Fat stranding.",
                    "severity": "high",
                }
            ],
        },
        timestamp=TIMESTAMP,
    )


def _poor_quality() -> AnalysisResult:
    return coerce_result(
        {
            "scanType": "Unknown",
            "imageQuality": "Poor",
            "status": "Uncertain",
            "isPoorQualityFailure": True,
            "differentialDiagnoses": [
                {"name": "Screen glare", "confidence": 60, "evidence": ["Moire", "Bezel"]}
            ],
        },
        timestamp=TIMESTAMP,
    )


def test_export_without_result():
    assert export_report(None) is None


def test_export_abnormal_report_sections():
    document = export_report(_abnormal())

    assert document.startswith("MEDICAL IMAGING ANALYSIS REPORT\n===")
    assert "Generated: 2024-03-09 08:15:00 UTC" in document
    assert "Scan Type: CT" in document
    assert "Overall Confidence: 77%" in document
    assert "Urgency Level: HIGH" in document
    assert "• Appendicitis (71% confidence)\n  Dilated appendix." in document
    assert "• Right lower quadrant (high severity)\n  Fat stranding." in document
    assert "RECOMMENDATION\n--------------\nUrgent surgical consult." in document
    assert DISCLAIMER in document
    assert "DIFFERENTIAL DIAGNOSES" not in document
    assert "IMAGE QUALITY NOTICE" not in document


def test_export_omits_empty_sections():
    result = coerce_result(
        {"status": "Normal", "scanType": "MRI", "overallConfidence": 93},
        timestamp=TIMESTAMP,
    )
    document = export_report(result)

    assert "SUSPECTED CONDITIONS" not in document
    assert "HIGHLIGHTED REGIONS" not in document
    assert "Status: Normal" in document


def test_export_uncertain_report():
    document = export_report(_poor_quality())

    assert "IMAGE QUALITY NOTICE" in document
    assert "• Screen glare (60% confidence)\n  Moire; Bezel" in document
    assert "Overall Confidence: 0%" in document


def test_export_is_deterministic():
    result = _abnormal()
    assert export_report(result) == export_report(result)


def test_report_filename_uses_milliseconds():
    assert report_filename(TIMESTAMP) == f"medscan-report-{int(TIMESTAMP.timestamp() * 1000)}.txt"


def test_write_report_into_directory(tmp_path):
    path = write_report(_abnormal(), tmp_path)

    assert path.parent == tmp_path
    assert path.name.startswith("medscan-report-")
    assert path.read_text(encoding="utf-8") == export_report(_abnormal())


def test_write_report_to_file(tmp_path):
    target = tmp_path / "nested" / "report.txt"
    path = write_report(_abnormal(), target)

    assert path == target
    assert "Appendicitis" in target.read_text(encoding="utf-8")

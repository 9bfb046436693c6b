"""Tests for the HTML report and history list rows."""

from datetime import datetime, timezone

from compliance_lens.models.analysis import AnalysisResult
from compliance_lens.models.history import HistoryItem
from compliance_lens.utils.report_builder import (
    build_report_html,
    format_confidence,
    report_filename,
    summarize_history_item,
)

GENERATED_AT = datetime(2026, 3, 1, 14, 5, 9, tzinfo=timezone.utc)


def test_report_contains_findings(analysis_result, normalized_image):
    html = build_report_html(analysis_result, normalized_image, GENERATED_AT)

    assert html.startswith("<!DOCTYPE html>")
    assert "2026-03-01 14:05:09 UTC" in html
    assert normalized_image.to_data_url() in html
    assert "AI Confidence: 86%" in html
    assert "Unsecured Fire Extinguisher" in html
    assert 'class="badge High"' in html
    assert "NFPA 10 6.1.3.8.1" in html
    assert "Proper Gaps &amp; Clearances" in html


def test_report_escapes_model_text(analysis_payload, normalized_image):
    analysis_payload["violations"][0]["title"] = "<script>alert(1)</script>"
    html = build_report_html(AnalysisResult.from_dict(analysis_payload), normalized_image, GENERATED_AT)

    assert "<script>" not in html
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in html


def test_report_without_violations(analysis_payload, normalized_image):
    analysis_payload["violations"] = []
    html = build_report_html(AnalysisResult.from_dict(analysis_payload), normalized_image, GENERATED_AT)
    assert "No visible code violations were detected in this image." in html


def test_format_confidence():
    assert format_confidence(0.856) == "86%"
    assert format_confidence(None) == "n/a"


def test_report_filename():
    assert report_filename(GENERATED_AT) == f"Compliance-Report-{int(GENERATED_AT.timestamp() * 1000)}.html"


def test_summarize_history_item(analysis_result, normalized_image):
    item = HistoryItem(id="x-1", timestamp=GENERATED_AT, image=normalized_image, result=analysis_result)
    row = summarize_history_item(item)

    assert row["title"] == "Unsecured Fire Extinguisher"
    assert row["violation_count"] == 2
    assert row["codes"] == ["NFPA 10", "NFPA 80"]
    assert row["highest_severity"] == "High"
    assert row["timestamp"] == "2026-03-01T14:05:09+00:00"


def test_summarize_clean_inspection(analysis_payload, normalized_image):
    analysis_payload["violations"] = []
    item = HistoryItem(
        id="x-2",
        timestamp=GENERATED_AT,
        image=normalized_image,
        result=AnalysisResult.from_dict(analysis_payload),
    )
    row = summarize_history_item(item)

    assert row["title"] == "No violations found"
    assert row["highest_severity"] is None
    assert row["codes"] == []

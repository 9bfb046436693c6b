"""HTML report export and history list formatting."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from jinja2 import Environment, select_autoescape

from ..models.analysis import AnalysisResult
from ..models.history import HistoryItem
from ..models.image import NormalizedImage

logger = logging.getLogger(__name__)

REPORT_TITLE = "Compliance Lens"

_REPORT_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>{{ title }} Report - {{ generated_date }}</title>
  <style>
    body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Helvetica, Arial, sans-serif; padding: 40px; max-width: 900px; margin: 0 auto; color: #333; line-height: 1.6; }
    .header { border-bottom: 2px solid #e2e8f0; padding-bottom: 20px; margin-bottom: 30px; display: flex; justify-content: space-between; align-items: flex-end; }
    .brand { font-size: 24px; font-weight: 800; color: #0f172a; text-transform: uppercase; }
    .subtitle, .muted { font-size: 14px; color: #64748b; }
    .section { margin-bottom: 30px; page-break-inside: avoid; }
    .section-title { font-size: 18px; font-weight: 700; border-bottom: 1px solid #e2e8f0; padding-bottom: 10px; margin-bottom: 15px; color: #0f172a; }
    .violation-card { border: 1px solid #cbd5e1; padding: 20px; border-radius: 8px; margin-bottom: 15px; background: #f8fafc; }
    .code { font-family: monospace; color: #0f766e; font-weight: bold; }
    .badge { display: inline-block; padding: 4px 8px; border-radius: 4px; font-size: 12px; font-weight: bold; }
    .High { background: #fee2e2; color: #991b1b; }
    .Medium { background: #ffedd5; color: #9a3412; }
    .Low { background: #fef9c3; color: #854d0e; }
    .main-image { max-width: 100%; height: auto; border-radius: 8px; border: 1px solid #e2e8f0; }
    .remediation { margin-top: 10px; padding: 10px; background: #fff; border: 1px solid #e2e8f0; border-radius: 6px; font-size: 14px; }
    .footer { margin-top: 50px; font-size: 12px; color: #94a3b8; text-align: center; border-top: 1px solid #e2e8f0; padding-top: 20px; }
  </style>
</head>
<body>
  <div class="header">
    <div>
      <div class="brand">{{ title }}</div>
      <div class="subtitle">AI-Assisted Inspection Report</div>
    </div>
    <div class="muted">{{ generated_at }}</div>
  </div>

  <div class="section">
    <div class="section-title">Visual Evidence</div>
    <img src="{{ image_url }}" class="main-image" alt="Inspection Image" />
  </div>

  <div class="section">
    <div class="section-title">Summary</div>
    <p>{{ result.summary.text }}</p>
    <p class="muted">AI Confidence: {{ summary_confidence }}</p>
  </div>

  <div class="section">
    <div class="section-title">Findings &amp; Violations</div>
    {% for v in result.violations %}
    <div class="violation-card">
      <div>
        <strong>{{ v.title }}</strong>
        <span class="badge {{ v.severity }}">{{ v.severity }}</span>
        <div class="code">{{ v.code }}</div>
        {% if v.location %}<div class="muted">Location: {{ v.location }}</div>{% endif %}
      </div>
      <p>{{ v.description }}</p>
      <div class="remediation"><strong>Remediation:</strong> {{ v.remediation }}</div>
      {% if v.references %}<p class="muted">References: {{ v.references | join(", ") }}</p>{% endif %}
    </div>
    {% else %}
    <p>No visible code violations were detected in this image.</p>
    {% endfor %}
  </div>

  <div class="section">
    <div class="section-title">On-Site Verification Checklist</div>
    <ul>
    {% for entry in result.what_to_look_for %}
      <li><strong>{{ entry.item }}:</strong> {{ entry.details }}</li>
    {% endfor %}
    </ul>
  </div>

  <div class="footer">
    Generated by {{ title }}. This report is for informational purposes only.
    Verification by a certified professional is required.
  </div>
</body>
</html>
"""

_environment = Environment(autoescape=select_autoescape(default=True, default_for_string=True))
_report_template = _environment.from_string(_REPORT_TEMPLATE)


def format_confidence(value: Optional[float]) -> str:
    """Render a [0, 1] confidence as a whole percentage."""
    if value is None:
        return "n/a"
    return f"{round(value * 100)}%"


def build_report_html(
    result: AnalysisResult,
    image: NormalizedImage,
    generated_at: datetime
) -> str:
    """
    Render a self-contained HTML inspection report.

    All model-supplied text is autoescaped; the image is inlined as a
    data URL so the file can be opened offline.

    Args:
        result: Analysis to report
        image: Image the analysis was run on
        generated_at: Report timestamp

    Returns:
        HTML document as a string
    """
    html = _report_template.render(
        title=REPORT_TITLE,
        result=result,
        image_url=image.to_data_url(),
        summary_confidence=format_confidence(result.summary.confidence),
        generated_at=generated_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip(),
        generated_date=generated_at.strftime("%Y-%m-%d"),
    )
    logger.debug(f"Rendered report: {len(result.violations)} violation(s), {len(html)} characters")
    return html


def report_filename(generated_at: datetime) -> str:
    return f"Compliance-Report-{int(generated_at.timestamp() * 1000)}.html"


def summarize_history_item(item: HistoryItem) -> Dict[str, Any]:
    """
    Build the list-row view of a saved inspection.

    Returns:
        Dict with id, timestamp, title, violation count, distinct codes
        and the highest severity present
    """
    violations = item.result.violations
    codes = []
    for violation in violations:
        if violation.code and violation.code not in codes:
            codes.append(violation.code)

    severity_rank = {"Low": 1, "Medium": 2, "High": 3}
    highest = max(
        (violation.severity for violation in violations if violation.severity in severity_rank),
        key=lambda severity: severity_rank[severity],
        default=None,
    )

    return {
        "id": item.id,
        "timestamp": item.timestamp.isoformat(),
        "title": violations[0].title if violations else "No violations found",
        "summary": item.result.summary.text,
        "violation_count": len(violations),
        "codes": codes,
        "highest_severity": highest,
        "normalized": item.image.normalized,
    }

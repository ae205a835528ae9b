"""Downloadable interview report: self-contained HTML plus metadata."""

from __future__ import annotations

import html
import logging

from interview_room.models import InterviewMaterial, InterviewReport, ReportMetadata
from interview_room.store import utc_timestamp

logger = logging.getLogger(__name__)

__all__ = ["DEFAULT_REPORT_TITLE", "build_report", "build_report_metadata", "render_report_html"]


DEFAULT_REPORT_TITLE = "Interview Report"

_DECISION_LABELS = {
    "hire": "Hire",
    "maybe": "Maybe",
    "no_hire": "No Hire",
}

_STYLE = """
body { font-family: -apple-system, Segoe UI, Helvetica, Arial, sans-serif; color: #1f2933; margin: 32px; }
h1 { font-size: 24px; margin-bottom: 4px; }
h2 { font-size: 18px; border-bottom: 1px solid #d9e2ec; padding-bottom: 4px; margin-top: 28px; }
.meta { color: #52606d; font-size: 13px; }
.decision { display: inline-block; padding: 2px 10px; border-radius: 12px; background: #e3f8ff; font-weight: 600; }
.question { margin: 16px 0; }
.question .label { color: #52606d; font-size: 12px; text-transform: uppercase; }
.answer { white-space: pre-wrap; background: #f5f7fa; padding: 8px 12px; border-radius: 4px; }
.narrative { white-space: pre-wrap; }
pre { background: #102a43; color: #f0f4f8; padding: 12px; border-radius: 4px; overflow-x: auto; }
"""


def _text(value: object) -> str:
    return html.escape(str(value), quote=True)


def build_report_metadata(material: InterviewMaterial) -> ReportMetadata:
    return ReportMetadata(
        question_count=len(material.room.questions),
        has_code=material.has_code,
        has_answers=material.has_answers,
    )


def render_report_html(
    material: InterviewMaterial,
    *,
    title: str = DEFAULT_REPORT_TITLE,
    include_code: bool = True,
    include_transcripts: bool = True,
) -> str:
    """Render the report document. All room content is HTML-escaped."""
    room = material.room
    candidate = room.candidate_name or "Candidate"
    rows = [f"<h1>{_text(title)}: {_text(candidate)}</h1>"]

    meta = [f"Room {_text(room.room_id)}"]
    if room.job_title:
        meta.append(_text(room.job_title))
    if room.interviewer_name:
        meta.append(f"Interviewer: {_text(room.interviewer_name)}")
    meta.append(f"Generated {_text(utc_timestamp())}")
    rows.append(f'<p class="meta">{" &middot; ".join(meta)}</p>')

    summary = material.summary
    if summary is not None:
        label = _DECISION_LABELS.get(summary.final_decision.value, summary.final_decision.value)
        rows.append("<h2>Final Decision</h2>")
        rows.append(f'<p><span class="decision">{_text(label)}</span></p>')
        rows.append("<h2>Summary</h2>")
        rows.append(f'<div class="narrative">{_text(summary.final_summary)}</div>')
        if summary.interviewer_notes.strip():
            rows.append("<h2>Interviewer Notes</h2>")
            rows.append(f'<div class="narrative">{_text(summary.interviewer_notes)}</div>')

    rows.append("<h2>Questions</h2>")
    if not room.questions:
        rows.append("<p>No questions were asked.</p>")
    for index, question in enumerate(room.questions, start=1):
        labels = [value.value for value in (question.question_type, question.difficulty) if value]
        rows.append('<div class="question">')
        rows.append(
            f'<div class="label">Question {index}'
            f'{" &middot; " + _text(", ".join(labels)) if labels else ""}</div>'
        )
        rows.append(f"<p>{_text(question.text)}</p>")
        if include_transcripts:
            answer = material.answers.get(question.question_id)
            if answer is not None and answer.transcript.strip():
                rows.append(f'<div class="answer">{_text(answer.transcript.strip())}</div>')
            else:
                rows.append('<div class="answer"><em>No answer recorded.</em></div>')
        rows.append("</div>")

    if include_code:
        rows.append("<h2>Final Code</h2>")
        if material.has_code:
            rows.append(f"<pre><code>{_text(room.code)}</code></pre>")
        else:
            rows.append("<p>The editor was left empty.</p>")

    body = "\n".join(rows)
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n<head>\n<meta charset="utf-8">\n'
        f"<title>{_text(title)}: {_text(candidate)}</title>\n"
        f"<style>{_STYLE}</style>\n</head>\n<body>\n{body}\n</body>\n</html>\n"
    )


def build_report(
    material: InterviewMaterial,
    *,
    title: str = DEFAULT_REPORT_TITLE,
    include_code: bool = True,
    include_transcripts: bool = True,
) -> InterviewReport:
    """Build the downloadable report for a room."""
    report = InterviewReport(
        html_content=render_report_html(
            material,
            title=title,
            include_code=include_code,
            include_transcripts=include_transcripts,
        ),
        candidate_name=material.room.candidate_name or "Candidate",
        report_data=build_report_metadata(material),
    )
    logger.info(
        "Report built for room %s (%d questions)",
        material.room.room_id,
        report.report_data.question_count,
    )
    return report

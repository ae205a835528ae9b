"""
Tests for report rendering and the room archive.

Last Grunted: 10/17/2026
"""

from __future__ import annotations

import json

import pytest

from interview_room.archive import ArchiveReadError, RoomArchiveWriter
from interview_room.models import InterviewRoomDocument, InterviewMaterial
from interview_room.report import build_report
from interview_room.summarizer import build_interview_prompt
from tests.mock_data import CANDIDATE_CODE, generate_interview_material


# =============================================================================
# Report
# =============================================================================


class TestReport:
    """Tests for build_report."""

    def test_report_contents(self):
        """The report names the candidate, the decision and every question."""
        material = generate_interview_material(question_count=2, with_summary=True)

        report = build_report(material)

        assert report.success is True
        assert report.candidate_name == "Sarah Chen"
        assert report.report_data.question_count == 2
        assert report.report_data.has_code is True
        assert report.report_data.has_answers is True
        assert "Interview Report: Sarah Chen" in report.html_content
        assert "Hire" in report.html_content
        assert "No answer recorded." in report.html_content
        assert "class LRUCache" in report.html_content

    def test_stored_form(self):
        """The document form uses the web client's field names."""
        document = build_report(generate_interview_material()).to_document()

        assert set(document) == {"success", "htmlContent", "candidateName", "reportData"}
        assert document["reportData"] == {"questionCount": 2, "hasCode": True, "hasAnswers": True}

    def test_room_content_is_escaped(self):
        """Candidate-controlled text cannot inject markup."""
        material = generate_interview_material(code="<script>alert('x')</script>")
        material.room.candidate_name = "<b>Mallory</b>"

        html = build_report(material).html_content

        assert "<script>alert" not in html
        assert "&lt;script&gt;" in html
        assert "&lt;b&gt;Mallory&lt;/b&gt;" in html

    def test_empty_room(self):
        """Rooms without questions or code still render."""
        material = InterviewMaterial(room=InterviewRoomDocument(room_id="empty00001"))

        report = build_report(material, title="Screening")

        assert report.candidate_name == "Candidate"
        assert report.report_data.question_count == 0
        assert report.report_data.has_code is False
        assert "No questions were asked." in report.html_content
        assert "Screening: Candidate" in report.html_content

    def test_sections_can_be_disabled(self):
        """Code and transcripts are optional sections."""
        material = generate_interview_material()

        html = build_report(material, include_code=False, include_transcripts=False).html_content

        assert "Final Code" not in html
        assert "hash map" not in html


class TestInterviewPrompt:
    """Tests for the summary prompt."""

    def test_prompt_includes_answers_and_code(self):
        """Questions, answers and the final code are all in the prompt."""
        material = generate_interview_material(question_count=2)

        prompt = build_interview_prompt(material)

        assert "**Candidate:** Sarah Chen" in prompt
        assert "### Q1 (Coding, Medium)" in prompt
        assert "**Answer (speech):**" in prompt
        assert "(no answer recorded)" in prompt
        assert CANDIDATE_CODE.strip().splitlines()[0] in prompt

    def test_prompt_for_empty_editor(self):
        """An empty editor is called out."""
        prompt = build_interview_prompt(generate_interview_material(code="   "))
        assert "(editor left empty)" in prompt


# =============================================================================
# Archive
# =============================================================================


class TestRoomArchiveWriter:
    """Tests for RoomArchiveWriter."""

    def test_init_creates_directory(self, tmp_path):
        """Writer creates its directory if needed."""
        archive_dir = tmp_path / "nested" / "archive"
        RoomArchiveWriter(archive_dir)
        assert archive_dir.is_dir()

    @pytest.mark.asyncio
    async def test_write_and_load(self, tmp_path):
        """Archived material loads back unchanged."""
        writer = RoomArchiveWriter(tmp_path)
        material = generate_interview_material(room_id="arch000001", with_summary=True)

        path = await writer.write_archive(material)
        restored = await writer.load_archive("arch000001")

        assert path.name == "arch000001_interview.json"
        assert json.loads(path.read_text(encoding="utf-8"))["_meta"]["version"] == "1.0"
        assert restored is not None
        assert restored.model_dump() == material.model_dump()

    @pytest.mark.asyncio
    async def test_load_missing(self, tmp_path):
        """A room that was never archived loads as None."""
        assert await RoomArchiveWriter(tmp_path).load_archive("nothing000") is None

    @pytest.mark.asyncio
    async def test_load_corrupt(self, tmp_path):
        """Invalid JSON raises ArchiveReadError."""
        writer = RoomArchiveWriter(tmp_path)
        (tmp_path / "broken0001_interview.json").write_text("{", encoding="utf-8")

        with pytest.raises(ArchiveReadError):
            await writer.load_archive("broken0001")

    @pytest.mark.asyncio
    async def test_list_and_delete(self, tmp_path):
        """Archives are listed by room id and can be deleted."""
        writer = RoomArchiveWriter(tmp_path)
        await writer.write_archive(generate_interview_material(room_id="bbbb000002"))
        await writer.write_archive(generate_interview_material(room_id="aaaa000001"))

        assert writer.list_archives() == ["aaaa000001", "bbbb000002"]
        assert writer.delete_archive("aaaa000001") is True
        assert writer.delete_archive("aaaa000001") is False
        assert writer.list_archives() == ["bbbb000002"]

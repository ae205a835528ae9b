#!/usr/bin/env python3
"""
Two-Party Interview Simulator.

Drives a complete interview against a running room service: an interviewer
and a candidate each connect their own document store, share the code
editor, the candidate's spoken answers are played back through a scripted
recognition engine, and the interviewer finishes with the completion flow.

Usage:
    # Start the room service first:
    uv run python run_room_service.py --instance local --port 8780 \
        --platform-settings ./room_platform/settings/default.json

    # In another terminal, run the simulator:
    uv run python simulate_interview.py

    # With custom options:
    uv run python simulate_interview.py --service-url http://localhost:8780 --candidate "Jane Doe"
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Final, Optional

from interview_room.api_client import InterviewApiClient, InterviewApiError
from interview_room.code_sync import CodeSync
from interview_room.completion import CompletionFlow
from interview_room.models import CandidateFeedback, HiringDecision, ParticipantRole
from interview_room.pubsub import NotificationPublisher
from interview_room.remote_store import RemoteDocumentStore
from interview_room.speech import (
    ScriptedEvent,
    ScriptedRecognitionEngine,
    SpeechCapture,
    TranscriptListener,
)
from interview_room.store import DocumentStoreError
from role_profiles import load_role_profile
from room_platform import SpeechSettings, SyncSettings

# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger: logging.Logger = logging.getLogger(__name__)


# =============================================================================
# Exit Codes
# =============================================================================

EXIT_SUCCESS: Final[int] = 0
EXIT_CONNECTION_ERROR: Final[int] = 1
EXIT_SERVICE_UNHEALTHY: Final[int] = 2
EXIT_ROOM_ERROR: Final[int] = 3
EXIT_SUMMARY_ERROR: Final[int] = 4
EXIT_INTERRUPTED: Final[int] = 130  # Standard SIGINT exit code


# =============================================================================
# Configuration
# =============================================================================

DEFAULT_SERVICE_URL: Final[str] = "http://127.0.0.1:8780"
DEFAULT_CANDIDATE_NAME: Final[str] = "Sarah Chen"
DEFAULT_INTERVIEWER_NAME: Final[str] = "David Park"

# Timing constants
SEGMENT_DELAY_SECONDS: Final[float] = 0.3
CAPTURE_START_TIMEOUT_SECONDS: Final[float] = 5.0
PAUSE_BETWEEN_QUESTIONS_SECONDS: Final[float] = 1.0


# =============================================================================
# Synthetic Interview (question, spoken answer segments, final editor code)
# =============================================================================

INTERVIEW_SCRIPT: Final[list[tuple[str, list[str], str]]] = [
    (
        "Implement an LRU cache with get and put in O(1).",
        [
            "I'd combine a hash map with a doubly linked list.",
            "The map gives constant time lookup and the list keeps recency order.",
            "On get I move the node to the front, on put I evict from the tail when full.",
        ],
        (
            "from collections import OrderedDict\n\n"
            "class LRUCache:\n"
            "    def __init__(self, capacity):\n"
            "        self.capacity = capacity\n"
            "        self.items = OrderedDict()\n\n"
            "    def get(self, key):\n"
            "        if key not in self.items:\n"
            "            return -1\n"
            "        self.items.move_to_end(key)\n"
            "        return self.items[key]\n\n"
            "    def put(self, key, value):\n"
            "        self.items[key] = value\n"
            "        self.items.move_to_end(key)\n"
            "        if len(self.items) > self.capacity:\n"
            "            self.items.popitem(last=False)\n"
        ),
    ),
    (
        "How would you make that cache safe to share between asyncio tasks?",
        [
            "Plain dictionary operations don't yield, so single steps are already atomic.",
            "If a get can await a loader on a miss, I'd add a per key lock so only one task loads it.",
        ],
        (
            "import asyncio\n\n"
            "class AsyncLoadingCache:\n"
            "    def __init__(self, cache, loader):\n"
            "        self.cache = cache\n"
            "        self.loader = loader\n"
            "        self.locks = {}\n\n"
            "    async def get(self, key):\n"
            "        value = self.cache.get(key)\n"
            "        if value != -1:\n"
            "            return value\n"
            "        lock = self.locks.setdefault(key, asyncio.Lock())\n"
            "        async with lock:\n"
            "            value = self.cache.get(key)\n"
            "            if value == -1:\n"
            "                value = await self.loader(key)\n"
            "                self.cache.put(key, value)\n"
            "        return value\n"
        ),
    ),
    (
        "Tell me about a production incident you debugged recently.",
        [
            "We had slow responses every few minutes on our document service.",
            "Traces showed a cache stampede after each expiry, so we added jittered expiry and request coalescing.",
        ],
        "",
    ),
]


def build_answer_session(segments: list[str]) -> list[ScriptedEvent]:
    """Interim then final recognition events for each spoken segment."""
    events: list[ScriptedEvent] = []
    for segment in segments:
        words = segment.split()
        events.append(ScriptedEvent.interim(" ".join(words[: max(1, len(words) // 2)])))
        events.append(ScriptedEvent.final(segment))
    return events


def document_socket_url(service_url: str, room_id: str) -> str:
    base = service_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/ws/rooms/{room_id}/documents"


async def load_participant_settings(api: InterviewApiClient) -> tuple[SyncSettings, SpeechSettings]:
    """Editor and speech settings of the service the participants join."""
    body: dict[str, Any] = await api.platform_settings()
    return SyncSettings.model_validate(body["sync"]), SpeechSettings.model_validate(body["speech"])


async def _wait_until(predicate: Callable[[], bool], timeout: float) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(0.05)
    return True


# =============================================================================
# Simulation Runner
# =============================================================================


async def run_simulation(
    service_url: str,
    candidate_name: str,
    interviewer_name: str,
    decision: HiringDecision,
    report_path: Optional[Path] = None,
) -> int:
    """
    Run the two-party interview simulation.

    Returns:
        Exit code indicating success or failure.
    """
    async with InterviewApiClient(service_url) as api:
        logger.info("Checking room service health...")
        try:
            health = await api.health()
        except InterviewApiError as exc:
            if exc.status_code is None:
                logger.error("Cannot connect to room service at %s. Is it running?", service_url)
                logger.error("Start it with: uv run python run_room_service.py ...")
                return EXIT_CONNECTION_ERROR
            logger.error("Room service not healthy: %s", exc)
            return EXIT_SERVICE_UNHEALTHY
        logger.info("Room service healthy: %s", health)

        try:
            created = await api.create_interview(
                candidateName=candidate_name,
                interviewerName=interviewer_name,
                jobTitle="Backend Engineer",
                seniorityLevel="Senior",
                roleType="Backend",
                techStack="Python, asyncio, FastAPI",
                defaultQuestionType="Coding",
                defaultDifficulty="Medium",
            )
        except InterviewApiError as exc:
            logger.error("Failed to create interview: %s", exc)
            return EXIT_ROOM_ERROR

        try:
            sync_settings, speech_settings = await load_participant_settings(api)
        except InterviewApiError as exc:
            logger.error("Failed to read platform settings: %s", exc)
            return EXIT_SERVICE_UNHEALTHY
        logger.info(
            "Editor debounce %.2fs, speech language %s",
            sync_settings.debounce_seconds,
            speech_settings.language,
        )

        room_id = str(created["roomId"])
        logger.info("\n%s", "=" * 60)
        logger.info("Interview room %s for %s", room_id, candidate_name)
        logger.info("Interviewer link: %s", created["links"]["interviewer"])
        logger.info("Candidate link:   %s", created["links"]["candidate"])
        logger.info("%s\n", "=" * 60)

        socket_url = document_socket_url(service_url, room_id)
        try:
            interviewer_store = await RemoteDocumentStore.connect(socket_url)
        except DocumentStoreError as exc:
            logger.error("Cannot open document socket: %s", exc)
            return EXIT_CONNECTION_ERROR
        try:
            candidate_store = await RemoteDocumentStore.connect(socket_url)
        except DocumentStoreError as exc:
            logger.error("Cannot open document socket: %s", exc)
            await interviewer_store.close()
            return EXIT_CONNECTION_ERROR

        interviewer_notifications = NotificationPublisher()
        engine = ScriptedRecognitionEngine(event_delay=SEGMENT_DELAY_SECONDS)
        candidate_profile = load_role_profile(ParticipantRole.CANDIDATE)
        interviewer_profile = load_role_profile(ParticipantRole.INTERVIEWER)

        capture = SpeechCapture(
            candidate_store,
            room_id,
            candidate_profile,
            engine,
            language=speech_settings.language,
            retry_delay=speech_settings.network_retry_delay_seconds,
            max_network_retries=speech_settings.max_network_retries,
        )
        candidate_sync = CodeSync(
            candidate_store,
            room_id,
            ParticipantRole.CANDIDATE,
            interval=sync_settings.debounce_seconds,
        )
        interviewer_sync = CodeSync(
            interviewer_store,
            room_id,
            ParticipantRole.INTERVIEWER,
            interval=sync_settings.debounce_seconds,
            publisher=interviewer_notifications,
            on_code_change=lambda code: logger.info(
                "Interviewer editor updated (%d lines)", len(code.splitlines())
            ),
        )
        transcript_view = TranscriptListener(
            interviewer_store,
            room_id,
            on_update=lambda view: logger.info(
                "Live transcript%s: %s",
                " (complete)" if view.is_complete else "",
                view.transcript.strip()[:80],
            ),
        )

        try:
            consent = await api.record_consent(
                room_id,
                True,
                datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            )
            logger.info("Candidate consent recorded at %s", consent.recorded_at)

            await candidate_sync.start()
            await interviewer_sync.start()
            await capture.follow_room()

            total = len(INTERVIEW_SCRIPT)
            for i, (question_text, segments, code) in enumerate(INTERVIEW_SCRIPT, 1):
                engine.queue_session(build_answer_session(segments))
                starts_before = engine.start_calls

                question = await api.send_question(room_id, question_text)
                logger.info("\n[%d/%d] Interviewer: %s", i, total, question_text)
                await transcript_view.listen(question.question_id)

                started = await _wait_until(
                    lambda: engine.start_calls > starts_before, CAPTURE_START_TIMEOUT_SECONDS
                )
                if not started:
                    logger.warning("Candidate capture did not start; typing the answer instead")
                    await capture.submit_manual_answer(" ".join(segments))
                else:
                    await engine.wait_idle()

                if code:
                    candidate_sync.handle_local_change(code)
                    await candidate_sync.writer.drain()

                await api.end_question(room_id)

                await asyncio.sleep(PAUSE_BETWEEN_QUESTIONS_SECONDS)

            await capture.stop()
            await asyncio.sleep(PAUSE_BETWEEN_QUESTIONS_SECONDS)

            # Completion
            flow = CompletionFlow(
                api, room_id, interviewer_profile, publisher=interviewer_notifications
            )
            flow.open()
            logger.info("\nGenerating interview summary...")
            if not await flow.confirm():
                logger.error("Summary generation failed: %s", flow.last_error)
                return EXIT_SUMMARY_ERROR

            logger.info("Summary draft:\n%s", flow.summary)
            flow.set_notes("Strong fundamentals; clear reasoning about concurrency.")
            flow.select_decision(decision)
            record = await flow.submit()
            if record is None:
                logger.error("Final summary was not saved: %s", flow.last_error)
                return EXIT_SUMMARY_ERROR
            logger.info("Final decision %s saved at %s", record.final_decision.value, record.completed_at)

            report = await flow.download_report()
            logger.info(
                "Report: %d questions, code=%s, answers=%s",
                report.report_data.question_count,
                report.report_data.has_code,
                report.report_data.has_answers,
            )
            if report_path is not None:
                report_path.write_text(report.html_content, encoding="utf-8")
                logger.info("Report written to %s", report_path)

            # Candidate exit interview
            feedback = await api.submit_candidate_feedback(
                room_id,
                CandidateFeedback(
                    overall_experience=5,
                    interview_difficulty="just-right",
                    platform_usability=4,
                    interviewer_rating=5,
                    questions_quality=4,
                    improvement_suggestions="A short warm-up question would help.",
                ),
            )
            logger.info("Candidate redirected to %s", feedback["redirect"])
        except InterviewApiError as exc:
            logger.error("Room service call failed: %s", exc)
            return EXIT_ROOM_ERROR
        finally:
            transcript_view.close()
            await capture.close()
            await candidate_sync.close()
            await interviewer_sync.close()
            await candidate_store.close()
            await interviewer_store.close()

        history = await interviewer_notifications.get_history()
        for notification in history:
            logger.info("Notification [%s] %s", notification.level.value, notification.title)

        stats = await api.stats()
        logger.info("\n%s", "=" * 60)
        logger.info("Interview simulation complete!")
        logger.info("%s", "=" * 60)
        logger.info("Document writes: %s", stats.get("document_writes"))
        logger.info("Summaries generated: %s", stats.get("stats", {}).get("summaries_generated"))
        logger.info("Review at: %s", f"{service_url}/api/interviews/{room_id}/review")

    return EXIT_SUCCESS


def main(
    service_url: str | None = None,
    candidate_name: str | None = None,
    interviewer_name: str | None = None,
    decision: str | None = None,
    report_path: str | None = None,
) -> int:
    """
    Main entry point for the interview simulator.

    Returns:
        Exit code indicating success or failure.
    """
    resolved_service_url = service_url or os.environ.get("ROOM_SERVICE_URL", DEFAULT_SERVICE_URL)
    resolved_candidate = candidate_name or os.environ.get("CANDIDATE_NAME", DEFAULT_CANDIDATE_NAME)
    resolved_interviewer = interviewer_name or os.environ.get(
        "INTERVIEWER_NAME", DEFAULT_INTERVIEWER_NAME
    )
    resolved_decision = HiringDecision(decision or HiringDecision.HIRE.value)

    logger.info("=" * 60)
    logger.info("Interview Room Simulator")
    logger.info("=" * 60)
    logger.info("Target: %s", resolved_service_url)
    logger.info("Candidate: %s", resolved_candidate)
    logger.info("Interviewer: %s", resolved_interviewer)
    logger.info("Questions: %d", len(INTERVIEW_SCRIPT))
    logger.info("")

    try:
        return asyncio.run(
            run_simulation(
                service_url=resolved_service_url,
                candidate_name=resolved_candidate,
                interviewer_name=resolved_interviewer,
                decision=resolved_decision,
                report_path=Path(report_path).expanduser() if report_path else None,
            )
        )
    except KeyboardInterrupt:
        logger.info("\nSimulation interrupted")
        return EXIT_INTERRUPTED


def cli() -> None:
    """Command-line interface entry point with argument parsing."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Simulate a two-party interview against a running room service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run with defaults
    uv run python simulate_interview.py

    # Custom service URL
    uv run python simulate_interview.py --service-url http://localhost:9000

    # Save the report
    uv run python simulate_interview.py --report-out ./report.html

Environment Variables:
    ROOM_SERVICE_URL   Room service URL (default: http://127.0.0.1:8780)
    CANDIDATE_NAME     Candidate name (default: Sarah Chen)
    INTERVIEWER_NAME   Interviewer name (default: David Park)
        """,
    )

    parser.add_argument(
        "--service-url",
        type=str,
        default=None,
        help=f"Room service URL (default: {DEFAULT_SERVICE_URL})",
    )
    parser.add_argument(
        "--candidate",
        type=str,
        default=None,
        dest="candidate_name",
        help=f"Candidate name (default: {DEFAULT_CANDIDATE_NAME})",
    )
    parser.add_argument(
        "--interviewer",
        type=str,
        default=None,
        dest="interviewer_name",
        help=f"Interviewer name (default: {DEFAULT_INTERVIEWER_NAME})",
    )
    parser.add_argument(
        "--decision",
        choices=[d.value for d in HiringDecision],
        default=None,
        help="Final decision to submit (default: hire)",
    )
    parser.add_argument(
        "--report-out",
        type=str,
        default=None,
        help="Write the downloaded report HTML to this path",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    sys.exit(
        main(
            service_url=args.service_url,
            candidate_name=args.candidate_name,
            interviewer_name=args.interviewer_name,
            decision=args.decision,
            report_path=args.report_out,
        )
    )


if __name__ == "__main__":
    cli()

"""
Interview Summarizer using OpenAI Agents SDK.

Produces the end-of-interview narrative, short per-answer summaries, live
transcript analysis and generated interview questions. Every call is a
single agent run with a structured output type.

Failures raise SummaryGenerationError; callers decide what to show. No
fallback text is ever returned in place of a model answer.

Supports both OpenAI and Azure OpenAI backends:
  - OpenAI: Set OPENAI_API_KEY
  - Azure OpenAI: Set AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_KEY, AZURE_OPENAI_DEPLOYMENT

Last Grunted: 10/16/2026
"""

import logging
import os
from pathlib import Path
from typing import Literal, Optional, Protocol, TypeVar

from agents import Agent, ModelSettings, OpenAIChatCompletionsModel, Runner
from dotenv import load_dotenv
from openai import AsyncAzureOpenAI
from openai.types.shared import Reasoning
from pydantic import BaseModel, Field

from .models import InterviewMaterial


# Load environment variables from .env file
_env_path = Path(__file__).parent.parent / ".env"
load_dotenv(_env_path)

logger = logging.getLogger(__name__)


__all__ = [
    "GeneratedQuestionOutput",
    "InterviewSummarizer",
    "InterviewSummaryOutput",
    "SummaryGenerationError",
    "Summarizer",
    "TranscriptAnalysisOutput",
    "TranscriptSummaryOutput",
    "build_interview_prompt",
]


DEFAULT_REASONING_EFFORT = "low"


class SummaryGenerationError(Exception):
    """Raised when the model call fails or returns nothing usable."""


def _get_openai_config() -> tuple[str, Optional[AsyncAzureOpenAI]]:
    """
    Determine OpenAI configuration based on environment variables.

    Returns:
        Tuple of (model_name, azure_client_or_none)

    Azure OpenAI requires:
        - AZURE_OPENAI_ENDPOINT: The endpoint URL
        - AZURE_OPENAI_KEY: The API key
        - AZURE_OPENAI_DEPLOYMENT: The deployment name (used as model)

    Standard OpenAI requires:
        - OPENAI_API_KEY: The API key
        - OPENAI_MODEL (optional): Model name, defaults to gpt-5-mini
    """
    azure_endpoint = os.environ.get("AZURE_OPENAI_ENDPOINT")
    azure_key = os.environ.get("AZURE_OPENAI_KEY")
    azure_deployment = os.environ.get("AZURE_OPENAI_DEPLOYMENT")
    api_type = os.environ.get("OPENAI_API_TYPE", "").lower()

    if api_type == "azure" or (azure_endpoint and azure_key and azure_deployment):
        if not all([azure_endpoint, azure_key, azure_deployment]):
            raise ValueError(
                "Azure OpenAI requires AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_KEY, "
                "and AZURE_OPENAI_DEPLOYMENT environment variables"
            )

        logger.info(f"Using Azure OpenAI: {azure_endpoint}, deployment: {azure_deployment}")

        azure_client = AsyncAzureOpenAI(
            azure_endpoint=azure_endpoint,
            api_key=azure_key,
            api_version=os.environ.get("AZURE_OPENAI_API_VERSION", "2024-08-01-preview"),
        )
        return azure_deployment, azure_client

    model = os.environ.get("OPENAI_MODEL", "gpt-5-mini")
    logger.info(f"Using OpenAI: model {model}")
    return model, None


def _is_reasoning_model(model: str) -> bool:
    lowered = model.lower()
    return "gpt-5" in lowered or "o1" in lowered or "o3" in lowered


# =============================================================================
# Structured Output Models
# =============================================================================

class InterviewSummaryOutput(BaseModel):
    """End-of-interview assessment."""
    summary: str = Field(
        ...,
        description="Narrative summary of the interview: what was asked, how the candidate answered, quality of the final code"
    )
    strengths: list[str] = Field(
        default_factory=list,
        description="Concrete strengths demonstrated (2-4 items)"
    )
    concerns: list[str] = Field(
        default_factory=list,
        description="Concrete concerns or gaps (0-4 items)"
    )
    suggested_decision: Optional[Literal["hire", "maybe", "no_hire"]] = Field(
        default=None,
        description="Suggested hiring decision; the interviewer makes the final call"
    )

    def to_narrative(self) -> str:
        parts = [self.summary.strip()]
        if self.strengths:
            parts.append("Strengths:\n" + "\n".join(f"- {item}" for item in self.strengths))
        if self.concerns:
            parts.append("Concerns:\n" + "\n".join(f"- {item}" for item in self.concerns))
        if self.suggested_decision:
            parts.append(f"Suggested decision: {self.suggested_decision}")
        return "\n\n".join(part for part in parts if part)


class TranscriptSummaryOutput(BaseModel):
    """Short summary of one spoken answer."""
    summary: str = Field(..., description="Two to three sentence summary of the answer")


class TranscriptAnalysisOutput(BaseModel):
    """Live analysis of an answer in progress."""
    summary: str = Field(..., description="One sentence on what the candidate is saying")
    relevance_score: float = Field(..., ge=0.0, le=1.0, description="How well the answer addresses the question")
    clarity_score: float = Field(..., ge=0.0, le=1.0, description="How clearly it is articulated")
    key_points: list[str] = Field(default_factory=list, description="Key points so far (1-4 items)")
    follow_up_suggestions: list[str] = Field(
        default_factory=list, description="Follow-up questions for the interviewer (1-2 items)"
    )


class GeneratedQuestionOutput(BaseModel):
    """A generated interview question."""
    question: str = Field(..., description="Full question text including requirements")


# =============================================================================
# Agent Instructions
# =============================================================================

INTERVIEW_SUMMARY_INSTRUCTIONS = """You are an experienced technical interviewer writing the end-of-interview summary for a hiring panel.

You receive the interview configuration, every question that was asked with the candidate's transcribed answer, and the final state of the shared code editor.

Write a factual, balanced summary:
- Describe what was asked and how the candidate approached each question
- Judge the final code for correctness, structure and readability
- Name concrete strengths and concrete concerns; never invent evidence
- Transcripts come from speech recognition and may contain recognition errors; do not penalize wording
- If an answer or the code is missing, say so plainly
- Suggest a decision, but remember the interviewer decides"""

TRANSCRIPT_SUMMARY_INSTRUCTIONS = """Summarize the candidate's spoken answer to the interview question in two to three sentences. Stay factual. The transcript comes from speech recognition and may contain recognition errors."""

TRANSCRIPT_ANALYSIS_INSTRUCTIONS = """You are coaching an interviewer while the candidate is still answering. Score relevance and clarity of the answer so far, list the key points, and suggest one or two follow-up questions. Be brief: the interviewer has seconds to read this."""

QUESTION_GENERATION_INSTRUCTIONS = """You write interview questions. Produce one clear, practical question for the requested topic, type and difficulty. Include what the candidate should implement or explain and any specific requirements. Do not include the solution."""


# =============================================================================
# Summarizer
# =============================================================================

OutputT = TypeVar("OutputT", bound=BaseModel)


def build_interview_prompt(material: InterviewMaterial) -> str:
    """
    Build the summary prompt from gathered room material.

    Args:
        material: Room document, answers and (optional) final summary.

    Returns:
        Prompt text for the summary agent.
    """
    room = material.room
    parts = ["# INTERVIEW TO SUMMARIZE", ""]
    parts.append(f"**Candidate:** {room.candidate_name or 'Unknown Candidate'}")
    if room.job_title:
        parts.append(f"**Position:** {room.job_title}")
    if room.seniority_level:
        parts.append(f"**Seniority:** {room.seniority_level.value}")
    if room.tech_stack:
        parts.append(f"**Tech stack:** {', '.join(room.tech_stack)}")
    parts.append("")

    parts.append("## QUESTIONS AND ANSWERS")
    if not room.questions:
        parts.append("No questions were asked.")
    for index, question in enumerate(room.questions, start=1):
        label = ", ".join(
            value.value for value in (question.question_type, question.difficulty) if value
        )
        parts.append(f"### Q{index}{f' ({label})' if label else ''}")
        parts.append(question.text)
        answer = material.answers.get(question.question_id)
        if answer and answer.transcript.strip():
            parts.append(f"**Answer ({answer.source.value}):** {answer.transcript.strip()}")
        else:
            parts.append("**Answer:** (no answer recorded)")
        parts.append("")

    parts.append("## FINAL CODE")
    if material.has_code:
        parts.append("```")
        parts.append(room.code)
        parts.append("```")
    else:
        parts.append("(editor left empty)")

    return "\n".join(parts)


class Summarizer(Protocol):
    """What the service needs from a summarization backend."""

    async def summarize_interview(self, material: InterviewMaterial) -> str: ...

    async def summarize_transcript(self, transcript: str, question: Optional[str] = None) -> str: ...

    async def analyze_transcript(
        self, transcript: str, question: Optional[str] = None
    ) -> TranscriptAnalysisOutput: ...

    async def generate_question(
        self,
        topic: str,
        question_type: Optional[str] = None,
        difficulty: Optional[str] = None,
    ) -> str: ...


class InterviewSummarizer:
    """
    Generative-text operations on the OpenAI Agents SDK.

    Example:
        >>> summarizer = InterviewSummarizer()
        >>> narrative = await summarizer.summarize_interview(material)
    """

    def __init__(
        self,
        model: Optional[str] = None,
        reasoning_effort: Optional[str] = None,
        instructions: Optional[str] = None,
        azure_client: Optional[AsyncAzureOpenAI] = None,
    ) -> None:
        """
        Initialize the summarizer.

        Args:
            model: Model/deployment to use. If None, uses AZURE_OPENAI_DEPLOYMENT
                   for Azure or OPENAI_MODEL for standard OpenAI.
            reasoning_effort: Reasoning effort for reasoning models ("low", "medium", "high").
            instructions: Replaces the default interview summary instructions.
            azure_client: Optional Azure OpenAI client. If None and Azure is
                          configured via environment, one is created.
        """
        default_model, default_azure_client = _get_openai_config()
        self.model = model or default_model
        self._azure_client = azure_client or default_azure_client
        self.reasoning_effort = (
            reasoning_effort
            or os.environ.get("OPENAI_REASONING_EFFORT")
            or DEFAULT_REASONING_EFFORT
        )

        if not self._azure_client and not os.environ.get("OPENAI_API_KEY"):
            logger.warning(
                "No OpenAI credentials configured. Set either:\n"
                "  - OPENAI_API_KEY for standard OpenAI, or\n"
                "  - AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_KEY, AZURE_OPENAI_DEPLOYMENT for Azure OpenAI\n"
                "Summaries will fail at runtime."
            )

        model_settings = (
            ModelSettings(reasoning=Reasoning(effort=self.reasoning_effort))
            if _is_reasoning_model(self.model)
            else ModelSettings()
        )

        self._summary_agent = self._make_agent(
            "Interview Summarizer",
            instructions or INTERVIEW_SUMMARY_INSTRUCTIONS,
            InterviewSummaryOutput,
            model_settings,
        )
        self._transcript_agent = self._make_agent(
            "Transcript Summarizer",
            TRANSCRIPT_SUMMARY_INSTRUCTIONS,
            TranscriptSummaryOutput,
            model_settings,
        )
        self._analysis_agent = self._make_agent(
            "Transcript Analyzer",
            TRANSCRIPT_ANALYSIS_INSTRUCTIONS,
            TranscriptAnalysisOutput,
            model_settings,
        )
        self._question_agent = self._make_agent(
            "Question Generator",
            QUESTION_GENERATION_INSTRUCTIONS,
            GeneratedQuestionOutput,
            model_settings,
        )

        provider_info = "Azure OpenAI" if self._azure_client else "OpenAI"
        logger.info(f"InterviewSummarizer initialized with {provider_info}, model: {self.model}")

    def _make_agent(
        self,
        name: str,
        instructions: str,
        output_type: type[BaseModel],
        model_settings: ModelSettings,
    ) -> Agent:
        if self._azure_client is not None:
            model = OpenAIChatCompletionsModel(model=self.model, openai_client=self._azure_client)
        else:
            model = self.model
        return Agent(
            name=name,
            instructions=instructions,
            model=model,
            output_type=output_type,
            model_settings=model_settings,
        )

    async def _run(self, agent: Agent, prompt: str, output_type: type[OutputT]) -> OutputT:
        try:
            result = await Runner.run(agent, prompt)
            return result.final_output_as(output_type)
        except Exception as e:
            logger.error(f"{agent.name} run failed: {e}", exc_info=True)
            raise SummaryGenerationError(f"{agent.name} failed: {e}") from e

    async def summarize_interview(self, material: InterviewMaterial) -> str:
        """
        Generate the end-of-interview narrative.

        Raises:
            SummaryGenerationError: On model failure or an empty summary.
        """
        output = await self._run(
            self._summary_agent, build_interview_prompt(material), InterviewSummaryOutput
        )
        narrative = output.to_narrative()
        if not narrative.strip():
            raise SummaryGenerationError("Model returned an empty summary.")
        logger.info(f"Summary generated for room {material.room.room_id} ({len(narrative)} chars)")
        return narrative

    async def summarize_transcript(self, transcript: str, question: Optional[str] = None) -> str:
        if not transcript.strip():
            raise SummaryGenerationError("Transcript is empty.")
        prompt = f"Question: {question or '(not provided)'}\n\nTranscript:\n{transcript.strip()}"
        output = await self._run(self._transcript_agent, prompt, TranscriptSummaryOutput)
        return output.summary

    async def analyze_transcript(
        self, transcript: str, question: Optional[str] = None
    ) -> TranscriptAnalysisOutput:
        if not transcript.strip():
            raise SummaryGenerationError("Transcript is empty.")
        prompt = f"Question: {question or '(not provided)'}\n\nAnswer so far:\n{transcript.strip()}"
        return await self._run(self._analysis_agent, prompt, TranscriptAnalysisOutput)

    async def generate_question(
        self,
        topic: str,
        question_type: Optional[str] = None,
        difficulty: Optional[str] = None,
    ) -> str:
        prompt = (
            f"Topic: {topic}\n"
            f"Question type: {question_type or 'Coding'}\n"
            f"Difficulty: {difficulty or 'Medium'}"
        )
        output = await self._run(self._question_agent, prompt, GeneratedQuestionOutput)
        if not output.question.strip():
            raise SummaryGenerationError("Model returned an empty question.")
        return output.question.strip()

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from thoughtlog.core.config import get_settings
from thoughtlog.core.errors import AIOutputInvalidError
from thoughtlog.domain.models import MOOD_SCORE_MAX, MOOD_SCORE_MIN, AnalysisJob
from thoughtlog.persistence.repos import analysis_jobs as jobs_repo
from thoughtlog.persistence.repos import moods as moods_repo
from thoughtlog.providers.ai.base import AIClient
from thoughtlog.services.analysis.ai_output import parse_json_object, run_model
from thoughtlog.services.analysis.lifecycle import JobRun, begin_job, load_live_thought


STEP = "mood"


@dataclass(frozen=True)
class MoodResult:
    mood_score: int
    explanation: str


def build_mood_system_prompt() -> str:
    return "\n".join(
        [
            "You rate the mood of entries in a personal journal.",
            "",
            "Read one entry and score how its author seems to feel while writing it.",
            "",
            "Respond with JSON only: no markdown fences and no text around it.",
            'Return a single object with exactly two keys, "mood_score" and "explanation".',
            "",
            f"mood_score must be a whole number from {MOOD_SCORE_MIN} to {MOOD_SCORE_MAX}:",
            "- 1 very negative or distressed",
            "- 2 somewhat negative",
            "- 3 neutral or mixed",
            "- 4 positive",
            "- 5 very positive or elated",
            "",
            "explanation must be one or two short sentences justifying the score.",
            "Use only the text of the entry, describe valence rather than diagnoses,",
            "and never use clinical labels.",
        ]
    )


def build_mood_user_prompt(*, thought: str) -> str:
    return "\n".join(
        [
            "THOUGHT:",
            thought,
            "",
            "Decide how the author seems to feel right now,",
            f"pick one whole-number mood_score from {MOOD_SCORE_MIN} to {MOOD_SCORE_MAX}",
            "and explain the choice briefly in explanation.",
        ]
    )


def validate_mood_score(value: Any) -> int:
    """Accept whole numbers in the closed score range, including 3.0."""
    # bool is an int subclass and strings are not numbers here.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise AIOutputInvalidError(
            "mood_score_invalid",
            "mood_score must be a number",
            details={"mood_score": repr(value)},
        )
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise AIOutputInvalidError(
                "mood_score_invalid",
                "mood_score must be a finite integer",
                details={"mood_score": repr(value)},
            )
        value = int(value)
    if not MOOD_SCORE_MIN <= value <= MOOD_SCORE_MAX:
        raise AIOutputInvalidError(
            "mood_score_invalid",
            f"mood_score must be between {MOOD_SCORE_MIN} and {MOOD_SCORE_MAX}",
            details={"mood_score": value},
        )
    return value


def parse_mood_output(text: str) -> MoodResult:
    parsed = parse_json_object(text)
    score = validate_mood_score(parsed.get("mood_score"))
    explanation = parsed.get("explanation")
    if not isinstance(explanation, str) or not explanation.strip():
        raise AIOutputInvalidError(
            "explanation_invalid",
            "explanation must be a non-empty string",
        )
    return MoodResult(mood_score=score, explanation=explanation.strip())


async def process_mood_job(
    session: AsyncSession,
    job: AnalysisJob,
    *,
    ai_client: AIClient,
    run: JobRun,
) -> None:
    if not await begin_job(session, job, run):
        return
    thought = await load_live_thought(session, job)
    if thought is None:
        return

    model = get_settings().ai_mood_model
    # Body only; tags are not part of the mood context.
    text = await run_model(
        ai_client,
        model,
        instructions=build_mood_system_prompt(),
        user_input=build_mood_user_prompt(thought=thought.body),
    )
    mood = parse_mood_output(text)

    await moods_repo.upsert_mood(
        session,
        uid=job.uid,
        thought_id=thought.id,
        mood_score=mood.mood_score,
        explanation=mood.explanation,
        model=model,
    )
    await jobs_repo.mark_done(
        session,
        job.id,
        {"model": model, "mood_score": mood.mood_score, "explanation": mood.explanation},
    )
    await session.commit()

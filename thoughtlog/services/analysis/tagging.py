from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from thoughtlog.core.config import get_settings
from thoughtlog.core.errors import AIOutputInvalidError
from thoughtlog.domain.models import AnalysisJob
from thoughtlog.persistence.repos import analysis_jobs as jobs_repo
from thoughtlog.persistence.repos import tags as tags_repo
from thoughtlog.providers.ai.base import AIClient
from thoughtlog.services.analysis.ai_output import parse_json_object, run_model
from thoughtlog.services.analysis.lifecycle import JobRun, begin_job, load_live_thought


logger = logging.getLogger(__name__)

STEP = "tagging"
TAG_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class TagNormalization:
    valid: list[str]
    invalid: list[str]


def normalize_tags(raw_tags: Any) -> TagNormalization:
    """Split a model-supplied tag list into grammar-valid tags and rejects.

    Non-string items are rejected (JSON-stringified for the audit trail).
    Strings are trimmed; blank ones are dropped without being counted as
    invalid. Valid tags are de-duplicated.
    """
    invalid: list[str] = []
    valid: dict[str, None] = {}
    for item in raw_tags if isinstance(raw_tags, list) else []:
        if not isinstance(item, str):
            invalid.append(json.dumps(item))
            continue
        tag = item.strip()
        if not tag:
            continue
        if TAG_PATTERN.fullmatch(tag) is None:
            invalid.append(tag)
            continue
        valid[tag] = None
    return TagNormalization(valid=list(valid), invalid=invalid)


def build_tagger_system_prompt() -> str:
    return "\n".join(
        [
            "You label entries in a personal journal with short tags.",
            "",
            "Respond with JSON only: no markdown fences and no text around it.",
            'Return a single object with one key, "tags", whose value is an array of strings.',
            "",
            "Every tag must follow these rules:",
            "- match the regular expression ^[A-Za-z0-9_-]+$ exactly",
            "- letters keep their case (Work and work are different tags)",
            "- no spaces and no punctuation except underscore and hyphen",
            "- appear at most once",
            "",
            "When choosing tags:",
            "- reuse an existing tag whenever one fits",
            "- drop any current tag that no longer fits",
            "- create a new tag only when nothing existing fits",
        ]
    )


def build_tagger_user_prompt(*, thought: str, existing_tags: list[str], current_tags: list[str]) -> str:
    return "\n".join(
        [
            "THOUGHT:",
            thought,
            "",
            "EXISTING_TAGS (reuse when they fit):",
            ", ".join(existing_tags),
            "",
            "CURRENT_TAGS (keep or drop):",
            ", ".join(current_tags),
        ]
    )


def parse_tagging_output(text: str) -> tuple[dict[str, Any], list[Any]]:
    """Return the parsed object and its raw ``tags`` list."""
    parsed = parse_json_object(text)
    raw_tags = parsed.get("tags")
    if not isinstance(raw_tags, list):
        raise AIOutputInvalidError(
            "tags_not_list",
            'AI output field "tags" must be an array',
            details={"tags_type": type(raw_tags).__name__},
        )
    return parsed, raw_tags


async def process_tagging_job(
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

    settings = get_settings()
    existing = await tags_repo.list_recent_user_tag_names(
        session, job.uid, limit=settings.tagger_recent_tags_limit
    )
    current = await tags_repo.get_thought_tag_names(session, job.uid, thought.id)
    model = settings.ai_tagger_model

    text = await run_model(
        ai_client,
        model,
        instructions=build_tagger_system_prompt(),
        user_input=build_tagger_user_prompt(
            thought=thought.body, existing_tags=existing, current_tags=current
        ),
    )
    parsed, raw_tags = parse_tagging_output(text)
    normalized = normalize_tags(raw_tags)
    if normalized.invalid:
        logger.info("tagging_invalid_tags_dropped job_id=%s count=%s", job.id, len(normalized.invalid))

    await tags_repo.set_thought_tags(
        session, uid=job.uid, thought_id=thought.id, tag_names=normalized.valid
    )
    await jobs_repo.mark_done(
        session,
        job.id,
        {
            "model": model,
            "tags": normalized.valid,
            "invalid_tags_dropped": normalized.invalid,
            "raw": parsed,
        },
    )
    await session.commit()

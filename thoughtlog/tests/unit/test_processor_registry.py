from __future__ import annotations

from thoughtlog.services.analysis import mood, tagging
from thoughtlog.services.analysis.processors import ANALYSIS_STEPS, PROCESSORS


def test_every_created_step_has_a_processor() -> None:
    assert set(ANALYSIS_STEPS) <= set(PROCESSORS)


def test_processors_are_registered_under_their_own_step() -> None:
    assert PROCESSORS[tagging.STEP] is tagging.process_tagging_job
    assert PROCESSORS[mood.STEP] is mood.process_mood_job

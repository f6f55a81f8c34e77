import sys

import pytest
from pydantic import TypeAdapter, ValidationError

from learnit.models import (
    ConfettiOptions,
    ConfettiOrigin,
    DailyActivity,
    FileReadReply,
    FillInBlanksQuestion,
    MultipleChoiceQuestion,
    Question,
    QuestionQuantities,
    QuestionTypeCounts,
    UserProgress,
)


def test_counts_reject_negatives():
    with pytest.raises(ValidationError):
        QuestionTypeCounts(mcqs=-1)


def test_quantities_are_capped():
    with pytest.raises(ValidationError):
        QuestionQuantities(flashcards=51)
    assert QuestionQuantities().matching == 2


def test_mcq_answer_must_be_an_option():
    with pytest.raises(ValidationError):
        MultipleChoiceQuestion(question="2 + 2?", options=["3", "5"], correct_answer="4")


def test_fill_in_blanks_placeholders_match_blanks():
    FillInBlanksQuestion(
        text_with_blanks="[BLANK_0] feeds [BLANK_1].",
        blanks=["Sunlight", "plants"],
        complete_text="Sunlight feeds plants.",
    )
    with pytest.raises(ValidationError):
        FillInBlanksQuestion(
            text_with_blanks="[BLANK_1] feeds plants.",
            blanks=["Sunlight"],
            complete_text="Sunlight feeds plants.",
        )


def test_question_union_uses_kind():
    adapter = TypeAdapter(Question)
    question = adapter.validate_python(
        {"kind": "true_false", "statement": "Water is wet.", "is_true": True}
    )
    assert question.is_true is True


def test_daily_activity_key_must_match_date():
    activity = DailyActivity(date="2026-03-01", uploads=1)
    with pytest.raises(ValidationError):
        UserProgress(user_id="u1", daily_activity={"2026-03-02": activity})


def test_daily_activity_rejects_bad_dates():
    with pytest.raises(ValidationError):
        DailyActivity(date="yesterday")


def test_file_reply_carries_exactly_one_field():
    with pytest.raises(ValidationError):
        FileReadReply()
    with pytest.raises(ValidationError):
        FileReadReply(content="data:,", error="boom")


def test_daily_activity_key_is_canonical():
    progress = UserProgress(
        user_id="u1",
        daily_activity={"2026-03-01": DailyActivity(date="2026-03-01", uploads=1)},
    )
    assert list(progress.daily_activity) == ["2026-03-01"]


@pytest.mark.skipif(sys.version_info < (3, 11), reason="basic ISO dates need Python 3.11")
def test_daily_activity_date_is_normalized():
    assert DailyActivity(date="20260301").date == "2026-03-01"
    progress = UserProgress(
        user_id="u1", daily_activity={"20260301": DailyActivity(date="20260301")}
    )
    assert list(progress.daily_activity) == ["2026-03-01"]
    assert UserProgress.model_validate_json(progress.model_dump_json()) == progress


def test_confetti_dumps_camel_case():
    options = ConfettiOptions(particle_count=100, start_velocity=30, origin=ConfettiOrigin(y=0.6))
    assert options.model_dump(by_alias=True, exclude_none=True) == {
        "particleCount": 100,
        "startVelocity": 30.0,
        "origin": {"y": 0.6},
    }
    assert ConfettiOptions(particleCount=5).particle_count == 5

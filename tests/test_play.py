import random
from datetime import datetime

from learnit.models import (
    Flashcard,
    MultipleChoiceQuestion,
    PlayQuestion,
    QuestionSet,
    SessionData,
    TrueFalseQuestion,
)
from learnit.play import celebration, prepare_play_questions, result_payload, score_percentage


def make_session(correct, total, answered):
    return SessionData(
        user_id="u1",
        document_id="doc-1",
        prepared_questions=[
            PlayQuestion(kind="true_false", prompt=f"S{i}", answer="True", options=["True", "False"])
            for i in range(total)
        ],
        correct_count=correct,
        total_questions=total,
        answers=[{"is_correct": True}] * answered,
        created_at=datetime.now(),
    )


def test_only_mcq_and_true_false_are_playable():
    questions = QuestionSet(
        flashcards=[Flashcard(question="Q?", answer="A")],
        mcqs=[MultipleChoiceQuestion(question="Pick", options=["x", "y"], correct_answer="y")],
        true_false_questions=[TrueFalseQuestion(statement="Sky is blue.", is_true=True)],
    )

    prepared = prepare_play_questions(questions, size=15, rng=random.Random(1))

    assert sorted(q.kind for q in prepared) == ["mcq", "true_false"]
    tf = next(q for q in prepared if q.kind == "true_false")
    assert tf.options == ["True", "False"]
    assert tf.answer == "True"


def test_play_size_is_capped():
    questions = QuestionSet(
        true_false_questions=[
            TrueFalseQuestion(statement=f"Statement {i}", is_true=i % 2 == 0) for i in range(20)
        ]
    )
    assert len(prepare_play_questions(questions, size=5)) == 5


def test_score_percentage():
    assert score_percentage(make_session(2, 3, 3)) == 67
    assert score_percentage(make_session(0, 0, 0)) == 0


def test_celebration_threshold():
    assert celebration(69, 70) is None
    options = celebration(70, 70)
    assert options.particle_count == 100
    assert options.origin.y == 0.6


def test_result_payload():
    payload = result_payload(make_session(3, 4, 4), threshold=70)
    assert payload["score_percentage"] == 75
    assert payload["completed"] is True
    assert payload["celebration"] == {"particleCount": 100, "spread": 70.0, "origin": {"y": 0.6}}

    unfinished = result_payload(make_session(1, 4, 2), threshold=70)
    assert unfinished["completed"] is False
    assert unfinished["celebration"] is None

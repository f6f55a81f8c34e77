import random
from typing import Any, Dict, List, Optional

from .models import ConfettiOptions, ConfettiOrigin, PlayQuestion, QuestionSet, SessionData

TRUE_FALSE_OPTIONS = ["True", "False"]


def prepare_play_questions(
    questions: QuestionSet, size: int, rng: Optional[random.Random] = None
) -> List[PlayQuestion]:
    """Playable items from a saved set: MCQs and true/false, shuffled and capped."""
    rng = rng or random.Random()
    prepared = [
        PlayQuestion(
            kind="mcq",
            prompt=mcq.question,
            answer=mcq.correct_answer,
            options=list(mcq.options),
        )
        for mcq in questions.mcqs
    ]
    prepared += [
        PlayQuestion(
            kind="true_false",
            prompt=item.statement,
            answer="True" if item.is_true else "False",
            options=list(TRUE_FALSE_OPTIONS),
        )
        for item in questions.true_false_questions
    ]
    rng.shuffle(prepared)
    return prepared[:size]


def score_percentage(session: SessionData) -> int:
    total = session.total_questions
    return round((session.correct_count / total) * 100) if total > 0 else 0


def celebration(score: int, threshold: int) -> Optional[ConfettiOptions]:
    if score < threshold:
        return None
    return ConfettiOptions(particle_count=100, spread=70, origin=ConfettiOrigin(y=0.6))


def result_payload(session: SessionData, threshold: int) -> Dict[str, Any]:
    score = score_percentage(session)
    confetti = celebration(score, threshold)
    return {
        "correct_count": session.correct_count,
        "total_questions": session.total_questions,
        "score_percentage": score,
        "completed": len(session.answers) >= session.total_questions,
        "answers": session.answers,
        "celebration": confetti.model_dump(by_alias=True, exclude_none=True) if confetti else None,
    }

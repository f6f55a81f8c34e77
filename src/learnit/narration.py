from typing import List

from pydantic import BaseModel

from .models import BLANK_PATTERN, QuestionSet

WORDS_PER_MINUTE = 150
SPEECH_RATE = 0.9
PAUSE_SECONDS = 2.0
OPTION_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"


class NarrationSegment(BaseModel):
    section: str
    text: str
    estimated_seconds: float


class NarrationScript(BaseModel):
    title: str
    segments: List[NarrationSegment]
    total_seconds: float


def option_label(index: int) -> str:
    """A, B, ..., Z, AA, AB, ... like spreadsheet columns."""
    label = ""
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, len(OPTION_LETTERS))
        label = OPTION_LETTERS[remainder] + label
    return label


def estimate_seconds(text: str, words_per_minute: int = WORDS_PER_MINUTE) -> float:
    words = len(text.split())
    return round(words / (words_per_minute * SPEECH_RATE) * 60, 1)


def build_narration(
    questions: QuestionSet, title: str, words_per_minute: int = WORDS_PER_MINUTE
) -> NarrationScript:
    """Turns a question set into an ordered, timed script for read-aloud study."""
    segments: List[NarrationSegment] = []

    def add(section: str, text: str, pause: bool = False) -> None:
        seconds = estimate_seconds(text, words_per_minute)
        if pause:
            seconds += PAUSE_SECONDS
        segments.append(NarrationSegment(section=section, text=text, estimated_seconds=seconds))

    counts = questions.counts()
    add(
        "intro",
        f"Welcome to your audio study session for {title}. "
        f"This session covers {counts.total()} questions.",
    )

    for number, card in enumerate(questions.flashcards, start=1):
        add("flashcards", f"Flashcard {number}. {card.question}", pause=True)
        add("flashcards", f"Answer: {card.answer}")

    for number, mcq in enumerate(questions.mcqs, start=1):
        options = " ".join(
            f"{option_label(i)}: {option}." for i, option in enumerate(mcq.options)
        )
        add("mcqs", f"Question {number}. {mcq.question} {options}", pause=True)
        letter = option_label(mcq.options.index(mcq.correct_answer))
        add("mcqs", f"The correct answer is {letter}: {mcq.correct_answer}.")

    for number, item in enumerate(questions.true_false_questions, start=1):
        add("true_false", f"True or false, statement {number}. {item.statement}", pause=True)
        verdict = "True." if item.is_true else "False."
        if item.explanation:
            verdict += f" {item.explanation}"
        add("true_false", verdict)

    for number, item in enumerate(questions.fill_in_blanks_questions, start=1):
        spoken = BLANK_PATTERN.sub("blank", item.text_with_blanks)
        add("fill_in_blanks", f"Fill in the blanks, item {number}. {spoken}", pause=True)
        add("fill_in_blanks", item.complete_text)

    for number, item in enumerate(questions.matching_questions, start=1):
        matches = " ".join(f"{pair.left} matches {pair.right}." for pair in item.pairs)
        add("matching", f"Matching set {number}. {matches}")

    add("outro", "That completes this session. Keep up your study streak!")

    return NarrationScript(
        title=title,
        segments=segments,
        total_seconds=round(sum(s.estimated_seconds for s in segments), 1),
    )

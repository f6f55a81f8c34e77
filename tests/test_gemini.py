import json

import fakeredis
import pytest

from learnit.errors import GenerationError
from learnit.gemini import (
    GeminiClient,
    GeminiQuestionGenerator,
    GeminiStudyAssistant,
    parse_response,
    split_into_chunks,
    with_retry,
)
from learnit.models import QuestionQuantities

PAYLOAD = {
    "flashcards": [
        {"question": "What is osmosis?", "answer": "Water movement across a membrane"},
        {"question": "", "answer": "dropped for an empty question"},
    ],
    "mcqs": [
        {
            "question": "Which organelle releases energy?",
            "options": ["Nucleus", "Mitochondria", "Ribosome", "Vacuole"],
            "correct_answer": "Mitochondria",
        },
        {
            "question": "Broken item",
            "options": ["A", "B"],
            "correct_answer": "C",
        },
    ],
    "true_false_questions": [{"statement": "Enzymes are consumed.", "is_true": False}],
}


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = 0

    def generate_content(self, prompt):
        self.calls += 1
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return FakeResponse(reply)


def no_sleep(_):
    pass


def test_parse_response_strips_fences():
    raw = "```json\n" + json.dumps({"flashcards": []}) + "\n```"
    assert parse_response(raw) == {"flashcards": []}


def test_parse_response_rejects_non_objects():
    with pytest.raises(GenerationError):
        parse_response("[1, 2, 3]")
    with pytest.raises(GenerationError):
        parse_response("no json here")


def test_invalid_items_are_dropped():
    model = FakeModel([json.dumps(PAYLOAD)])
    generator = GeminiQuestionGenerator(model=model, sleep=no_sleep)

    result = generator.generate("Some study material.", QuestionQuantities())

    assert len(result.flashcards) == 1
    assert len(result.mcqs) == 1
    assert result.true_false_questions[0].is_true is False
    assert result.matching_questions == []


def test_results_are_truncated_to_quantities():
    model = FakeModel([json.dumps(PAYLOAD)])
    generator = GeminiQuestionGenerator(model=model, sleep=no_sleep)

    result = generator.generate("Some study material.", QuestionQuantities(flashcards=0))

    assert result.flashcards == []


def test_responses_are_cached():
    cache = fakeredis.FakeRedis(decode_responses=True)
    model = FakeModel([json.dumps(PAYLOAD)])
    generator = GeminiQuestionGenerator(model=model, cache=cache, sleep=no_sleep)

    first = generator.generate("Some study material.", QuestionQuantities())
    second = generator.generate("Some study material.", QuestionQuantities())

    assert model.calls == 1
    assert first == second


def test_transient_failures_are_retried():
    model = FakeModel([RuntimeError("quota"), json.dumps(PAYLOAD)])
    generator = GeminiQuestionGenerator(model=model, sleep=no_sleep)

    result = generator.generate("Some study material.", QuestionQuantities())

    assert model.calls == 2
    assert len(result.mcqs) == 1


def test_persistent_failure_becomes_generation_error():
    model = FakeModel([RuntimeError("service down")])
    generator = GeminiQuestionGenerator(model=model, sleep=no_sleep)

    with pytest.raises(GenerationError):
        generator.generate("Some study material.", QuestionQuantities())
    assert model.calls == 3


def test_missing_api_key():
    with pytest.raises(GenerationError):
        GeminiQuestionGenerator(api_key="")


def test_with_retry_backs_off():
    pauses = []
    attempts = iter([ValueError("one"), ValueError("two"), "ok"])

    def flaky():
        outcome = next(attempts)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert with_retry(flaky, sleep=pauses.append) == "ok"
    assert len(pauses) == 2
    assert pauses[1] > pauses[0]


def test_split_into_chunks():
    paragraph = "Cells divide. " * 50
    chunks = split_into_chunks("\n\n".join([paragraph] * 4), chunk_size=1000)
    assert len(chunks) > 1
    assert all(len(c) <= 1000 for c in chunks)


def test_unparseable_reply_is_not_cached():
    cache = fakeredis.FakeRedis(decode_responses=True)
    model = FakeModel(["not json at all", json.dumps(PAYLOAD)])
    generator = GeminiQuestionGenerator(model=model, cache=cache, sleep=no_sleep)

    with pytest.raises(GenerationError):
        generator.generate("Some study material.", QuestionQuantities())
    assert cache.keys("generation:*") == []

    result = generator.generate("Some study material.", QuestionQuantities())
    assert len(result.mcqs) == 1
    assert model.calls == 2


class PromptRecorder(FakeModel):
    def __init__(self, replies):
        super().__init__(replies)
        self.prompts = []

    def generate_content(self, prompt):
        self.prompts.append(prompt)
        return super().generate_content(prompt)


def test_assistant_summarize():
    model = PromptRecorder(["  # Cells\n\n## Overview\n- Cells are small.  "])
    assistant = GeminiStudyAssistant(GeminiClient(model=model, sleep=no_sleep))

    summary = assistant.summarize("Cells are the unit of life.", "cells.txt")

    assert summary == "# Cells\n\n## Overview\n- Cells are small."
    assert "Title: cells.txt" in model.prompts[0]
    assert "Cells are the unit of life." in model.prompts[0]


def test_assistant_answer_uses_document_and_question():
    model = PromptRecorder(["Mitochondria release energy."])
    assistant = GeminiStudyAssistant(GeminiClient(model=model, sleep=no_sleep))

    answer = assistant.answer("What do mitochondria do?", "Mitochondria release energy.", "bio")

    assert answer == "Mitochondria release energy."
    assert "What do mitochondria do?" in model.prompts[0]
    assert 'The title of the document is: "bio"' in model.prompts[0]


def test_assistant_truncates_long_documents():
    model = PromptRecorder(["ok"])
    assistant = GeminiStudyAssistant(GeminiClient(model=model, sleep=no_sleep))

    assistant.summarize("x" * 20000 + "TAIL", "long")

    assert "TAIL" not in model.prompts[0]


def test_assistant_needs_text():
    assistant = GeminiStudyAssistant(GeminiClient(model=FakeModel(["unused"]), sleep=no_sleep))
    with pytest.raises(GenerationError):
        assistant.summarize("  ", "empty")
    with pytest.raises(GenerationError):
        assistant.answer("Why?", "", "empty")

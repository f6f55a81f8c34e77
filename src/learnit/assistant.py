from abc import ABC, abstractmethod
from typing import List, Optional, Set

from redis import Redis

from .config import Settings, settings
from .errors import GenerationError
from .quiz import STOP_WORDS, WORD_PATTERN, extract_keywords, find_definitions, split_sentences

SUMMARY_POINTS = 5
SUMMARY_TERMS = 5
ANSWER_SENTENCES = 2
NO_ANSWER = "I don't have enough information in this document to answer that question."


def _content_words(text: str) -> Set[str]:
    words = set()
    for word in WORD_PATTERN.findall(text):
        word = word.lower()
        if len(word) < 4 or word in STOP_WORDS:
            continue
        if len(word) > 4 and word.endswith("s"):
            word = word[:-1]
        words.add(word)
    return words


# --- Strategy Pattern: Study Assistants ---
class StudyAssistant(ABC):
    """Summaries and grounded answers over one document's text."""

    @abstractmethod
    def summarize(self, text: str, title: str) -> str:
        pass

    @abstractmethod
    def answer(self, question: str, text: str, title: str) -> str:
        pass


class HeuristicStudyAssistant(StudyAssistant):
    """Extractive summary and sentence-overlap answers, no network."""

    def summarize(self, text: str, title: str) -> str:
        sentences = split_sentences(text)
        if not sentences:
            raise GenerationError("Not enough text to summarize.")

        keywords = extract_keywords(text)
        weights = {k.lower(): len(keywords) - rank for rank, k in enumerate(keywords)}

        def score(sentence: str) -> int:
            return sum(weights.get(w.lower(), 0) for w in WORD_PATTERN.findall(sentence))

        ranked = sorted(range(len(sentences)), key=lambda i: (-score(sentences[i]), i))
        points = [sentences[i] for i in sorted(ranked[:SUMMARY_POINTS])]

        lines = [f"# {title}", "", "## Key Points", ""]
        lines += [f"- {point}" for point in points]
        definitions = find_definitions(sentences)[:SUMMARY_TERMS]
        if definitions:
            lines += ["", "## Key Terms", ""]
            lines += [f"- **{term}**: {definition}" for term, _, definition, _ in definitions]
        return "\n".join(lines)

    def answer(self, question: str, text: str, title: str) -> str:
        sentences = split_sentences(text)
        if not sentences:
            raise GenerationError("Not enough text to answer from.")

        terms = _content_words(question)
        scored = [(len(terms & _content_words(s)), i) for i, s in enumerate(sentences)]
        best: List[int] = [
            i for overlap, i in sorted(scored, key=lambda x: (-x[0], x[1])) if overlap > 0
        ][:ANSWER_SENTENCES]
        if not best:
            return NO_ANSWER
        return " ".join(sentences[i] for i in sorted(best))


class AssistantFactory:
    @staticmethod
    def create(
        mode: str,
        app_settings: Settings = settings,
        cache: Optional[Redis] = None,
    ) -> StudyAssistant:
        if mode == "heuristic":
            return HeuristicStudyAssistant()
        elif mode == "gemini":
            from .gemini import GeminiClient, GeminiStudyAssistant

            return GeminiStudyAssistant(GeminiClient.from_settings(app_settings, cache))
        else:
            raise ValueError(f"Unknown assistant mode: {mode}")

import random
import re
from abc import ABC, abstractmethod
from collections import Counter
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel
from redis import Redis

from .config import Settings, settings
from .errors import GenerationError
from .models import (
    FillInBlanksQuestion,
    Flashcard,
    MatchingPair,
    MatchingQuestion,
    MultipleChoiceQuestion,
    QUANTITY_FOR_FIELD,
    QuestionQuantities,
    QuestionSet,
    TrueFalseQuestion,
)

STOP_WORDS = {
    "about", "above", "after", "again", "against", "along", "also", "among",
    "another", "because", "before", "being", "below", "between", "both",
    "could", "does", "doing", "during", "each", "either", "every", "first",
    "from", "further", "have", "having", "here", "however", "into", "itself",
    "many", "more", "most", "much", "must", "never", "often", "only", "other",
    "others", "over", "same", "second", "should", "since", "some", "such",
    "than", "that", "their", "them", "themselves", "then", "there", "these",
    "they", "this", "those", "through", "thus", "under", "until", "upon",
    "used", "using", "very", "were", "what", "when", "where", "whether",
    "which", "while", "whose", "will", "with", "within", "without", "would",
    "your", "example", "called", "known", "refers", "means", "usually",
}
LEADING_PRONOUNS = {"it", "this", "that", "there", "they", "he", "she", "we", "these", "those", "here"}
MIN_SENTENCE_WORDS = 5
MAX_SENTENCE_WORDS = 60
MIN_KEYWORD_LENGTH = 5
PAIRS_PER_MATCHING = 4
BLANKS_PER_SENTENCE = 2
CLOZE_GAP = "_____"

SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
WORD_PATTERN = re.compile(r"\b[A-Za-z][A-Za-z\-]+\b")
DEFINITION_PATTERN = re.compile(
    r"^(?P<term>[A-Z][\w\- ]{1,60}?)\s+(?P<verb>is|are|refers to|means)\s+(?P<definition>.{8,}?)[.!?]?$"
)


# --- Text helpers ---
def split_sentences(text: str) -> List[str]:
    normalized = re.sub(r"\s+", " ", text or "").strip()
    if not normalized:
        return []
    sentences = [s.strip() for s in SENTENCE_SPLIT.split(normalized)]
    return [
        s
        for s in sentences
        if MIN_SENTENCE_WORDS <= len(s.split()) <= MAX_SENTENCE_WORDS
    ]


def extract_keywords(text: str, limit: int = 40) -> List[str]:
    """Ranks candidate terms by length weighted with frequency."""
    counts: Counter = Counter()
    display: Dict[str, str] = {}
    for word in WORD_PATTERN.findall(text or ""):
        key = word.lower()
        if len(key) < MIN_KEYWORD_LENGTH or key in STOP_WORDS:
            continue
        counts[key] += 1
        display.setdefault(key, word)

    ranked = sorted(counts, key=lambda w: (-len(w) * (1 + 0.3 * counts[w]), w))
    return [display[w] for w in ranked[:limit]]


def keyword_pattern(keyword: str) -> re.Pattern:
    return re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)


def find_definitions(sentences: List[str]) -> List[Tuple[str, str, str, str]]:
    """Returns (term, verb, definition, sentence) for 'X is Y' sentences."""
    found = []
    seen = set()
    for sentence in sentences:
        match = DEFINITION_PATTERN.match(sentence)
        if not match:
            continue
        term = match.group("term").strip()
        words = term.split()
        if len(words) > 5 or words[0].lower() in LEADING_PRONOUNS or term.lower() in seen:
            continue
        seen.add(term.lower())
        definition = match.group("definition").strip()
        found.append((term, match.group("verb"), definition[0].upper() + definition[1:], sentence))
    return found


# --- Strategy Pattern: Question Generators ---
class QuestionGenerator(ABC):
    """Abstract Base Class for question generation strategies."""

    @abstractmethod
    def generate(self, text: str, quantities: QuestionQuantities) -> QuestionSet:
        pass


class HeuristicQuestionGenerator(QuestionGenerator):
    """Builds questions locally from sentence structure and keyword ranking."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def generate(self, text: str, quantities: QuestionQuantities) -> QuestionSet:
        sentences = split_sentences(text)
        if not sentences:
            raise GenerationError("Not enough text to generate questions from.")

        keywords = extract_keywords(text)
        definitions = find_definitions(sentences)
        clozes = self._keyword_sentences(sentences, keywords)

        return QuestionSet(
            flashcards=self._flashcards(definitions, clozes, quantities.flashcards),
            mcqs=self._mcqs(clozes, keywords, quantities.mcqs),
            matching_questions=self._matching(definitions, clozes, quantities.matching),
            true_false_questions=self._true_false(clozes, keywords, quantities.true_false),
            fill_in_blanks_questions=self._fill_in_blanks(
                clozes, keywords, quantities.fill_in_blanks
            ),
        )

    def _keyword_sentences(
        self, sentences: List[str], keywords: List[str]
    ) -> List[Tuple[str, str]]:
        """Pairs each sentence with its best unused keyword."""
        used = set()
        pairs = []
        for sentence in sentences:
            for keyword in keywords:
                if keyword.lower() in used:
                    continue
                if keyword_pattern(keyword).search(sentence):
                    used.add(keyword.lower())
                    pairs.append((keyword, sentence))
                    break
        return pairs

    def _flashcards(self, definitions, clozes, count: int) -> List[Flashcard]:
        cards = []
        defined_sentences = set()
        for term, verb, definition, sentence in definitions:
            lead = "What are" if verb == "are" else "What is"
            cards.append(Flashcard(question=f"{lead} {term}?", answer=definition))
            defined_sentences.add(sentence)
        for keyword, sentence in clozes:
            if sentence in defined_sentences:
                continue
            blanked = keyword_pattern(keyword).sub(CLOZE_GAP, sentence, count=1)
            cards.append(Flashcard(question=f"Complete: {blanked}", answer=keyword))
        return cards[:count]

    def _mcqs(self, clozes, keywords: List[str], count: int) -> List[MultipleChoiceQuestion]:
        questions = []
        for keyword, sentence in clozes[:count]:
            questions.append(
                MultipleChoiceQuestion(
                    question=keyword_pattern(keyword).sub(CLOZE_GAP, sentence, count=1),
                    options=self._generate_options(keyword, keywords),
                    correct_answer=keyword,
                )
            )
        return questions

    def _matching(self, definitions, clozes, count: int) -> List[MatchingQuestion]:
        pairs = [MatchingPair(left=term, right=definition) for term, _, definition, _ in definitions]
        defined = {term.lower() for term, _, _, _ in definitions}
        for keyword, sentence in clozes:
            if keyword.lower() in defined:
                continue
            pairs.append(
                MatchingPair(
                    left=keyword,
                    right=keyword_pattern(keyword).sub(CLOZE_GAP, sentence, count=1),
                )
            )

        questions = []
        for start in range(0, len(pairs), PAIRS_PER_MATCHING):
            group = pairs[start : start + PAIRS_PER_MATCHING]
            if len(group) < 2 or len(questions) >= count:
                break
            questions.append(MatchingQuestion(pairs=group))
        return questions

    def _true_false(self, clozes, keywords: List[str], count: int) -> List[TrueFalseQuestion]:
        questions = []
        for index, (keyword, sentence) in enumerate(clozes[:count]):
            others = [k for k in keywords if k.lower() != keyword.lower()]
            if index % 2 == 1 and others:
                swap = self.rng.choice(others)
                statement = keyword_pattern(keyword).sub(swap, sentence, count=1)
                questions.append(
                    TrueFalseQuestion(
                        statement=statement,
                        is_true=False,
                        explanation=f"The material says: {sentence}",
                    )
                )
            else:
                questions.append(TrueFalseQuestion(statement=sentence, is_true=True))
        return questions

    def _fill_in_blanks(
        self, clozes, keywords: List[str], count: int
    ) -> List[FillInBlanksQuestion]:
        questions = []
        for keyword, sentence in clozes[:count]:
            spans = []
            for candidate in [keyword] + keywords:
                match = keyword_pattern(candidate).search(sentence)
                if not match:
                    continue
                if any(match.start() < end and start < match.end() for start, end, _ in spans):
                    continue
                spans.append((match.start(), match.end(), match.group(0)))
                if len(spans) == BLANKS_PER_SENTENCE:
                    break
            spans.sort()

            parts = []
            blanks = []
            last = 0
            for index, (start, end, word) in enumerate(spans):
                parts.append(sentence[last:start])
                parts.append(f"[BLANK_{index}]")
                blanks.append(word)
                last = end
            parts.append(sentence[last:])

            questions.append(
                FillInBlanksQuestion(
                    text_with_blanks="".join(parts),
                    blanks=blanks,
                    complete_text=sentence,
                )
            )
        return questions

    def _generate_options(self, correct: str, keywords: List[str]) -> List[str]:
        """Helper to generate random distractors."""
        candidates = list(dict.fromkeys(k for k in keywords if k.lower() != correct.lower()))

        num_options = 3
        if len(candidates) < num_options:
            incorrect = candidates
            while len(incorrect) < num_options:
                incorrect.append(f"Option {len(incorrect)+1}")
        else:
            incorrect = self.rng.sample(candidates, num_options)

        options = [correct] + incorrect
        self.rng.shuffle(options)
        return options


# --- Adding to an existing set ---
def question_key(question: BaseModel) -> str:
    """Identity used to spot a question that is already in a set."""
    if isinstance(question, (Flashcard, MultipleChoiceQuestion)):
        value = question.question
    elif isinstance(question, MatchingQuestion):
        value = "|".join(pair.left for pair in question.pairs)
    elif isinstance(question, TrueFalseQuestion):
        value = question.statement
    else:
        value = question.text_with_blanks
    return re.sub(r"\s+", " ", value).strip().lower()


def more_questions(
    generator: QuestionGenerator,
    text: str,
    existing: QuestionSet,
    field: str,
    quantity: int,
) -> List[BaseModel]:
    """Up to ``quantity`` new items for one list of ``existing``, skipping duplicates."""
    current = getattr(existing, field)
    counts = {name: 0 for name in QuestionQuantities.model_fields}
    # ask for enough to get past the items already held
    counts[QUANTITY_FOR_FIELD[field]] = len(current) + quantity
    generated = getattr(generator.generate(text, QuestionQuantities.model_construct(**counts)), field)

    seen = {question_key(q) for q in current}
    added = []
    for question in generated:
        key = question_key(question)
        if key in seen:
            continue
        seen.add(key)
        added.append(question)
        if len(added) == quantity:
            break
    return added


class QuizFactory:
    """Factory to select the appropriate generator."""

    @staticmethod
    def create(
        mode: str,
        app_settings: Settings = settings,
        cache: Optional[Redis] = None,
        rng: Optional[random.Random] = None,
        file_name: str = "document",
    ) -> QuestionGenerator:
        if mode == "heuristic":
            return HeuristicQuestionGenerator(rng)
        elif mode == "gemini":
            from .gemini import GeminiClient, GeminiQuestionGenerator

            return GeminiQuestionGenerator(
                client=GeminiClient.from_settings(app_settings, cache),
                file_name=file_name,
            )
        else:
            raise ValueError(f"Unknown generation mode: {mode}")

import hashlib
import json
import logging
import random
import re
import time
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

import google.generativeai as genai
from pydantic import BaseModel, ValidationError
from redis import Redis

from .assistant import StudyAssistant
from .config import Settings
from .errors import GenerationError
from .models import (
    FillInBlanksQuestion,
    Flashcard,
    MatchingQuestion,
    MultipleChoiceQuestion,
    QUANTITY_FOR_FIELD,
    QuestionQuantities,
    QuestionSet,
    TrueFalseQuestion,
)
from .quiz import QuestionGenerator

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

CHUNK_SIZE = 4000
MAX_CHUNKS = 3
CACHE_PREFIX = "generation:"
JSON_OBJECT = re.compile(r"\{.*\}", re.S)

PROMPT_TEMPLATE = """You are an educational content creator. Based on the following content, generate quiz questions in JSON format.

File name: {file_name}

Content:
{chunk}

Create the following:
1. {flashcards} flashcards (question and answer pairs)
2. {mcqs} multiple choice questions with 4 options each
3. {matching} matching questions with 4 pairs each
4. {true_false} true/false statements
5. {fill_in_blanks} fill-in-the-blank items using [BLANK_0], [BLANK_1] placeholders

Return only raw JSON, no markdown, in exactly this shape:
{{
  "flashcards": [{{"question": "...", "answer": "..."}}],
  "mcqs": [{{"question": "...", "options": ["...", "...", "...", "..."], "correct_answer": "<one of the options>"}}],
  "matching_questions": [{{"pairs": [{{"left": "...", "right": "..."}}]}}],
  "true_false_questions": [{{"statement": "...", "is_true": true, "explanation": "..."}}],
  "fill_in_blanks_questions": [{{"text_with_blanks": "... [BLANK_0] ...", "blanks": ["..."], "complete_text": "..."}}]
}}
"""

FIELDS: Dict[str, Type[BaseModel]] = {
    "flashcards": Flashcard,
    "mcqs": MultipleChoiceQuestion,
    "matching_questions": MatchingQuestion,
    "true_false_questions": TrueFalseQuestion,
    "fill_in_blanks_questions": FillInBlanksQuestion,
}

CONTEXT_LIMIT = 15000

SUMMARY_TEMPLATE = """Create a well-structured study summary of the following material.

1. Start with a title using "# " format.
2. Add a brief overview of 2-3 sentences.
3. Organize the main themes under 3-4 "## " subheadings with concise bullet points, using **bold** for key concepts.
4. End with a "## Key Takeaways" section of 3-4 bullet points.

Title: {title}

MATERIAL:
{text}
"""

ASK_TEMPLATE = """You are an educational assistant answering a question about a study document.

The title of the document is: "{title}"

Use only the information in the document below. If the answer is not in the document, say "I don't have enough information in this document to answer that question."

DOCUMENT:
{text}

QUESTION:
{question}

ANSWER:"""


def split_into_chunks(text: str, chunk_size: int = CHUNK_SIZE) -> List[str]:
    """Splits on paragraph boundaries, falling back to sentences for long paragraphs."""
    chunks: List[str] = []
    current = ""
    for paragraph in re.split(r"\n\s*\n", text):
        if len(current) + len(paragraph) < chunk_size:
            current += paragraph + "\n\n"
            continue
        if current.strip():
            chunks.append(current.strip())
        if len(paragraph) > chunk_size:
            current = ""
            for sentence in re.split(r"(?<=[.!?])\s+", paragraph):
                if len(current) + len(sentence) < chunk_size:
                    current += sentence + " "
                else:
                    if current.strip():
                        chunks.append(current.strip())
                    current = sentence + " "
        else:
            current = paragraph + "\n\n"
    if current.strip():
        chunks.append(current.strip())
    return chunks


def with_retry(
    fn: Callable[[], T],
    attempts: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 5.0,
    factor: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Calls fn, backing off exponentially with jitter between failures."""
    delay = initial_delay
    attempt = 1
    while True:
        try:
            return fn()
        except Exception as e:
            if attempt >= attempts:
                raise
            delay = min(delay * factor, max_delay)
            pause = delay * random.uniform(0.85, 1.15)
            logger.warning(f"Attempt {attempt} failed ({e}). Retrying in {pause:.2f}s")
            sleep(pause)
            attempt += 1


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        match = JSON_OBJECT.search(text)
        if not match:
            raise GenerationError("No JSON found in model response.")
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise GenerationError(f"Failed to parse model response: {e}") from e


def parse_response(raw: str) -> Dict[str, Any]:
    text = raw.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*|\s*```$", "", text)
    payload = _load_json(text)
    if not isinstance(payload, dict):
        raise GenerationError("Model response is not a JSON object.")
    return payload


def _valid_items(items: Any, model: Type[M]) -> List[M]:
    if not isinstance(items, list):
        return []
    valid = []
    for item in items:
        try:
            valid.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Dropping invalid {model.__name__}: {e.errors()[0]['msg']}")
    return valid


class GeminiClient:
    """One Gemini model behind retry and an md5-keyed Redis cache."""

    def __init__(
        self,
        api_key: str = "",
        model_name: str = "gemini-1.5-flash",
        cache: Optional[Redis] = None,
        cache_ttl: timedelta = timedelta(hours=24),
        model: Any = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if model is None:
            if not api_key:
                raise GenerationError("Gemini API key is not configured.")
            genai.configure(api_key=api_key)
            model = genai.GenerativeModel(model_name)
        self.model = model
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.sleep = sleep

    @classmethod
    def from_settings(cls, app_settings: Settings, cache: Optional[Redis] = None) -> "GeminiClient":
        return cls(
            api_key=app_settings.GEMINI_API_KEY,
            model_name=app_settings.GEMINI_MODEL,
            cache=cache,
            cache_ttl=timedelta(hours=app_settings.GENERATION_CACHE_HOURS),
        )

    def complete(self, prompt: str, check: Optional[Callable[[str], Any]] = None) -> str:
        """Returns the model's text for prompt; only text that passes check is cached."""
        key = CACHE_PREFIX + hashlib.md5(prompt.encode("utf-8")).hexdigest()
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached:
                logger.info("Using cached Gemini response")
                return cached

        def call() -> str:
            response = self.model.generate_content(prompt)
            text = getattr(response, "text", None)
            if not text:
                raise GenerationError("Gemini returned an empty response.")
            return text

        try:
            raw = with_retry(call, sleep=self.sleep)
        except GenerationError:
            raise
        except Exception as e:
            logger.error(f"Gemini request failed: {e}")
            raise GenerationError(f"Question generation service failed: {e}") from e

        if check is not None:
            check(raw)
        if self.cache is not None:
            self.cache.set(key, raw, ex=self.cache_ttl)
        return raw


class GeminiQuestionGenerator(QuestionGenerator):
    """Asks Gemini for questions, chunk by chunk, until quantities are met."""

    def __init__(
        self,
        api_key: str = "",
        model_name: str = "gemini-1.5-flash",
        cache: Optional[Redis] = None,
        cache_ttl: timedelta = timedelta(hours=24),
        model: Any = None,
        sleep: Callable[[float], None] = time.sleep,
        file_name: str = "document",
        client: Optional[GeminiClient] = None,
    ):
        self.client = client or GeminiClient(api_key, model_name, cache, cache_ttl, model, sleep)
        self.file_name = file_name

    def generate(self, text: str, quantities: QuestionQuantities) -> QuestionSet:
        if not text or not text.strip():
            raise GenerationError("Not enough text to generate questions from.")

        collected: Dict[str, List[BaseModel]] = {field: [] for field in FIELDS}
        for chunk in split_into_chunks(text)[:MAX_CHUNKS]:
            remaining = {
                field: max(0, getattr(quantities, QUANTITY_FOR_FIELD[field]) - len(items))
                for field, items in collected.items()
            }
            if not any(remaining.values()):
                break
            payload = self._request(chunk, remaining)
            for field, model in FIELDS.items():
                for item in _valid_items(payload.get(field), model):
                    if item not in collected[field]:
                        collected[field].append(item)

        return QuestionSet(
            **{
                field: items[: getattr(quantities, QUANTITY_FOR_FIELD[field])]
                for field, items in collected.items()
            }
        )

    def _request(self, chunk: str, remaining: Dict[str, int]) -> Dict[str, Any]:
        prompt = PROMPT_TEMPLATE.format(
            file_name=self.file_name,
            chunk=chunk,
            **{QUANTITY_FOR_FIELD[field]: count for field, count in remaining.items()},
        )
        return parse_response(self.client.complete(prompt, check=parse_response))


class GeminiStudyAssistant(StudyAssistant):
    def __init__(self, client: GeminiClient):
        self.client = client

    def summarize(self, text: str, title: str) -> str:
        if not text or not text.strip():
            raise GenerationError("Not enough text to summarize.")
        prompt = SUMMARY_TEMPLATE.format(title=title, text=text[:CONTEXT_LIMIT])
        return self.client.complete(prompt).strip()

    def answer(self, question: str, text: str, title: str) -> str:
        if not text or not text.strip():
            raise GenerationError("Not enough text to answer from.")
        prompt = ASK_TEMPLATE.format(title=title, text=text[:CONTEXT_LIMIT], question=question)
        return self.client.complete(prompt).strip()

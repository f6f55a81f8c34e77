import re
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

BLANK_PATTERN = re.compile(r"\[BLANK_(\d+)\]")


# --- Documents ---
class UploadedDocument(BaseModel):
    id: str
    name: str
    type: str
    mime_type: str = "application/octet-stream"
    size: NonNegativeInt
    upload_date: datetime
    content_preview: Optional[str] = None
    last_accessed: Optional[datetime] = None


class DocumentRecord(UploadedDocument):
    """Everything about a document except the file itself and its text."""

    user_id: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def summary(self) -> UploadedDocument:
        """Metadata view without file content or extracted text."""
        return UploadedDocument(**self.model_dump(include=set(UploadedDocument.model_fields)))

    def record(self) -> "DocumentRecord":
        return DocumentRecord(**self.model_dump(include=set(DocumentRecord.model_fields)))


class StoredDocument(DocumentRecord):
    content: str
    text: str = ""


class DocumentUpdate(BaseModel):
    name: Optional[str] = None
    content_preview: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


# --- Questions ---
class Flashcard(BaseModel):
    kind: Literal["flashcard"] = "flashcard"
    question: str = Field(min_length=1)
    answer: str = Field(min_length=1)


class MultipleChoiceQuestion(BaseModel):
    kind: Literal["mcq"] = "mcq"
    question: str = Field(min_length=1)
    options: List[str] = Field(min_length=2)
    correct_answer: str

    @model_validator(mode="after")
    def check_answer_in_options(self):
        if self.correct_answer not in self.options:
            raise ValueError("correct_answer must be one of the options")
        return self


class MatchingPair(BaseModel):
    left: str = Field(min_length=1)
    right: str = Field(min_length=1)


class MatchingQuestion(BaseModel):
    kind: Literal["matching"] = "matching"
    pairs: List[MatchingPair] = Field(min_length=1)


class TrueFalseQuestion(BaseModel):
    kind: Literal["true_false"] = "true_false"
    statement: str = Field(min_length=1)
    is_true: bool
    explanation: Optional[str] = None


class FillInBlanksQuestion(BaseModel):
    kind: Literal["fill_in_blanks"] = "fill_in_blanks"
    text_with_blanks: str
    blanks: List[str] = Field(min_length=1)
    complete_text: str

    @model_validator(mode="after")
    def check_placeholders(self):
        indexes = sorted(int(i) for i in BLANK_PATTERN.findall(self.text_with_blanks))
        if indexes != list(range(len(self.blanks))):
            raise ValueError("text_with_blanks must hold one [BLANK_n] per blank")
        return self


Question = Annotated[
    Union[
        Flashcard,
        MultipleChoiceQuestion,
        MatchingQuestion,
        TrueFalseQuestion,
        FillInBlanksQuestion,
    ],
    Field(discriminator="kind"),
]


class QuestionTypeCounts(BaseModel):
    flashcards: NonNegativeInt = 0
    mcqs: NonNegativeInt = 0
    matching: NonNegativeInt = 0
    true_false: NonNegativeInt = 0
    fill_in_blanks: NonNegativeInt = 0

    def total(self) -> int:
        return (
            self.flashcards
            + self.mcqs
            + self.matching
            + self.true_false
            + self.fill_in_blanks
        )


QuantityField = Annotated[int, Field(ge=0, le=50)]


class QuestionQuantities(BaseModel):
    flashcards: QuantityField = 10
    mcqs: QuantityField = 10
    matching: QuantityField = 2
    true_false: QuantityField = 10
    fill_in_blanks: QuantityField = 10


class GenerateRequest(BaseModel):
    mode: str = "heuristic"
    quantities: QuestionQuantities = Field(default_factory=QuestionQuantities)
    time_spent_seconds: Optional[NonNegativeInt] = None


class QuestionSet(BaseModel):
    flashcards: List[Flashcard] = Field(default_factory=list)
    mcqs: List[MultipleChoiceQuestion] = Field(default_factory=list)
    matching_questions: List[MatchingQuestion] = Field(default_factory=list)
    true_false_questions: List[TrueFalseQuestion] = Field(default_factory=list)
    fill_in_blanks_questions: List[FillInBlanksQuestion] = Field(default_factory=list)

    def counts(self) -> QuestionTypeCounts:
        return QuestionTypeCounts(
            flashcards=len(self.flashcards),
            mcqs=len(self.mcqs),
            matching=len(self.matching_questions),
            true_false=len(self.true_false_questions),
            fill_in_blanks=len(self.fill_in_blanks_questions),
        )


class SavedQuestions(QuestionSet):
    user_id: str
    document_id: str
    last_updated: datetime


QuestionField = Literal[
    "flashcards",
    "mcqs",
    "matching_questions",
    "true_false_questions",
    "fill_in_blanks_questions",
]

# QuestionSet list name -> QuestionQuantities field name
QUANTITY_FOR_FIELD: Dict[str, str] = {
    "flashcards": "flashcards",
    "mcqs": "mcqs",
    "matching_questions": "matching",
    "true_false_questions": "true_false",
    "fill_in_blanks_questions": "fill_in_blanks",
}


class MoreQuestionsRequest(BaseModel):
    question_type: QuestionField
    quantity: int = Field(5, ge=1, le=50)
    mode: str = "heuristic"


class AskRequest(BaseModel):
    question: str = Field(min_length=1, max_length=1000)
    mode: str = "heuristic"


class SavedQuestionsPatch(BaseModel):
    """Partial update: only the lists that are present replace stored ones."""

    flashcards: Optional[List[Flashcard]] = None
    mcqs: Optional[List[MultipleChoiceQuestion]] = None
    matching_questions: Optional[List[MatchingQuestion]] = None
    true_false_questions: Optional[List[TrueFalseQuestion]] = None
    fill_in_blanks_questions: Optional[List[FillInBlanksQuestion]] = None


# --- Progress ---
class QuizGeneration(BaseModel):
    document_id: str
    timestamp: datetime
    time_spent_seconds: Optional[NonNegativeInt] = None
    question_types: QuestionTypeCounts


class DailyActivity(BaseModel):
    date: str
    uploads: NonNegativeInt = 0
    quizzes: NonNegativeInt = 0
    score: NonNegativeInt = 0

    @field_validator("date")
    @classmethod
    def check_date(cls, value: str) -> str:
        # stored and compared as YYYY-MM-DD
        return date.fromisoformat(value).isoformat()


class StreakInfo(BaseModel):
    current_streak: NonNegativeInt = 0
    longest_streak: NonNegativeInt = 0
    last_upload_date: Optional[date] = None


class UserProgress(BaseModel):
    user_id: str
    streak_info: StreakInfo = Field(default_factory=StreakInfo)
    generations: List[QuizGeneration] = Field(default_factory=list)
    daily_activity: Dict[str, DailyActivity] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_activity_keys(self):
        normalized = {}
        for key, activity in self.daily_activity.items():
            if date.fromisoformat(key).isoformat() != activity.date:
                raise ValueError(f"daily_activity key {key} does not match {activity.date}")
            normalized[activity.date] = activity
        self.daily_activity = normalized
        return self


# --- File worker ---
class FileReadReply(BaseModel):
    content: Optional[str] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def check_exactly_one(self):
        if (self.content is None) == (self.error is None):
            raise ValueError("reply must carry exactly one of content or error")
        return self


# --- Celebration ---
class ConfettiOrigin(BaseModel):
    x: Optional[float] = None
    y: Optional[float] = None


class ConfettiOptions(BaseModel):
    """Options handed to the client-side confetti cannon.

    The client library reads camelCase keys, so dump with ``by_alias=True``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    particle_count: Optional[int] = None
    angle: Optional[float] = None
    spread: Optional[float] = None
    start_velocity: Optional[float] = None
    decay: Optional[float] = None
    gravity: Optional[float] = None
    drift: Optional[float] = None
    ticks: Optional[int] = None
    origin: Optional[ConfettiOrigin] = None
    colors: Optional[List[str]] = None
    shapes: Optional[List[str]] = None
    scalar: Optional[float] = None
    z_index: Optional[int] = None
    disable_for_reduced_motion: Optional[bool] = None


# --- Play sessions ---
class PlayQuestion(BaseModel):
    kind: Literal["mcq", "true_false"]
    prompt: str
    answer: str
    options: List[str]


class SessionData(BaseModel):
    user_id: str
    document_id: str
    prepared_questions: List[PlayQuestion]
    correct_count: int
    total_questions: int
    answers: List[Dict[str, Any]]
    created_at: datetime
    score_recorded: bool = False


class AnswerRecord(BaseModel):
    prompt: str
    user_answer: str
    correct_answer: str
    is_correct: bool
    attempted: bool

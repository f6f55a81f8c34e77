import logging
import random
from datetime import timedelta
from typing import Optional

from redis import Redis

from .assistant import AssistantFactory, StudyAssistant
from .config import Settings
from .file_worker import FileProcessingWorker
from .progress import ProgressTracker
from .quiz import QuestionGenerator, QuizFactory
from .storage import (
    DocumentStore,
    ProgressStore,
    SavedQuestionsStore,
    SessionStore,
    create_redis,
)

logger = logging.getLogger(__name__)


class AppContext:
    """Process-wide state, created at startup and closed at shutdown."""

    def __init__(
        self,
        settings: Settings,
        redis_client: Redis,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings
        self.redis = redis_client
        self.rng = rng or random.Random()
        self.documents = DocumentStore(redis_client)
        self.saved_questions = SavedQuestionsStore(redis_client)
        self.progress = ProgressTracker(ProgressStore(redis_client))
        self.sessions = SessionStore(
            redis_client, timedelta(minutes=settings.SESSION_TIMEOUT_MINUTES)
        )
        self.file_worker = FileProcessingWorker(max_workers=settings.FILE_WORKERS)

    @classmethod
    def create(cls, settings: Settings, redis_client: Optional[Redis] = None) -> "AppContext":
        if redis_client is None:
            redis_client = create_redis(settings.REDIS_URL)
        logger.info("Application context created")
        return cls(settings, redis_client)

    def generator(self, mode: str, file_name: str = "document") -> QuestionGenerator:
        return QuizFactory.create(
            mode, self.settings, cache=self.redis, rng=self.rng, file_name=file_name
        )

    def assistant(self, mode: str) -> StudyAssistant:
        return AssistantFactory.create(mode, self.settings, cache=self.redis)

    def close(self) -> None:
        self.file_worker.shutdown()
        self.redis.close()
        logger.info("Application context closed")

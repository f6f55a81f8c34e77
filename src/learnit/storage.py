import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import redis
from redis import Redis

from .models import (
    DocumentRecord,
    SavedQuestions,
    SessionData,
    StoredDocument,
    UploadedDocument,
    UserProgress,
)

logger = logging.getLogger(__name__)


def create_redis(url: str) -> Redis:
    return redis.from_url(url, decode_responses=True)


# --- Documents ---
class DocumentStore:
    """Documents split into a small record and a content hash.

    ``document:{id}`` holds the ``DocumentRecord`` JSON, ``document:{id}:content``
    holds the data URL and extracted text. Listing and search only read
    records. Per user there is a sorted set ordered by last access and a
    name -> id hash for duplicate checks.
    """

    def __init__(self, client: Redis):
        self.client = client

    @staticmethod
    def _key(document_id: str) -> str:
        return f"document:{document_id}"

    @staticmethod
    def _content_key(document_id: str) -> str:
        return f"document:{document_id}:content"

    @staticmethod
    def _user_key(user_id: str) -> str:
        return f"user:{user_id}:documents"

    @staticmethod
    def _names_key(user_id: str) -> str:
        return f"user:{user_id}:document_names"

    def add(self, document: StoredDocument) -> StoredDocument:
        record = document.record()
        pipe = self.client.pipeline()
        pipe.set(self._key(document.id), record.model_dump_json())
        pipe.hset(
            self._content_key(document.id),
            mapping={"content": document.content, "text": document.text},
        )
        pipe.zadd(self._user_key(document.user_id), {document.id: self._score(record)})
        pipe.hset(self._names_key(document.user_id), document.name, document.id)
        pipe.execute()
        return document

    @staticmethod
    def _score(record: DocumentRecord) -> float:
        return (record.last_accessed or record.upload_date).timestamp()

    def get_record(self, document_id: str) -> Optional[DocumentRecord]:
        raw = self.client.get(self._key(document_id))
        if not raw:
            return None
        return DocumentRecord.model_validate_json(raw)

    def get_text(self, document_id: str) -> str:
        return self.client.hget(self._content_key(document_id), "text") or ""

    def get(self, document_id: str) -> Optional[StoredDocument]:
        record = self.get_record(document_id)
        if not record:
            return None
        blob = self.client.hgetall(self._content_key(document_id))
        return StoredDocument(
            **dict(record), content=blob.get("content", ""), text=blob.get("text", "")
        )

    def update(self, record: DocumentRecord) -> DocumentRecord:
        """Writes a changed record, keeping the name index in step."""
        previous = self.get_record(record.id)
        pipe = self.client.pipeline()
        if previous and previous.name != record.name:
            pipe.hdel(self._names_key(record.user_id), previous.name)
        pipe.set(self._key(record.id), record.model_dump_json())
        pipe.zadd(self._user_key(record.user_id), {record.id: self._score(record)})
        pipe.hset(self._names_key(record.user_id), record.name, record.id)
        pipe.execute()
        return record

    def touch(self, document_id: str, when: Optional[datetime] = None) -> Optional[DocumentRecord]:
        record = self.get_record(document_id)
        if not record:
            return None
        record.last_accessed = when or datetime.now()
        return self.update(record)

    def delete(self, document_id: str) -> bool:
        record = self.get_record(document_id)
        if not record:
            return False
        pipe = self.client.pipeline()
        pipe.delete(self._key(document_id), self._content_key(document_id))
        pipe.zrem(self._user_key(record.user_id), document_id)
        pipe.hdel(self._names_key(record.user_id), record.name)
        pipe.execute()
        return True

    def _records_for_user(self, user_id: str) -> List[DocumentRecord]:
        ids = self.client.zrevrange(self._user_key(user_id), 0, -1)
        if not ids:
            return []
        records = []
        raws = self.client.mget([self._key(document_id) for document_id in ids])
        for document_id, raw in zip(ids, raws):
            if not raw:
                logger.warning(f"Dropping stale index entry {document_id} for {user_id}")
                self.client.zrem(self._user_key(user_id), document_id)
                continue
            records.append(DocumentRecord.model_validate_json(raw))
        return records

    def list_for_user(self, user_id: str) -> List[UploadedDocument]:
        """Most recently accessed first, without file content."""
        return [r.summary() for r in self._records_for_user(user_id)]

    def id_for_name(self, user_id: str, name: str) -> Optional[str]:
        return self.client.hget(self._names_key(user_id), name)

    def search(self, user_id: str, query: str) -> List[UploadedDocument]:
        needle = query.lower()
        results = []
        for record in self._records_for_user(user_id):
            haystack = [
                record.name,
                str(record.metadata.get("title") or ""),
                str(record.metadata.get("author") or ""),
            ]
            if any(needle in value.lower() for value in haystack):
                results.append(record.summary())
        return results


# --- Saved questions ---
class SavedQuestionsStore:
    def __init__(self, client: Redis):
        self.client = client

    @staticmethod
    def _key(user_id: str, document_id: str) -> str:
        return f"saved_questions:{user_id}:{document_id}"

    @staticmethod
    def _user_key(user_id: str) -> str:
        return f"user:{user_id}:saved_questions"

    def get(self, user_id: str, document_id: str) -> Optional[SavedQuestions]:
        raw = self.client.get(self._key(user_id, document_id))
        if not raw:
            return None
        return SavedQuestions.model_validate_json(raw)

    def save(self, saved: SavedQuestions) -> SavedQuestions:
        pipe = self.client.pipeline()
        pipe.set(self._key(saved.user_id, saved.document_id), saved.model_dump_json())
        pipe.sadd(self._user_key(saved.user_id), saved.document_id)
        pipe.execute()
        return saved

    def list_for_user(self, user_id: str) -> List[SavedQuestions]:
        results = []
        for document_id in sorted(self.client.smembers(self._user_key(user_id))):
            saved = self.get(user_id, document_id)
            if saved:
                results.append(saved)
        return results

    def delete(self, user_id: str, document_id: str) -> bool:
        pipe = self.client.pipeline()
        pipe.delete(self._key(user_id, document_id))
        pipe.srem(self._user_key(user_id), document_id)
        removed, _ = pipe.execute()
        return bool(removed)


# --- Progress ---
class ProgressStore:
    def __init__(self, client: Redis):
        self.client = client

    @staticmethod
    def _key(user_id: str) -> str:
        return f"progress:{user_id}"

    def get(self, user_id: str) -> Optional[UserProgress]:
        raw = self.client.get(self._key(user_id))
        if not raw:
            return None
        return UserProgress.model_validate_json(raw)

    def update(self, user_id: str, mutate: Callable[[UserProgress], None]) -> UserProgress:
        """Read-modify-write under WATCH; retried when another writer got in first.

        ``mutate`` may run more than once and must only change the object it gets.
        """
        key = self._key(user_id)

        def apply(pipe) -> UserProgress:
            raw = pipe.get(key)
            if raw:
                progress = UserProgress.model_validate_json(raw)
            else:
                progress = UserProgress(user_id=user_id)
            mutate(progress)
            pipe.multi()
            pipe.set(key, progress.model_dump_json())
            return progress

        return self.client.transaction(apply, key, value_from_callable=True)


# --- Play sessions ---
class SessionStore:
    def __init__(self, client: Redis, timeout: timedelta):
        self.client = client
        self.timeout = timeout

    @staticmethod
    def _key(session_id: str) -> str:
        return f"session:{session_id}"

    def get(self, session_id: Optional[str]) -> Optional[SessionData]:
        if not session_id:
            return None
        raw = self.client.get(self._key(session_id))
        if not raw:
            return None
        session = SessionData.model_validate_json(raw)
        if datetime.now() - session.created_at > self.timeout:
            self.client.delete(self._key(session_id))
            return None
        return session

    def save(self, session_id: str, session: SessionData) -> None:
        self.client.set(self._key(session_id), session.model_dump_json(), ex=self.timeout)

    def delete(self, session_id: str) -> None:
        self.client.delete(self._key(session_id))

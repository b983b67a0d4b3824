"""
Translation history persistence.

Records go to Firestore under ``users/{uid}/translations`` and, for shared
rooms, ``rooms/{roomId}/translations``. Writes are fire-and-forget from the
request's point of view: they run as background tasks, each retried once
after a fixed delay, and failures only ever reach the log.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Set

from ..config import settings
from .errors import HistoryPersistenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryScope:
    user_id: str
    room_id: Optional[str] = None

    @property
    def label(self) -> str:
        return f"room {self.room_id}" if self.room_id else f"user {self.user_id}"


@dataclass
class TranslationRecord:
    source_text: str
    target_text: str
    source_lang: str = "ar"
    target_lang: str = "en"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_document(self) -> Dict[str, Any]:
        return {
            "sourceText": self.source_text,
            "sourceLang": self.source_lang,
            "targetText": self.target_text,
            "targetLang": self.target_lang,
            "createdAt": self.created_at,
            "metadata": dict(self.metadata),
        }


class HistoryStore(Protocol):
    async def append_record(self, scope: HistoryScope, record: TranslationRecord) -> None:
        ...


class InMemoryHistoryStore:
    """History store kept in process memory. Used for tests and local runs."""

    def __init__(self):
        self.records: List[Dict[str, Any]] = []

    async def append_record(self, scope: HistoryScope, record: TranslationRecord) -> None:
        self.records.append({"scope": scope, **asdict(record)})

    def for_scope(self, scope: HistoryScope) -> List[Dict[str, Any]]:
        return [r for r in self.records if r["scope"] == scope]


class FirestoreHistoryStore:
    """History store backed by Cloud Firestore."""

    def __init__(
        self,
        project_id: str,
        client_email: str = "",
        private_key: str = "",
    ):
        from google.cloud import firestore
        from google.oauth2 import service_account

        credentials = None
        if client_email and private_key:
            logger.info("[Firestore] Initializing with service account credentials")
            credentials = service_account.Credentials.from_service_account_info({
                "type": "service_account",
                "project_id": project_id,
                "client_email": client_email,
                "private_key": private_key.replace("\\n", "\n"),
                "token_uri": "https://oauth2.googleapis.com/token",
            })
        else:
            logger.info("[Firestore] Initializing with Application Default Credentials")

        self._db = firestore.AsyncClient(project=project_id, credentials=credentials)

    async def append_record(self, scope: HistoryScope, record: TranslationRecord) -> None:
        document = record.to_document()
        if scope.room_id:
            collection = self._db.collection("rooms").document(scope.room_id).collection("translations")
            document["createdBy"] = scope.user_id
        else:
            collection = self._db.collection("users").document(scope.user_id).collection("translations")

        try:
            await collection.add(document)
        except Exception as exc:
            raise HistoryPersistenceError(
                f"Failed to save translation history for {scope.label}: {exc}"
            ) from exc


class HistoryRecorder:
    """Launches history writes in the background and keeps them alive until they settle."""

    def __init__(self, store: Optional[HistoryStore], retry_delay_s: float = 2.0):
        self.store = store
        self.retry_delay_s = retry_delay_s
        self._pending: Set[asyncio.Task] = set()

    def record(self, record: TranslationRecord, *, user_id: str, room_id: Optional[str] = None) -> Optional[asyncio.Task]:
        """Schedule the room write (if any) and the user write. Never blocks, never raises."""
        if self.store is None:
            logger.warning("Skipping history save - no history store configured")
            return None

        scopes = []
        if room_id:
            scopes.append(HistoryScope(user_id=user_id, room_id=room_id))
        # Always save to user history as backup
        scopes.append(HistoryScope(user_id=user_id))

        task = asyncio.create_task(self._save_all(record, scopes))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _save_all(self, record: TranslationRecord, scopes: List[HistoryScope]) -> None:
        results = await asyncio.gather(
            *(self._save_with_retry(record, scope) for scope in scopes),
            return_exceptions=True,
        )
        for scope, result in zip(scopes, results):
            if isinstance(result, BaseException):
                logger.error("History save for %s crashed: %s", scope.label, result)

    async def _save_with_retry(self, record: TranslationRecord, scope: HistoryScope) -> None:
        try:
            await self.store.append_record(scope, record)
            logger.info("Saved translation to %s", scope.label)
            return
        except Exception as exc:
            logger.warning(
                "History save to %s failed, retrying in %.1fs: %s", scope.label, self.retry_delay_s, exc
            )

        await asyncio.sleep(self.retry_delay_s)
        try:
            await self.store.append_record(scope, record)
            logger.info("Saved translation to %s on retry", scope.label)
        except Exception as exc:
            logger.error("History retry to %s failed, dropping record: %s", scope.label, exc)

    async def drain(self) -> None:
        """Wait for every in-flight write to settle (used on shutdown and in tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._pending)


def build_history_store() -> Optional[HistoryStore]:
    if not settings.firebase_project_id:
        logger.warning("FIREBASE_PROJECT_ID not set. Translation history saving is disabled.")
        return None
    return FirestoreHistoryStore(
        project_id=settings.firebase_project_id,
        client_email=settings.firebase_client_email,
        private_key=settings.firebase_private_key,
    )

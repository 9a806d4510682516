"""
Generic session store shared by every study feature.

A SessionStore keeps the user's sessions for one feature in memory and
mirrors each change to a DocumentStore collection (Firestore in production):

  - mutations update the in-memory copy first, then schedule a merge write
    of the full session without waiting for it,
  - write failures are logged and dropped; the next mutation writes the
    latest state again,
  - re-hydration replaces the in-memory copy with the stored document as is
    (the stored record wins, last write wins).

Generation requests can take several seconds. `begin_generation()` hands out
a token and `commit_generated()` refuses results whose token was overtaken by
a newer generation or a reset, so a late response never clobbers a newer
session.
"""
import asyncio
import logging
from collections import OrderedDict
from typing import Callable, Generic, Protocol, TypeVar

from pydantic import ValidationError

from models.sessions import StudySession, now_ms

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=StudySession)


class SessionNotFound(KeyError):
    pass


class DocumentStore(Protocol):
    async def get_all(self, path: str) -> list[dict]: ...

    async def get(self, path: str, doc_id: str) -> dict | None: ...

    async def upsert(self, path: str, doc_id: str, data: dict) -> None: ...

    async def delete(self, path: str, doc_id: str) -> None: ...


class InMemoryDocumentStore:
    """Process-local stand-in for Firestore (development and tests)."""

    def __init__(self):
        self.collections: dict[str, dict[str, dict]] = {}

    async def get_all(self, path: str) -> list[dict]:
        return [dict(doc) for doc in self.collections.get(path, {}).values()]

    async def get(self, path: str, doc_id: str) -> dict | None:
        doc = self.collections.get(path, {}).get(doc_id)
        return dict(doc) if doc is not None else None

    async def upsert(self, path: str, doc_id: str, data: dict) -> None:
        docs = self.collections.setdefault(path, {})
        docs[doc_id] = {**docs.get(doc_id, {}), **data}

    async def delete(self, path: str, doc_id: str) -> None:
        self.collections.get(path, {}).pop(doc_id, None)


def user_collection(user_id: str, collection: str) -> str:
    return f"users/{user_id}/{collection}"


class SessionStore(Generic[S]):
    def __init__(
        self,
        documents: DocumentStore,
        user_id: str,
        collection: str,
        model: type[S],
        keep_one: bool = False,
    ):
        self.documents = documents
        self.user_id = user_id
        self.collection = collection
        self.model = model
        if keep_one and model.cleared is StudySession.cleared:
            raise TypeError(f"{model.__name__} must override cleared() to be kept as a last session")
        self.keep_one = keep_one
        self.path = user_collection(user_id, collection)
        self.active_id: str | None = None
        self._sessions: dict[str, S] = {}
        self._generation = 0
        self._epochs: dict[str, int] = {}
        self._pending: set[asyncio.Task] = set()

    # ── Reads ────────────────────────────────────────────────────────────────

    def _parse(self, data: dict) -> S | None:
        try:
            return self.model.model_validate(data)
        except ValidationError as e:
            logger.error("Skipping unreadable %s document %s: %s", self.collection, data.get("id"), e)
            return None

    def sessions(self) -> list[S]:
        return sorted(self._sessions.values(), key=lambda s: s.last_updated or s.created_at, reverse=True)

    async def load_all(self) -> list[S]:
        """
        Re-hydrates the whole collection, replacing anything held locally.
        A failed read returns [] and leaves the local copy untouched.
        """
        try:
            docs = await self.documents.get_all(self.path)
        except Exception as e:
            logger.error("Error loading %s for user %s: %s", self.collection, self.user_id, e)
            return []

        loaded: dict[str, S] = {}
        for doc in docs:
            session = self._parse(doc)
            if session is not None:
                loaded[session.id] = session
        self._sessions = loaded
        logger.info("Loaded %d %s for user %s", len(loaded), self.collection, self.user_id)
        return self.sessions()

    async def load(self, session_id: str) -> S:
        """Re-hydrates one session verbatim from storage and makes it active."""
        try:
            doc = await self.documents.get(self.path, session_id)
        except Exception as e:
            logger.error("Error loading %s/%s: %s", self.collection, session_id, e)
            doc = None

        session = self._parse(doc) if doc else None
        if session is None:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)

        self._sessions[session.id] = session
        self.active_id = session.id
        return session

    def has(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> S:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id) from None

    @property
    def active(self) -> S | None:
        return self._sessions.get(self.active_id) if self.active_id else None

    # ── Writes ───────────────────────────────────────────────────────────────

    def create(self, session: S) -> S:
        session = session.refreshed()
        self._sessions[session.id] = session
        self.active_id = session.id
        self.persist(session)
        return session

    def mutate(self, session_id: str, transform: Callable[[S], S]) -> S:
        """
        Applies a pure transform to one session, recomputes its derived fields,
        stores the result locally and schedules the remote write.
        """
        old = self.get(session_id)
        new = transform(old).refreshed()
        new = new.model_copy(update={"id": old.id, "last_updated": max(now_ms(), old.last_updated)})
        self._sessions[new.id] = new
        self.persist(new)
        return new

    def persist(self, session: S) -> None:
        """Fire-and-forget merge write of the full session."""
        data = session.model_dump(mode="json", exclude_none=True)
        try:
            task = asyncio.get_running_loop().create_task(self._write(session.id, data))
        except RuntimeError:
            # No loop running (sync caller): write inline.
            asyncio.run(self._write(session.id, data))
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, session_id: str, data: dict) -> None:
        try:
            await self.documents.upsert(self.path, session_id, data)
            logger.debug("Saved %s/%s", self.collection, session_id)
        except Exception as e:
            logger.error("Error saving %s/%s: %s", self.collection, session_id, e)

    async def flush(self) -> None:
        """Waits for every scheduled write to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def delete(self, session_id: str) -> S | None:
        """
        Removes a session. A keep-one store never drops its last session:
        that one is cleared in place and returned instead.
        """
        session = self.get(session_id)
        self._epochs[session_id] = self.epoch(session_id) + 1
        if self.keep_one and len(self._sessions) == 1:
            return self.mutate(session_id, lambda s: s.cleared())

        del self._sessions[session.id]
        if self.active_id == session.id:
            remaining = self.sessions()
            self.active_id = remaining[0].id if remaining else None
        # A queued write must not resurrect the document after the delete
        await self.flush()
        try:
            await self.documents.delete(self.path, session.id)
        except Exception as e:
            logger.error("Error deleting %s/%s: %s", self.collection, session.id, e)
        return None

    def epoch(self, session_id: str) -> int:
        """Bumped whenever a session is deleted or cleared."""
        return self._epochs.get(session_id, 0)

    def mutate_if_current(self, session_id: str, epoch: int, transform: Callable[[S], S]) -> S | None:
        """
        Like mutate(), for results computed from an earlier read of the
        session: returns None and drops the change if the session has since
        been deleted or cleared.
        """
        if not self.has(session_id) or self.epoch(session_id) != epoch:
            logger.info("Dropping stale update for %s/%s", self.collection, session_id)
            return None
        return self.mutate(session_id, transform)

    def reset(self) -> None:
        """Starts over: no active session and any in-flight generation becomes stale."""
        self.active_id = None
        self._generation += 1

    # ── Generation guard ─────────────────────────────────────────────────────

    def begin_generation(self) -> int:
        self._generation += 1
        return self._generation

    def is_current(self, token: int) -> bool:
        return token == self._generation

    def commit_generated(self, token: int, session: S) -> S | None:
        """Creates the generated session unless the request was superseded."""
        if not self.is_current(token):
            logger.info("Dropping stale %s generation (token %d, current %d)", self.collection, token, self._generation)
            return None
        return self.create(session)


class SessionRegistry:
    """
    One SessionStore per (user, feature), all backed by the same DocumentStore.

    At most `max_stores` stores are kept; the least recently used one is
    flushed and dropped first, and re-hydrated from storage on its next use.
    """

    def __init__(
        self,
        documents: DocumentStore,
        features: dict[str, tuple[type[StudySession], bool]],
        max_stores: int = 1000,
    ):
        self.documents = documents
        self.features = features
        self.max_stores = max_stores
        self._stores: OrderedDict[tuple[str, str], SessionStore] = OrderedDict()

    def __len__(self) -> int:
        return len(self._stores)

    async def get(self, user_id: str, feature: str) -> SessionStore:
        key = (user_id, feature)
        store = self._stores.get(key)
        if store is not None:
            self._stores.move_to_end(key)
            return store

        model, keep_one = self.features[feature]
        store = SessionStore(self.documents, user_id, feature, model, keep_one=keep_one)
        self._stores[key] = store
        await store.load_all()
        while len(self._stores) > self.max_stores:
            evicted_key, evicted = self._stores.popitem(last=False)
            await evicted.flush()
            logger.debug("Evicted %s store for user %s", evicted_key[1], evicted_key[0])
        return store

    async def flush(self) -> None:
        for store in list(self._stores.values()):
            await store.flush()

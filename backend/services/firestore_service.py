import os
import json
import asyncio
import logging

import firebase_admin
from firebase_admin import credentials, firestore

logger = logging.getLogger(__name__)


def init_firebase_admin(credentials_source: str = "", project_id: str = "") -> None:
    """
    Initialises the default Firebase app once.

    `credentials_source` is either a path to a service-account JSON file or the
    JSON document itself; when empty, Application Default Credentials are used.
    """
    if firebase_admin._apps:
        return
    options = {"projectId": project_id} if project_id else None
    if credentials_source.strip().startswith("{"):
        cred = credentials.Certificate(json.loads(credentials_source))
    elif credentials_source and os.path.exists(credentials_source):
        cred = credentials.Certificate(credentials_source)
    else:
        cred = credentials.ApplicationDefault()
    firebase_admin.initialize_app(cred, options)
    logger.info("Firebase Admin initialised (project=%s)", project_id or "default")


class FirestoreDocumentStore:
    """
    DocumentStore backed by Cloud Firestore.

    Paths are slash-separated collection paths such as 'users/<uid>/quizzes'.
    The firebase-admin client is blocking, so every call runs in a worker
    thread to keep the event loop free.
    """

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = firestore.client()
        return self._client

    async def get_all(self, path: str) -> list[dict]:
        def _read():
            return [{**doc.to_dict(), "id": doc.id} for doc in self.client.collection(path).stream()]

        return await asyncio.to_thread(_read)

    async def get(self, path: str, doc_id: str) -> dict | None:
        def _read():
            snap = self.client.collection(path).document(doc_id).get()
            return {**snap.to_dict(), "id": snap.id} if snap.exists else None

        return await asyncio.to_thread(_read)

    async def upsert(self, path: str, doc_id: str, data: dict) -> None:
        await asyncio.to_thread(
            lambda: self.client.collection(path).document(doc_id).set(data, merge=True)
        )

    async def delete(self, path: str, doc_id: str) -> None:
        await asyncio.to_thread(lambda: self.client.collection(path).document(doc_id).delete())

"""
Document store access for Firestore and an in-memory test implementation.

Both clients read and write camelCase documents and return them as plain
dicts carrying their document id under "id".
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1 import SERVER_TIMESTAMP, ArrayUnion
from google.cloud.firestore_v1.base_query import FieldFilter
from google.cloud.firestore_v1.field_path import FieldPath

from shared.constants import NOTIFICATION_PAGE_SIZE
from shared.errors import NotFoundError
from shared.firebase_constants import (
    APPOINTMENTS_COLLECTION,
    CHAT_SESSIONS_COLLECTION,
    CONSULTANT_PROFILES_COLLECTION,
    EXPERTS_COLLECTION,
    NOTIFICATIONS_COLLECTION,
    PAYMENTS_COLLECTION,
    RATE_LIMITS_COLLECTION,
    USERS_COLLECTION,
)
from shared.json_utils import timestamp_millis
from shared.types import ChangeType, DocumentChange

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[List[DocumentChange]], None]
Unsubscribe = Callable[[], None]

# Firestore rejects batches with more writes than this.
MAX_BATCH_WRITES = 500


class DbClient(Protocol):
    """Interface for document store access."""

    def get_user(self, uid: str) -> Optional[dict]:
        ...

    def set_user(self, uid: str, data: dict, merge: bool = True) -> None:
        ...

    def update_user(self, uid: str, fields: dict) -> None:
        ...

    def list_users(self) -> list[dict]:
        ...

    def get_expert(self, expert_id: str) -> Optional[dict]:
        ...

    def list_experts(self) -> list[dict]:
        ...

    def set_expert(self, expert_id: str, data: dict) -> None:
        ...

    def set_expert_slot(
        self, expert_id: str, date: str, time: str, available: bool
    ) -> None:
        ...

    def get_consultant_profile(self, uid: str) -> Optional[dict]:
        ...

    def set_consultant_profile(self, uid: str, data: dict) -> None:
        ...

    def update_consultant_profile(self, uid: str, fields: dict) -> None:
        ...

    def list_consultant_profiles(self) -> list[dict]:
        ...

    def add_appointment(self, data: dict) -> str:
        ...

    def get_appointment(self, appointment_id: str) -> Optional[dict]:
        ...

    def update_appointment(self, appointment_id: str, fields: dict) -> None:
        ...

    def query_appointments(
        self,
        *,
        user_id: Optional[str] = None,
        expert_id: Optional[str] = None,
        status: Optional[str] = None,
        date: Optional[str] = None,
        time: Optional[str] = None,
    ) -> list[dict]:
        ...

    def add_payment(self, data: dict, payment_id: Optional[str] = None) -> str:
        ...

    def get_payment(self, payment_id: str) -> Optional[dict]:
        ...

    def update_payment(self, payment_id: str, fields: dict) -> None:
        ...

    def query_payments(self, *, user_id: Optional[str] = None) -> list[dict]:
        ...

    def add_notification(self, data: dict) -> str:
        ...

    def get_notification(self, notification_id: str) -> Optional[dict]:
        ...

    def update_notification(self, notification_id: str, fields: dict) -> None:
        ...

    def delete_notification(self, notification_id: str) -> None:
        ...

    def query_notifications(
        self, user_id: str, limit: Optional[int] = None
    ) -> list[dict]:
        ...

    def get_rate_limit(self, uid: str) -> Optional[dict]:
        ...

    def set_rate_limit(self, uid: str, data: dict) -> None:
        ...

    def update_rate_limit(self, uid: str, fields: dict) -> None:
        ...

    def reset_rate_limits(self, fields: dict) -> int:
        ...

    def add_chat_session(self, data: dict) -> str:
        ...

    def get_chat_session(self, session_id: str) -> Optional[dict]:
        ...

    def update_chat_session(self, session_id: str, fields: dict) -> None:
        ...

    def append_chat_messages(
        self, session_id: str, messages: list[dict], fields: Optional[dict] = None
    ) -> None:
        ...

    def query_chat_sessions(self, user_id: str) -> list[dict]:
        ...

    def delete_chat_sessions(self, user_id: str) -> int:
        ...

    def watch_appointments(
        self,
        callback: ChangeCallback,
        *,
        user_id: Optional[str] = None,
        expert_id: Optional[str] = None,
    ) -> Unsubscribe:
        ...

    def watch_notifications(
        self,
        callback: ChangeCallback,
        user_id: str,
        limit: int = NOTIFICATION_PAGE_SIZE,
    ) -> Unsubscribe:
        ...


def _with_id(data: Optional[dict], doc_id: str) -> dict:
    doc = dict(data or {})
    doc["id"] = doc_id
    return doc


def newest_first(docs: list[dict]) -> list[dict]:
    """Sorts documents by createdAt, most recent first."""
    return sorted(
        docs,
        key=lambda d: timestamp_millis(d.get("createdAt"), default=0),
        reverse=True,
    )


@dataclass(eq=False)
class _Watcher:
    collection: str
    filters: Dict[str, Any]
    callback: ChangeCallback
    limit: Optional[int] = None
    # Documents currently inside the watched query, keyed by id.
    window: Dict[str, dict] = field(default_factory=dict)


class InMemoryDbClient:
    """In-memory document store for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}
        self._watchers: list[_Watcher] = []
        self._lock = threading.RLock()

    def reset(self) -> None:
        """Clear all stored data and watchers (useful in tests)."""
        with self._lock:
            self.collections.clear()
            self._watchers.clear()

    # Generic document helpers

    def _docs(self, collection: str) -> Dict[str, dict]:
        return self.collections.setdefault(collection, {})

    @staticmethod
    def _resolve(data: dict) -> dict:
        resolved = {}
        for key, value in data.items():
            if value is SERVER_TIMESTAMP:
                resolved[key] = datetime.now(timezone.utc)
            else:
                resolved[key] = copy.deepcopy(value)
        return resolved

    def _window(self, watcher: _Watcher) -> Dict[str, dict]:
        docs = newest_first(self._query(watcher.collection, **watcher.filters))
        if watcher.limit is not None:
            docs = docs[: watcher.limit]
        return {doc["id"]: doc for doc in docs}

    def _write(self, collection: str, doc_id: str, after: Optional[dict]) -> None:
        pending = []
        with self._lock:
            docs = self._docs(collection)
            if after is None:
                docs.pop(doc_id, None)
            else:
                docs[doc_id] = after

            for watcher in self._watchers:
                if watcher.collection != collection:
                    continue
                window = self._window(watcher)
                changes = [
                    DocumentChange(ChangeType.REMOVED, old_id, old_doc)
                    for old_id, old_doc in watcher.window.items()
                    if old_id not in window
                ]
                for new_id, new_doc in window.items():
                    if new_id not in watcher.window:
                        changes.append(
                            DocumentChange(ChangeType.ADDED, new_id, new_doc)
                        )
                    elif new_id == doc_id:
                        changes.append(
                            DocumentChange(ChangeType.MODIFIED, new_id, new_doc)
                        )
                watcher.window = window
                if changes:
                    pending.append((watcher.callback, changes))

        for callback, changes in pending:
            callback(changes)

    def _get(self, collection: str, doc_id: str) -> Optional[dict]:
        doc = self._docs(collection).get(doc_id)
        if doc is None:
            return None
        return _with_id(copy.deepcopy(doc), doc_id)

    def _add(self, collection: str, data: dict, doc_id: Optional[str] = None) -> str:
        doc_id = doc_id or uuid.uuid4().hex
        self._write(collection, doc_id, self._resolve(data))
        return doc_id

    def _set(self, collection: str, doc_id: str, data: dict, merge: bool) -> None:
        existing = self._docs(collection).get(doc_id) if merge else None
        merged = copy.deepcopy(existing) if existing else {}
        merged.update(self._resolve(data))
        self._write(collection, doc_id, merged)

    def _update(self, collection: str, doc_id: str, fields: dict) -> None:
        existing = self._docs(collection).get(doc_id)
        if existing is None:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        merged = copy.deepcopy(existing)
        for key, value in fields.items():
            if isinstance(value, ArrayUnion):
                current = list(merged.get(key) or [])
                current.extend(v for v in value.values if v not in current)
                merged[key] = copy.deepcopy(current)
            elif value is SERVER_TIMESTAMP:
                merged[key] = datetime.now(timezone.utc)
            else:
                merged[key] = copy.deepcopy(value)
        self._write(collection, doc_id, merged)

    def _delete(self, collection: str, doc_id: str) -> None:
        self._write(collection, doc_id, None)

    def _query(self, collection: str, **filters) -> list[dict]:
        active = {k: v for k, v in filters.items() if v is not None}
        return [
            _with_id(copy.deepcopy(doc), doc_id)
            for doc_id, doc in list(self._docs(collection).items())
            if all(doc.get(k) == v for k, v in active.items())
        ]

    def _watch(
        self,
        collection: str,
        callback: ChangeCallback,
        limit: Optional[int] = None,
        **filters,
    ) -> Unsubscribe:
        watcher = _Watcher(
            collection=collection,
            filters={k: v for k, v in filters.items() if v is not None},
            callback=callback,
            limit=limit,
        )
        with self._lock:
            watcher.window = self._window(watcher)
            self._watchers.append(watcher)
            initial = [
                DocumentChange(ChangeType.ADDED, doc_id, doc)
                for doc_id, doc in watcher.window.items()
            ]
        if initial:
            callback(initial)

        def unsubscribe() -> None:
            with self._lock:
                if watcher in self._watchers:
                    self._watchers.remove(watcher)

        return unsubscribe

    # Users and experts

    def get_user(self, uid: str) -> Optional[dict]:
        return self._get(USERS_COLLECTION, uid)

    def set_user(self, uid: str, data: dict, merge: bool = True) -> None:
        self._set(USERS_COLLECTION, uid, data, merge)

    def update_user(self, uid: str, fields: dict) -> None:
        self._update(USERS_COLLECTION, uid, fields)

    def list_users(self) -> list[dict]:
        return self._query(USERS_COLLECTION)

    def get_expert(self, expert_id: str) -> Optional[dict]:
        return self._get(EXPERTS_COLLECTION, expert_id)

    def list_experts(self) -> list[dict]:
        return self._query(EXPERTS_COLLECTION)

    def set_expert(self, expert_id: str, data: dict) -> None:
        self._set(EXPERTS_COLLECTION, expert_id, data, merge=False)

    def set_expert_slot(
        self, expert_id: str, date: str, time: str, available: bool
    ) -> None:
        expert = self._docs(EXPERTS_COLLECTION).get(expert_id)
        if expert is None:
            raise NotFoundError(f"{EXPERTS_COLLECTION}/{expert_id} not found")
        availability = copy.deepcopy(expert.get("availability") or {})
        availability.setdefault(date, {})[time] = available
        self._update(EXPERTS_COLLECTION, expert_id, {"availability": availability})

    # Consultant profiles

    def get_consultant_profile(self, uid: str) -> Optional[dict]:
        return self._get(CONSULTANT_PROFILES_COLLECTION, uid)

    def set_consultant_profile(self, uid: str, data: dict) -> None:
        self._set(CONSULTANT_PROFILES_COLLECTION, uid, data, merge=False)

    def update_consultant_profile(self, uid: str, fields: dict) -> None:
        self._update(CONSULTANT_PROFILES_COLLECTION, uid, fields)

    def list_consultant_profiles(self) -> list[dict]:
        return self._query(CONSULTANT_PROFILES_COLLECTION)

    # Appointments

    def add_appointment(self, data: dict) -> str:
        return self._add(APPOINTMENTS_COLLECTION, data)

    def get_appointment(self, appointment_id: str) -> Optional[dict]:
        return self._get(APPOINTMENTS_COLLECTION, appointment_id)

    def update_appointment(self, appointment_id: str, fields: dict) -> None:
        self._update(APPOINTMENTS_COLLECTION, appointment_id, fields)

    def delete_appointment(self, appointment_id: str) -> None:
        self._delete(APPOINTMENTS_COLLECTION, appointment_id)

    def query_appointments(
        self,
        *,
        user_id: Optional[str] = None,
        expert_id: Optional[str] = None,
        status: Optional[str] = None,
        date: Optional[str] = None,
        time: Optional[str] = None,
    ) -> list[dict]:
        return newest_first(
            self._query(
                APPOINTMENTS_COLLECTION,
                userId=user_id,
                expertId=expert_id,
                status=status,
                date=date,
                time=time,
            )
        )

    # Payments

    def add_payment(self, data: dict, payment_id: Optional[str] = None) -> str:
        return self._add(PAYMENTS_COLLECTION, data, payment_id)

    def get_payment(self, payment_id: str) -> Optional[dict]:
        return self._get(PAYMENTS_COLLECTION, payment_id)

    def update_payment(self, payment_id: str, fields: dict) -> None:
        self._update(PAYMENTS_COLLECTION, payment_id, fields)

    def query_payments(self, *, user_id: Optional[str] = None) -> list[dict]:
        return newest_first(self._query(PAYMENTS_COLLECTION, userId=user_id))

    # Notifications

    def add_notification(self, data: dict) -> str:
        return self._add(NOTIFICATIONS_COLLECTION, data)

    def get_notification(self, notification_id: str) -> Optional[dict]:
        return self._get(NOTIFICATIONS_COLLECTION, notification_id)

    def update_notification(self, notification_id: str, fields: dict) -> None:
        self._update(NOTIFICATIONS_COLLECTION, notification_id, fields)

    def delete_notification(self, notification_id: str) -> None:
        self._delete(NOTIFICATIONS_COLLECTION, notification_id)

    def query_notifications(
        self, user_id: str, limit: Optional[int] = None
    ) -> list[dict]:
        docs = newest_first(self._query(NOTIFICATIONS_COLLECTION, userId=user_id))
        return docs[:limit] if limit else docs

    # Rate limits

    def get_rate_limit(self, uid: str) -> Optional[dict]:
        return self._get(RATE_LIMITS_COLLECTION, uid)

    def set_rate_limit(self, uid: str, data: dict) -> None:
        self._set(RATE_LIMITS_COLLECTION, uid, data, merge=False)

    def update_rate_limit(self, uid: str, fields: dict) -> None:
        self._update(RATE_LIMITS_COLLECTION, uid, fields)

    def reset_rate_limits(self, fields: dict) -> int:
        doc_ids = list(self._docs(RATE_LIMITS_COLLECTION))
        for doc_id in doc_ids:
            self._update(RATE_LIMITS_COLLECTION, doc_id, fields)
        return len(doc_ids)

    # Chat sessions

    def add_chat_session(self, data: dict) -> str:
        return self._add(CHAT_SESSIONS_COLLECTION, data)

    def get_chat_session(self, session_id: str) -> Optional[dict]:
        return self._get(CHAT_SESSIONS_COLLECTION, session_id)

    def update_chat_session(self, session_id: str, fields: dict) -> None:
        self._update(CHAT_SESSIONS_COLLECTION, session_id, fields)

    def append_chat_messages(
        self, session_id: str, messages: list[dict], fields: Optional[dict] = None
    ) -> None:
        update = {"messages": ArrayUnion(messages)}
        update.update(fields or {})
        self._update(CHAT_SESSIONS_COLLECTION, session_id, update)

    def query_chat_sessions(self, user_id: str) -> list[dict]:
        return newest_first(self._query(CHAT_SESSIONS_COLLECTION, userId=user_id))

    def delete_chat_sessions(self, user_id: str) -> int:
        sessions = self._query(CHAT_SESSIONS_COLLECTION, userId=user_id)
        for session in sessions:
            self._delete(CHAT_SESSIONS_COLLECTION, session["id"])
        return len(sessions)

    # Change streams

    def watch_appointments(
        self,
        callback: ChangeCallback,
        *,
        user_id: Optional[str] = None,
        expert_id: Optional[str] = None,
    ) -> Unsubscribe:
        return self._watch(
            APPOINTMENTS_COLLECTION, callback, userId=user_id, expertId=expert_id
        )

    def watch_notifications(
        self,
        callback: ChangeCallback,
        user_id: str,
        limit: int = NOTIFICATION_PAGE_SIZE,
    ) -> Unsubscribe:
        return self._watch(
            NOTIFICATIONS_COLLECTION, callback, limit=limit, userId=user_id
        )


class FirestoreDbClient:
    """Firestore-backed implementation using the Admin SDK client."""

    def __init__(self, client=None):
        self.client = client if client is not None else firestore.client()

    def _ref(self, collection: str, doc_id: str):
        return self.client.collection(collection).document(doc_id)

    def _get(self, collection: str, doc_id: str) -> Optional[dict]:
        snapshot = self._ref(collection, doc_id).get()
        if not snapshot.exists:
            return None
        return _with_id(snapshot.to_dict(), doc_id)

    def _add(self, collection: str, data: dict, doc_id: Optional[str] = None) -> str:
        col = self.client.collection(collection)
        doc_ref = col.document(doc_id) if doc_id else col.document()
        doc_ref.set(data)
        return doc_id or doc_ref.id

    def _update(self, collection: str, doc_id: str, fields: dict) -> None:
        try:
            self._ref(collection, doc_id).update(fields)
        except google_exceptions.NotFound as e:
            raise NotFoundError(f"{collection}/{doc_id} not found") from e

    def _query(
        self,
        collection: str,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        **filters,
    ) -> list[dict]:
        query = self.client.collection(collection)
        for field, value in filters.items():
            if value is not None:
                query = query.where(filter=FieldFilter(field, "==", value))
        if order_by:
            query = query.order_by(order_by, direction=firestore.Query.DESCENDING)
        if limit:
            query = query.limit(limit)
        return [_with_id(doc.to_dict(), doc.id) for doc in query.stream()]

    def _batch_apply(self, collection: str, operation, **filters) -> int:
        """Applies `operation(batch, doc_ref)` to every matching document."""
        query = self.client.collection(collection)
        for field, value in filters.items():
            query = query.where(filter=FieldFilter(field, "==", value))

        count = 0
        batch = self.client.batch()
        pending = 0
        for doc in query.stream():
            operation(batch, doc.reference)
            count += 1
            pending += 1
            if pending == MAX_BATCH_WRITES:
                batch.commit()
                batch = self.client.batch()
                pending = 0
        if pending:
            batch.commit()
        return count

    def _watch(self, query, callback: ChangeCallback) -> Unsubscribe:
        def on_snapshot(docs, changes, read_time):
            callback(
                [
                    DocumentChange(
                        type=ChangeType(change.type.name.lower()),
                        doc_id=change.document.id,
                        data=_with_id(change.document.to_dict(), change.document.id),
                    )
                    for change in changes
                ]
            )

        watch = query.on_snapshot(on_snapshot)
        return watch.unsubscribe

    # Users and experts

    def get_user(self, uid: str) -> Optional[dict]:
        return self._get(USERS_COLLECTION, uid)

    def set_user(self, uid: str, data: dict, merge: bool = True) -> None:
        self._ref(USERS_COLLECTION, uid).set(data, merge=merge)

    def update_user(self, uid: str, fields: dict) -> None:
        self._update(USERS_COLLECTION, uid, fields)

    def list_users(self) -> list[dict]:
        return self._query(USERS_COLLECTION)

    def get_expert(self, expert_id: str) -> Optional[dict]:
        return self._get(EXPERTS_COLLECTION, expert_id)

    def list_experts(self) -> list[dict]:
        return self._query(EXPERTS_COLLECTION)

    def set_expert(self, expert_id: str, data: dict) -> None:
        self._ref(EXPERTS_COLLECTION, expert_id).set(data)

    def set_expert_slot(
        self, expert_id: str, date: str, time: str, available: bool
    ) -> None:
        # Dates and times contain characters that must be quoted in field paths.
        slot_path = FieldPath("availability", date, time).to_api_repr()
        self._update(EXPERTS_COLLECTION, expert_id, {slot_path: available})

    # Consultant profiles

    def get_consultant_profile(self, uid: str) -> Optional[dict]:
        return self._get(CONSULTANT_PROFILES_COLLECTION, uid)

    def set_consultant_profile(self, uid: str, data: dict) -> None:
        self._ref(CONSULTANT_PROFILES_COLLECTION, uid).set(data)

    def update_consultant_profile(self, uid: str, fields: dict) -> None:
        self._update(CONSULTANT_PROFILES_COLLECTION, uid, fields)

    def list_consultant_profiles(self) -> list[dict]:
        return self._query(CONSULTANT_PROFILES_COLLECTION)

    # Appointments

    def add_appointment(self, data: dict) -> str:
        return self._add(APPOINTMENTS_COLLECTION, data)

    def get_appointment(self, appointment_id: str) -> Optional[dict]:
        return self._get(APPOINTMENTS_COLLECTION, appointment_id)

    def update_appointment(self, appointment_id: str, fields: dict) -> None:
        self._update(APPOINTMENTS_COLLECTION, appointment_id, fields)

    def query_appointments(
        self,
        *,
        user_id: Optional[str] = None,
        expert_id: Optional[str] = None,
        status: Optional[str] = None,
        date: Optional[str] = None,
        time: Optional[str] = None,
    ) -> list[dict]:
        # Sorted client side: ordering on createdAt with these filters would
        # need a composite index per filter combination.
        return newest_first(
            self._query(
                APPOINTMENTS_COLLECTION,
                userId=user_id,
                expertId=expert_id,
                status=status,
                date=date,
                time=time,
            )
        )

    # Payments

    def add_payment(self, data: dict, payment_id: Optional[str] = None) -> str:
        return self._add(PAYMENTS_COLLECTION, data, payment_id)

    def get_payment(self, payment_id: str) -> Optional[dict]:
        return self._get(PAYMENTS_COLLECTION, payment_id)

    def update_payment(self, payment_id: str, fields: dict) -> None:
        self._update(PAYMENTS_COLLECTION, payment_id, fields)

    def query_payments(self, *, user_id: Optional[str] = None) -> list[dict]:
        return newest_first(self._query(PAYMENTS_COLLECTION, userId=user_id))

    # Notifications

    def add_notification(self, data: dict) -> str:
        return self._add(NOTIFICATIONS_COLLECTION, data)

    def get_notification(self, notification_id: str) -> Optional[dict]:
        return self._get(NOTIFICATIONS_COLLECTION, notification_id)

    def update_notification(self, notification_id: str, fields: dict) -> None:
        self._update(NOTIFICATIONS_COLLECTION, notification_id, fields)

    def delete_notification(self, notification_id: str) -> None:
        self._ref(NOTIFICATIONS_COLLECTION, notification_id).delete()

    def query_notifications(
        self, user_id: str, limit: Optional[int] = None
    ) -> list[dict]:
        try:
            return self._query(
                NOTIFICATIONS_COLLECTION,
                order_by="createdAt",
                limit=limit,
                userId=user_id,
            )
        except google_exceptions.FailedPrecondition as e:
            # Missing composite index: fall back to an unordered query.
            logger.warning("Notification index missing, sorting locally: %s", e)
            docs = newest_first(self._query(NOTIFICATIONS_COLLECTION, userId=user_id))
            return docs[:limit] if limit else docs

    # Rate limits

    def get_rate_limit(self, uid: str) -> Optional[dict]:
        return self._get(RATE_LIMITS_COLLECTION, uid)

    def set_rate_limit(self, uid: str, data: dict) -> None:
        self._ref(RATE_LIMITS_COLLECTION, uid).set(data)

    def update_rate_limit(self, uid: str, fields: dict) -> None:
        self._update(RATE_LIMITS_COLLECTION, uid, fields)

    def reset_rate_limits(self, fields: dict) -> int:
        return self._batch_apply(
            RATE_LIMITS_COLLECTION, lambda batch, ref: batch.update(ref, fields)
        )

    # Chat sessions

    def add_chat_session(self, data: dict) -> str:
        return self._add(CHAT_SESSIONS_COLLECTION, data)

    def get_chat_session(self, session_id: str) -> Optional[dict]:
        return self._get(CHAT_SESSIONS_COLLECTION, session_id)

    def update_chat_session(self, session_id: str, fields: dict) -> None:
        self._update(CHAT_SESSIONS_COLLECTION, session_id, fields)

    def append_chat_messages(
        self, session_id: str, messages: list[dict], fields: Optional[dict] = None
    ) -> None:
        update = {"messages": ArrayUnion(messages)}
        update.update(fields or {})
        self._update(CHAT_SESSIONS_COLLECTION, session_id, update)

    def query_chat_sessions(self, user_id: str) -> list[dict]:
        return newest_first(self._query(CHAT_SESSIONS_COLLECTION, userId=user_id))

    def delete_chat_sessions(self, user_id: str) -> int:
        return self._batch_apply(
            CHAT_SESSIONS_COLLECTION,
            lambda batch, ref: batch.delete(ref),
            userId=user_id,
        )

    # Change streams

    def watch_appointments(
        self,
        callback: ChangeCallback,
        *,
        user_id: Optional[str] = None,
        expert_id: Optional[str] = None,
    ) -> Unsubscribe:
        query = self.client.collection(APPOINTMENTS_COLLECTION)
        if user_id:
            query = query.where(filter=FieldFilter("userId", "==", user_id))
        if expert_id:
            query = query.where(filter=FieldFilter("expertId", "==", expert_id))
        return self._watch(query, callback)

    def watch_notifications(
        self,
        callback: ChangeCallback,
        user_id: str,
        limit: int = NOTIFICATION_PAGE_SIZE,
    ) -> Unsubscribe:
        query = (
            self.client.collection(NOTIFICATIONS_COLLECTION)
            .where(filter=FieldFilter("userId", "==", user_id))
            .order_by("createdAt", direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        return self._watch(query, callback)

# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

"""Assistant chat sessions stored in the `chatSessions` collection."""

import logging
from typing import Callable, List, Optional

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from backend.db import DbClient
from bookings import rate_limits
from chat import tokens
from shared.constants import (
    CHAT_TITLE_MAX_LENGTH,
    CHAT_TITLE_MESSAGE_THRESHOLD,
    DEFAULT_CHAT_TITLE,
    MAX_CHAT_MESSAGE_LENGTH,
    MIN_CHAT_MESSAGE_LENGTH,
)
from shared.errors import InvalidArgumentError, NotFoundError, PermissionDeniedError
from shared.json_utils import from_document, now_millis
from shared.types import ChatMessage, ChatSession
from shared.validation import validate_chat_message

logger = logging.getLogger(__name__)

Responder = Callable[[str, List[ChatMessage]], str]

USER_SENDER = "user"
AI_SENDER = "ai"


def create_session(db: DbClient, uid: str) -> ChatSession:
    rate_limits.check_limit(db, uid, rate_limits.CHAT_SESSIONS)
    session_id = db.add_chat_session(
        {
            "userId": uid,
            "title": DEFAULT_CHAT_TITLE,
            "messages": [],
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }
    )
    rate_limits.record_action(db, uid, rate_limits.CHAT_SESSIONS)
    return from_document(ChatSession, db.get_chat_session(session_id), session_id)


def list_sessions(db: DbClient, uid: str) -> list[ChatSession]:
    return [
        from_document(ChatSession, doc, doc["id"])
        for doc in db.query_chat_sessions(uid)
    ]


def clear_sessions(db: DbClient, uid: str) -> int:
    count = db.delete_chat_sessions(uid)
    logger.info("Deleted %d chat sessions for %s", count, uid)
    return count


def _load_owned_session(db: DbClient, uid: str, session_id: str) -> ChatSession:
    doc = db.get_chat_session(session_id)
    if not doc:
        raise NotFoundError("Chat session not found")
    if doc.get("userId") != uid:
        raise PermissionDeniedError("You cannot access this chat session")
    return from_document(ChatSession, doc, session_id)


def session_title(messages: List[ChatMessage]) -> Optional[str]:
    """Title taken from the first message while a conversation is new."""
    if not messages or len(messages) >= CHAT_TITLE_MESSAGE_THRESHOLD:
        return None
    first = messages[0].text
    if len(first) > CHAT_TITLE_MAX_LENGTH:
        return first[:CHAT_TITLE_MAX_LENGTH] + "..."
    return first


def send_message(
    db: DbClient,
    uid: str,
    session_id: Optional[str],
    text: str,
    responder: Responder,
    now_ms: Optional[int] = None,
) -> dict:
    """
    Stores a user message together with the assistant's reply.

    A new session is started when `session_id` is empty. Tokens are reserved
    before any session is touched and released again if the session or the
    reply cannot be produced.

    Returns:
        A dict with the session id, the reply message and the session title.
    """
    message = validate_chat_message(text)
    if message is None:
        raise InvalidArgumentError(
            f"Messages must be {MIN_CHAT_MESSAGE_LENGTH} to "
            f"{MAX_CHAT_MESSAGE_LENGTH} characters and may not contain markup"
        )

    reserved = tokens.reserve_tokens(db, uid, message, now_ms)
    try:
        if session_id:
            session = _load_owned_session(db, uid, session_id)
        else:
            session = create_session(db, uid)
        reply_text = responder(message, session.messages)
    except Exception:
        logger.warning("Releasing %d reserved tokens for %s", reserved, uid)
        tokens.settle_tokens(db, uid, "", "", reserved)
        raise

    now_ms = now_ms if now_ms is not None else now_millis()
    user_message = ChatMessage(
        id=str(now_ms), sender=USER_SENDER, text=message, time_stamp=now_ms
    )
    ai_message = ChatMessage(
        id=str(now_ms + 1), sender=AI_SENDER, text=reply_text, time_stamp=now_ms + 1
    )
    db.append_chat_messages(
        session.id,
        [_message_document(user_message), _message_document(ai_message)],
        {"updatedAt": SERVER_TIMESTAMP},
    )

    title = session_title(session.messages + [user_message, ai_message])
    if title:
        db.update_chat_session(session.id, {"title": title, "updatedAt": SERVER_TIMESTAMP})

    tokens.settle_tokens(db, uid, message, reply_text, reserved)
    return {
        "sessionId": session.id,
        "reply": _message_document(ai_message),
        "title": title or session.title,
    }


def _message_document(message: ChatMessage) -> dict:
    return {
        "id": message.id,
        "sender": message.sender,
        "text": message.text,
        "timeStamp": message.time_stamp,
    }

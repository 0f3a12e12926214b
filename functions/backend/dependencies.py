"""
Dependency wiring for the FastAPI app and the Cloud Functions.
"""

from __future__ import annotations

import logging
from typing import Optional

import firebase_admin
from fastapi import Header, HTTPException
from firebase_admin import auth

from backend.config import get_settings
from backend.db import DbClient, FirestoreDbClient, InMemoryDbClient
from models.gemini import ConsultationResponder
from payments.phonepe import PhonePeClient

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None
_phonepe_client: PhonePeClient | None = None


def get_firebase_app() -> firebase_admin.App:
    """Returns the default Firebase app, initializing it on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        logger.info("Initializing the default Firebase app")
        return firebase_admin.initialize_app()


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so watchers and in-memory state persist
    across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _db_client = InMemoryDbClient()
    else:
        get_firebase_app()
        _db_client = FirestoreDbClient()
    return _db_client


def get_phonepe_client() -> PhonePeClient:
    global _phonepe_client
    if _phonepe_client:
        return _phonepe_client

    settings = get_settings()
    _phonepe_client = PhonePeClient(
        base_url=settings.phonepe_base_url,
        client_id=settings.phonepe_client_id or "",
        client_secret=settings.phonepe_client_secret or "",
        client_version=settings.phonepe_client_version,
    )
    return _phonepe_client


def get_current_uid(authorization: Optional[str] = Header(default=None)) -> str:
    """Verifies the Firebase ID token in `Authorization: Bearer <token>`."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = authorization.removeprefix("Bearer ").strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        decoded = auth.verify_id_token(token, app=get_firebase_app())
    except (auth.InvalidIdTokenError, auth.UserDisabledError) as e:
        logger.warning("Rejected ID token: %s", e)
        raise HTTPException(status_code=401, detail="Invalid ID token") from e
    except auth.CertificateFetchError as e:
        logger.error("Could not fetch token signing certificates: %s", e)
        raise HTTPException(
            status_code=503, detail="Token verification is temporarily unavailable"
        ) from e
    return decoded["uid"]


def get_responder() -> ConsultationResponder:
    return ConsultationResponder(api_key=get_settings().gemini_api_key)

"""Session manager and password handling.

Sessions are opaque bearer tokens persisted in the ``session`` collection.
Expiry is enforced lazily: an expired session is deleted by the first
``resolve_session`` call that sees it, there is no background sweep.
"""

import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError

from database import as_utc, collection, create_document
from errors import AuthError, ConflictError
from schemas import Session, User

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_token"
SESSION_TTL_DAYS = int(os.getenv("SESSION_TTL_DAYS", "7"))

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return pwd_context.verify(password, hashed)
    except ValueError:
        # unrecognised or corrupt hash
        return False


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


def public_user(doc: dict) -> dict:
    return {"id": str(doc["_id"]), "email": doc["email"], "name": doc.get("name")}


def create_session(user_id: str, ttl_days: int = SESSION_TTL_DAYS) -> tuple[str, datetime]:
    """Persist a new session for ``user_id`` and return ``(token, expires_at)``."""
    token = new_session_token()
    expires_at = datetime.now(timezone.utc) + timedelta(days=ttl_days)
    create_document("session", Session(token=token, user_id=user_id, expires_at=expires_at))
    logger.info("Session created for user %s, expires %s", user_id, expires_at.isoformat())
    return token, expires_at


def resolve_session(token: Optional[str]) -> Optional[dict]:
    """Map a token to the public fields of its user, or None.

    Missing, unknown and expired tokens all resolve to None. An expired
    session is removed as part of the lookup.
    """
    if not token:
        return None
    sessions = collection("session")
    session = sessions.find_one({"token": token})
    if not session:
        return None
    if as_utc(session["expires_at"]) < datetime.now(timezone.utc):
        sessions.delete_one({"_id": session["_id"]})
        logger.info("Expired session for user %s removed", session.get("user_id"))
        return None

    user_id = session.get("user_id")
    user = collection("user").find_one({"_id": ObjectId(user_id)}) if ObjectId.is_valid(user_id) else None
    if not user:
        return None
    return public_user(user)


def revoke_session(token: Optional[str]) -> None:
    """Delete the session for ``token``. Unknown tokens are ignored."""
    if not token:
        return
    result = collection("session").delete_one({"token": token})
    if result.deleted_count:
        logger.info("Session revoked")


def register_user(email: str, password: str, name: Optional[str] = None) -> dict:
    users = collection("user")
    if users.find_one({"email": email}):
        raise ConflictError("Email already registered")

    user_doc = User(email=email, name=name, password_hash=hash_password(password))
    try:
        uid = create_document("user", user_doc)
    except DuplicateKeyError:
        # lost a race against a concurrent registration for the same email
        raise ConflictError("Email already registered")
    logger.info("User %s registered", uid)
    return {"id": uid, "email": user_doc.email, "name": user_doc.name}


def authenticate(email: str, password: str) -> dict:
    user = collection("user").find_one({"email": email})
    if not user or not verify_password(password, user.get("password_hash", "")):
        raise AuthError("Invalid credentials")
    return public_user(user)

"""
Account registration, login and bearer-token verification for guides and tourists.

Passwords are stored as bcrypt hashes. Session tokens are HS256 JWTs carrying
the account id (``sub``), email and role.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError as SchemaError
from pymongo.errors import DuplicateKeyError

import config
from database import collection, create_document, find_document, utcnow
from errors import AuthenticationError, AuthorizationError, DuplicateError, NotFoundError, ValidationError
from schemas import Identity

logger = logging.getLogger(__name__)

ACCOUNT_COLLECTIONS = {"guide": "guide_account", "tourist": "tourist_account"}

bearer_scheme = HTTPBearer(auto_error=False)


# -------------------- Passwords --------------------
def hash_password(password: str) -> str:
    raw = password.encode("utf-8")
    if len(raw) > 72:
        raise ValidationError("Password must be at most 72 bytes")
    return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash or over-long candidate
        return False


# -------------------- Tokens --------------------
def _ttl(role: str) -> timedelta:
    hours = config.GUIDE_TOKEN_TTL_HOURS if role == "guide" else config.TOURIST_TOKEN_TTL_HOURS
    return timedelta(hours=hours)


def issue_token(account_id: str, email: str, role: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    payload = {
        "sub": account_id,
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + _ttl(role),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> Identity:
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")
    try:
        return Identity(id=payload["sub"], email=payload["email"], role=payload["role"])
    except (KeyError, SchemaError):
        raise AuthenticationError("Invalid token")


def current_identity(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Identity:
    """FastAPI dependency: the verified caller, or 401."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication required")
    return decode_token(credentials.credentials)


def current_guide(identity: Identity = Depends(current_identity)) -> Identity:
    if identity.role != "guide":
        raise AuthorizationError("Guide account required")
    return identity


def current_tourist(identity: Identity = Depends(current_identity)) -> Identity:
    if identity.role != "tourist":
        raise AuthorizationError("Tourist account required")
    return identity


def ensure_self(identity: Identity, owner_id: str, message: str = "Not authorized to access this resource") -> None:
    if identity.id != owner_id:
        raise AuthorizationError(message)


# -------------------- Accounts --------------------
def public_account(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in doc.items() if k != "password_hash"}


def register(role: str, email: str, password: str, full_name: str, nationality: Optional[str] = None) -> Tuple[Dict[str, Any], str]:
    name = ACCOUNT_COLLECTIONS[role]
    email = email.strip().lower()
    if role == "tourist" and not nationality:
        raise ValidationError("Nationality is required")
    if find_document(name, {"email": email}):
        raise DuplicateError("Email already registered")

    account = {
        "email": email,
        "password_hash": hash_password(password),
        "full_name": full_name.strip(),
        "has_profile": False,
    }
    if role == "tourist":
        account["nationality"] = nationality.strip()
    try:
        account_id = create_document(name, account, id_prefix=role)
    except DuplicateKeyError:
        raise DuplicateError("Email already registered")

    doc = find_document(name, {"id": account_id})
    logger.info("Registered %s account %s", role, account_id)
    return public_account(doc), issue_token(account_id, email, role)


def login(role: str, email: str, password: str) -> Tuple[Dict[str, Any], str]:
    name = ACCOUNT_COLLECTIONS[role]
    doc = find_document(name, {"email": email.strip().lower()})
    if not doc or not verify_password(password, doc.get("password_hash", "")):
        logger.info("Failed %s login", role)
        raise AuthenticationError("Invalid email or password")

    if role == "guide":
        has_profile = collection("guide").find_one({"id": doc["id"]}, {"_id": 1}) is not None
        now = utcnow()
        collection(name).update_one({"id": doc["id"]}, {"$set": {"has_profile": has_profile, "updated_at": now}})
        doc["has_profile"] = has_profile
        doc["updated_at"] = now

    return public_account(doc), issue_token(doc["id"], doc["email"], role)


def get_account(identity: Identity) -> Dict[str, Any]:
    doc = find_document(ACCOUNT_COLLECTIONS[identity.role], {"id": identity.id})
    if not doc:
        raise NotFoundError("Account not found")
    return public_account(doc)


def change_password(identity: Identity, current_password: str, new_password: str) -> None:
    name = ACCOUNT_COLLECTIONS[identity.role]
    doc = find_document(name, {"id": identity.id})
    if not doc:
        raise NotFoundError("Account not found")
    if not verify_password(current_password, doc.get("password_hash", "")):
        raise AuthenticationError("Current password is incorrect")
    collection(name).update_one(
        {"id": identity.id},
        {"$set": {"password_hash": hash_password(new_password), "updated_at": utcnow()}},
    )
    logger.info("Password changed for %s account %s", identity.role, identity.id)

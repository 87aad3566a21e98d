"""
Admin authentication and the seller-scope check.

Identities (email + password hash) stand in for a hosted identity provider; the
``users`` collection links an identity to a role and, for seller admins, to one
seller. ``seller_scope`` is the single place where a request is bound to a
seller: every admin route that touches seller data depends on it.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Header, HTTPException, Query
from passlib.context import CryptContext

import config
import repository
from database import create_document, delete_document, get_db
from schemas import AppUser, Identity

logger = logging.getLogger("storefront.auth")

IDENTITIES = "identities"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class IdentityExists(ValueError):
    pass


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


# ============ Identities ============
def create_identity(email: str, password: str) -> str:
    email = email.strip().lower()
    if get_db()[IDENTITIES].find_one({"email": email}):
        raise IdentityExists(f"An account already exists for {email}")
    uid = uuid.uuid4().hex
    create_document(IDENTITIES, Identity(email=email, password_hash=hash_password(password)), doc_id=uid)
    return uid


def delete_identity(uid: str) -> bool:
    return delete_document(IDENTITIES, uid)


def authenticate(email: str, password: str) -> Optional[str]:
    ident = get_db()[IDENTITIES].find_one({"email": email.strip().lower()})
    if not ident or not verify_password(password, ident.get("password_hash", "")):
        return None
    return str(ident["_id"])


# ============ Tokens ============
def create_token(uid: str, role: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": uid,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=config.JWT_EXP_MIN),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm="HS256")


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def get_current_user(authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    if not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Invalid authorization header")
    payload = decode_token(token)
    user = repository.get_app_user(payload["sub"]) if payload.get("sub") else None
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_super_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "super_admin":
        raise HTTPException(status_code=403, detail="Forbidden")
    return user


def resolve_seller_scope(user: Dict[str, Any], requested: Optional[str]) -> str:
    role = user.get("role")
    own = user.get("seller_id")
    if role == "super_admin":
        seller_id = requested or own
        if not seller_id:
            raise HTTPException(status_code=409, detail="no_seller_selected")
        return seller_id
    if role == "seller_admin" and own:
        if requested and requested != own:
            raise HTTPException(status_code=403, detail="Forbidden")
        return own
    raise HTTPException(status_code=403, detail="Forbidden")


def seller_scope(seller_id: Optional[str] = Query(default=None),
                 user: Dict[str, Any] = Depends(get_current_user)) -> str:
    return resolve_seller_scope(user, seller_id)


def bootstrap_super_admin() -> Optional[str]:
    """Create the configured super admin once. Returns its uid when created."""
    if not (config.SUPER_ADMIN_EMAIL and config.SUPER_ADMIN_PASSWORD):
        return None
    if repository.find_app_user_by_email(config.SUPER_ADMIN_EMAIL.strip().lower()):
        return None
    uid = create_identity(config.SUPER_ADMIN_EMAIL, config.SUPER_ADMIN_PASSWORD)
    repository.create_app_user(uid, AppUser(email=config.SUPER_ADMIN_EMAIL.strip().lower(), role="super_admin"))
    logger.info("Super admin %s created", config.SUPER_ADMIN_EMAIL)
    return uid

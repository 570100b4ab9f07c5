import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Request
from passlib.context import CryptContext

import config
from database import collection, create_document, utcnow
from errors import Unauthorized
from schemas import Admin

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# ===================== Tokens =====================
def create_token(admin: dict) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "id": str(admin["_id"]),
        "email": admin["email"],
        "iat": now,
        "exp": now + timedelta(hours=config.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGO)


def decode_token(token: Optional[str]) -> dict:
    if not token:
        raise Unauthorized("Token not provided")
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid or expired token")


def token_from_request(request: Request) -> Optional[str]:
    token = request.cookies.get(config.COOKIE_NAME)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return None


def require_admin(request: Request) -> dict:
    """FastAPI dependency for admin-only routes; returns the decoded token claims."""
    return decode_token(token_from_request(request))


# ===================== Admin accounts =====================
def create_admin(email: str, password: str, role: str = "admin") -> str:
    admin = Admin(email=email, password_hash=pwd_context.hash(password), role=role)
    return create_document("admin", admin)


def admin_count() -> int:
    return collection("admin").count_documents({})


def bootstrap_admin():
    if not (config.ADMIN_EMAIL and config.ADMIN_PASSWORD):
        return
    if admin_count() == 0:
        create_admin(config.ADMIN_EMAIL, config.ADMIN_PASSWORD)
        logger.info(f"Created initial admin {config.ADMIN_EMAIL}")


def _authenticate(email: str, password: str) -> dict:
    admin = collection("admin").find_one({"email": email})
    if not admin:
        logger.warning(f"Auth failed: no admin found for email {email}")
        raise Unauthorized("User with this email does not exist.")
    if not pwd_context.verify(password, admin["password_hash"]):
        logger.warning(f"Auth failed: incorrect password for email {email}")
        raise Unauthorized("Invalid credentials.")
    return admin


def login(email: str, password: str) -> str:
    admin = _authenticate(email, password)
    collection("admin").update_one({"_id": admin["_id"]}, {"$set": {"last_login": utcnow()}})
    logger.info(f"Admin logged in: {email}")
    return create_token(admin)


def change_password(email: str, password: str, new_password: str):
    admin = _authenticate(email, password)
    collection("admin").update_one(
        {"_id": admin["_id"]},
        {"$set": {"password_hash": pwd_context.hash(new_password), "updated_at": utcnow()}},
    )
    logger.info(f"Password changed for admin {email}")

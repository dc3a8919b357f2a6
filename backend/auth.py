import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from config import ACCESS_TOKEN_EXPIRE_MINUTES, SECRET_KEY_FILE

logger = logging.getLogger(__name__)

# bcrypt backends that fail passlib's self-test fall back to pbkdf2_sha256
try:
    pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
    pwd_context.hash("test")
except Exception as e:
    logger.warning(f"bcrypt is not usable ({e}), falling back to pbkdf2_sha256")
    pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ALGORITHM = "HS256"


def _read_key_file(path: str) -> Optional[str]:
    if not os.path.exists(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read().strip() or None
    except UnicodeDecodeError:
        logger.warning(f"Secret key file {path} is unreadable, replacing it")
        os.remove(path)
        return None


def get_secret_key(key_file: str = SECRET_KEY_FILE) -> str:
    """SECRET_KEY from the environment, else from key_file, else a new key saved there."""
    env_key = os.getenv("SECRET_KEY")
    if env_key:
        return env_key

    stored = _read_key_file(key_file)
    if stored:
        return stored

    new_key = secrets.token_urlsafe(32)
    with open(key_file, "w", encoding="utf-8") as f:
        f.write(new_key)
    if os.name != "nt":
        os.chmod(key_file, 0o600)
    logger.info(f"Generated a new signing key in {key_file}")
    return new_key


SECRET_KEY = get_secret_key()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def authenticate_user(db: Session, username: str, password: str):
    """The staff user for these credentials, or None."""
    from models import User

    user = db.query(User).filter(User.username == username).first()
    if not user or not verify_password(password, user.password):
        logger.warning(f"Failed login for '{username}'")
        return None
    return user


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Signed bearer token; callers put the username in `sub` and the staff role in `role`."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = dict(data, exp=datetime.now(timezone.utc) + expires_delta)
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected invalid token: {e}")
    return None

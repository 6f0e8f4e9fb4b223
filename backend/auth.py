from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import ExpiredSignatureError, JWTError, jwt
from fastapi import HTTPException, status
from sqlalchemy.orm import Session
import bcrypt
import hashlib
import os
import secrets
from dotenv import load_dotenv
from pathlib import Path
from models import User

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

WEAK_SECRETS = {
    'default_secret_key',
    'changeme',
    'change_me',
    'secret',
    'jwt_secret',
    'password',
    'admin123',
}
ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


def _load_jwt_secret() -> str:
    secret = os.environ.get('JWT_SECRET_KEY')
    if not secret:
        raise RuntimeError('JWT_SECRET_KEY is required and must be set in environment')
    if len(secret) < 32 or secret.strip().lower() in WEAK_SECRETS:
        raise RuntimeError('JWT_SECRET_KEY is too weak; use a random secret with at least 32 characters')
    return secret


SECRET_KEY = _load_jwt_secret()
ALGORITHM = os.environ.get('JWT_ALGORITHM', 'HS256')
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get('ACCESS_TOKEN_EXPIRE_MINUTES', 30))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.environ.get('REFRESH_TOKEN_EXPIRE_DAYS', 7))


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _password_digest(password: str) -> bytes:
    # bcrypt only reads 72 bytes, so it always gets the SHA-256 digest
    return hashlib.sha256(str(password).encode('utf-8')).digest()


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(_password_digest(password), bcrypt.gensalt()).decode('utf-8')


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Check a password; accounts without a hash (CSV imports) never match."""
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_password_digest(plain_password), hashed_password.encode('utf-8'))
    except ValueError:
        return False


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _encode(claims: dict, token_type: str, lifetime: timedelta) -> str:
    payload = dict(claims)
    payload["exp"] = datetime.now(timezone.utc) + lifetime
    payload["type"] = token_type
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    return _encode(data, ACCESS_TOKEN, expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))


def create_refresh_token(data: dict) -> str:
    return _encode(data, REFRESH_TOKEN, timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))


def issue_token_pair(user: User) -> dict:
    claims = {"sub": str(user.id), "role": user.role.value}
    return {
        "access_token": create_access_token(claims),
        "refresh_token": create_refresh_token(claims),
    }


def decode_token(token: str, expected_type: Optional[str] = None) -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise _credentials_error("Token has expired")
    except JWTError:
        raise _credentials_error()
    if expected_type and payload.get("type") != expected_type:
        raise _credentials_error("Invalid token type")
    return payload


def load_token_user(db: Session, token: str, expected_type: str = ACCESS_TOKEN) -> User:
    """Decode ``token`` and return the user it names, or raise 401."""
    payload = decode_token(token, expected_type)
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise _credentials_error()
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise _credentials_error("User not found")
    return user

import secrets
from typing import Optional

import bcrypt
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings

SESSION_COOKIE = "dompetku_session"

# Checked when the email is unknown so both failure paths cost a bcrypt check.
_DUMMY_HASH = bcrypt.hashpw(b"dompetku-dummy", bcrypt.gensalt()).decode("utf-8")


class Unauthenticated(Exception):
    pass


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="session-token")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    candidate = password_hash or _DUMMY_HASH
    try:
        matched = bcrypt.checkpw(password.encode("utf-8"), candidate.encode("utf-8"))
    except ValueError:
        return False
    return matched and password_hash is not None


def new_session_key() -> str:
    return secrets.token_urlsafe(32)


def sign_session_token(session_key: str) -> str:
    return _serializer().dumps({"sid": session_key})


def unsign_session_token(token: str) -> str:
    settings = get_settings()
    try:
        data = _serializer().loads(
            token, max_age=settings.session_max_age_hours * 3600
        )
    except SignatureExpired as exc:
        raise Unauthenticated("Session expired") from exc
    except BadSignature as exc:
        raise Unauthenticated("Invalid session") from exc

    session_key = data.get("sid") if isinstance(data, dict) else None
    if not isinstance(session_key, str) or not session_key:
        raise Unauthenticated("Invalid session")
    return session_key


def token_from_headers(
    cookie_value: Optional[str], authorization: Optional[str]
) -> str:
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    if cookie_value:
        return cookie_value
    raise Unauthenticated("Not authenticated")

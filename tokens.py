from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings
from errors import AuthorizationError
from models import OwnerId


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="owner-token")


def issue_owner_token(owner_id: str) -> str:
    if not owner_id:
        raise ValueError("Owner id is required")
    return _serializer().dumps({"o": owner_id})


def read_owner_token(token: Optional[str]) -> OwnerId:
    if not token:
        raise AuthorizationError("Not authorized to access this route. Please login")
    max_age = get_settings().token_max_age_hours * 3600
    try:
        data = _serializer().loads(token, max_age=max_age)
    except SignatureExpired as exc:
        raise AuthorizationError("Token expired. Please login again") from exc
    except BadSignature as exc:
        raise AuthorizationError("Invalid token. Please login again") from exc

    owner_id = data.get("o") if isinstance(data, dict) else None
    if not owner_id:
        raise AuthorizationError("Invalid token. Please login again")
    return OwnerId(owner_id)

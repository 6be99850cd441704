from datetime import datetime, timedelta, timezone
from jose import jwt

from app.core.config import settings

ALGORITHM = "HS256"

def create_jwt(payload: dict, secret: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    data = payload.copy()
    data.update({"iat": int(now.timestamp()), "exp": int((now + expires_delta).timestamp())})
    return jwt.encode(data, secret, algorithm=ALGORITHM)

def decode_jwt(token: str, secret: str) -> dict:
    return jwt.decode(token, secret, algorithms=[ALGORITHM])

def create_portal_token(user, expires_delta: timedelta | None = None) -> str:
    # Tokens are normally issued by the auth service; this mirrors its claim set.
    claims = {
        "sub": str(user.id),
        "role": str(user.role or "").upper(),
        "name": user.name,
        "email": user.email,
    }
    if user.company_id:
        claims["company_id"] = str(user.company_id)
    return create_jwt(claims, settings.JWT_SECRET, expires_delta or timedelta(minutes=settings.JWT_TTL_MINUTES))

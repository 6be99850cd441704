from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.core.config import settings
from app.core.security import decode_jwt
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.services.payment_orchestrator import PaymentOrchestrator
from app.services.request_status import ROLE_ADMIN, ROLE_CLIENT, Actor

bearer = HTTPBearer(auto_error=False)

def get_current_user(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> dict:
    if not creds:
        raise HTTPException(status_code=401, detail="Token de autorização ausente")
    try:
        claims = decode_jwt(creds.credentials, settings.JWT_SECRET)
    except Exception:
        raise HTTPException(status_code=401, detail="Token inválido")
    if not claims.get("sub"):
        raise HTTPException(status_code=401, detail="Token inválido")
    return claims

def require_role(*roles: str):
    def _inner(user: dict = Depends(get_current_user)) -> dict:
        if str(user.get("role") or "").upper() not in roles:
            raise HTTPException(status_code=403, detail="Permissão insuficiente")
        return user
    return _inner

def get_admin_actor(user: dict = Depends(require_role(ROLE_ADMIN))) -> Actor:
    return Actor.from_claims(user)

def get_client_actor(user: dict = Depends(require_role(ROLE_CLIENT))) -> Actor:
    actor = Actor.from_claims(user)
    if actor.user_id is None or actor.company_id is None:
        raise HTTPException(status_code=403, detail="Usuário cliente sem empresa vinculada")
    return actor

def get_payment_orchestrator(db: Session = Depends(get_db)) -> PaymentOrchestrator:
    return PaymentOrchestrator(db)

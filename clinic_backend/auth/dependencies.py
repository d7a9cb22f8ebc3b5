from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from clinic_backend.auth import jwt_handler

security = HTTPBearer()

REQUESTER_ROLE = "requester"
PROVIDER_ROLE = "provider"
KNOWN_ROLES = {REQUESTER_ROLE, PROVIDER_ROLE}


@dataclass(frozen=True)
class Actor:
    """Identity handed over by the session layer; trusted as-is."""

    id: str
    role: str
    email: str = ""

    @property
    def is_provider(self) -> bool:
        return self.role == PROVIDER_ROLE


def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Actor:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    actor_id = payload.get("sub")
    if not actor_id:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    role = payload.get("role")
    if role not in KNOWN_ROLES:
        raise HTTPException(status_code=401, detail="Invalid token role")

    return Actor(id=actor_id, role=role, email=payload.get("email") or "")


def require_provider(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_provider:
        raise HTTPException(status_code=403, detail="Only providers can perform this action.")
    return actor

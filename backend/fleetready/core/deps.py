from typing import Iterator, Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from fleetready.core.config import Settings, load_settings
from fleetready.core.db import SessionLocal
from fleetready.core.secrets import EnvSecretStore, SecretStore
from fleetready.core.security import Principal, StaticTokenValidator, TokenValidator

_secret_store: Optional[SecretStore] = None
_token_validator: Optional[TokenValidator] = None


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_settings() -> Settings:
    return load_settings()


def get_secret_store() -> SecretStore:
    global _secret_store
    if _secret_store is None:
        _secret_store = EnvSecretStore()
    return _secret_store


def get_token_validator() -> TokenValidator:
    global _token_validator
    if _token_validator is None:
        _token_validator = StaticTokenValidator.from_secret_store(
            get_secret_store(), load_settings().api_token_secret
        )
    return _token_validator


def require_token(
    authorization: Optional[str] = Header(None),
    validator: TokenValidator = Depends(get_token_validator),
) -> Principal:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="bearer token required")
    principal = validator.validate(authorization.split(" ", 1)[1].strip())
    if principal is None:
        raise HTTPException(status_code=401, detail="invalid token")
    return principal

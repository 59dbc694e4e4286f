from typing import Optional
import hmac
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
import jwt

from trip_scheduler.core.config import Settings, settings
from trip_scheduler.core.security import decode_access_token

def get_settings() -> Settings:
    return settings

def verify_cron_secret(authorization: Optional[str] = Header(default=None), cfg: Settings = Depends(get_settings)) -> None:
    """Require ``Authorization: Bearer <CRON_SECRET>`` when a secret is configured."""
    if not cfg.cron_secret:
        return
    expected = f"Bearer {cfg.cron_secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

def get_scheduler(cfg: Settings = Depends(get_settings)):
    from trip_scheduler.services.reminder_scheduler import build_scheduler
    return build_scheduler(cfg)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

def get_current_email(token: str = Depends(oauth2_scheme)) -> str:
    """Return the traveller email (token subject), lower-cased."""
    try:
        payload = decode_access_token(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return str(sub).lower()

import hashlib
import hmac
import time

from fastapi import HTTPException

from . import settings

TOKEN_PREFIX = "Bearer "


def sign_token(player_id: str, expires_sec: int | None = None) -> str:
    if ":" in player_id:
        raise ValueError("player id must not contain ':'")
    if expires_sec is None:
        expires_sec = settings.TOKEN_EXPIRE_HOURS * 3600
    ts = int(time.time())
    payload = f"{player_id}:{ts}:{ts+expires_sec}"
    sig = hmac.new(settings.TOKEN_SECRET.encode(), payload.encode(), hashlib.sha256).hexdigest()
    return f"{payload}:{sig}"


def verify_token(token: str) -> str:
    if token.startswith(TOKEN_PREFIX):
        token = token[len(TOKEN_PREFIX):]
    parts = token.split(":")
    if len(parts) != 4:
        raise HTTPException(status_code=401, detail="Invalid token")
    player_id, issued, expires, sig = parts
    try:
        exp_int = int(expires)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if exp_int < int(time.time()):
        raise HTTPException(status_code=401, detail="Token expired")
    raw = ":".join(parts[:3])
    expected = hmac.new(settings.TOKEN_SECRET.encode(), raw.encode(), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, sig):
        raise HTTPException(status_code=401, detail="Invalid token")
    return player_id

"""
Mini App and admin authentication
- Telegram Mini App: HMAC-SHA256 validation of initData ("tma <initData>")
- Admin API: static token ("Bearer <token>" or X-Admin-Token header)
"""

import hashlib
import hmac
import json
import os
import time
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from src.database.crud import get_or_create_user
from src.database.engine import get_session
from src.database.models import User
from config.config import BOT_TOKEN, ADMIN_API_TOKEN
from config.sentry import set_user_context

# Expiration time для initData (по умолчанию 24 часа)
INIT_DATA_EXPIRATION = int(os.getenv("INIT_DATA_EXPIRATION", "86400"))


def sign_init_data(data_check_string: str, bot_token: str) -> str:
    """HMAC-SHA256 signature of data check string (Telegram WebApp scheme)"""
    secret_key = hmac.new(
        key=b"WebAppData",
        msg=bot_token.encode(),
        digestmod=hashlib.sha256,
    ).digest()
    return hmac.new(
        key=secret_key,
        msg=data_check_string.encode(),
        digestmod=hashlib.sha256,
    ).hexdigest()


def validate_telegram_init_data(init_data: str, bot_token: str) -> Dict[str, Any]:
    """
    Validate Telegram initData using HMAC-SHA256

    Args:
        init_data: Raw initData string from Telegram WebApp
        bot_token: Bot token for signature validation

    Returns:
        dict: Parsed and validated init data

    Raises:
        HTTPException: If validation fails
    """
    parsed_data = dict(parse_qsl(init_data))

    received_hash = parsed_data.pop("hash", None)
    if not received_hash:
        raise HTTPException(status_code=401, detail="Missing hash in init data")

    auth_date = parsed_data.get("auth_date")
    if not auth_date or not auth_date.isdigit():
        raise HTTPException(status_code=401, detail="Missing auth_date in init data")

    auth_timestamp = int(auth_date)
    if int(time.time()) - auth_timestamp > INIT_DATA_EXPIRATION:
        raise HTTPException(status_code=401, detail="Init data expired")

    # All params except hash, sorted alphabetically
    data_check_string = "\n".join(f"{key}={parsed_data[key]}" for key in sorted(parsed_data))

    calculated_hash = sign_init_data(data_check_string, bot_token)
    if not hmac.compare_digest(calculated_hash, received_hash):
        raise HTTPException(status_code=401, detail="Invalid hash - signature verification failed")

    user_data = {}
    if "user" in parsed_data:
        try:
            user_data = json.loads(parsed_data["user"])
        except json.JSONDecodeError:
            raise HTTPException(status_code=401, detail="Invalid user data format")

    return {
        "user": user_data,
        "auth_date": auth_timestamp,
        "query_id": parsed_data.get("query_id"),
        "start_param": parsed_data.get("start_param"),
    }


async def get_current_user(
    authorization: str = Header(...),
    session: AsyncSession = Depends(get_session),
) -> User:
    """
    FastAPI Dependency для получения текущего пользователя Mini App

    Headers:
        Authorization: tma <initDataRaw>

    Usage:
        @router.get("/loyalty/balance")
        async def balance(user: User = Depends(get_current_user)):
            ...
    """
    if not authorization.startswith("tma "):
        raise HTTPException(
            status_code=401,
            detail="Invalid authorization header. Expected: 'tma <initData>'",
        )

    init_data = validate_telegram_init_data(authorization[4:], BOT_TOKEN)
    telegram_user = init_data.get("user")
    if not telegram_user or "id" not in telegram_user:
        raise HTTPException(status_code=401, detail="No user data in init data")

    # Auto-create user if not exists (like bot's DatabaseMiddleware)
    user, is_new = await get_or_create_user(
        session,
        telegram_id=telegram_user["id"],
        username=telegram_user.get("username"),
        first_name=telegram_user.get("first_name"),
        last_name=telegram_user.get("last_name"),
    )
    if is_new:
        logger.info(f"Auto-created user from Mini App: telegram_id={user.telegram_id}")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Your account has been deactivated")

    set_user_context(user.telegram_id, user.username)
    return user


async def verify_admin_token(
    authorization: Optional[str] = Header(None),
    x_admin_token: Optional[str] = Header(None),
) -> str:
    """
    Verify admin token

    Headers:
        Authorization: Bearer <ADMIN_API_TOKEN>
        or X-Admin-Token: <ADMIN_API_TOKEN>
    """
    if not ADMIN_API_TOKEN:
        logger.error("ADMIN_API_TOKEN not configured in .env")
        raise HTTPException(status_code=500, detail="Admin authentication not configured")

    token = x_admin_token
    if not token and authorization and authorization.startswith("Bearer "):
        token = authorization[7:]

    if not token:
        raise HTTPException(status_code=401, detail="Missing admin token")

    if not hmac.compare_digest(token, ADMIN_API_TOKEN):
        logger.warning("Invalid admin token attempt")
        raise HTTPException(status_code=401, detail="Invalid admin token")

    return token

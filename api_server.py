"""
FastAPI Server для KAVARA Telegram Mini App
Запускает API endpoints для фронтенда
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from config.config import validate_config, WEBAPP_URL, ENVIRONMENT
from config.logging import setup_logging
from config.sentry import init_sentry
from src.core.exceptions import StorageUnavailableError
from src.database.engine import dispose_engine
from src.api.errors import storage_unavailable_handler
from src.api.router import router as api_router

# Setup logging at module level (must run before app creation)
# This ensures logging works when uvicorn imports the module
setup_logging()
init_sentry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager для startup/shutdown events

    Напоминания о заказах отправляет процесс бота (bot.py), здесь только API.
    """
    logger.info("Starting KAVARA API Server...")

    # NOTE: Database tables managed by Alembic migrations
    # Run: alembic upgrade head

    yield

    logger.info("Shutting down KAVARA API Server...")
    await dispose_engine()
    logger.info("Database connections closed")


# Инициализируем rate limiter
# 300 запросов в минуту на IP адрес (можно настроить в .env)
rate_limit = os.getenv("API_RATE_LIMIT", "300/minute")

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[rate_limit],
    storage_uri="memory://",
)

# Создаем FastAPI приложение
app = FastAPI(
    title="KAVARA Mini App API",
    description="API для Telegram Mini App: промокоды, баллы, рефералы, заказы",
    version="1.0.0",
    lifespan=lifespan,
)

# Добавляем limiter state в app
app.state.limiter = limiter

# Регистрируем обработчик ошибок rate limit
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Недоступность БД - 503, а не бизнес-ошибка
app.add_exception_handler(StorageUnavailableError, storage_unavailable_handler)


# Настраиваем CORS для фронтенда
# SECURITY: Используем только точные домены, без wildcards
allowed_origins = [
    "http://localhost:5173",  # Vite dev server
    "http://127.0.0.1:5173",
]

if WEBAPP_URL and WEBAPP_URL not in allowed_origins:
    allowed_origins.append(WEBAPP_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """
    Добавляет security headers ко всем ответам

    Headers:
    - X-Content-Type-Options: Защита от MIME sniffing
    - X-Frame-Options: Mini App открывается во фрейме Telegram Web
    - Referrer-Policy: Контроль referrer информации
    """
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Content-Security-Policy"] = (
        "frame-ancestors 'self' https://web.telegram.org https://telegram.org"
    )
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

    if ENVIRONMENT == "production" and request.url.scheme == "https":
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    return response


# Подключаем API router (уже включает все sub-роутеры)
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "service": "KAVARA Mini App API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy"}


# Error handler for HTTPException (must be before generic Exception handler)
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Engine rejections carry {"error", "message"} dict as detail - returned as is
    """
    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code}: {exc.detail}")
    elif exc.status_code >= 400:
        logger.warning(f"HTTP {exc.status_code}: {exc.detail}")

    content = exc.detail if isinstance(exc.detail, dict) else {"detail": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unexpected errors"""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
    )


if __name__ == "__main__":
    import uvicorn

    try:
        validate_config()
    except ValueError as e:
        logger.error(str(e))
        exit(1)

    logger.info("Configuration validated successfully")

    # SECURITY: слушаем только localhost, доступ извне через nginx
    uvicorn.run(
        "api_server:app",
        host="127.0.0.1",
        port=int(os.getenv("API_PORT", "8003")),
        reload=ENVIRONMENT == "development",
        log_level="info",
    )

"""
Infrastructure exceptions.

Business rejections are NOT exceptions - see EngineErrorKind and the
result types in src.core.results. Only genuine faults live here.
"""

import functools
from typing import Awaitable, Callable, TypeVar

from loguru import logger
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError

T = TypeVar("T")


class StorageUnavailableError(Exception):
    """Persistence layer is unreachable or failed mid-operation (retry / 503)"""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Storage unavailable during {operation}: {cause}")


def wraps_storage_errors(operation: str):
    """
    Decorator for engine operations: connection/driver failures become
    StorageUnavailableError, everything else propagates unchanged.

    IntegrityError is a constraint violation, not an outage, so it is
    re-raised as is.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except IntegrityError:
                raise
            except (OperationalError, InterfaceError, DBAPIError) as e:
                logger.error(f"Storage failure in {operation}: {e}")
                raise StorageUnavailableError(operation, e) from e

        return wrapper

    return decorator

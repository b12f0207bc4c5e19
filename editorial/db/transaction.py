import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from editorial.config.settings import settings
from editorial.utils.errors import TransientStoreError
from editorial.utils.logging import get_logger

logger = get_logger()

T = TypeVar("T")


async def run_in_transaction(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    timeout: Optional[float] = None,
    description: str = "unit of work",
) -> T:
    """
    Run ``operation`` as one atomic unit against ``db``.

    Everything the operation writes commits together or not at all. The
    whole unit is bounded by ``timeout`` seconds; timeouts, lock waits and
    lost connections surface as ``TransientStoreError`` and the caller may
    retry after re-reading.
    """
    timeout = settings.STORE_TIMEOUT_SECONDS if timeout is None else timeout

    # Close out the implicit read transaction left by earlier queries
    if db.in_transaction():
        await db.commit()

    async def _unit() -> T:
        async with db.begin():
            return await operation()

    try:
        return await asyncio.wait_for(_unit(), timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.warning(f"Store timeout after {timeout}s during {description}")
        raise TransientStoreError(
            f"The store did not respond within {timeout} seconds"
        ) from e
    except (OperationalError, PoolTimeoutError) as e:
        logger.warning(f"Store unavailable during {description}: {e}")
        raise TransientStoreError("The store is temporarily unavailable") from e
    except DBAPIError as e:
        if e.connection_invalidated:
            logger.warning(f"Store connection lost during {description}: {e}")
            raise TransientStoreError("The store connection was lost") from e
        raise

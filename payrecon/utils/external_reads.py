"""
Payrecon - External Read Helpers
"""

import asyncio
from typing import Awaitable, TypeVar

from payrecon.utils.error_handling import ExternalReadTimeoutException

T = TypeVar("T")


async def read_with_timeout(source: str, awaitable: Awaitable[T], timeout: float) -> T:
    """Await an external read, converting expiry into ExternalReadTimeoutException."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise ExternalReadTimeoutException(source, timeout, original_error=e)

from __future__ import annotations

import asyncio
import inspect
from typing import Awaitable, Callable, Optional, Union

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    wait_fixed,
)

from files_manager.logging import get_logger
from files_manager.service.errors import ConnectionTimeoutError

logger = get_logger(__name__)

Probe = Callable[[], Union[bool, Awaitable[bool]]]


async def _call_probe(probe: Probe) -> bool:
    result = probe()
    if inspect.isawaitable(result):
        result = await result
    return bool(result)


async def wait_until_alive(
    probe: Probe,
    *,
    attempts: int = 10,
    interval: float = 1.0,
    deadline: Optional[float] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    name: str = "store",
) -> int:
    """Poll ``probe`` until it reports alive.

    The probe is called immediately and then every ``interval`` seconds, at
    most ``attempts`` times and, if ``deadline`` is set, for at most that many
    seconds overall. Cancelling the awaiting task cancels the wait.

    Returns:
        The number of probe calls it took.

    Raises:
        ConnectionTimeoutError: if the probe never reported alive.
    """
    stop = stop_after_attempt(attempts)
    if deadline is not None:
        stop = stop | stop_after_delay(deadline)
    retrying = AsyncRetrying(
        stop=stop,
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda alive: not alive),
        sleep=sleep,
    )
    calls = 0

    async def _attempt() -> bool:
        nonlocal calls
        calls += 1
        alive = await _call_probe(probe)
        if not alive:
            logger.info("store_not_ready", store=name, attempt=calls, max_attempts=attempts)
        return alive

    try:
        await retrying(_attempt)
    except RetryError as exc:
        logger.error("store_readiness_timeout", store=name, attempts=calls)
        raise ConnectionTimeoutError(f"{name} not alive after {calls} attempts") from exc
    logger.info("store_ready", store=name, attempts=calls)
    return calls

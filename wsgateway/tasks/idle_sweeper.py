import time
from asyncio import CancelledError, gather, sleep
from typing import TYPE_CHECKING

from starlette import status

from wsgateway.constants import CLOSE_REASON_IDLE, TASK_ERROR_BACKOFF_SECONDS
from wsgateway.logging import logger

if TYPE_CHECKING:
    from wsgateway.gateway import ConnectionGateway


async def sweep_idle_connections(
    gateway: "ConnectionGateway", now: float | None = None
) -> list[str]:
    """
    Close open connections idle for longer than `IDLE_TIMEOUT_SECONDS`.

    Returns:
        Ids of the connections that were closed.
    """
    timeout = gateway.settings.IDLE_TIMEOUT_SECONDS
    now = time.monotonic() if now is None else now

    idle = [
        connection
        for connection in gateway.registry.snapshot()
        if connection.is_open and connection.idle_seconds(now) > timeout
    ]

    for connection in idle:
        logger.info(
            f"Closing idle connection {connection.id} "
            f"(idle {connection.idle_seconds(now):.1f}s)"
        )

    await gather(
        *[
            gateway.on_close(
                connection.id,
                code=status.WS_1001_GOING_AWAY,
                reason=CLOSE_REASON_IDLE,
            )
            for connection in idle
        ]
    )

    return [connection.id for connection in idle]


async def idle_connection_sweeper_task(gateway: "ConnectionGateway") -> None:
    """
    Runs a task that periodically evicts idle connections.

    Every `IDLE_SWEEP_INTERVAL_SECONDS` the registry snapshot is scanned and
    connections without inbound activity for longer than
    `IDLE_TIMEOUT_SECONDS` are closed gracefully with 1001 (going away).
    """
    interval = gateway.settings.IDLE_SWEEP_INTERVAL_SECONDS

    while True:
        try:
            await sleep(interval)
            await sweep_idle_connections(gateway)

        except CancelledError:
            logger.info("Task for idle connection sweeper cancelled!")
            break

        except Exception as ex:
            logger.error(f"Idle connection sweeper error occurred with: {ex}")
            await sleep(TASK_ERROR_BACKOFF_SECONDS)

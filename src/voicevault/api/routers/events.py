"""Server-Sent Events endpoint streaming the live EventBus."""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request
from sse_starlette.sse import EventSourceResponse

from voicevault.api.dependencies import get_event_bus
from voicevault.application.events import EventBus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Events"])

# How often the generator wakes up to notice a disconnected client
DISCONNECT_CHECK_INTERVAL = 1.0


@router.get("/events")
async def stream_events(
    request: Request,
    event_bus: Annotated[EventBus, Depends(get_event_bus)],
    only: Annotated[
        str | None, Query(description="Comma-separated event names to receive")
    ] = None,
) -> EventSourceResponse:
    """Server-Sent Events endpoint for live playback and task updates.

    Event names: spectrum-update, playback-progress, track-duration, playback-state,
    track-ended, sleep-timer, scan-progress, enrichment-progress.

    Example JS client:
    ```javascript
    const evtSource = new EventSource('/api/events?only=spectrum-update');
    evtSource.addEventListener('spectrum-update', (event) => {
        drawBars(JSON.parse(event.data).bins);
    });
    ```
    """
    wanted = None
    if only:
        wanted = {name.strip() for name in only.split(",") if name.strip()}
    # Subscribe NOW (not inside the generator) so nothing published between the
    # response starting and the first iteration gets lost.
    subscription = event_bus.subscribe()

    async def event_generator() -> AsyncGenerator[dict[str, Any], None]:
        """Forward bus events until the client goes away."""
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(
                        subscription.get(), timeout=DISCONNECT_CHECK_INTERVAL
                    )
                except TimeoutError:
                    continue
                if wanted is not None and event.name not in wanted:
                    continue
                yield {
                    "event": event.name,
                    "data": json.dumps(event.data, default=str),
                }
        except asyncio.CancelledError:
            logger.debug("SSE connection cancelled")
            raise
        finally:
            subscription.close()
            if subscription.dropped:
                logger.debug(
                    f"SSE subscriber dropped {subscription.dropped} events (slow client)"
                )

    return EventSourceResponse(event_generator())

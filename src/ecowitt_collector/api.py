import asyncio
import typing

import structlog
from fastapi import APIRouter, HTTPException, Request, status

from ecowitt_collector.errors import (
    NormalizationError,
    PayloadDecodeError,
    PersistenceError,
    WriteTimeoutError,
)

router = APIRouter()

logger = structlog.get_logger("Api")


def _state(request: Request) -> typing.Any:
    return request.app.state


@router.post("/data/report")
@router.post("/data/report/")
async def receive_report(request: Request) -> dict[str, str]:
    """Receive one report from the station (Ecowitt "customized" upload)."""
    state = _state(request)
    log = logger.bind(client=request.client.host if request.client else None)

    form = await request.form()
    values = {
        key: [v for v in form.getlist(key) if isinstance(v, str)] for key in form.keys()
    }

    try:
        payload = state.decoder.decode(values)
    except PayloadDecodeError as e:
        log.error(
            "Error deserializing payload",
            fields=e.fields,
            errors=[str(err) for err in e.errors],
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid payload", "fields": e.fields},
        ) from e

    try:
        observation = state.normalizer.normalize(payload)
        wind = observation.wind_direction_name()
    except NormalizationError as e:
        log.error("Error normalizing payload", error=str(e), value=e.value)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    store = state.store
    if not store.connected:
        log.error("Dropping report, database not connected")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database not connected"
        )

    try:
        await asyncio.to_thread(store.save, observation)
    except WriteTimeoutError as e:
        log.error("Timed out storing observation", timestamp=str(observation.timestamp))
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail="Database write timed out"
        ) from e
    except PersistenceError as e:
        log.error("Error storing observation", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to store observation"
        ) from e

    log.debug(
        "Stored observation",
        timestamp=str(observation.timestamp),
        wind_direction=observation.wind_direction,
        wind=wind,
    )
    return {"status": "ok"}


@router.get("/health")
async def health(request: Request) -> dict[str, typing.Any]:
    """Liveness plus database connection state."""
    return {"status": "ok", "database": _state(request).store.connected}

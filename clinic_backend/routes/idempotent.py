import logging
from typing import Any, Callable

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from clinic_backend.core.idempotency import IDEMPOTENCY_HEADER, IdempotencyStore, scoped_key

logger = logging.getLogger(__name__)


def run_idempotent(
    store: IdempotencyStore,
    idempotency_key: str | None,
    produce: Callable[[], Any],
    status_code: int = status.HTTP_200_OK,
    *,
    actor_id: str,
    path: str,
    method: str = 'POST',
) -> JSONResponse:
    """Replay the cached response for a seen key, else run ``produce`` and cache it.

    Keys are scoped to the actor and the route, so a key only ever replays the
    response its own actor got from the same request. Only successful results
    are cached; a domain error raised by ``produce`` propagates and leaves the
    key unused.
    """
    key = store.resolve_key(idempotency_key)
    storage_key = scoped_key(key, actor_id, method, path)

    cached = store.lookup(storage_key)
    if cached is not None:
        logger.info('Replaying idempotent response', extra={'idempotency_key': key, 'path': path})
        return JSONResponse(
            content=cached.response_body,
            status_code=cached.status_code,
            headers={IDEMPOTENCY_HEADER: key},
        )

    body = jsonable_encoder(produce())
    try:
        store.record(storage_key, body, status_code)
    except SQLAlchemyError:
        logger.exception('Failed to cache idempotent response', extra={'idempotency_key': key, 'path': path})

    return JSONResponse(content=body, status_code=status_code, headers={IDEMPOTENCY_HEADER: key})

"""Shared route helpers: service lookup and error translation."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException, Request, status

from ..models.errors import InvalidSpec, NoPathExists, NotFound, RouteMismatch, StaleNetworkState
from ..services.dispatch import DispatchService


def get_dispatch(request: Request) -> DispatchService:
    return request.app.state.dispatch


@contextmanager
def service_errors(action: str) -> Iterator[None]:
    """Translate service exceptions raised inside the block into HTTP errors."""
    try:
        yield
    except HTTPException:
        raise
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidSpec as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except NoPathExists as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "notes": exc.notes},
        ) from exc
    except (RouteMismatch, StaleNetworkState) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error while trying to {action}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to {action}: {str(exc)}",
        ) from exc

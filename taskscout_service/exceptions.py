"""Translate lifecycle errors into API responses."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from tickets.lifecycle import ActionForbidden, InvalidTransition, LifecycleError, MissingField

logger = logging.getLogger(__name__)

_STATUS_CODES = {
    MissingField: status.HTTP_400_BAD_REQUEST,
    ActionForbidden: status.HTTP_403_FORBIDDEN,
    InvalidTransition: status.HTTP_409_CONFLICT,
}


def lifecycle_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    """Map :class:`LifecycleError` subclasses to 400/403/409, defer the rest to DRF."""

    if not isinstance(exc, LifecycleError):
        return exception_handler(exc, context)

    view = context.get("view")
    logger.warning(
        "Lifecycle check failed in %s: %s",
        type(view).__name__ if view is not None else "unknown view",
        exc,
    )
    status_code = next(
        (code for error_type, code in _STATUS_CODES.items() if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    payload: Dict[str, Any] = {"detail": str(exc), "code": exc.code}
    if isinstance(exc, MissingField):
        payload[exc.field] = [str(exc)]
    return Response(payload, status=status_code)

"""
Response envelope helpers.

Every body is `{success, message, data, ..., popup}`. Failures never carry a
stack trace; the low-level error text is logged and, for mirror store errors,
returned in `error`.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from fastapi.responses import JSONResponse

from domain.errors import ErrorKind, SupplyChainError, SyncDivergence

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.TRANSACTION_FAILURE: 502,
    ErrorKind.REMOTE_UNAVAILABLE: 503,
}

_TITLE_BY_KIND = {
    ErrorKind.VALIDATION: "Invalid Request",
    ErrorKind.AUTHORIZATION: "Not Authorized",
    ErrorKind.NOT_FOUND: "Not Found",
    ErrorKind.TRANSACTION_FAILURE: "Transaction Failed",
    ErrorKind.REMOTE_UNAVAILABLE: "Service Unavailable",
}


def popup(kind: str, title: str, message: str) -> dict:
    return {"type": kind, "title": title, "message": message}


def ok(
    message: Optional[str] = None,
    data: Any = None,
    *,
    title: Optional[str] = None,
    popup_message: Optional[str] = None,
    warnings: Iterable[SyncDivergence] = (),
    **extra: Any,
) -> dict:
    """Success body. With warnings the popup is downgraded to a warning."""

    body: dict = {"success": True}
    if message is not None:
        body["message"] = message
    body["data"] = data
    body.update(extra)

    warnings = list(warnings)
    if warnings:
        body["warnings"] = [w.to_dict() for w in warnings]
        body["popup"] = popup("warning", "Partially Synced", warnings[0].user_message)
    elif title:
        body["popup"] = popup("success", title, popup_message or message or title)
    return body


def failure(
    status_code: int,
    message: str,
    *,
    error: Optional[str] = None,
    title: str = "Request Failed",
    popup_message: Optional[str] = None,
    **extra: Any,
) -> JSONResponse:
    body: dict = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    body.update(extra)
    body["popup"] = popup("error", title, popup_message or message)
    return JSONResponse(status_code=status_code, content=body)


def error_response(exc: SupplyChainError) -> JSONResponse:
    """Translate a SupplyChainError into its HTTP status and envelope."""

    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logger.error("%s: %s (%s)", exc.kind.value, exc.user_message, exc.detail)
    else:
        logger.info("%s: %s", exc.kind.value, exc.user_message)
    return failure(
        status_code,
        exc.user_message,
        title=_TITLE_BY_KIND.get(exc.kind, "Request Failed"),
        error=exc.to_dict(),
    )


def missing_fields(*names: str) -> JSONResponse:
    label = "field" if len(names) == 1 else "fields"
    return failure(
        400,
        f"Missing required {label}: {' and '.join(names)}",
        title="Missing Information",
    )


__all__ = ["popup", "ok", "failure", "error_response", "missing_fields", "STATUS_BY_KIND"]

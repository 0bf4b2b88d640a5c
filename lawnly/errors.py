# lawnly/errors.py
"""
Problem-details error envelope for the HTTP surface.

Domain exceptions raised outside a route's own ``try`` block (for example
from the identity dependency) are rendered the same way as the ones the
routes convert themselves.
"""

from http import HTTPStatus
from typing import Any, Dict, Mapping, Optional, Tuple

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .core.exceptions import DomainException

PROBLEM_MEDIA_TYPE = "application/problem+json"


def _title(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def _unpack(detail: Any) -> Tuple[Optional[str], Optional[str], Any]:
    """Split an ``HTTPException.detail`` into (message, code, errors)."""
    if isinstance(detail, dict):
        message = detail.get("message") or detail.get("detail")
        code = detail.get("code")
        return (
            message if isinstance(message, str) else None,
            code if isinstance(code, str) else None,
            detail.get("details"),
        )
    return (None if detail is None else str(detail)), None, None


def problem_response(
    request: Request,
    status_code: int,
    detail: Optional[str],
    code: Optional[str] = None,
    errors: Any = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {
        "type": "about:blank",
        "title": _title(status_code),
        "status": status_code,
        "detail": detail or "",
        "instance": request.url.path,
    }
    if code:
        body["code"] = code
    if errors:
        body["errors"] = errors
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body),
        headers=dict(headers) if headers else None,
        media_type=PROBLEM_MEDIA_TYPE,
    )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        message, code, errors = _unpack(exc.detail)
        return problem_response(
            request, exc.status_code, message, code, errors, getattr(exc, "headers", None)
        )

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return problem_response(
            request, exc.status_code, exc.message, exc.code, exc.details, headers
        )

"""
Driver Training Admin Console
Blueprint registry.

Every API blueprint registers the same handlers for the service-layer
exceptions so status codes stay consistent:

    ValidationError              → 422 {"error", "code", "details"}
    NotFoundError                → 404
    ConflictError                → 409 {"error", "code", "field"}
    PermissionDeniedError        → 403
    AuthenticationRequiredError  → 401

Request bodies that are JSON but not an object are rejected with 400
before they reach a service (see ``json_object``).
"""

import logging

from flask import abort, make_response, request
from werkzeug.exceptions import HTTPException

from coursedesk.core.exceptions import (
    AuthenticationRequiredError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from coursedesk.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def register_error_handlers(bp):
    """Attach the shared service-exception handlers to ``bp``."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_CONSTRAINT, str(error), details=error.details or {})

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error), field=error.field)

    @bp.errorhandler(PermissionDeniedError)
    def _handle_forbidden(error: PermissionDeniedError):
        logger.warning("Permission denied on %s: %s", request.endpoint, error)
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(AuthenticationRequiredError)
    def _handle_unauthenticated(error: AuthenticationRequiredError):
        return api_error(E.UNAUTHENTICATED, str(error))

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")


def query_int(name: str):
    """Integer query-string parameter, or None when absent/invalid."""
    return request.args.get(name, type=int)


def json_object() -> dict:
    """The JSON request body as a dict; an absent or non-JSON body is ``{}``.

    Lists, strings and numbers abort with 400 ``ERR_VALIDATION_MALFORMED``.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(make_response(api_error(
            E.VALIDATION_MALFORMED, "Request body must be a JSON object",
            details={"body": "Must be a JSON object"},
        )))
    return data

"""Error taxonomy for the approval workflow and its HTTP mapping."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from flask import Flask

logger = logging.getLogger(__name__)


class WorkflowError(Exception):
    """Base class for errors reported synchronously to the caller."""

    status_code = 400
    default_message = "Request could not be processed."

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload: Dict[str, Any] = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(WorkflowError):
    status_code = 400
    default_message = "Validation failed."


class UnsupportedFlowTypeError(WorkflowError):
    status_code = 422
    default_message = "Unsupported approval flow type."


class NotFoundError(WorkflowError):
    status_code = 404
    default_message = "Resource not found."


class InvalidStateError(WorkflowError):
    status_code = 409
    default_message = "Operation not allowed in the current state."


class AuthorizationError(WorkflowError):
    status_code = 403
    default_message = "Insufficient permissions."


class ExternalServiceError(WorkflowError):
    status_code = 503
    default_message = "External service unavailable."


def register_error_handlers(app: Flask) -> None:
    from app.utils.helpers import json_response

    @app.errorhandler(WorkflowError)
    def handle_workflow_error(error: WorkflowError):
        logger.info("%s: %s", type(error).__name__, error.message)
        return json_response(error.to_dict(), status=error.status_code)

"""Error taxonomy shared by the document transit and inventory services.

Every error is a ``ValueError`` so callers that only care about "the request
was rejected" can keep catching ``ValueError``; callers that need the reason
inspect ``kind``.
"""
from __future__ import annotations

import logging

from flask import Flask, jsonify, request

from app.core.extensions import db

logger = logging.getLogger(__name__)


class DomainError(ValueError):
    kind = "error"
    status_code = 400

    def __init__(self, message: str, details: dict[str, object] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"error": self.message, "kind": self.kind}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(DomainError):
    kind = "validation"
    status_code = 400


class AuthorizationError(DomainError):
    kind = "authorization"
    status_code = 403


class NotFoundError(DomainError):
    kind = "not_found"
    status_code = 404


class StateConflictError(DomainError):
    kind = "state_conflict"
    status_code = 409


class DuplicateError(DomainError):
    kind = "duplicate"
    status_code = 409


class CatalogUnavailableError(DomainError):
    kind = "catalog_unavailable"
    status_code = 503


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def domain_error(error: DomainError):
        db.session.rollback()
        logger.warning("%s %s rechazado (%s): %s", request.method, request.path, error.kind, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(401)
    def unauthorized(_error):
        return jsonify({"error": "No autorizado", "kind": "unauthenticated"}), 401

    @app.errorhandler(403)
    def forbidden(_error):
        return jsonify({"error": "Acceso denegado", "kind": "authorization"}), 403

    @app.errorhandler(404)
    def not_found(_error):
        return jsonify({"error": "Recurso no encontrado", "kind": "not_found"}), 404

"""Error taxonomy for the API and the Flask handlers that render it.

Every client-facing failure is an ``ApiError`` subclass carrying its HTTP
status. Storage failures are never raised as ``ApiError`` directly; they
surface as ``SQLAlchemyError`` and are converted to a sanitized
``DatabaseError`` response at the handler boundary.
"""

from flask import jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException


class ApiError(Exception):
    status_code = 500
    message = 'Internal server error.'

    def __init__(self, message=None, **payload):
        self.message = message or self.message
        self.payload = payload
        super().__init__(self.message)

    def to_dict(self):
        body = {'error': self.message}
        body.update({key: value for key, value in self.payload.items() if value})
        return body


# Auth Gate

class MissingCredentials(ApiError):
    status_code = 401
    message = 'Missing required auth headers'


class InvalidToken(ApiError):
    status_code = 403
    message = 'Invalid API token'


class TokenDisabled(ApiError):
    status_code = 403
    message = 'Disabled API token'


class IdentityMismatch(ApiError):
    status_code = 403
    message = 'API token not authorized for use with this server'


# Request bodies

class MissingFields(ApiError):
    """Body absent, not an object, or a required key missing/null/invalid."""
    status_code = 400
    message = 'Missing or invalid body JSON data'

    def __init__(self, missing=None, null_values=None, invalid=None, message=None):
        super().__init__(message, missing=missing, nullValues=null_values, invalid=invalid)


class OutdatedData(ApiError):
    status_code = 400
    message = 'Outdated data'

    def __init__(self, field, message=None):
        super().__init__(message, field=field)


# Round lifecycle

class Forbidden(ApiError):
    status_code = 403
    message = 'You cannot finalize a round you did not create'


class Locked(ApiError):
    status_code = 423
    message = 'Round has already been finalized'


class NotFound(ApiError):
    status_code = 404
    message = 'Not found'


class DatabaseError(ApiError):
    status_code = 500
    message = 'Database error'


def register_error_handlers(app):
    from progression_api import db

    @app.errorhandler(ApiError)
    def handle_api_error(exc):
        # Nothing a failed request touched may stay pending in the session
        db.session.rollback()
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(exc):
        db.session.rollback()
        app.logger.error(f"[db-error] {request.method} {request.path}: {exc}")
        err = DatabaseError()
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc):
        if isinstance(exc, HTTPException):
            return exc
        db.session.rollback()
        app.logger.exception(f"[error] {request.method} {request.path}")
        message = str(exc) if app.debug else 'Internal server error.'
        return jsonify({'error': message}), 500

"""
Application errors and the JSON error envelope
"""
import logging
from flask import jsonify
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Error raised by service code with an HTTP status and machine readable code"""
    status_code = 500
    default_code = 'APP_ERROR'
    default_message = 'Application error'

    def __init__(self, message=None, code=None):
        self.message = message or self.default_message
        self.code = code or self.default_code
        super().__init__(self.message)

    def to_dict(self):
        return {'message': self.message, 'code': self.code}


class ValidationError(AppError):
    status_code = 400
    default_code = 'VALIDATION_ERROR'
    default_message = 'Invalid request'


class AuthRequired(AppError):
    status_code = 401
    default_code = 'AUTH_REQUIRED'
    default_message = 'Unauthorized'


class RecordTokenError(AppError):
    """Record access token rejected; every subclass answers 401"""
    status_code = 401
    default_code = 'INVALID_TOKEN'
    default_message = 'Invalid access token'


class InvalidToken(RecordTokenError):
    default_code = 'INVALID_TOKEN'
    default_message = 'Invalid access token'


class TokenExpired(RecordTokenError):
    default_code = 'TOKEN_EXPIRED'
    default_message = 'Access token has expired'


class WrongScope(RecordTokenError):
    default_code = 'WRONG_SCOPE'
    default_message = 'Invalid token scope'


class RecordMismatch(RecordTokenError):
    default_code = 'RECORD_MISMATCH'
    default_message = 'Token does not match record'


class Forbidden(AppError):
    status_code = 403
    default_code = 'FORBIDDEN'
    default_message = 'Forbidden'


class NotFound(AppError):
    status_code = 404
    default_code = 'NOT_FOUND'
    default_message = 'Not found'


class Conflict(AppError):
    status_code = 409
    default_code = 'CONFLICT'
    default_message = 'Conflict'


class RequestExpired(AppError):
    status_code = 400
    default_code = 'REQUEST_EXPIRED'
    default_message = 'Request expired'


class RequestNotApprovable(AppError):
    status_code = 400
    default_code = 'REQUEST_NOT_APPROVABLE'
    default_message = 'Request cannot be approved'


class RequestNotRejectable(AppError):
    status_code = 400
    default_code = 'REQUEST_NOT_REJECTABLE'
    default_message = 'Request cannot be rejected'


def error_response(message, code, status_code):
    return jsonify({'success': False, 'error': {'message': message, 'code': code}}), status_code


def register_error_handlers(app):
    """Map every error to the uniform envelope"""

    @app.errorhandler(AppError)
    def handle_app_error(error):
        if error.status_code >= 500:
            logger.error(f"{error.code}: {error.message}")
        return error_response(error.message, error.code, error.status_code)

    @app.errorhandler(RequestEntityTooLarge)
    def handle_body_too_large(error):
        logger.warning("Request body exceeded MAX_CONTENT_LENGTH")
        return error_response('Request body is too large', 'FILE_TOO_LARGE', 400)

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        code = (error.name or 'HTTP Error').upper().replace(' ', '_')
        return error_response(error.description or error.name, code, error.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception(f"Unhandled error: {error}")
        return error_response('Internal server error', 'INTERNAL_ERROR', 500)

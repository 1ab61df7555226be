"""
Error taxonomy and JSON error responses.

Every failure surfaced to an API caller has the shape
``{"success": false, "error": "<message>"}`` with a matching status code.
"""
from flask import current_app, jsonify, request
from werkzeug.exceptions import HTTPException


class VoiceTextError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_response(self):
        return jsonify({'success': False, 'error': self.message}), self.status_code


class ValidationError(VoiceTextError):
    """Bad enum value, missing required field, or reference to a missing entity."""

    status_code = 400


class AuthorizationError(VoiceTextError):
    """No session (401), or a session without the required role (403)."""

    status_code = 403


class NotFoundError(VoiceTextError):
    status_code = 404


class ExternalServiceError(VoiceTextError):
    """A TTS provider or payment provider call failed."""

    status_code = 502


def register_error_handlers(app):
    @app.errorhandler(VoiceTextError)
    def handle_voicetext_error(error):
        if error.status_code >= 500:
            current_app.logger.error(f"[ERROR] {request.method} {request.path}: {error.message}")
        return error.to_response()

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        # Keep HTML error pages for browser routes, JSON for the API
        if request.path.startswith('/api/'):
            return jsonify({'success': False, 'error': error.description}), error.code
        return error

# Error types and JSON error handlers
import logging
import os
import sys
import threading

from flask import jsonify
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

logger = logging.getLogger(__name__)

INVALID_UPLOAD_MESSAGE = 'Invalid file type or size. Only JPEG, PNG, WEBP up to 10MB allowed.'


class APIError(Exception):
    """Base exception for errors reported to the client"""
    status_code = 500

    def __init__(self, message, status_code=None, details=None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        super().__init__(self.message)

    def to_dict(self, expose_details=True):
        """Convert error to JSON-serializable dict"""
        body = {'error': self.message}
        if self.details and expose_details:
            body['details'] = self.details
        return body


class ValidationError(APIError):
    status_code = 400


class AuthError(APIError):
    status_code = 401


class ForbiddenError(APIError):
    status_code = 403


class NotFoundError(APIError):
    status_code = 404


class ConflictError(APIError):
    status_code = 409


class PipelineError(APIError):
    """Enhancement pipeline failed (provider, network or file I/O)"""
    status_code = 500


class StoreUnavailable(APIError):
    status_code = 503

    def __init__(self, details=None):
        super().__init__('Database not available. Please try again later.', details=details)


def register_error_handlers(app):
    expose = app.config.get('APP_ENV') != 'production'

    @app.errorhandler(APIError)
    def handle_api_error(error):
        if error.status_code >= 500:
            app.logger.error(f'{error.__class__.__name__}: {error.message} ({error.details})')
        else:
            app.logger.debug(f'{error.__class__.__name__}: {error.message}')
        return jsonify(error.to_dict(expose_details=expose)), error.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(error):
        # The hard body cap is reported the same way as an oversized upload
        app.logger.debug('Request body over MAX_CONTENT_LENGTH')
        return jsonify({'error': INVALID_UPLOAD_MESSAGE}), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        if error.code == 404:
            return jsonify({'error': 'Route not found'}), 404
        return jsonify({'error': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        app.logger.exception('Unhandled error')
        message = str(error) if expose else 'Something went wrong!'
        return jsonify({'error': message}), 500


def install_process_hooks(delay=1.0, exit_code=1):
    """Log uncaught exceptions and force the process down after `delay` seconds.

    A crashed worker is not trusted to keep serving, so instead of carrying
    on the process exits and leaves restarting to the supervisor.
    """

    def _schedule_exit():
        timer = threading.Timer(delay, os._exit, args=(exit_code,))
        timer.daemon = True
        timer.start()
        return timer

    def _excepthook(exc_type, exc_value, exc_tb):
        logger.critical('Uncaught exception', exc_info=(exc_type, exc_value, exc_tb))
        logger.critical('Server shutting down due to uncaught exception')
        _schedule_exit()

    def _thread_excepthook(args):
        if args.exc_type is SystemExit:
            return
        logger.critical(
            f'Uncaught exception in thread {args.thread.name if args.thread else "?"}',
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )
        _schedule_exit()

    sys.excepthook = _excepthook
    threading.excepthook = _thread_excepthook
    return _excepthook, _thread_excepthook

"""API error taxonomy rendered as ``{"error": message}`` JSON bodies."""


class ApiError(Exception):
    status_code = 500
    default_message = 'Internal server error'

    def __init__(self, message=None, status_code=None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self):
        return {'error': self.message}


class AuthenticationFailure(ApiError):
    status_code = 401
    default_message = 'Unauthorized'


class AuthorizationFailure(ApiError):
    status_code = 403
    default_message = 'Forbidden'


class ValidationFailure(ApiError):
    status_code = 400
    default_message = 'Invalid request'


class NotFound(ApiError):
    status_code = 404
    default_message = 'Not found'


class RateLimited(ApiError):
    status_code = 429
    default_message = 'Too many requests'

    def __init__(self, message=None, retry_after=None):
        super().__init__(message)
        self.retry_after = retry_after


class BackingStoreUnavailable(ApiError):
    status_code = 503
    default_message = 'Database is not available'


class PersistenceFailure(ApiError):
    status_code = 500
    default_message = 'Unable to save changes'

"""Error kinds raised by the scoring, aggregation and approval modules.

Each error carries a ``kind`` tag and an HTTP status hint; the web layer maps
them to responses, the core never turns them into return values.
"""


class ScoreError(Exception):
    kind = 'error'
    status_code = 500
    default_message = 'Unable to process request.'

    def __init__(self, message=''):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidInput(ScoreError):
    kind = 'invalid_input'
    status_code = 400
    default_message = 'Invalid input.'


class Forbidden(ScoreError):
    kind = 'forbidden'
    status_code = 403
    default_message = 'Forbidden.'


class NotFound(ScoreError):
    kind = 'not_found'
    status_code = 404
    default_message = 'Not found.'


class Conflict(ScoreError):
    kind = 'conflict'
    status_code = 409
    default_message = 'Conflicting change.'


class StorageUnavailable(ScoreError):
    kind = 'storage_unavailable'
    status_code = 503
    default_message = 'Data store is unavailable.'

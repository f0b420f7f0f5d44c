class SessionError(Exception):
    """Base for recoverable session errors.

    Callers resynchronize (re-read status) rather than crash; the HTTP layer
    renders these as ``{"error", "code"}`` JSON with ``status_code``.
    """
    status_code = 400
    code = 'session_error'
    default_message = 'Session error'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class NotFound(SessionError):
    status_code = 404
    code = 'not_found'
    default_message = 'Not found'


class InvalidState(SessionError):
    status_code = 409
    code = 'invalid_state'
    default_message = 'Operation not allowed in the current session state'


class SessionNotActive(InvalidState):
    code = 'session_not_active'
    default_message = 'Session is not accepting answers for this question'


class InvalidTransition(SessionError):
    status_code = 409
    code = 'invalid_transition'
    default_message = 'Invalid session transition'


class NoParticipants(SessionError):
    code = 'no_participants'
    default_message = 'No participants have joined'


class Unauthorized(SessionError):
    status_code = 403
    code = 'unauthorized'
    default_message = 'Only the session host may do that'


class ValidationError(SessionError):
    code = 'validation_error'
    default_message = 'Invalid request'


class AuthError(SessionError):
    status_code = 401
    code = 'auth_error'
    default_message = 'Invalid username or password'


class JoinCodeUnavailable(SessionError):
    status_code = 503
    code = 'join_code_unavailable'
    default_message = 'Could not allocate a join code, try again shortly'

from typing import Dict, Optional

UNAVAILABLE_MESSAGE = 'This document is no longer available for signing.'


class SigningError(Exception):
    """Base exception for client-facing signing workflow errors"""
    status_code = 400
    code = 'SIGNING_ERROR'
    default_message = 'Signing request could not be processed.'

    def __init__(self, message: Optional[str] = None, details: Optional[Dict] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


class NotFound(SigningError):
    """Raised for unknown ids and tokens that do not resolve to an active link"""
    status_code = 404
    code = 'NOT_FOUND'
    default_message = UNAVAILABLE_MESSAGE


class InvalidTransition(SigningError):
    """Raised when a state machine rule would be violated"""
    status_code = 409
    code = 'INVALID_TRANSITION'
    default_message = 'This action is not allowed in the current state.'


class InvalidState(InvalidTransition):
    """Raised when the recipient can no longer act (e.g. declined)"""
    code = 'INVALID_STATE'
    default_message = 'This recipient can no longer sign.'


class NotYourTurn(SigningError):
    """Raised when a recipient acts before every lower signing order has signed"""
    status_code = 409
    code = 'NOT_YOUR_TURN'
    default_message = 'It is not your turn to sign yet.'


class ValidationFailed(SigningError):
    """Raised when submitted field values are missing or malformed"""
    status_code = 400
    code = 'VALIDATION_FAILED'
    default_message = 'Some fields are missing or invalid.'

    def __init__(self, field_errors: Dict[str, str], message: Optional[str] = None):
        self.field_errors = field_errors
        super().__init__(message, details={
            'field_ids': sorted(field_errors.keys()),
            'field_errors': field_errors,
        })


class EnvelopeClosed(SigningError):
    """Raised when a mutating call targets a cancelled or completed envelope"""
    status_code = 410
    code = 'ENVELOPE_CLOSED'
    default_message = UNAVAILABLE_MESSAGE

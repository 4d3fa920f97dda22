from rest_framework.response import Response
from rest_framework import status
import logging
from apps.domain.exceptions import SigningError

logger = logging.getLogger('apps')


def error_response(message: str, status_code: int = status.HTTP_400_BAD_REQUEST, details: dict = None, code: str = None) -> Response:
    response_data = {
        'error': message,
        'status': status_code
    }

    if code:
        response_data['code'] = code
    if details:
        response_data['details'] = details

    if status_code >= 500:
        logger.error(f'Error response: {message} - {details}')
    else:
        logger.info(f'Error response {status_code}: {code or message}')

    return Response(response_data, status=status_code)


def signing_error_response(error: SigningError) -> Response:
    return error_response(error.message, error.status_code, error.details, error.code)

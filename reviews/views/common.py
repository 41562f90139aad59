import logging

from rest_framework import status
from rest_framework.response import Response

from ..errors import ErrorCode, ServiceError

logger = logging.getLogger(__name__)

HTTP_STATUS_BY_CODE = {
    ErrorCode.TEAM_EXISTS: status.HTTP_400_BAD_REQUEST,
    ErrorCode.PR_EXISTS: status.HTTP_409_CONFLICT,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.PR_MERGED: status.HTTP_409_CONFLICT,
    ErrorCode.NOT_ASSIGNED: status.HTTP_409_CONFLICT,
    ErrorCode.NO_CANDIDATE: status.HTTP_409_CONFLICT,
}


def first_error(errors) -> str:
    """Первая ошибка валидации DRF одной строкой"""
    field, messages = next(iter(errors.items()))
    if isinstance(messages, dict):
        index = next(iter(messages), None)
        # ошибки вложенных элементов many=True: {индекс: ошибки}
        if isinstance(index, int):
            return f'{field}[{index}]: {first_error(messages[index])}'
        return f'{field}: {first_error(messages)}'
    for i, message in enumerate(messages):
        # ошибки вложенных элементов приходят списком словарей
        if isinstance(message, dict):
            if message:
                return f'{field}[{i}]: {first_error(message)}'
        else:
            return f'{field}: {message}'
    return f'{field}: invalid'


def error_response(code: str, message: str, http_status: int) -> Response:
    return Response({
        'error': {
            'code': code,
            'message': message
        }
    }, status=http_status)


def service_error_response(error: ServiceError) -> Response:
    return error_response(error.code.value, error.message, HTTP_STATUS_BY_CODE[error.code])


def validation_error_response(message: str) -> Response:
    return error_response('VALIDATION_ERROR', message, status.HTTP_400_BAD_REQUEST)


def server_error_response(view_name: str) -> Response:
    logger.exception("Unhandled error in %s", view_name)
    return error_response('SERVER_ERROR', 'Internal server error', status.HTTP_500_INTERNAL_SERVER_ERROR)

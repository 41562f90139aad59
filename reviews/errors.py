from enum import Enum


class ErrorCode(str, Enum):
    TEAM_EXISTS = 'TEAM_EXISTS'
    PR_EXISTS = 'PR_EXISTS'
    NOT_FOUND = 'NOT_FOUND'
    PR_MERGED = 'PR_MERGED'
    NOT_ASSIGNED = 'NOT_ASSIGNED'
    NO_CANDIDATE = 'NO_CANDIDATE'


class ServiceError(Exception):
    """
    Доменная ошибка сервиса: стабильный код и человекочитаемое сообщение
    """

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message

    def __str__(self):
        return self.message

    def __repr__(self):
        return f"ServiceError({self.code.value}, {self.message!r})"

    def as_dict(self) -> dict:
        return {'code': self.code.value, 'message': self.message}

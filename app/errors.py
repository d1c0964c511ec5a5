"""Ошибки витрины.

Доменный код бросает эти исключения, а ``app.main`` переводит их в HTTP-ответы.
Флаг ``retryable`` говорит клиенту, можно ли просто повторить действие или
нужно начать заново (например, оформление заказа).
"""


class StorefrontError(Exception):
    status_code = 400
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict:
        return {
            "error": self.__class__.__name__,
            "detail": self.message,
            "retryable": self.retryable,
        }


class NetworkError(StorefrontError):
    """API недоступен или ответил не 2xx"""
    status_code = 502
    retryable = True


class LoadError(NetworkError):
    """Не удалось загрузить схему зала"""


class AuthError(StorefrontError):
    """401: сессия сброшена, нужен повторный вход"""
    status_code = 401


class ValidationError(StorefrontError):
    status_code = 422

    def __init__(self, errors: dict, message: str = "Validation failed"):
        super().__init__(message)
        self.errors = dict(errors)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["fields"] = self.errors
        return data


class StateError(StorefrontError):
    """Нет контекста бронирования и т.п. - начать заново с каталога"""
    status_code = 409


class CheckoutInProgress(StateError):
    retryable = True


class CheckoutError(StorefrontError):
    status_code = 402
    retryable = True


class PaymentDeclined(CheckoutError):
    pass


class SelectionLimitExceeded(StorefrontError):
    status_code = 429

    def __init__(self, limit: int):
        super().__init__(f"You can select maximum {limit} seats at a time")
        self.limit = limit


class InvalidTransition(StorefrontError):
    status_code = 409

    def __init__(self, current, requested, message: str = ""):
        current = getattr(current, "value", current)
        requested = getattr(requested, "value", requested)
        super().__init__(message or f"Cannot change booking status from {current} to {requested}")
        self.current = current
        self.requested = requested


class CancellationWindowClosed(InvalidTransition):
    pass


class NotFound(StorefrontError):
    status_code = 404


class Forbidden(StorefrontError):
    status_code = 403


class SeatsAlreadyBooked(StateError):
    """Место уже продано другой бронью - выбрать места заново"""

    def __init__(self, labels):
        super().__init__(f"Seats already booked: {', '.join(labels)}")
        self.labels = list(labels)

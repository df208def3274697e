"""
Доменные исключения сервиса велосипедов.

Исключения не зависят от транспорта; main.py переводит их в HTTP-ответы.
"""
from typing import List, Tuple


class BikeServiceError(Exception):
    """Base exception for all bike service errors."""


class ValidationError(BikeServiceError):
    """Raised when a request payload breaks one or more field rules."""

    def __init__(self, errors: List[Tuple[str, str]]):
        self.errors = list(errors)
        super().__init__("; ".join(f"{field}: {reason}" for field, reason in self.errors))

    def as_list(self) -> List[dict]:
        return [{"field": field, "reason": reason} for field, reason in self.errors]


class NotFoundError(BikeServiceError):
    def __init__(self, bike_id):
        self.bike_id = bike_id
        super().__init__(f'BikeId "{bike_id}" does not exist.')


class InvalidTransitionError(BikeServiceError):
    """Raised when reserve/clear finds the bike in the wrong state."""

    def __init__(self, bike_id, available: bool):
        self.bike_id = bike_id
        self.available = available
        state = "available" if available else "reserved"
        super().__init__(f"Bike {bike_id} is already {state}")


class CodecError(BikeServiceError):
    """Stored data cannot be decoded to the declared field type."""

    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


class MissingFieldError(CodecError):
    def __init__(self, path: str):
        super().__init__(path, "field is missing from stored record")


class StoreError(BikeServiceError):
    """Backend failure that is not a connectivity loss."""


class StoreUnavailableError(StoreError):
    """Connection to the backend store is lost. Fatal to the process."""

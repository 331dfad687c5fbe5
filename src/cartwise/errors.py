"""Error taxonomy and typed operation results."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar, Union, cast

T = TypeVar("T")


class CartwiseError(Exception):
    """Base class for errors raised by the Cartwise core."""


class NotFoundError(CartwiseError, LookupError):
    """Raised when a referenced item, category, cart, or cart item does not exist."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class StateError(CartwiseError):
    """Raised when an operation is invalid for the cart's current phase."""

    def __init__(self, cart_id: str, status: object, operation: str):
        label = getattr(status, "value", status)
        super().__init__(f"Cannot {operation} cart {cart_id} while it is {label}")
        self.cart_id = cart_id
        self.status = status
        self.operation = operation


class ValidationCode(str, Enum):
    EMPTY_NAME = "empty_name"
    EMPTY_STORE = "empty_store"
    DUPLICATE_ITEM = "duplicate_item"
    DUPLICATE_CATEGORY = "duplicate_category"
    DUPLICATE_CART = "duplicate_cart"
    INVALID_PRICE = "invalid_price"
    INVALID_QUANTITY = "invalid_quantity"
    INVALID_BUDGET = "invalid_budget"
    UNKNOWN_STORE = "unknown_store"


@dataclass(frozen=True)
class ValidationError:
    """Rejected user input. Travels inside ``Outcome``; never raised."""

    code: ValidationCode
    message: str
    field: Optional[str] = None


Failure = Union[ValidationError, StateError]


class OutcomeError(CartwiseError):
    """Raised by ``Outcome.unwrap`` when the outcome carries a failure."""

    def __init__(self, failure: Failure):
        message = failure.message if isinstance(failure, ValidationError) else str(failure)
        super().__init__(message)
        self.failure = failure


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of an operation that may fail with a typed, non-exceptional error."""

    value: Optional[T] = None
    error: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: Failure) -> "Outcome[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise OutcomeError(self.error)
        return cast(T, self.value)


def invalid(code: ValidationCode, message: str, field: Optional[str] = None) -> Outcome:
    """Shorthand for a failed outcome carrying a ``ValidationError``."""

    return Outcome.failure(ValidationError(code=code, message=message, field=field))


__all__ = [
    "CartwiseError",
    "NotFoundError",
    "StateError",
    "ValidationCode",
    "ValidationError",
    "Failure",
    "Outcome",
    "OutcomeError",
    "invalid",
]

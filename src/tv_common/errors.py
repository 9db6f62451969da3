"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Entity
  2xxx: Ledger
  3xxx: Trade
  4xxx: Settlement
  9xxx: System

`retryable` separates "temporarily unavailable, retry" from
"structurally invalid request, do not retry".
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
        retryable: bool = False,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        self.retryable = retryable
        super().__init__(message)


# --- 1xxx: Entity ---

class EntityNotFoundError(AppError):
    def __init__(self, entity_id: str) -> None:
        super().__init__(1001, f"Entity not found: {entity_id}", 404)


class EntityExistsError(AppError):
    def __init__(self, entity_id: str) -> None:
        super().__init__(1002, f"Entity already exists: {entity_id}", 409)


# --- 2xxx: Ledger ---

class ConflictError(AppError):
    def __init__(self, entity_id: str, trigger_event_id: str | None) -> None:
        self.entity_id = entity_id
        self.trigger_event_id = trigger_event_id
        super().__init__(
            2001,
            f"Ledger already holds trigger {trigger_event_id} for entity {entity_id}",
            409,
        )


class MissingValuationError(AppError):
    def __init__(self, entity_id: str) -> None:
        self.entity_id = entity_id
        super().__init__(2002, f"No valuation recorded for entity {entity_id}", 422)


# --- 3xxx: Trade ---

class InvalidQuantityError(AppError):
    def __init__(self, quantity: object) -> None:
        super().__init__(3001, f"Quantity must be a positive integer, got {quantity!r}", 422)


class OrderLimitExceededError(AppError):
    def __init__(self, quantity: int, limit: int) -> None:
        super().__init__(3002, f"Order quantity {quantity} exceeds the limit of {limit}", 422)


class OverdraftError(AppError):
    def __init__(self, requested: int, held: int) -> None:
        super().__init__(
            3003, f"Cannot sell {requested} shares: position holds {held}", 422
        )


class InsufficientCapitalError(AppError):
    def __init__(self, amount: int, market_cap: int) -> None:
        super().__init__(
            3004,
            f"Sale of {amount} cents exceeds market cap of {market_cap} cents",
            422,
        )


class PriceMismatchError(AppError):
    def __init__(self, agreed: int, nav: int) -> None:
        super().__init__(
            3005, f"Price mismatch: agreed {agreed} cents, current NAV {nav} cents", 422
        )


class InvalidPriceError(AppError):
    def __init__(self, price: int) -> None:
        super().__init__(3006, f"Price per share must be positive, got {price} cents", 422)


class InvalidTradeDateError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3007, f"Invalid trade date: {detail}", 422)


# --- 4xxx: Settlement ---

class InvalidMatchError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4001, f"Invalid match: {detail}", 422)


# --- 9xxx: System ---

class ConcurrencyConflictError(AppError):
    def __init__(self, detail: str = "Concurrent update on the same entity") -> None:
        super().__init__(9001, detail, 503, retryable=True)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)

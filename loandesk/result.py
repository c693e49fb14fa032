"""Result pattern for non-raising checks in LoanDesk.

Used where a caller wants to inspect a failure instead of catching an
exception, e.g. the loan simulator validating terms while the operator
is still typing.
"""
from dataclasses import dataclass
from typing import Optional, TypeVar, Generic

T = TypeVar('T')


@dataclass
class Result(Generic[T]):
    """Represents the outcome of an operation.

    Attributes:
        success: Whether the operation succeeded.
        value: The return value on success, None on failure.
        error: Error message on failure, None on success.
        error_type: Category of error, one of the ErrorType constants.

    Usage:
        result = engine.loans.simulate(client_id, 500, 4)
        if result:
            show_terms(result.value)
        else:
            show_error(result.error)
    """
    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def ok(cls, value: T = None) -> 'Result[T]':
        """Create a successful result."""
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str, error_type: str = None) -> 'Result[T]':
        """Create a failure result."""
        return cls(success=False, error=error, error_type=error_type)

    def __bool__(self) -> bool:
        return self.success

    def unwrap(self) -> T:
        """Get the value, raising if the operation failed.

        Raises:
            ValueError: If the operation failed.
        """
        if not self.success:
            raise ValueError(f"Result unwrap failed: {self.error}")
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Get the value or a default if the operation failed."""
        return self.value if self.success else default


class ErrorType:
    """Standard error type constants."""
    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION"
    DATABASE = "DATABASE"
    INSUFFICIENT_CREDIT = "INSUFFICIENT_CREDIT"
    COMPLETED = "COMPLETED"

"""Custom exceptions for LoanDesk application."""


class LoanDeskError(Exception):
    """Base exception for all LoanDesk errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class DatabaseError(LoanDeskError):
    """Raised when a database operation fails."""
    pass


class TransactionError(DatabaseError):
    """Raised when a database transaction fails to complete."""
    pass


class ValidationError(LoanDeskError):
    """Raised when user input fails a business rule."""

    def __init__(self, field: str, message: str):
        super().__init__(message, {'field': field})
        self.field = field


class ClientNotFoundError(LoanDeskError):
    """Raised when a client cannot be found."""

    def __init__(self, client_id: int = None, name: str = None):
        details = {}
        if client_id:
            details['client_id'] = client_id
        if name:
            details['name'] = name

        message = "Client not found"
        if name:
            message = f"Client '{name}' not found"
        elif client_id:
            message = f"Client with ID {client_id} not found"

        super().__init__(message, details)


class LoanNotFoundError(LoanDeskError):
    """Raised when a loan cannot be found."""

    def __init__(self, loan_id: int = None, client_id: int = None):
        details = {}
        if loan_id:
            details['loan_id'] = loan_id
        if client_id:
            details['client_id'] = client_id

        message = "Loan not found"
        if loan_id:
            message = f"Loan #{loan_id} not found"

        super().__init__(message, details)


class LoanCompletedError(LoanDeskError):
    """Raised when a payment is registered against a loan that is already paid off."""

    def __init__(self, loan_id: int, weeks_paid: int, total_weeks: int):
        details = {
            'loan_id': loan_id,
            'weeks_paid': weeks_paid,
            'total_weeks': total_weeks
        }
        message = f"Loan #{loan_id} is already completed ({weeks_paid}/{total_weeks} installments paid)"
        super().__init__(message, details)


class InsufficientCreditError(LoanDeskError):
    """Raised when a loan exceeds the client's available credit."""

    def __init__(self, required: float, available: float, client_id: int = None):
        details = {
            'required': required,
            'available': available
        }
        if client_id:
            details['client_id'] = client_id

        message = f"Loan amount exceeds available credit: required {required:.2f}, available {available:.2f}"
        super().__init__(message, details)


class AttachmentError(LoanDeskError):
    """Raised when an uploaded file is rejected or cannot be stored."""

    def __init__(self, message: str, path: str = None):
        details = {'path': path} if path else {}
        super().__init__(message, details)

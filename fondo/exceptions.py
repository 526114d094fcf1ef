"""Custom exceptions for the Fondo core."""


class FondoError(Exception):
    """Base exception for all Fondo errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class InvalidArgumentError(FondoError):
    """Raised when an amount, rate or term is outside its valid range."""
    pass


class InvalidTermError(InvalidArgumentError):
    """Raised when a loan term is zero or otherwise unusable."""

    def __init__(self, term):
        super().__init__(f"Invalid loan term: {term}", {'term': term})


class CosignerRequiredError(InvalidArgumentError):
    """Raised when a client requests a loan without an associate co-signer."""

    def __init__(self, user_id: str, reason: str = "Clients require an associate co-signer"):
        super().__init__(reason, {'user_id': user_id})


class MemberValidationError(InvalidArgumentError):
    """Raised when member registration or profile data is invalid."""
    pass


class LoanNotFoundError(FondoError):
    """Raised when a loan cannot be found."""

    def __init__(self, loan_id: str = None, user_id: str = None):
        details = {}
        if loan_id:
            details['loan_id'] = loan_id
        if user_id:
            details['user_id'] = user_id

        message = "Loan not found"
        if loan_id:
            message = f"Loan '{loan_id}' not found"

        super().__init__(message, details)


class MemberNotFoundError(FondoError):
    """Raised when a member cannot be found."""

    def __init__(self, user_id: str = None, email: str = None):
        details = {}
        if user_id:
            details['user_id'] = user_id
        if email:
            details['email'] = email

        message = "Member not found"
        if email:
            message = f"Member '{email}' not found"
        elif user_id:
            message = f"Member with ID {user_id} not found"

        super().__init__(message, details)


class InvalidTransitionError(FondoError):
    """Raised when a loan cannot move from its current status."""

    def __init__(self, loan_id: str, status: str, action: str):
        details = {
            'loan_id': loan_id,
            'status': status,
            'action': action,
        }
        message = f"Cannot {action} loan '{loan_id}' (status: {status})"
        super().__init__(message, details)


class DatabaseError(FondoError):
    """Raised when a database operation fails."""
    pass


class TransactionError(DatabaseError):
    """Raised when a database transaction fails to complete."""
    pass


class TransactionConflictError(DatabaseError):
    """Raised when a loan changed between the balance read and the write."""

    def __init__(self, loan_id: str, attempts: int = None):
        details = {'loan_id': loan_id}
        if attempts:
            details['attempts'] = attempts
        super().__init__(f"Concurrent update on loan '{loan_id}'", details)


class StoreUnavailableError(DatabaseError):
    """Raised when the record store cannot be reached."""
    pass

from typing import Optional


class ServiceError(Exception):
    pass


class ValidationError(ServiceError):
    def __init__(self, message: str = "Invalid input", errors: Optional[list[dict]] = None):
        super().__init__(message)
        self.errors = errors or []


class AuthenticationError(ServiceError):
    pass


class NotFoundError(ServiceError):
    pass


class InsufficientFundsError(ServiceError):
    pass


class InvalidAmountError(ServiceError):
    pass


class InvalidStateTransitionError(ServiceError):
    pass


class TransientDependencyError(ServiceError):
    pass


class DuplicateKeyError(ServiceError):
    pass

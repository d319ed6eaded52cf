class RiderServiceError(Exception):
    pass


class ValidationError(RiderServiceError):
    pass


class InvalidAmountError(ValidationError):
    pass


class InvalidStateTransitionError(ValidationError):
    pass


class InsufficientBalanceError(RiderServiceError):
    pass


class NotFoundError(RiderServiceError):
    pass


class OrderNotFoundError(NotFoundError):
    pass


class WithdrawalNotFoundError(NotFoundError):
    pass


class StorageError(RiderServiceError):
    pass

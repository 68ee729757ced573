class DomainException(Exception):
    pass


class ConfigurationError(DomainException):
    """Merchant credentials or gateway settings are missing."""
    pass


class InvalidSignatureError(DomainException):
    pass


class MalformedCallbackError(InvalidSignatureError):
    pass


class PaymentFailedError(DomainException):
    def __init__(self, transaction_id: str, status: str):
        self.transaction_id = transaction_id
        self.status = status
        super().__init__(f"Payment {transaction_id} was not completed (status: {status})")


class QuoteMismatchError(DomainException):
    pass


class ProductNotFoundError(DomainException):
    pass


class ProductUnavailableError(DomainException):
    def __init__(self, product_id: str, available: int, required: int):
        self.product_id = product_id
        self.available = available
        self.required = required
        super().__init__(
            f"Product {product_id} is not available. Available: {available}, required: {required}"
        )


class MetadataNotFoundError(DomainException):
    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"No payment metadata staged for transaction {transaction_id}")


class PaymentNotVerifiedError(DomainException):
    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Payment {transaction_id} has not been verified by the gateway")


class DuplicateTransactionError(DomainException):
    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} already exists")


class OrderCreationError(DomainException):
    def __init__(self, transaction_id: str, cause: Exception):
        self.transaction_id = transaction_id
        self.cause = cause
        super().__init__(f"Failed to create order for transaction {transaction_id}: {cause}")


class InventoryUpdateError(DomainException):
    pass


class NotificationError(DomainException):
    pass


class OrderNotFoundError(DomainException):
    pass


class InvalidStatusTransitionError(DomainException):
    pass

class PrivacyDashError(Exception):
    pass


# Storage

class StorageError(PrivacyDashError):
    pass


class StorageUnavailable(StorageError):
    def __init__(self, operation, detail=None):
        self.operation = operation
        message = f"Vault unavailable during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class KeyStoreUnavailable(StorageUnavailable):
    pass


class CorruptedStore(StorageError):
    def __init__(self, label):
        self.label = label
        super().__init__(f"Stored data under {label} is unreadable")


class NoKeyInitialized(StorageError):
    def __init__(self):
        super().__init__("No master key has been initialized on this client")


class InvalidKeyMaterial(StorageError):
    pass


# Crypto

class DecryptionFailed(PrivacyDashError):
    def __init__(self, reason="cannot decrypt with current key"):
        self.reason = reason
        super().__init__(reason)


# Payments

class PaymentError(PrivacyDashError):
    pass


class RequestNotPayable(PaymentError):
    def __init__(self, request_id, reason):
        self.request_id = request_id
        self.reason = reason
        super().__init__(f"Request {request_id} cannot be paid: {reason}")


class UserRejected(PaymentError):
    pass


class SubmissionFailed(PaymentError):
    pass


class ConfirmationFailed(PaymentError):
    def __init__(self, signature, detail=None):
        self.signature = signature
        message = f"Payment status unknown, verify transaction {signature} manually on the ledger"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


# Auth

class AuthenticationFailed(PrivacyDashError):
    pass

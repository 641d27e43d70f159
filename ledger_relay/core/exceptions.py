class LedgerRelayError(Exception):
    """Base exception for the ledger relay."""

    pass


class ConfigurationError(LedgerRelayError):
    """Raised when required configuration is missing or invalid."""

    pass


class StoreError(LedgerRelayError):
    """Raised when a ledger store query or conditional update fails."""

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Ledger store operation '{operation}' failed: {detail}")

class NotFoundError(LookupError):
    def __init__(self, kind: str, identifier: object) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class ConcurrencyConflictError(RuntimeError):
    """A competing writer committed the same character first."""


class StorageFailureError(RuntimeError):
    """The store was unavailable or the transaction could not commit."""

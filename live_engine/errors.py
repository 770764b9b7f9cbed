class EngineError(Exception):
    """Base class for every error raised by the live engine."""


class ValidationError(EngineError):
    pass


class NotFoundError(EngineError):
    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} {entity_id} not found")


class InvalidStateError(EngineError):
    def __init__(self, state: str, operation: str, reason: str = None):
        self.state = state
        self.operation = operation
        self.reason = reason or f"Cannot {operation} while match is {state}"
        super().__init__(self.reason)


class InvalidTransitionError(EngineError):
    def __init__(self, from_state: str, to_state: str, reason: str = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason or f"Cannot transition from {from_state} to {to_state}"
        super().__init__(self.reason)


class RecomputeFailure(EngineError):
    """A recomputation pass raised; nothing from it was published."""

    def __init__(self, provenance: str, version: int, cause: Exception):
        self.provenance = provenance
        self.version = version
        self.cause = cause
        super().__init__(f"Recomputation pass v{version} ({provenance}) failed: {cause}")

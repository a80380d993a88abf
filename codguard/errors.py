class CodGuardError(Exception):
    """Base class for errors surfaced by the order-risk core."""

class NotFoundError(CodGuardError):
    def __init__(self, kind: str, key):
        super().__init__(f"{kind} {key} not found")
        self.kind = kind
        self.key = key

class ValidationFailed(CodGuardError):
    pass

class IntegrationError(CodGuardError):
    """An external collaborator (voice, messaging, queue, carrier) failed."""

class InvalidTransition(CodGuardError):
    def __init__(self, family: str, current, target):
        super().__init__(f"{family}: {current} -> {target} is not allowed")
        self.family = family
        self.current = current
        self.target = target

"""Domain-specific exceptions — framework-independent."""


class EntityNotFoundError(Exception):
    """Raised when a requested entity does not exist."""

    def __init__(self, entity_type: str, entity_id: int | str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} with id '{entity_id}' not found")


class DuplicateEntityError(Exception):
    """Raised when attempting to create a duplicate entity."""

    def __init__(self, entity_type: str, field: str, value: str):
        self.entity_type = entity_type
        self.field = field
        self.value = value
        super().__init__(f"{entity_type} with {field}='{value}' already exists")


class InvalidTransitionError(Exception):
    """Raised when a job is asked to move along an edge the state machine forbids.

    Always an ordering or programming error on the caller's side. It is never
    retried by the orchestrator.
    """

    def __init__(self, job_id: str, current: str, target: str, detail: str | None = None):
        self.job_id = job_id
        self.current = current
        self.target = target
        message = f"Cannot move job '{job_id}' from {current} to {target}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ConfigurationError(Exception):
    """Raised at startup when a required collaborator or setting is missing or invalid."""


class DeadLetterWriteError(Exception):
    """Raised when a permanently failed job could not be written to the dead-letter sink."""

    def __init__(self, job_id: str, cause: Exception):
        self.job_id = job_id
        self.cause = cause
        super().__init__(f"Dead-letter write failed for job '{job_id}': {cause}")

"""
Exception taxonomy for the automation engine.

Configuration and evaluation errors propagate to the caller of the trigger
surface; actuator errors are recovered locally by the pipeline and the
batch dispatcher.
"""


class AutomationError(Exception):
    """Base exception for automation operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class TriggerConfigurationError(AutomationError):
    """Malformed trigger definition, rejected before it reaches the scheduler."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, operation="validate_trigger", recoverable=False)
        self.field = field


class UnknownActionKindError(TriggerConfigurationError):
    """Action type that no capability exists for."""


class BatchJobConfigurationError(AutomationError):
    """Malformed batch job definition."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, operation="validate_batch_job", recoverable=False)
        self.field = field


class ContextUpdateError(AutomationError):
    """Context update with unknown fields or wrong value types."""

    def __init__(self, message: str):
        super().__init__(message, operation="update_context", recoverable=False)


class PolicyEvaluationError(AutomationError):
    """Policy evaluation could not read the inputs it needs."""

    def __init__(self, message: str):
        super().__init__(message, operation="resolve_mode", recoverable=False)


class TriggerNotFoundError(AutomationError):
    """Trigger does not exist or belongs to another user."""

    def __init__(self, trigger_id: str):
        super().__init__(f"Trigger {trigger_id} not found", operation="load_trigger")
        self.trigger_id = trigger_id


class BatchJobNotFoundError(AutomationError):
    """Batch job does not exist or belongs to another user."""

    def __init__(self, job_id: str):
        super().__init__(f"Batch job {job_id} not found", operation="load_batch_job")
        self.job_id = job_id


class ActuatorError(AutomationError):
    """A single actuator call failed."""


class ActuatorTimeoutError(ActuatorError):
    """Actuator call exceeded its time budget."""

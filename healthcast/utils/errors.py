"""
Error Taxonomy
Exceptions raised by the core and the structured result returned to callers.

Core functions raise; the API layer (and any other caller that must not see
exceptions) converts them with ``run_safely`` / ``OperationResult.from_error``.
"""

from dataclasses import dataclass, field
from typing import Any, Callable


class HealthcastError(Exception):
    """Base class for every recoverable error raised by the core."""

    kind = 'error'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InsufficientDataError(HealthcastError):
    """Fewer training examples than the scenario minimum."""

    kind = 'insufficient_data'

    def __init__(self, available: int, required: int, message: str = None):
        self.available = available
        self.required = required
        super().__init__(message or f"Need at least {required} samples to train. Currently have {available}.")


class ModelNotTrainedError(HealthcastError):
    kind = 'model_not_trained'

    def __init__(self, scenario: str):
        self.scenario = scenario
        super().__init__(f"Model '{scenario}' is not trained yet. Train it first.")


class InvalidFeatureError(HealthcastError):
    """Malformed or out-of-range input, rejected before normalization."""

    kind = 'invalid_feature'


class RecordNotFoundError(HealthcastError):
    kind = 'not_found'


class TrainingFailure(HealthcastError):
    """
    A training run aborted. Any previously committed model stays usable.

    ``diagnostics`` carries whatever partial state was available when the run
    stopped (epoch reached, last finite loss, ...).
    """

    kind = 'training_failure'

    def __init__(self, message: str, diagnostics: dict = None):
        super().__init__(message)
        self.diagnostics = diagnostics or {}


class TrainingCancelled(TrainingFailure):
    kind = 'training_cancelled'

    def __init__(self, epoch: int):
        super().__init__(f"Training cancelled after epoch {epoch}", {'epoch': epoch})
        self.epoch = epoch


@dataclass
class OperationResult:
    success: bool
    kind: str = 'ok'
    message: str = ''
    data: Any = None
    details: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any = None, message: str = 'ok') -> 'OperationResult':
        return cls(success=True, kind='ok', message=message, data=data)

    @classmethod
    def from_error(cls, error: HealthcastError) -> 'OperationResult':
        details = {}
        if isinstance(error, TrainingFailure):
            details = dict(error.diagnostics)
        elif isinstance(error, InsufficientDataError):
            details = {'available': error.available, 'required': error.required}
        return cls(success=False, kind=error.kind, message=error.message, details=details)

    def to_dict(self) -> dict:
        result = {
            'success': self.success,
            'kind': self.kind,
            'message': self.message,
            'data': self.data,
        }
        if self.details:
            result['details'] = self.details
        return result


def run_safely(fn: Callable, *args, **kwargs) -> OperationResult:
    """
    Calls ``fn`` and wraps the outcome in an OperationResult.

    Only HealthcastError subclasses are converted; anything else is a bug and
    propagates.
    """
    try:
        return OperationResult.ok(fn(*args, **kwargs))
    except HealthcastError as e:
        return OperationResult.from_error(e)



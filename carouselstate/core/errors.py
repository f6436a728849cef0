from typing import Optional


class StatechartError(Exception):
    """
    Base exception class for errors raised by the statechart library.
    """


class DefinitionError(StatechartError):
    """
    Raised when a machine definition is malformed: a transition target or
    ``initial`` reference is missing, a key is unknown, or the implementation
    registry does not cover every name the definition references.
    """


class GuardEvaluationError(StatechartError):
    """
    Raised when a guard predicate throws. The step in progress is aborted and
    the previous stable configuration is kept.
    """

    def __init__(self, guard_name: str, cause: Exception) -> None:
        super().__init__(f"Guard '{guard_name}' failed: {cause}")
        self.guard_name = guard_name
        self.cause = cause


class ActionExecutionError(StatechartError):
    """
    Raised when an assignment, delay resolution or effect action throws.
    """

    def __init__(self, action_name: str, cause: Exception) -> None:
        super().__init__(f"Action '{action_name}' failed: {cause}")
        self.action_name = action_name
        self.cause = cause


class ServiceError(StatechartError):
    """
    Describes the failure of an invoked one-shot service. Instances travel as
    the data of ``error.invoke.<id>`` events and are never raised into the
    scheduler.
    """

    def __init__(self, service_id: str, cause: Optional[BaseException] = None) -> None:
        message = f"Service '{service_id}' failed"
        if cause is not None:
            message = f"{message}: {cause!r}"
        super().__init__(message)
        self.service_id = service_id
        self.cause = cause


class InterpreterError(StatechartError):
    """
    Raised on interpreter lifecycle misuse, event queue overflow or runaway
    eventless transition loops.
    """


class UnhandledEventWarning(UserWarning):
    """
    Emitted in strict mode when no active state node can handle an event.
    Not an error: by default unhandled events are ignored silently.
    """

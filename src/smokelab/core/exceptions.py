"""
Custom exceptions for the lab orchestrator.

This module defines the exception hierarchy used by the engine, the library
stages and the CLI. Every error carries enough context to tell which phase
and which host it came from.

Exception Hierarchy:
    SmokelabError (base)
    ├── ConfigurationError - Invalid or missing model/config data
    │   └── MissingVariableError - Required variable not bound (fatal)
    ├── ResourceNotFoundError - Config bundle has no such file
    ├── BootstrapError - A bootstrap extension failed
    ├── StageError - A stage failed, aborting its phase
    ├── FanOutError - One or more per-host operations failed
    ├── DisposalError - One or more disposal stages failed
    ├── ActionNotFoundError - Unknown action name requested
    ├── ActionError - A bound action failed
    └── RemoteCommandError - ssh/scp/rsync/local command failed
"""

from typing import Optional, Sequence


class SmokelabError(Exception):
    """
    Base exception for all orchestration errors.

    Attributes:
        message: Human-readable error description
        phase: Optional phase name where the error occurred
        host: Optional host id where the error occurred
    """

    def __init__(
        self,
        message: str,
        phase: Optional[str] = None,
        host: Optional[str] = None
    ):
        self.message = message
        self.phase = phase
        self.host = host

        details = []
        if phase:
            details.append(f"phase={phase}")
        if host:
            details.append(f"host={host}")

        if details:
            full_message = f"{message} [{', '.join(details)}]"
        else:
            full_message = message

        super().__init__(full_message)


class ConfigurationError(SmokelabError):
    """
    Raised when the model or a topology file is invalid.

    Example:
        >>> load_model_file("missing.yml")
        ConfigurationError: Topology file not found (file: missing.yml)
    """

    def __init__(self, message: str, config_file: Optional[str] = None):
        self.config_file = config_file
        if config_file:
            message = f"{message} (file: {config_file})"
        super().__init__(message)


class MissingVariableError(ConfigurationError):
    """
    Raised when a required variable or environment value is not bound.

    This is the fail-fast error of the engine: the phase runner never wraps
    or swallows it, so the run aborts with the variable name in the message.
    """

    def __init__(self, name: str, scope: Optional[str] = None):
        self.name = name
        self.scope = scope
        message = f"Required variable '{name}' is not set"
        if scope:
            message += f" in scope '{scope}'"
        super().__init__(message)


class ResourceNotFoundError(SmokelabError):
    """Raised when a config resource bundle has no file at the given path."""

    def __init__(self, path: str, bundle: Optional[str] = None):
        self.path = path
        message = f"Resource not found: {path}"
        if bundle:
            message += f" (bundle: {bundle})"
        super().__init__(message)


class BootstrapError(SmokelabError):
    """
    Raised when a bootstrap extension fails.

    Bootstrap runs before any phase or action, so this error always means
    that no infrastructure was touched.
    """

    def __init__(self, extension: str, original_error: Optional[Exception] = None):
        self.extension = extension
        self.original_error = original_error
        message = f"Bootstrap extension '{extension}' failed"
        if original_error:
            message += f": {original_error}"
        super().__init__(message)


class StageError(SmokelabError):
    """
    Raised when a stage fails and its phase is aborted.

    Attributes:
        stage: Name of the failing stage
        index: Position of the stage within its phase
        original_error: The underlying exception
    """

    def __init__(
        self,
        phase: str,
        stage: str,
        index: int,
        original_error: Optional[Exception] = None
    ):
        self.stage = stage
        self.index = index
        self.original_error = original_error
        message = f"Stage #{index} '{stage}' failed"
        if original_error:
            message += f": {original_error}"
        super().__init__(message, phase=phase)


class FanOutError(SmokelabError):
    """
    Raised when per-host operations of a fan-out fail.

    The first failure observed is chained as ``__cause__``; ``failures``
    holds every (item label, exception) pair for diagnosis.
    """

    def __init__(self, operation: str, failures: Sequence[tuple]):
        self.operation = operation
        self.failures = list(failures)
        labels = ", ".join(label for label, _ in self.failures)
        first = self.failures[0][1] if self.failures else None
        message = f"{operation} failed for {len(self.failures)} target(s): {labels}"
        if first is not None:
            message += f" (first error: {first})"
        super().__init__(message)


class DisposalError(SmokelabError):
    """Raised after best-effort disposal when one or more stages failed."""

    def __init__(self, failures: Sequence[tuple]):
        self.failures = list(failures)
        names = ", ".join(name for name, _ in self.failures)
        super().__init__(
            f"Disposal finished with {len(self.failures)} failure(s): {names}",
            phase="disposal"
        )


class ActionNotFoundError(SmokelabError):
    """
    Raised when an unknown action name is requested.

    Example:
        >>> registry.activate(model, "restart")
        ActionNotFoundError: Action 'restart' not found. Available: ['login', 'start', 'stop']
    """

    def __init__(self, action_name: str, available_actions: list[str]):
        self.action_name = action_name
        self.available_actions = available_actions
        super().__init__(
            f"Action '{action_name}' not found. Available: {available_actions}"
        )


class ActionError(SmokelabError):
    """Raised when a bound action fails during activation."""

    def __init__(self, action_name: str, original_error: Optional[Exception] = None):
        self.action_name = action_name
        self.original_error = original_error
        message = f"Action '{action_name}' failed"
        if original_error:
            message += f": {original_error}"
        super().__init__(message)


class RemoteCommandError(SmokelabError):
    """Raised when an ssh/scp/rsync or local tool invocation exits non-zero."""

    def __init__(
        self,
        command: str,
        return_code: int,
        output: str,
        host: Optional[str] = None
    ):
        self.command = command
        self.return_code = return_code
        self.output = output
        super().__init__(
            f"Command '{command}' failed (exit {return_code}): {output.strip()}",
            host=host
        )

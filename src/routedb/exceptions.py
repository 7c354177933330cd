"""Custom exception hierarchy for RouteDB with helpful error messages."""

from __future__ import annotations

from typing import Any


class RouteDBError(Exception):
    """Base exception with helpful formatting for all RouteDB errors.

    Provides structured error messages with hints and details to help users
    understand and fix problems.
    """

    def __init__(
        self,
        message: str,
        hint: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize exception with structured error information.

        Args:
            message: Primary error message describing what went wrong
            hint: Optional hint suggesting how to fix the problem
            details: Optional dictionary with additional debugging information
        """
        self.message = message
        self.hint = hint
        self.details = details
        super().__init__(self.format_error())

    def format_error(self) -> str:
        """Format the error message with hint and details.

        Returns:
            Formatted error string with all available information
        """
        output = f"Error: {self.message}"
        if self.hint:
            output += f"\nHint: {self.hint}"
        if self.details:
            details_str = "\n".join(
                f"  {key}: {value}" for key, value in self.details.items()
            )
            output += f"\nDetails:\n{details_str}"
        return output


class ConfigurationError(RouteDBError):
    """Missing or malformed configuration detected at startup."""

    pass


class DatabaseError(RouteDBError):
    """Database-related errors raised by the client layer."""

    pass


class RecordNotFoundError(DatabaseError):
    """A record required by the operation does not exist."""

    pass


class ClientUnavailableError(RouteDBError):
    """The database client was used outside a server-side process."""

    pass


def annotate_error(error: BaseException, method: str, entity: str) -> None:
    """Append method and entity context to an exception in place.

    The first message argument is extended so ``str(error)`` carries the
    context for ordinary exceptions. A note is added as well, since some
    driver exceptions render their message without looking at ``args``.

    Args:
        error: Exception raised by a forwarded call
        method: Name of the invoked operation
        entity: Name of the entity the operation targeted
    """
    context = f"method: {method}, entity: {entity}"

    if isinstance(error, RouteDBError):
        error.message = f"{error.message} ({context})"
        error.args = (error.format_error(), *error.args[1:])
    elif error.args and isinstance(error.args[0], str):
        error.args = (f"{error.args[0]} ({context})", *error.args[1:])
    elif not error.args:
        error.args = (f"({context})",)

    error.add_note(f"RouteDB context: {context}")


def check_config_keys(config: dict[str, Any]) -> None:
    """Check for common configuration mistakes.

    Args:
        config: Configuration dictionary to validate

    Raises:
        ConfigurationError: With hints about correct configuration keys
    """
    wrong_keys = {
        "db_url": "database_url",
        "url": "database_url",
        "primary_url": "database_primary_url",
        "write_url": "database_primary_url",
        "env": "environment",
        "node_env": "environment",
    }

    for wrong, correct in wrong_keys.items():
        if wrong in config:
            raise ConfigurationError(
                message=f"Invalid configuration key '{wrong}'",
                hint=f"Use '{correct}' instead of '{wrong}'",
                details={
                    "found_keys": list(config.keys()),
                    "invalid_key": wrong,
                    "correct_key": correct,
                },
            )

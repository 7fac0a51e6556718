from __future__ import annotations

"""Exception types for configuration handling."""


class ConfigurationError(RuntimeError):
    """Raised when the stack file or a STACK_* setting is missing or malformed."""

    @classmethod
    def invalid_format(cls, param_name: str, received_value: str, expected_format: str = "") -> "ConfigurationError":
        """Create error for invalid format."""
        msg = f"{param_name} has invalid format (received {received_value!r})"
        if expected_format:
            msg += f". Expected {expected_format}"
        return cls(msg)

    @classmethod
    def missing_value(cls, param_name: str, context: str = "") -> "ConfigurationError":
        """Create error for missing value."""
        msg = f"{param_name} is missing or empty"
        if context:
            msg += f": {context}"
        return cls(msg)

    @classmethod
    def invalid_value(cls, param_name: str, value, reason: str = "") -> "ConfigurationError":
        """Create error for invalid value."""
        msg = f"Invalid value for {param_name}: {value!r}"
        if reason:
            msg += f". {reason}"
        return cls(msg)

    @classmethod
    def port_conflict(cls, port: int) -> "ConfigurationError":
        """Create error for backend and frontend configured on the same port."""
        return cls(f"Backend and frontend are both configured on port {port}; they must use different ports")

    @classmethod
    def bad_placeholder(cls, service: str, command, reason: str) -> "ConfigurationError":
        """Create error for a command template that cannot be formatted."""
        return cls(f"{service}.command {command!r} has a bad placeholder ({reason}); only {{port}} and {{host}} are available")

    @classmethod
    def load_failed(cls, path, reason: str = "") -> "ConfigurationError":
        """Create error for a configuration file that could not be loaded."""
        msg = f"Failed to load configuration from {path}"
        if reason:
            msg += f": {reason}"
        return cls(msg)


__all__ = ["ConfigurationError"]

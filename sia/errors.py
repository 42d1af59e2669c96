"""Exception types for Sia.

Every error raised by the build pipeline derives from SiaError. Plugin and
content errors are isolated per plugin or per file by default; only strict
mode turns them into build-aborting failures.

Key classes:
- PluginValidationError: A plugin export has the wrong shape.
- PluginLoadError: A plugin module could not be imported.
- HookExecutionError: A hook handler raised.
- ContentParseError: A content file could not be parsed.
- ConfigError: Configuration is missing or invalid.
- BuildError: Rendering failed for a specific source file.
"""

from __future__ import annotations

from pathlib import Path


class SiaError(Exception):
    """Base class for all Sia errors."""


class ConfigError(SiaError):
    """Configuration is missing or invalid."""


class PluginError(SiaError):
    """Base class for plugin failures.

    Attributes:
        plugin_name: Name (or path) of the plugin that failed, if known.
    """

    def __init__(self, message: str, plugin_name: str | None = None):
        self.plugin_name = plugin_name
        super().__init__(message)


class PluginValidationError(PluginError):
    """A plugin export is malformed."""


class PluginLoadError(PluginError):
    """A plugin module could not be imported or exported nothing usable.

    Attributes:
        failures: (plugin name, message) pairs when several loads failed.
    """

    def __init__(
        self,
        message: str,
        plugin_name: str | None = None,
        failures: list[tuple[str, str]] | None = None,
    ):
        self.failures = list(failures or [])
        super().__init__(message, plugin_name)


class HookExecutionError(PluginError):
    """A plugin hook handler raised an exception.

    Attributes:
        hook: Name of the hook that was being dispatched.
        original_error: The exception raised by the handler.
    """

    def __init__(self, hook: str, plugin_name: str, original_error: BaseException):
        self.hook = hook
        self.original_error = original_error
        super().__init__(
            f"Hook {hook!r} from plugin {plugin_name!r} failed: {original_error}",
            plugin_name,
        )


class ContentParseError(SiaError):
    """A content file could not be parsed.

    Attributes:
        file_path: Path of the offending file, if known.
    """

    def __init__(self, message: str, file_path: Path | None = None):
        self.file_path = file_path
        prefix = f"{file_path}: " if file_path else ""
        super().__init__(f"{prefix}{message}")


class BuildError(SiaError):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")

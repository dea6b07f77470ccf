"""Error types surfaced to the command line.

Every error derives from click.ClickException, so an uncaught one ends the
command with ``Error: <message>`` on stderr and exit status 1.
"""

import click


class DevDropError(click.ClickException):
    """Base class for devdrop errors."""

    default_message = "devdrop failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class ConfigParseError(DevDropError):
    default_message = "failed to parse config file"


class ConfigWriteError(DevDropError):
    default_message = "failed to write config file"


class NotLoggedInError(DevDropError):
    default_message = "you must run 'devdrop login' first to authenticate with DockerHub"


class EnvironmentNotFoundError(DevDropError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"environment '{name}' not found. Run 'devdrop ls' to see available environments"
        )


class NoEnvironmentsError(DevDropError):
    default_message = "no environments configured. Run 'devdrop init' to create one"


class NoContainerToCommitError(DevDropError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"no container to commit for environment '{name}'. "
            "Run 'devdrop init' or 'devdrop run' first"
        )


class EngineError(DevDropError):
    """A container engine operation failed."""


class EngineConnectionError(EngineError):
    default_message = "failed to connect to Docker"


class ImageNotFoundOnRegistry(EngineError):
    def __init__(self, image: str, message: str | None = None):
        self.image = image
        super().__init__(message or f"image {image} not found on the registry")


class RegistryListingError(EngineError):
    """The registry catalog could not be listed."""

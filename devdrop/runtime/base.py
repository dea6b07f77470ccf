"""Abstract container engine interface."""

from abc import ABC, abstractmethod


class ContainerEngine(ABC):
    """Abstract interface for the container engine and registry operations devdrop needs."""

    @abstractmethod
    def pull_image(self, ref: str):
        """Pull an image. Raises ImageNotFoundOnRegistry if the registry doesn't have it."""

    @abstractmethod
    def image_exists(self, ref: str) -> bool:
        """Check if an image is available locally."""

    @abstractmethod
    def create_container(self, image: str, workdir: str | None = None) -> str:
        """Create an interactive shell container, optionally mounting workdir. Returns its ID."""

    @abstractmethod
    def run_interactive(self, container_id: str):
        """Start a container attached to the current terminal and wait for it to exit."""

    @abstractmethod
    def commit_container(self, container_id: str, ref: str):
        """Save a container's filesystem as an image."""

    @abstractmethod
    def push_image(self, ref: str, auth_token: str):
        """Push an image using a stored registry auth token."""

    @abstractmethod
    def remove_container(self, container_id: str):
        """Force-remove a container."""

    @abstractmethod
    def container_state(self, container_id: str) -> str | None:
        """Return the container's status ("running", "exited", ...), or None if it's gone."""

    @abstractmethod
    def registry_login(self, username: str, password: str) -> str:
        """Authenticate with the registry. Returns the registry's status message."""

    @abstractmethod
    def list_repositories_with_prefix(self, username: str, prefix: str) -> list[str]:
        """List the user's registry repositories whose names start with prefix."""

    def close(self):
        """Release any connection held by the engine."""

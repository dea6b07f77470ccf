"""Shared test fixtures for devdrop."""

import pytest

from devdrop.errors import EngineError, ImageNotFoundOnRegistry, RegistryListingError
from devdrop.runtime.base import ContainerEngine


class MockEngine(ContainerEngine):
    """Mock container engine that records calls and simulates a local image store."""

    def __init__(self):
        self.calls = []
        self.images: set[str] = set()
        self.remote_images: set[str] = {"ubuntu:24.04", "golang:latest", "node:latest", "python:latest"}
        self.remote_repos: list[str] = []
        self.list_error: str | None = None
        self.remove_error: str | None = None
        self.containers: dict[str, str] = {}
        self._next_id = 0

    def pull_image(self, ref: str):
        self.calls.append(("pull_image", ref))
        if ref not in self.remote_images:
            raise ImageNotFoundOnRegistry(ref)
        self.images.add(ref)

    def image_exists(self, ref: str) -> bool:
        self.calls.append(("image_exists", ref))
        return ref in self.images

    def create_container(self, image: str, workdir: str | None = None) -> str:
        self.calls.append(("create_container", image, workdir))
        self._next_id += 1
        container_id = f"cafe{self._next_id:060d}"
        self.containers[container_id] = "created"
        return container_id

    def run_interactive(self, container_id: str):
        self.calls.append(("run_interactive", container_id))
        self.containers[container_id] = "exited"

    def commit_container(self, container_id: str, ref: str):
        self.calls.append(("commit_container", container_id, ref))
        self.images.add(ref)

    def push_image(self, ref: str, auth_token: str):
        self.calls.append(("push_image", ref, auth_token))
        self.remote_images.add(ref)

    def remove_container(self, container_id: str):
        self.calls.append(("remove_container", container_id))
        if self.remove_error:
            raise EngineError(self.remove_error)
        self.containers.pop(container_id, None)

    def container_state(self, container_id: str) -> str | None:
        self.calls.append(("container_state", container_id))
        return self.containers.get(container_id)

    def registry_login(self, username: str, password: str) -> str:
        self.calls.append(("registry_login", username, password))
        if password == "wrong":
            raise EngineError("authentication failed: unauthorized: incorrect username or password")
        return "Login Succeeded"

    def list_repositories_with_prefix(self, username: str, prefix: str) -> list[str]:
        self.calls.append(("list_repositories_with_prefix", username, prefix))
        if self.list_error:
            raise RegistryListingError(self.list_error)
        return sorted(r for r in self.remote_repos if r.startswith(prefix))

    def close(self):
        self.calls.append(("close",))

    def called(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]


@pytest.fixture
def mock_engine():
    """Provide a fresh MockEngine."""
    return MockEngine()


@pytest.fixture
def tmp_data_dir(tmp_path, monkeypatch):
    """Redirect all devdrop data files to a temp directory."""
    import devdrop.config as config
    import devdrop.registry as registry

    data_dir = tmp_path / "devdrop"
    data_dir.mkdir()
    settings_file = data_dir / "settings.toml"
    config_file = data_dir / "config.yaml"

    monkeypatch.setattr(config, "DATA_DIR", data_dir)
    monkeypatch.setattr(config, "SETTINGS_FILE", settings_file)
    monkeypatch.setattr(config, "CONFIG_FILE", config_file)

    # Also patch modules that do `from .config import X` (separate bindings)
    monkeypatch.setattr(registry, "CONFIG_FILE", config_file)

    return data_dir


@pytest.fixture
def engine_factory(monkeypatch, mock_engine):
    """Route the CLI's engine construction to the mock. Records each connection."""
    import devdrop.cli as cli

    connects = []

    def fake_get_engine(settings):
        connects.append(settings)
        return mock_engine

    monkeypatch.setattr(cli, "get_engine", fake_get_engine)
    return connects

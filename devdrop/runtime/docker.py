"""Docker container engine implementation."""

import base64
import json
import logging
import subprocess

import docker
from docker.utils import parse_repository_tag

from .. import hub
from ..errors import EngineConnectionError, EngineError, ImageNotFoundOnRegistry
from .base import ContainerEngine

logger = logging.getLogger("devdrop.runtime")

# Exit codes a shell session normally ends with; anything else is a failure.
NORMAL_SHELL_EXITS = (0, 1, 2)

_NOT_FOUND_MARKERS = ("not found", "404", "does not exist", "pull access denied")


def is_image_not_found_error(exc: Exception) -> bool:
    """Best-effort check whether an engine error means the image doesn't exist.

    The SDK's NotFound errors are authoritative. Other API errors only carry
    the daemon's message text, so fall back to matching known phrases.
    """
    if isinstance(exc, docker.errors.NotFound):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _NOT_FOUND_MARKERS)


def encode_auth_token(username: str, password: str, server: str) -> str:
    """Encode registry credentials the way the X-Registry-Auth header expects."""
    payload = json.dumps({"username": username, "password": password, "serveraddress": server})
    return base64.urlsafe_b64encode(payload.encode()).decode()


def decode_auth_token(token: str) -> dict:
    """Decode a stored auth token (standard or URL-safe base64) into an auth config."""
    try:
        raw = token.translate(str.maketrans("-_", "+/"))
        raw += "=" * (-len(raw) % 4)
        data = json.loads(base64.b64decode(raw))
    except (ValueError, TypeError) as e:
        raise EngineError(f"invalid authentication token, run 'devdrop login' again: {e}")
    if not isinstance(data, dict):
        raise EngineError("invalid authentication token, run 'devdrop login' again")
    return data


class DockerEngine(ContainerEngine):
    """Container engine backed by the Docker SDK and the docker CLI."""

    def __init__(
        self,
        client,
        shell: str = "/bin/bash",
        workspace: str = "/workspace",
        server: str = "https://index.docker.io/v1/",
        hub_api: str = "https://hub.docker.com/v2",
        page_size: int = 100,
        timeout: float = 30,
    ):
        self.client = client
        self.shell = shell
        self.workspace = workspace
        self.server = server
        self.hub_api = hub_api
        self.page_size = page_size
        self.timeout = timeout

    @classmethod
    def connect(cls, settings: dict) -> "DockerEngine":
        """Connect to the Docker daemon described by the environment."""
        try:
            client = docker.from_env()
            client.ping()
        except Exception as e:
            raise EngineConnectionError(f"failed to connect to Docker: {e}")
        registry = settings["registry"]
        container = settings["container"]
        return cls(
            client,
            shell=container["shell"],
            workspace=container["workspace"],
            server=registry["server"],
            hub_api=registry["hub_api"],
            page_size=registry["page_size"],
            timeout=registry["timeout"],
        )

    def close(self):
        self.client.close()

    def pull_image(self, ref: str):
        repository, tag = parse_repository_tag(ref)
        logger.info("Pulling %s", ref)
        try:
            self.client.images.pull(repository, tag=tag or "latest")
        except docker.errors.APIError as e:
            if is_image_not_found_error(e):
                raise ImageNotFoundOnRegistry(ref, f"failed to pull image {ref}: {e}")
            raise EngineError(f"failed to pull image {ref}: {e}")

    def image_exists(self, ref: str) -> bool:
        try:
            self.client.images.get(ref)
            return True
        except docker.errors.ImageNotFound:
            return False
        except docker.errors.APIError as e:
            logger.debug("Image inspect for %s failed: %s", ref, e)
            return False

    def create_container(self, image: str, workdir: str | None = None) -> str:
        kwargs = {
            "command": [self.shell],
            "tty": True,
            "stdin_open": True,
        }
        if workdir:
            kwargs["working_dir"] = self.workspace
            kwargs["volumes"] = {workdir: {"bind": self.workspace, "mode": "rw"}}
        try:
            container = self.client.containers.create(image, **kwargs)
        except docker.errors.APIError as e:
            raise EngineError(f"failed to create container: {e}")
        logger.info("Created container %s from %s", container.id, image)
        return container.id

    def run_interactive(self, container_id: str):
        # Terminal attach is far simpler through the CLI than the attach API.
        try:
            result = subprocess.run(["docker", "start", "-i", container_id])
        except FileNotFoundError:
            raise EngineError("failed to start interactive container: docker CLI not found on PATH")
        if result.returncode not in NORMAL_SHELL_EXITS:
            raise EngineError(
                f"failed to start interactive container: exit status {result.returncode}"
            )

    def commit_container(self, container_id: str, ref: str):
        repository, tag = parse_repository_tag(ref)
        try:
            container = self.client.containers.get(container_id)
            container.commit(
                repository=repository,
                tag=tag or "latest",
                message="DevDrop environment commit",
                author="DevDrop CLI",
            )
        except docker.errors.APIError as e:
            raise EngineError(f"failed to commit container {container_id} to {ref}: {e}")

    def push_image(self, ref: str, auth_token: str):
        repository, tag = parse_repository_tag(ref)
        auth_config = decode_auth_token(auth_token)
        try:
            for line in self.client.images.push(
                repository, tag=tag or "latest", stream=True, decode=True, auth_config=auth_config
            ):
                if "error" in line:
                    raise EngineError(f"push failed: {line['error']}")
                if "status" in line:
                    logger.debug("push %s: %s %s", ref, line.get("id", ""), line["status"])
        except docker.errors.APIError as e:
            raise EngineError(f"failed to push image {ref}: {e}")

    def remove_container(self, container_id: str):
        try:
            self.client.containers.get(container_id).remove(force=True)
        except docker.errors.APIError as e:
            raise EngineError(f"failed to remove container {container_id}: {e}")

    def container_state(self, container_id: str) -> str | None:
        try:
            return self.client.containers.get(container_id).status
        except docker.errors.NotFound:
            return None
        except docker.errors.APIError as e:
            raise EngineError(f"failed to inspect container {container_id}: {e}")

    def registry_login(self, username: str, password: str) -> str:
        try:
            response = self.client.login(username=username, password=password, registry=self.server)
        except docker.errors.APIError as e:
            raise EngineError(f"authentication failed: {e}")
        return (response or {}).get("Status", "")

    def list_repositories_with_prefix(self, username: str, prefix: str) -> list[str]:
        return hub.list_repositories(
            username,
            prefix,
            api_url=self.hub_api,
            page_size=self.page_size,
            timeout=self.timeout,
        )

"""CLI entry point for devdrop."""

import logging
import sys
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

import click

from . import __version__
from .config import load_settings
from .errors import (
    EngineConnectionError,
    EngineError,
    EnvironmentNotFoundError,
    ImageNotFoundOnRegistry,
    NoContainerToCommitError,
    NoEnvironmentsError,
    NotLoggedInError,
    RegistryListingError,
)
from .naming import (
    CUSTOM_STARTER,
    PREFIX,
    normalize_name,
    resolve_starter,
    short_id,
    starter_options,
    suggest_name,
)
from .registry import Environment, Registry, utcnow
from .runtime.base import ContainerEngine
from .runtime.docker import DockerEngine, encode_auth_token


def get_engine(settings: dict) -> ContainerEngine:
    """Connect to the configured container engine."""
    return DockerEngine.connect(settings)


@contextmanager
def _connected(settings: dict):
    engine = get_engine(settings)
    try:
        yield engine
    finally:
        engine.close()


def _setup_logging(level: str, verbose: bool):
    """Send devdrop's diagnostic logging to stderr."""
    logger = logging.getLogger("devdrop")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s  %(name)s  %(message)s", datefmt="%H:%M:%S"))
    logger.addHandler(handler)
    logger.propagate = False
    if verbose:
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.getLevelNamesMapping().get(str(level).upper(), logging.WARNING))


def _format_time(dt: datetime | None, fmt: str = "%Y-%m-%d %H:%M") -> str:
    if dt is None:
        return "-"
    try:
        return dt.astimezone().strftime(fmt)
    except (OverflowError, ValueError):
        return dt.strftime(fmt)


def _resolve_target(registry: Registry, name: str | None) -> str:
    """Pick the environment a command operates on: explicit name, else the current one."""
    if name:
        return normalize_name(name)
    if not registry.has_environments():
        raise NoEnvironmentsError()
    return registry.resolve_current_environment()


def _prompt_environment(names: list[str], current: str, prompt: str) -> str:
    """Show a numbered environment menu and return the chosen name."""
    click.echo("Available environments:")
    for i, name in enumerate(names, 1):
        marker = "*" if name == current else " "
        click.echo(f"{i}.{marker} {name}")
    choice = click.prompt(f"{prompt} (1-{len(names)})", type=click.IntRange(1, len(names)))
    return names[choice - 1]


def _prompt_starter(presets: dict[str, str]) -> str:
    """Show the starter image menu and return the chosen image reference."""
    options = starter_options(presets)
    click.echo("Available starter images:")
    for i, option in enumerate(options, 1):
        if option == CUSTOM_STARTER:
            click.echo(f"{i}. {option} (provide your own image URL)")
        else:
            click.echo(f"{i}. {option} ({presets[option]})")
    choice = click.prompt(
        f"Select starter image (1-{len(options)})", type=click.IntRange(1, len(options))
    )
    selected = options[choice - 1]
    if selected == CUSTOM_STARTER:
        return click.prompt("Enter custom image URL").strip()
    return presets[selected]


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(__version__)
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging on stderr")
@click.pass_context
def main(ctx, verbose):
    """devdrop: personal development environments in containers.

    Customize a container once, commit it as your own image, and run it in
    any project directory.

    \b
    Examples:
      devdrop login                 Authenticate with DockerHub
      devdrop init --name go -i go  Start customizing a Go environment
      devdrop commit                Save and push your customizations
      devdrop run                   Open the current environment here
    """
    settings = load_settings()
    _setup_logging(settings["log"]["level"], verbose)
    ctx.obj = settings


# ---------------------------------------------------------------------------
# login
# ---------------------------------------------------------------------------


@main.command()
@click.pass_obj
def login(settings):
    """Authenticate with the Docker registry."""
    with _connected(settings) as engine:
        username = click.prompt("Username").strip()
        if not username:
            raise click.UsageError("username cannot be empty")
        password = click.prompt("Password", hide_input=True)
        if not password:
            raise click.UsageError("password cannot be empty")

        status = engine.registry_login(username, password)

    click.echo(f"Login successful! {status}".rstrip())
    click.echo(f"Logged in as: {username}")

    registry = Registry.load()
    registry.set_username(username)
    registry.set_auth_token(encode_auth_token(username, password, settings["registry"]["server"]))
    click.echo("Authentication credentials saved to DevDrop configuration.")


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------


@main.command("init")
@click.option("-n", "--name", "env_name", default="", help="Environment name (prefixed with 'devdrop-')")
@click.option(
    "-i", "--image", "starter", default="",
    help="Starter image (ubuntu, go, node, python, or 'custom' with --base-image)",
)
@click.option("--base-image", "custom_image", default="", help="Custom base image (with --image=custom)")
@click.pass_obj
def init_cmd(settings, env_name, starter, custom_image):
    """Create a new environment from a starter image and customize it."""
    presets = settings["starters"]
    if starter:
        base_image = resolve_starter(starter, custom_image, presets)
    else:
        base_image = _prompt_starter(presets)
    if not base_image:
        raise click.UsageError("custom image URL cannot be empty")

    if not env_name:
        suggested = suggest_name(base_image)
        env_name = click.prompt("Enter environment name", default=suggested).strip() or suggested
    name = normalize_name(env_name)

    registry = Registry.load()
    click.echo(f"Initializing environment '{name}' with base image: {base_image}")

    with _connected(settings) as engine:
        click.echo("Pulling base image...")
        engine.pull_image(base_image)

        click.echo("Starting interactive container...")
        click.echo("You can now customize your development environment.")
        click.echo(f"When finished, type 'exit' and then run 'devdrop commit {name}' to save your changes.")
        click.echo()
        container_id = engine.create_container(base_image)
        engine.run_interactive(container_id)

    now = utcnow()
    existing = registry.get_environment(name)
    env = Environment(
        image=existing.image if existing else "",
        base_image=base_image,
        created=existing.created if existing and existing.created else now,
        last_updated=now,
        description=f"Environment based on {base_image}",
        last_container=container_id,
    )
    registry.add_or_update_environment(name, env)
    registry.set_current_environment(name)

    click.echo()
    click.echo("Container exited successfully!")
    click.echo(f"Environment: {name}")
    click.echo(f"Container ID: {container_id}")
    click.echo(f"Run 'devdrop commit {name}' to save your customizations.")


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@main.command("run")
@click.argument("name", required=False)
@click.pass_obj
def run_cmd(settings, name):
    """Run an environment with the current directory mounted at /workspace."""
    registry = Registry.load()
    target = _resolve_target(registry, name)
    if not registry.username:
        raise NotLoggedInError()

    env = registry.get_environment(target)
    image = env.image if env and env.image else registry.personal_image_reference(target)
    workdir = str(Path.cwd().resolve())

    with _connected(settings) as engine:
        click.echo(f"Using environment: {target}")
        click.echo(f"Checking for environment image: {image}")

        if engine.image_exists(image):
            click.echo("Environment image found locally.")
            use_image = image
        elif env and env.base_image:
            click.echo(f"Environment image not found, using base image: {env.base_image}")
            click.echo(
                "Note: You'll be running the base environment. "
                "Run 'devdrop commit' after your session to save changes."
            )
            if not engine.image_exists(env.base_image):
                click.echo("Pulling base image...")
                engine.pull_image(env.base_image)
            use_image = env.base_image
        else:
            click.echo("Environment image not found locally. Pulling from DockerHub...")
            try:
                engine.pull_image(image)
            except ImageNotFoundOnRegistry as e:
                raise ImageNotFoundOnRegistry(
                    image,
                    f"environment image {image} not found. "
                    "Make sure the environment exists or run 'devdrop init' first",
                ) from e
            click.echo("Image pulled successfully!")
            use_image = image

        click.echo(f"Starting environment in: {workdir}")
        click.echo(f"Current directory will be available as {settings['container']['workspace']} inside the container.")
        click.echo()
        container_id = engine.create_container(use_image, workdir=workdir)
        engine.run_interactive(container_id)

    click.echo()
    click.echo("Development session ended.")
    click.echo(f"Environment: {target}")
    click.echo(f"Container ID: {container_id}")

    registry.set_environment_container(target, container_id)
    click.echo(f"Container saved for potential commit. Run 'devdrop commit {target}' to save your changes.")


# ---------------------------------------------------------------------------
# commit
# ---------------------------------------------------------------------------


@main.command()
@click.argument("name", required=False)
@click.pass_obj
def commit(settings, name):
    """Commit an environment's last container and push it to DockerHub."""
    registry = Registry.load()
    if not registry.username:
        raise NotLoggedInError()
    if not registry.auth_token:
        raise NotLoggedInError("missing authentication token. Please run 'devdrop login' again")

    target = _resolve_target(registry, name)
    env = registry.get_environment(target)
    if env is None:
        raise EnvironmentNotFoundError(target)
    container_id = env.last_container
    if not container_id:
        raise NoContainerToCommitError(target)

    image = registry.personal_image_reference(target)

    with _connected(settings) as engine:
        click.echo(f"Committing environment: {target}")
        click.echo(f"Container: {short_id(container_id)}")
        click.echo(f"Image: {image}")

        engine.commit_container(container_id, image)
        click.echo("Container committed successfully!")

        click.echo(f"Pushing image {image} to DockerHub...")
        engine.push_image(image, registry.auth_token)
        click.echo("Image pushed successfully!")

        env.image = image
        env.last_updated = utcnow()
        env.last_container = ""
        registry.add_or_update_environment(target, env)

        click.echo(f"Cleaning up container {short_id(container_id)}...")
        try:
            engine.remove_container(container_id)
        except EngineError as e:
            click.echo(f"Warning: failed to remove container: {e.message}", err=True)
        else:
            click.echo("Container cleaned up successfully!")

    click.echo()
    click.echo(f"Environment '{target}' successfully committed and pushed as {image}")
    click.echo(f"You can now run 'devdrop run {target}' to use your customized environment in any project!")


# ---------------------------------------------------------------------------
# pull
# ---------------------------------------------------------------------------


def _prompt_pull_target(registry: Registry, engine: ContainerEngine) -> str:
    """Offer local and registry-listed environments to pull from."""
    try:
        remote = engine.list_repositories_with_prefix(registry.username, PREFIX)
    except RegistryListingError as e:
        click.echo(f"Warning: could not list remote environments: {e.message}", err=True)
        remote = []
    names = sorted(set(registry.environments) | set(remote))
    if not names:
        raise NoEnvironmentsError()
    return _prompt_environment(names, registry.resolve_current_environment(), "Select environment to pull")


@main.command()
@click.argument("name", required=False)
@click.pass_obj
def pull(settings, name):
    """Pull the latest version of an environment from DockerHub."""
    registry = Registry.load()
    if not registry.username:
        raise NotLoggedInError()

    with _connected(settings) as engine:
        target = normalize_name(name) if name else _prompt_pull_target(registry, engine)
        image = registry.personal_image_reference(target)

        click.echo(f"Pulling environment '{target}': {image}")
        try:
            engine.pull_image(image)
        except ImageNotFoundOnRegistry as e:
            raise ImageNotFoundOnRegistry(
                image,
                f"environment '{target}' not found on DockerHub.\n\n"
                "This usually means:\n"
                f"1. The environment hasn't been committed yet - run 'devdrop commit {target}'\n"
                "2. The environment name is incorrect - run 'devdrop ls' to see available environments\n"
                "3. You don't have access to this image\n\n"
                f"Image name: {image}",
            ) from e

    now = utcnow()
    env = registry.get_environment(target) or Environment(created=now, description="Pulled from registry")
    env.image = image
    env.last_updated = now
    registry.add_or_update_environment(target, env)

    click.echo("Environment pulled successfully!")
    click.echo(f"Environment: {target}")
    click.echo(f"Image: {image}")
    click.echo()
    click.echo(f"Run 'devdrop run {target}' to use this environment in any project.")


# ---------------------------------------------------------------------------
# switch
# ---------------------------------------------------------------------------


@main.command()
@click.argument("name", required=False)
def switch(name):
    """Switch the current environment."""
    registry = Registry.load()
    if not registry.has_environments():
        raise NoEnvironmentsError()

    if name:
        target = normalize_name(name)
    else:
        target = _prompt_environment(
            registry.sorted_environment_names(),
            registry.resolve_current_environment(),
            "Select environment",
        )

    if target not in registry.environments:
        raise EnvironmentNotFoundError(target)

    registry.set_current_environment(target)
    click.echo(f"Switched to environment: {target}")


# ---------------------------------------------------------------------------
# ls / status
# ---------------------------------------------------------------------------


@main.command("ls")
@click.option("--remote-only", is_flag=True, help="Show only remote images")
@click.option("--local-only", is_flag=True, help="Show only local environments")
@click.pass_obj
def ls_cmd(settings, remote_only, local_only):
    """List local and remote environments."""
    if remote_only and local_only:
        raise click.UsageError("--remote-only and --local-only are mutually exclusive")

    registry = Registry.load()
    if not local_only and not registry.username:
        raise NotLoggedInError("not logged in. Please run 'devdrop login' first")

    current = registry.resolve_current_environment()

    if not remote_only:
        click.echo("Local Environments:")
        if not registry.has_environments():
            click.echo("  (none configured)")
        for env_name in registry.sorted_environment_names():
            env = registry.environments[env_name]
            marker = "*" if env_name == current else " "
            click.echo(f"  {marker} {env_name}")
            click.echo(f"    Base: {env.base_image or '-'}")
            click.echo(f"    Created: {_format_time(env.created)}")
            if env.last_updated:
                click.echo(f"    Updated: {_format_time(env.last_updated)}")
            click.echo()

    if not local_only:
        with _connected(settings) as engine:
            click.echo("Remote Environments (DockerHub):")
            try:
                remote = engine.list_repositories_with_prefix(registry.username, PREFIX)
            except RegistryListingError as e:
                click.echo(f"  Error fetching remote images: {e.message}")
            else:
                if not remote:
                    click.echo(f"  (no {PREFIX} images found)")
                for repo in remote:
                    status = "configured locally" if repo in registry.environments else "not pulled"
                    click.echo(f"  {repo} ({status})")

    if current and not remote_only:
        click.echo(f"\nCurrent environment: {current}")


@main.command()
@click.pass_obj
def status(settings):
    """Show the current environment and its details."""
    registry = Registry.load()
    if not registry.username:
        click.echo("Status: Not logged in")
        click.echo("Run 'devdrop login' to authenticate with DockerHub")
        return

    click.echo(f"User: {registry.username}")

    if not registry.has_environments():
        click.echo("Status: No environments configured")
        click.echo("Run 'devdrop init' to create your first environment")
        return

    current = registry.resolve_current_environment()
    env = registry.environments[current]
    fmt = "%Y-%m-%d %H:%M:%S"
    click.echo(f"Current Environment: {current}")
    click.echo(f"Base Image: {env.base_image or '-'}")
    click.echo(f"Created: {_format_time(env.created, fmt)}")
    if env.last_updated:
        click.echo(f"Last Updated: {_format_time(env.last_updated, fmt)}")
    if env.description:
        click.echo(f"Description: {env.description}")

    if env.last_container:
        try:
            with _connected(settings) as engine:
                state = engine.container_state(env.last_container)
        except EngineConnectionError:
            click.echo(f"Last Container: {short_id(env.last_container)} (Docker connection failed)")
        except EngineError:
            click.echo(f"Last Container: {short_id(env.last_container)} (state unknown)")
        else:
            click.echo(f"Last Container: {short_id(env.last_container)} ({state or 'removed'})")

    click.echo(f"Expected Image: {registry.personal_image_reference(current)}")

    click.echo(f"\nTotal Environments: {len(registry.environments)}")
    others = [n for n in registry.sorted_environment_names() if n != current]
    if others:
        click.echo("Other Environments:")
        for other in others:
            click.echo(f"  {other}")

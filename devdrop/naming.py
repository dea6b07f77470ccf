"""Environment name normalization and starter image presets."""

import click

PREFIX = "devdrop-"
DEFAULT_NAME = PREFIX + "default"
CUSTOM_STARTER = "custom"


def normalize_name(raw: str) -> str:
    """Return the canonical, prefixed form of an environment name.

    Examples:
        normalize_name("") → "devdrop-default"
        normalize_name("go") → "devdrop-go"
        normalize_name("devdrop-go") → "devdrop-go"
    """
    if not raw:
        return DEFAULT_NAME
    if raw.startswith(PREFIX):
        return raw
    return PREFIX + raw


def starter_options(presets: dict[str, str]) -> list[str]:
    """Preset names in menu order, followed by the custom option."""
    return list(presets) + [CUSTOM_STARTER]


def resolve_starter(starter: str, custom: str | None, presets: dict[str, str]) -> str:
    """Map a starter name (or 'custom' plus an image reference) to an image."""
    if starter == CUSTOM_STARTER:
        if not custom:
            raise click.UsageError("--base-image is required when using --image=custom")
        return custom
    image = presets.get(starter)
    if image:
        return image
    raise click.UsageError(
        f"Unknown starter image: {starter}. "
        f"Available options: {', '.join(starter_options(presets))}"
    )


def suggest_name(base_image: str) -> str:
    """Suggest an environment name from the image it starts from.

    Examples:
        suggest_name("golang:latest") → "go"
        suggest_name("registry.example.com/team/toolbox-dev:1.2") → "toolbox"
    """
    for prefix, name in (("ubuntu", "ubuntu"), ("golang", "go"), ("node", "node"), ("python", "python")):
        if base_image.startswith(prefix):
            return name

    last = base_image.split("/")[-1]
    name = last.split(":")[0]
    for suffix in ("-latest", "-dev"):
        name = name.removesuffix(suffix)
    return name


def short_id(container_id: str) -> str:
    """Shorten a container ID for display."""
    return container_id[:12]

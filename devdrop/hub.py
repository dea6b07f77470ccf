"""Docker Hub catalog queries."""

import logging

import httpx

from .errors import RegistryListingError

logger = logging.getLogger("devdrop.hub")


def list_repositories(
    username: str,
    prefix: str,
    api_url: str = "https://hub.docker.com/v2",
    page_size: int = 100,
    timeout: float = 30,
    client: httpx.Client | None = None,
) -> list[str]:
    """List a user's repositories whose names start with prefix.

    Follows the paginated ``next`` links until exhausted. Returns sorted names.
    """
    own_client = client is None
    if own_client:
        client = httpx.Client(timeout=timeout)

    url = f"{api_url.rstrip('/')}/repositories/{username}/"
    params = {"page_size": page_size}
    names = []
    try:
        while url:
            logger.debug("GET %s", url)
            response = client.get(url, params=params)
            if response.status_code != 200:
                raise RegistryListingError(f"Docker Hub API returned status {response.status_code}")
            try:
                body = response.json()
                results = body.get("results") or []
                names.extend(r["name"] for r in results if r.get("name", "").startswith(prefix))
            except (ValueError, AttributeError, KeyError, TypeError) as e:
                raise RegistryListingError(f"failed to parse Docker Hub response: {e}")
            url = body.get("next")
            # The next link already carries the query string
            params = None
    except httpx.HTTPError as e:
        raise RegistryListingError(f"failed to query Docker Hub API: {e}")
    finally:
        if own_client:
            client.close()

    return sorted(names)

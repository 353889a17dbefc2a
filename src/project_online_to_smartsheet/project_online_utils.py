from __future__ import annotations

import logging
import os
from typing import Final

from . import utils
from .exceptions import ConfigurationError
from .project_online_client import ProjectOnlineSource

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "PROJECT_ONLINE_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "projectonline/token"  # noqa: S105
_URL_ENV_VAR: Final[str] = "PROJECT_ONLINE_URL"


def get_token(pass_path: str | None = None) -> str | None:
    """Get Project Online token from pass path, env var PROJECT_ONLINE_TOKEN, or default pass location."""
    return utils.resolve_secret(
        "Project Online token",
        pass_path=pass_path,
        env_var=_TOKEN_ENV_VAR,
        default_pass_path=_DEFAULT_TOKEN_PASS_PATH,
    )


def get_site_url(url: str | None = None) -> str:
    """PWA site URL from the argument or env var PROJECT_ONLINE_URL."""
    site_url = url or os.environ.get(_URL_ENV_VAR)
    if not site_url:
        msg = f"A Project Online site URL is required (--project-online-url or {_URL_ENV_VAR})"
        raise ConfigurationError(msg)
    if not site_url.startswith("https://"):
        msg = f"Project Online site URL must use https: {site_url}"
        raise ConfigurationError(msg)
    return site_url


def get_client(site_url: str, token: str | None) -> ProjectOnlineSource:
    """Get a Project Online client for the site using the token."""
    if not token:
        msg = f"A Project Online token is required (pass path or {_TOKEN_ENV_VAR})"
        raise ConfigurationError(msg)
    return ProjectOnlineSource(site_url, token)

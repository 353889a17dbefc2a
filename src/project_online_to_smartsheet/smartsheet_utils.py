from __future__ import annotations

import logging
import os
from typing import Final

from . import utils
from .exceptions import ConfigurationError
from .smartsheet_client import SmartsheetTarget

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "SMARTSHEET_API_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "smartsheet/api_token"  # noqa: S105
_PMO_WORKSPACE_ENV_VAR: Final[str] = "PMO_STANDARDS_WORKSPACE_ID"


def get_token(pass_path: str | None = None) -> str | None:
    """Get Smartsheet token from pass path, env var SMARTSHEET_API_TOKEN, or default pass location."""
    return utils.resolve_secret(
        "Smartsheet token",
        pass_path=pass_path,
        env_var=_TOKEN_ENV_VAR,
        default_pass_path=_DEFAULT_TOKEN_PASS_PATH,
    )


def get_client(token: str | None) -> SmartsheetTarget:
    """Get a Smartsheet client using the token."""
    if not token:
        msg = f"A Smartsheet API token is required (pass path or {_TOKEN_ENV_VAR})"
        raise ConfigurationError(msg)
    return SmartsheetTarget(token)


def get_pmo_workspace_id(value: str | int | None = None) -> int | None:
    """PMO Standards workspace id from the argument or env var PMO_STANDARDS_WORKSPACE_ID.

    Invalid values are ignored with a warning, and the workspace is then looked up by name.
    """
    raw = value if value is not None else os.environ.get(_PMO_WORKSPACE_ENV_VAR)
    if raw is None or str(raw).strip() == "":
        return None
    try:
        workspace_id = int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid PMO Standards workspace id {raw!r}")
        return None
    if workspace_id <= 0:
        logger.warning(f"Ignoring invalid PMO Standards workspace id {raw!r}")
        return None
    return workspace_id

"""
Utility functions for the Project Online to Smartsheet migration tool.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from subprocess import CompletedProcess

from .exceptions import ConfigurationError

logger: logging.Logger = logging.getLogger(__name__)

_PASS_PATH = re.compile(r"(?:[A-Za-z0-9_-]+)(?:/[A-Za-z0-9_-]+)*")


class PassError(Exception):
    """Base class for pass-related errors."""


class InvalidPassPathError(PassError):
    """Raised when the pass path does not exist in the password store."""


class PassphraseRequiredError(PassError):
    """Raised when a GPG passphrase is required for the pass utility."""


def setup_logging(*, verbose: bool = False, log_file: str | None = "migration.log") -> None:
    """Configure logging for the migration process."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
    # urllib3 logs every request at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _run_pass(pass_path: str, passphrase: str | None = None) -> CompletedProcess[str]:
    env = None
    if passphrase is not None:
        env = os.environ.copy() | {"PASSWORD_STORE_GPG_OPTS": "--pinentry-mode=loopback --passphrase-fd 0"}
    return subprocess.run(  # noqa: S603
        ["pass", pass_path], input=passphrase, capture_output=True, text=True, check=True, env=env
    )


def _describe_failure(pass_path: str, e: subprocess.CalledProcessError) -> str:
    return (
        f"Failed to get value from pass at '{pass_path}'.\n"
        f"Output: {e.stdout.strip()}\n"
        f"Error: {e.stderr.strip()}\n"
        f"Return code: {e.returncode}"
    )


def get_pass_value(pass_path: str) -> str:
    """Get value from pass utility at specified path.

    Raises:
        ValueError: If the path is not a valid pass path
        InvalidPassPathError: If nothing is stored at the path
        PassphraseRequiredError: If the GPG key needs a passphrase that could not be obtained
        PassError: For any other pass failure
    """
    if not _PASS_PATH.fullmatch(pass_path):
        msg = f"Invalid pass path: {pass_path}"
        raise ValueError(msg)

    try:
        return _run_pass(pass_path).stdout.strip()
    except subprocess.CalledProcessError as e:
        stderr = e.stderr.lower()
        if e.returncode == 1 and "not in the password store" in stderr:
            msg = f"Pass path '{pass_path}' not found or invalid."
            raise InvalidPassPathError(msg) from e
        if not (e.returncode == 2 and "gpg" in stderr and "public key decryption failed" in stderr):
            raise PassError(_describe_failure(pass_path, e)) from e

    # The GPG agent could not decrypt on its own; ask for the passphrase. Fails in non-interactive sessions.
    try:
        passphrase = input("Enter passphrase for GPG key used by pass: ")
    except EOFError as e:
        msg = "Passphrase input was interrupted. Please run the command in an interactive session."
        raise PassphraseRequiredError(msg) from e
    try:
        return _run_pass(pass_path, passphrase).stdout.strip()
    except subprocess.CalledProcessError as e:
        raise PassphraseRequiredError(_describe_failure(pass_path, e)) from e


def resolve_secret(
    name: str,
    *,
    pass_path: str | None,
    env_var: str,
    default_pass_path: str,
) -> str | None:
    """Look up a secret: explicit pass path, then environment variable, then default pass path.

    Returns None if none of them yields a value.
    """
    if pass_path:
        return get_pass_value(pass_path)

    value = os.environ.get(env_var)
    if value:
        return value

    try:
        return get_pass_value(default_pass_path)
    except (PassError, OSError) as e:
        logger.debug(f"No {name} at default pass path {default_pass_path}: {e}")
    logger.warning(f"No {name} specified nor found")
    return None


def env_int(name: str, default: int, *, minimum: int = 0) -> int:
    """Read an integer setting from the environment."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        msg = f"{name} must be an integer, got {raw!r}"
        raise ConfigurationError(msg) from e
    if value < minimum:
        msg = f"{name} must be at least {minimum}, got {value}"
        raise ConfigurationError(msg)
    return value


def env_float(name: str, default: float, *, minimum: float = 0.0) -> float:
    """Read a number setting from the environment."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        msg = f"{name} must be a number, got {raw!r}"
        raise ConfigurationError(msg) from e
    if value < minimum:
        msg = f"{name} must be at least {minimum}, got {value}"
        raise ConfigurationError(msg)
    return value

"""
Management of the IPFS daemon process.

The daemon is left running once launched and must be terminated by the
user.
"""

from __future__ import annotations

import json
import logging
import os
import socket
import subprocess
import time
from logging import Logger

from ..core.exceptions import ScribeError
from .config import Config

__all__ = [
    "DaemonError",
    "configure_daemon",
    "is_daemon_up",
    "launch_daemon",
]

IPFS_BIN = "ipfs"

LAUNCH_TIMEOUT = 20.0
"""
Seconds to wait for a launched daemon to offer its API.
"""

_POLL_INTERVAL = 0.1


class DaemonError(ScribeError):
    """
    Raised when the daemon can't be configured or launched.
    """


def configure_daemon(config: Config, *, logger: Logger | None = None):
    """
    Initialize the repository, if needed, and apply the configured storage
    quota and addresses.
    """
    logger = logger or logging.getLogger("scribe")
    env = _get_env(config)
    host = config.api_host

    # fails if already initialized
    try:
        init = subprocess.run(
            [IPFS_BIN, "init"], env=env, capture_output=True, text=True
        )
    except OSError as e:
        raise DaemonError(f"failed to run '{IPFS_BIN} init': {e}") from e

    logger.debug(f"ipfs init returned {init.returncode}: {init.stderr.strip()}")

    script = [
        ["config", "--json", "Experimental.Libp2pStreamMounting", "true"],
        ["config", "Datastore.StorageMax", config.storage_max],
        ["config", "Addresses.API", f"/ip4/{host}/tcp/{config.api_port}"],
        [
            "config",
            "--json",
            "Addresses.Swarm",
            json.dumps([f"/ip4/{host}/tcp/{config.swarm_port}"]),
        ],
        ["config", "Addresses.Gateway", f"/ip4/{host}/tcp/{config.gateway_port}"],
    ]

    # private mode: don't connect to the public network
    if config.private:
        script.append(["bootstrap", "rm", "--all"])

    for args in script:
        _run([IPFS_BIN] + args, env)


def launch_daemon(
    config: Config,
    *,
    timeout: float = LAUNCH_TIMEOUT,
    logger: Logger | None = None,
) -> subprocess.Popen:
    """
    Launch the daemon with pubsub enabled and wait until it offers its API.

    :returns: Daemon process
    """
    logger = logger or logging.getLogger("scribe")

    try:
        process = subprocess.Popen(
            [IPFS_BIN, "daemon", "--enable-pubsub-experiment"],
            env=_get_env(config),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as e:
        raise DaemonError(f"failed to launch IPFS daemon: {e}") from e

    deadline = time.monotonic() + timeout

    while time.monotonic() < deadline:
        if is_daemon_up(config):
            logger.debug(f"Daemon offering API at {config.api_endpoint}")
            return process

        if process.poll() is not None:
            raise DaemonError(
                f"IPFS daemon exited with code {process.returncode}"
            )

        time.sleep(_POLL_INTERVAL)

    raise DaemonError(
        f"IPFS daemon is not offering the API interface at {config.api_endpoint}"
    )


def is_daemon_up(config: Config) -> bool:
    """
    Check whether the daemon's API port accepts connections.
    """
    try:
        with socket.create_connection(
            (config.api_host, config.api_port), timeout=_POLL_INTERVAL * 5
        ):
            return True
    except OSError:
        return False


def _run(args: list[str], env: dict[str, str]):
    try:
        subprocess.run(args, env=env, check=True, capture_output=True, text=True)
    except (OSError, subprocess.CalledProcessError) as e:
        stderr = getattr(e, "stderr", "") or ""
        raise DaemonError(
            f"could not configure the IPFS daemon ({' '.join(args)}): {e} {stderr.strip()}"
        ) from e


def _get_env(config: Config) -> dict[str, str]:
    return {**os.environ, "IPFS_PATH": str(config.ipfs_path)}

"""
CLI command to set config fields.
"""

from __future__ import annotations

from pathlib import Path

from click import BadParameter
from pydantic import ValidationError
from typer import Context, Option

from ..config import Config
from ._utils import console, get_root_context, logger


def set_config(
    ctx: Context,
    reset: bool = Option(
        False,
        "--reset",
        help="Reset the config to default, replacing any existing config file (other options are applied afterwards)",
    ),
    echo: bool = Option(
        False,
        "--echo",
        help="Print the config after setting values",
    ),
    ipfs_path: Path
    | None = Option(
        None,
        help="Path to the IPFS repository on this node",
        file_okay=False,
    ),
    storage_max: str
    | None = Option(
        None,
        help="Maximum storage available for the IPFS repository, e.g. 10GB",
    ),
    remote_cid: str
    | None = Option(
        None,
        help="Content id of the remote project database",
    ),
    pinning: bool
    | None = Option(
        None,
        "--pinning/--no-pinning",
        help="Pin IPFS objects, preventing their local garbage collection",
    ),
    project: str
    | None = Option(
        None,
        help="Project to operate on",
    ),
):
    """
    Set config fields

    An attempt will be made to create the IPFS repository folder if it
    doesn't exist.
    """
    root_context = get_root_context(ctx)

    # reset takes precedence
    config = Config.default() if reset else root_context.config

    updates = {
        name: value
        for name, value in {
            "ipfs_path": ipfs_path,
            "storage_max": storage_max,
            "remote_cid": remote_cid,
            "pinning": pinning,
            "project": project,
        }.items()
        if value is not None
    }

    try:
        config = Config.model_validate({**config.model_dump(), **updates})
        config.check()
    except ValidationError as e:
        raise BadParameter(f"invalid config: {e}", ctx=ctx)
    except ValueError as e:
        raise BadParameter(str(e), ctx=ctx)

    # now safe to update the config on disk
    root_context.config = config
    root_context.save()

    logger.info(f"Updated config: '{root_context.config_file}'")

    if echo:
        console.print(config.to_yaml(), end="", markup=False, highlight=False)

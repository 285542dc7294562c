"""
Entry point of `scribe` CLI.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import dotenv
from click.exceptions import BadParameter
from pydantic import ValidationError
from typer import Context, Exit, Option

from ...core import Node, ScribeError
from ..config import DEFAULT_CONFIG_FILE, Config
from ..daemon import configure_daemon, is_daemon_up, launch_daemon
from . import add, listen, settings
from ._utils import MainTyper, get_root_context, logger, lookup_param

dotenv.load_dotenv()

app = MainTyper(
    "scribe",
    help="Scribe: sync project records through IPFS",
)


@app.callback()
def main(
    ctx: Context,
    config_file: Path
    | None = Option(
        None,
        "--config",
        help=f"Config file, generated if not provided and {DEFAULT_CONFIG_FILE} doesn't exist",
        envvar="SCRIBE_CONFIG",
        dir_okay=False,
    ),
    private: bool = Option(
        False,
        "--private",
        help="Run in private mode",
    ),
):
    ctx.obj = RootContext.from_file(
        ctx=ctx, config_file=config_file, private=private
    )


app.add_typer(add.app)
app.command()(listen.listen)
app.command("set")(settings.set_config)


@app.command()
def check(ctx: Context):
    """
    Check connection to the IPFS daemon
    """
    root_context = get_root_context(ctx)
    node = root_context.create_node()

    try:
        identity = node.identity()
    except ScribeError as e:
        logger.error(f"Failed to get node identity: {e}")
        raise Exit(code=1)

    logger.info(f"Connected to daemon at {root_context.config.api_endpoint}")
    logger.info(f"Node identity: {identity.id}")


def run():
    app()


@dataclass(kw_only=True)
class RootContext:
    ctx: Context
    config: Config
    config_file: Path

    @classmethod
    def from_file(
        cls,
        *,
        ctx: Context,
        config_file: Path | None,
        private: bool = False,
    ) -> RootContext:
        if config_file is None:
            config_file = DEFAULT_CONFIG_FILE

            # generate the default config if we can't find it
            if not config_file.is_file():
                Config.default().dump_yaml(config_file)
                logger.info(f"Generated default config: '{config_file}'")

        # only use existing user supplied config, we're not making it for them
        elif not config_file.is_file():
            raise BadParameter(
                message=f"file does not exist: {config_file}",
                ctx=ctx,
                param=lookup_param(ctx, "config_file"),
            )

        try:
            config = Config.load_yaml(config_file)
        except (ValueError, ValidationError) as e:
            raise BadParameter(
                f"failed to load config file '{config_file}': {e}",
                ctx=ctx,
                param=lookup_param(ctx, "config_file"),
            )

        if private:
            config.private = True

        return RootContext(ctx=ctx, config=config, config_file=config_file)

    def save(self):
        self.config.dump_yaml(self.config_file)

    def create_node(self) -> Node:
        """
        Configure and launch the daemon if needed, then connect to it.
        """
        config = self.config

        try:
            config.check()

            logger.info("Configuring IPFS daemon...")
            configure_daemon(config, logger=logger)

            if not is_daemon_up(config):
                logger.info("Launching daemon...")
                launch_daemon(config, logger=logger)

            logger.info("Initialising the node...")
            return config.create_node(logger=logger)
        except (ValueError, ScribeError) as e:
            logger.error(f"Failed to start node: {e}")
            raise Exit(code=1)


if __name__ == "__main__":
    app()

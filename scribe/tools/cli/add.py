"""
CLI commands to add records to the configured project.

The project database is pulled using the configured remote content id (or
created if there is none), the record is added, and the database is pushed
back. The new content id is then persisted in the config file.
"""

from __future__ import annotations

from pathlib import Path

from click import BadParameter
from typer import Argument, Context, Exit, Option

from ...core import Node, NotFoundError, ScribeError
from ...records import Project, ProjectDatabase, Run
from ..config import Config
from ._utils import MainTyper, get_root_context, logger, lookup_param

EXPLORER_URL = "https://explore.ipld.io/#/explore"

app = MainTyper(
    "add",
    help="Add a record to the configured project",
)


@app.command("run")
def add_run(
    ctx: Context,
    label: str = Argument(help="Label of the run, unique within the project"),
    output_dir: Path = Option(
        Path("."),
        help="Output directory of the run",
        file_okay=False,
    ),
    fast5_dir: Path = Option(
        Path("fast5"),
        help="Output directory of fast5 files",
        file_okay=False,
    ),
    fastq_dir: Path = Option(
        Path("fastq"),
        help="Output directory of fastq files",
        file_okay=False,
    ),
):
    """
    Add a run to the configured project
    """
    root_context = get_root_context(ctx)
    config = root_context.config

    node = root_context.create_node()

    with node:
        try:
            identity = node.identity()
            logger.info(f"Node identity: {identity.id}")

            node.set_project(config.project)
            logger.info(f"Registered node with project: {node.project}")

            db = load_database(node, config)
            project = get_project(db, config.project)

            if label in project.runs:
                raise BadParameter(
                    f"run '{label}' already exists in project '{project.label}'",
                    ctx=ctx,
                    param=lookup_param(ctx, "label"),
                )

            if not project.is_registered:
                logger.info("Registering project...")
                project.register(node, pin=config.pinning)
                logger.info(f"Project registered: {project.cid}")

            run = Run.create(
                label,
                output_dir=str(output_dir),
                fast5_dir=str(fast5_dir),
                fastq_dir=str(fastq_dir),
            )
            project.attach(run)

            run_cid = run.sync(node, project, pin=config.pinning)
            logger.info(f"Run synced: {run_cid}")

            logger.info("Pushing database changes to IPFS...")
            cid = db.push(node)
        except ScribeError as e:
            logger.error(f"Failed to add run: {e}")
            raise Exit(code=1)

        config.remote_cid = cid
        root_context.save()
        logger.info(f"Database updated: {cid}")
        logger.info(f"View on: {EXPLORER_URL}/{cid}")

        try:
            node.publish(f"added run '{label}' ({run_cid}), database: {cid}")
        except ScribeError as e:
            logger.warning(f"Failed to announce run: {e}")


def load_database(node: Node, config: Config) -> ProjectDatabase:
    """
    Pull database using configured content id, or create an empty one.
    """
    db = ProjectDatabase(pin=config.pinning)

    if config.remote_cid:
        logger.info(f"Pulling project database: {config.remote_cid}")
        db.pull(node, config.remote_cid)
        logger.info(
            f"Number of projects added to local database: {db.get_num_projects()}"
        )
    else:
        logger.info("No existing content id found")

    return db


def get_project(db: ProjectDatabase, label: str) -> Project:
    """
    Get project from database, creating it if needed.
    """
    try:
        project = db.get_project(label)
    except NotFoundError:
        logger.info(f"Creating project: {label}")
        project = Project.create(label)
        db.add_project(project)
    else:
        logger.info(f"Project found: {label}")

    return project

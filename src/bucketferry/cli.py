# src/bucketferry/cli.py
"""Command-line interface for the bucketferry tool."""

import asyncio
import functools
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Tuple

import click
from dotenv import load_dotenv
from rich.logging import RichHandler

from bucketferry.config import BACKENDS, AppConfig, Config
from bucketferry.exceptions import BucketFerryError

logger: logging.Logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    """Configure rich-based logging for the application."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # Silence noisy loggers
    for logger_name in ["botocore", "aiobotocore", "urllib3", "google"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


async def main_async(config: Config) -> None:
    """
    Asynchronously execute the copy pipeline.

    Args:
        config (Config): The application configuration.
    """
    # Lazily import to keep CLI start-up fast
    from bucketferry.pipeline import FerryPipeline

    pipeline: FerryPipeline = FerryPipeline(config)
    await pipeline.run()


def run(**kwargs: Any) -> None:
    """
    Builds the configuration and runs the pipeline, mapping failures to
    exit codes.
    """
    try:
        app_config: AppConfig = AppConfig(
            direction=kwargs["direction"],
            backend=kwargs["backend"],
            local_paths=tuple(Path(p) for p in kwargs["local_paths"]),
            prefix=kwargs["prefix"],
            concurrency=kwargs["concurrency"],
            continue_on_error=kwargs["continue_on_error"],
            queue_size=kwargs["queue_size"],
            show_progress=not kwargs["no_progress"],
        )
        config: Config = Config.load(app_config)

        asyncio.run(main_async(config))
        logger.info("✅ Run completed successfully.")
    except BucketFerryError as e:
        logger.critical(f"A critical application error occurred: {e}")
        sys.exit(1)
    except Exception:
        logger.critical(
            "An unexpected error caused the application to fail:", exc_info=True
        )
        sys.exit(1)


def copy_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by the `put` and `get` commands."""

    @click.option(
        "-b",
        "--backend",
        type=click.Choice(BACKENDS, case_sensitive=False),
        default="s3",
        help="Object store on the remote side.",
        show_default=True,
    )
    @click.option(
        "-p",
        "--prefix",
        default="",
        help="Object key prefix on the remote side.",
    )
    @click.option(
        "-c",
        "--concurrency",
        type=click.IntRange(min=1),
        default=10,
        help="Number of concurrent transfers.",
        show_default=True,
    )
    @click.option(
        "--continue-on-error",
        is_flag=True,
        default=False,
        help="Log and skip failed items instead of aborting the run.",
    )
    @click.option(
        "--queue-size",
        type=click.IntRange(min=0),
        default=1024,
        help="Maximum number of discovered items waiting to be copied (0: no limit).",
        show_default=True,
    )
    @click.option(
        "--no-progress",
        is_flag=True,
        default=False,
        help="Do not render a progress bar.",
    )
    @functools.wraps(func)
    def wrapper(**kwargs: Any) -> Any:
        kwargs["backend"] = kwargs["backend"].lower()
        return func(**kwargs)

    return wrapper


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set the logging level.",
    show_default=True,
)
def cli(log_level: str) -> None:
    """
    Copies files between the local filesystem and an object store.

    Credentials and bucket information must be set via environment variables
    (FERRY_S3_* or FERRY_GCS_*), optionally from a .env file.
    """
    load_dotenv()
    setup_logging(log_level)


@cli.command()
@click.argument(
    "local_paths",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, resolve_path=True),
)
@copy_options
def put(local_paths: Tuple[str, ...], **kwargs: Any) -> None:
    """
    Upload local files and directories to the bucket.

    Each upload is buffered in memory, so peak memory use is about
    CONCURRENCY times the largest file.
    """
    run(direction="put", local_paths=local_paths, **kwargs)


@cli.command()
@click.argument(
    "local_dir",
    type=click.Path(file_okay=False, dir_okay=True, writable=True, resolve_path=True),
)
@copy_options
def get(local_dir: str, **kwargs: Any) -> None:
    """Download every object under the prefix into a local directory."""
    run(direction="get", local_paths=(local_dir,), **kwargs)


if __name__ == "__main__":
    cli()

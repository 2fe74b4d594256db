"""tagstash-web: run the HTTP API with uvicorn."""

import logging
import os
from pathlib import Path
from typing import Optional

import click
import uvicorn

from tagstash.db.config import settings


@click.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind")
@click.option("--port", default=8080, show_default=True, type=int, help="Port to listen on")
@click.option("--reload", is_flag=True, help="Reload on code changes (development)")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding the catalog and uploads (overrides DATA_DIR)",
)
@click.option("--log-level", default=None, help="Logging level (overrides LOG_LEVEL)")
def web(host: str, port: int, reload: bool, data_dir: Optional[Path], log_level: Optional[str]) -> None:
    """Serve the image store API."""
    if data_dir is not None:
        # Also exported so reload workers build the same settings
        os.environ["DATA_DIR"] = str(data_dir)
        settings.data_dir = str(data_dir)
    level = (log_level or settings.log_level).upper()
    logging.basicConfig(level=level, format="[%(levelname)s] %(name)s: %(message)s")

    click.echo("tagstash image store")
    click.echo(f"  Data directory: {Path(settings.data_dir).resolve()}")
    click.echo(f"  Byte budget:    {settings.max_image_bytes}")
    click.echo(f"Starting web server at http://{host}:{port}")

    uvicorn.run(
        "tagstash.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=level.lower(),
    )


if __name__ == "__main__":  # pragma: no cover
    web()

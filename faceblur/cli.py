from __future__ import annotations

import logging
from pathlib import Path

import typer

from faceblur.config import load_config, write_default_config

app = typer.Typer(add_completion=False, no_args_is_help=True, help="FaceBlur photo privacy editor.")
LOGGER = logging.getLogger("faceblur")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


@app.command("init-config")
def init_config(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config file."),
) -> None:
    path = write_default_config(force=force)
    typer.echo(f"Config initialized: {path}")


@app.command()
def gui(
    files: list[Path] | None = typer.Argument(
        None,
        exists=True,
        resolve_path=True,
        dir_okay=False,
        help="Photos to open on startup.",
    ),
    log_level: str | None = typer.Option(None, "--log-level"),
) -> None:
    """Open the editor window."""
    cfg = load_config()
    _setup_logging(log_level or str(cfg.get("log_level", "info")))
    try:
        from faceblur.gui import launch_gui
    except Exception as exc:
        typer.secho(f"GUI is unavailable: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(1)

    startup_files = list(files or [])
    LOGGER.info("launching GUI with %d startup file(s)", len(startup_files))
    try:
        launch_gui(startup_files=startup_files, config=cfg)
    except Exception as exc:
        typer.secho(f"GUI failed to start: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()

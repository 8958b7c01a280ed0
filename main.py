from __future__ import annotations

import argparse
import logging
import sys
import traceback
from pathlib import Path

from faceblur.config import load_config

_log = logging.getLogger("faceblur.main")


def _filter_platform_startup_args(argv: list[str]) -> list[str]:
    """Drop arguments injected by platform launchers so argparse does not choke on them."""
    filtered_args: list[str] = []
    for arg in argv:
        if sys.platform == "darwin" and arg.startswith("-psn_"):
            continue
        filtered_args.append(arg)
    return filtered_args


def _install_exception_logging() -> None:
    """Windowed builds have no console; route uncaught exceptions to the log."""

    def _log_uncaught_exception(exc_type, exc_value, exc_tb) -> None:
        message = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
        _log.error("uncaught exception\n%s", message.rstrip())
        sys.__excepthook__(exc_type, exc_value, exc_tb)

    sys.excepthook = _log_uncaught_exception


def main() -> None:
    cfg = load_config()
    logging.basicConfig(
        level=getattr(logging, str(cfg.get("log_level", "info")).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    _install_exception_logging()
    _log.info("startup argv=%s", sys.argv[1:])

    parser = argparse.ArgumentParser(description="Launch the FaceBlur editor.")
    parser.add_argument("files", nargs="*", type=Path, help="Photos to open on startup.")
    args = parser.parse_args(_filter_platform_startup_args(sys.argv[1:]))
    startup_files = [path.resolve(strict=False) for path in args.files]
    _log.info("startup_files=%s", [str(path) for path in startup_files])

    try:
        from faceblur.gui import launch_gui
    except Exception as exc:
        _log.error("GUI import failed: %s", exc)
        raise SystemExit(f"GUI is unavailable: {exc}") from exc

    launch_gui(startup_files=startup_files, config=cfg)
    _log.info("GUI returned normally")


if __name__ == "__main__":
    main()

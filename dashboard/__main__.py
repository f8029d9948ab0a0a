"""Run the dashboard server with uvicorn: ``python -m dashboard``."""

from __future__ import annotations

import uvicorn

from dashboard.config import get_settings


def main() -> None:
    settings = get_settings()
    # log_config=None keeps the JSON root handler installed by configure_logging.
    uvicorn.run("dashboard.main:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()

"""
wfm_rolesync.api.__main__

Entrypoint for running the service via `python -m wfm_rolesync.api`.
"""

from __future__ import annotations

import uvicorn

from wfm_rolesync.api.app import create_app
from wfm_rolesync.settings import get_settings


def main() -> None:
    settings = get_settings()
    app = create_app(settings=settings)

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,  # structlog
    )


if __name__ == "__main__":
    main()

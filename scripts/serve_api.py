from __future__ import annotations

import uvicorn

from thoughtlog.apps.api.main import create_app
from thoughtlog.core.config import get_settings


def main() -> None:
    # Run the API with env-driven settings for compose and local development.
    settings = get_settings()
    app = create_app()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()

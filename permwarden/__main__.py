"""Run the permwarden server: python3 -m permwarden"""

import uvicorn

from permwarden.config import settings


def main() -> None:
    uvicorn.run(
        "permwarden.api.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

from __future__ import annotations

import uvicorn

from facility_service.config import load_settings


def main() -> None:
    settings = load_settings()
    uvicorn.run(
        "facility_service.app:app",
        host=settings.FACILITY_SERVICE_HOST,
        port=settings.FACILITY_SERVICE_PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()

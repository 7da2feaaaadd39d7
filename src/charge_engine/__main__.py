"""Entry point for running the application with uvicorn."""

import uvicorn

from charge_engine.config import get_settings


def main() -> None:
    """Run the application."""
    settings = get_settings()
    uvicorn.run(
        "charge_engine.api.app:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()

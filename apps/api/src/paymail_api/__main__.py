import uvicorn

from .core.settings import settings


def main() -> None:
    uvicorn.run(
        "paymail_api.app:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development",
    )


if __name__ == "__main__":
    main()

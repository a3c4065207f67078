import uvicorn

from crm_webhooks.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "crm_webhooks.main:app",
        host=settings.BACKEND_HOST,
        port=settings.BACKEND_PORT,
        workers=settings.BACKEND_WORKERS,
        reload=settings.DEV_UVICORN_RELOAD,
    )


if __name__ == "__main__":
    main()

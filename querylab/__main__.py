import uvicorn

from .config import load_settings
from .logging_config import logger
from .main import create_app


def main():
    settings = load_settings()
    app = create_app(settings)
    logger.info(f"Unified intro labs server running on http://{settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

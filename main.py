import uvicorn

from quiz_session.config import settings
from quiz_session.devserver import DevStore, create_app, seed_demo
from quiz_session.logger import setup_logger

logger = setup_logger(__name__)

app = create_app(seed_demo(DevStore()))


if __name__ == "__main__":
    logger.info("🚀 Starting quiz dev server")
    logger.info(f"   API: http://{settings.devserver_host}:{settings.devserver_port}/api")
    uvicorn.run(
        app,
        host=settings.devserver_host,
        port=settings.devserver_port,
        log_level=settings.log_level.lower(),
    )

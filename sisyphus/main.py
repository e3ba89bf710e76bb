from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from sisyphus.api import stream
from sisyphus.loop import Clock, LoopConfig, ModelProvider, Runtime, get_config

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(levelname)s %(asctime)s [%(name)s:%(lineno)d] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once, at the given level name."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Start the timer ticker on startup; the loop itself waits for a viewer
    runtime: Runtime = app.state.runtime
    runtime.start()
    yield
    # Stop the loop, drop viewers and close the upstream client on shutdown
    await runtime.shutdown()


def create_app(
    config: Optional[LoopConfig] = None,
    provider: Optional[ModelProvider] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """
    Build the web app around a fresh session.

    Raises:
        TemplateError: A prompt template uses an unknown token
        ValueError: Missing credentials for the selected provider
    """
    config = config or get_config()

    app = FastAPI(title="sisyphus", lifespan=lifespan)
    app.state.runtime = Runtime.build(config, provider=provider, clock=clock)

    # Viewers are usually served from another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # Include API routers
    app.include_router(stream.router)

    @app.get("/healthz")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


def main() -> None:
    """Run the server with settings from the environment."""
    config = get_config()
    configure_logging(config.log_level)

    app = create_app(config)
    logger.info(f"Server running on http://{config.host}:{config.port}")
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()

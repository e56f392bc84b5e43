import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.endpoints import auth, folders, geocode, recordings, responses, surveys, sync, users
from .config import APP_HOST, APP_PORT, RELOAD_APP, Settings
from .state import AppState

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(settings: Optional[Settings] = None, state: Optional[AppState] = None) -> FastAPI:
    """
    Builds the API. Pass `state` to serve an already hydrated AppState
    (tests do); otherwise one is created from `settings` on startup.
    """
    settings = settings or (state.settings if state else Settings.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application starting...")
        own_state = state is None
        app_state = state or await AppState.create(settings)
        app.state.socialvox = app_state
        yield
        logger.info("Application shutting down...")
        if own_state:
            await app_state.close()

    app = FastAPI(title="SOCIALVOX Survey Backend", lifespan=lifespan)
    if state is not None:
        app.state.socialvox = state

    logger.info("CORS: allowed origins %s", settings.allowed_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for module in (auth, surveys, folders, responses, users, sync, recordings, geocode):
        app.include_router(module.router)

    @app.get("/")
    async def read_root():
        return {"message": "Bienvenido al backend de encuestas SOCIALVOX"}

    return app


configure_logging(Settings.from_env().log_level)
app = create_app()


if __name__ == "__main__":
    uvicorn.run("socialvox.main:app", host=APP_HOST, port=APP_PORT, reload=RELOAD_APP)

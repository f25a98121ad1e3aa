import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from sqlalchemy.engine import Engine

from .api.exceptions import register_exception_handlers
from .api.routes import router as accounts_router, transfer_router
from .core.config import get_settings
from .core.db import create_engine_for_url, init_db
from .services import TransactionManager

settings = get_settings()
logging.basicConfig(level=settings.log_level)

def create_app(engine: Optional[Engine] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db_engine = engine or create_engine_for_url(settings.database_url, settings)
        init_db(db_engine)
        app.state.transactions = TransactionManager(db_engine)
        yield
        if engine is None:
            db_engine.dispose()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    app.include_router(accounts_router)
    app.include_router(transfer_router)
    register_exception_handlers(app)

    @app.get("/health")
    def read_health() -> dict[str, str]:
        return {"status": "ok"}

    return app

app = create_app()

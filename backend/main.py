# main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import api_router
from core.config import settings
from core.db import DatabaseManager, check_database_health, count_users, create_user
from core.security import hash_password
from services.import_wizard import ImportSessionRegistry
from services.photo_storage import PhotoStorage

logger = logging.getLogger(__name__)


def _bootstrap_admin(db_manager: DatabaseManager) -> None:
    """Create the configured admin when no account exists yet."""
    if not (settings.ADMIN_USERNAME and settings.ADMIN_PASSWORD):
        return
    with db_manager.get_connection() as db:
        if count_users(db) == 0:
            create_user(db, settings.ADMIN_USERNAME, hash_password(settings.ADMIN_PASSWORD), "admin")
            logger.info(f"👤 Bootstrap admin '{settings.ADMIN_USERNAME}' created")


def create_app(db_path: str | None = None, photo_dir: str | None = None) -> FastAPI:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(title="Asset Opname Backend")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # store, photo bucket and wizard sessions are built once per app
    app.state.db_manager = DatabaseManager(db_path or settings.DB_PATH)
    app.state.photo_storage = PhotoStorage(photo_dir or settings.PHOTO_DIR, settings.PHOTO_MAX_BYTES)
    app.state.import_sessions = ImportSessionRegistry(
        batch_size=settings.IMPORT_BATCH_SIZE,
        preview_rows=settings.IMPORT_PREVIEW_ROWS,
    )
    _bootstrap_admin(app.state.db_manager)

    app.include_router(api_router)

    @app.get("/api/health", tags=["health"])
    def health():
        ok = check_database_health(app.state.db_manager)
        return {"status": "ok" if ok else "degraded", "database": ok}

    return app


app = create_app()

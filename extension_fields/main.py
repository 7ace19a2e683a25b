import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from extension_fields.config import get_settings
from extension_fields.database import SessionLocal
from extension_fields.routers import api_router
from extension_fields.services.extension_field_catalog import ensure_schema_version_row
from extension_fields.services.schema_cache import extension_schema_cache

settings = get_settings()
log_level_name = (settings.log_level or "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
logging.getLogger("extension_fields").setLevel(log_level)

app = FastAPI(title=settings.app_name)

logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.frontend_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router, prefix="/api")


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, str]:
    return {"status": "ok"}


@app.on_event("startup")
def warm_extension_metadata() -> None:
    with SessionLocal() as session:
        try:
            ensure_schema_version_row(session)
            metadata = extension_schema_cache.get(session)
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning("Extension field catalog unavailable at startup: %s", exc)
            return
    logger.info("Extension metadata ready at schema version %d", metadata.version)

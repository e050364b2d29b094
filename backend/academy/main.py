import logging
from typing import Dict

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .admin_routes import router as admin_router
from .config import Settings, get_settings
from .logging_config import configure_logging


configure_logging()
logger = logging.getLogger(__name__)
app = FastAPI(title="Academy Members Backend", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(admin_router)

settings_snapshot = get_settings()
logger.info("Backend starting in %s persistence mode", settings_snapshot.persistence_mode)
logger.info("Supabase service credentials configured: %s", settings_snapshot.supabase_configured)


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, object]:
    return {
        "status": "ok",
        "persistence_mode": settings.persistence_mode,
        "supabase_configured": settings.supabase_configured,
    }

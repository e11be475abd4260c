# hookpanel/main.py
import argparse
import os

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from hookpanel.database.db import SessionLocal, init_db
from hookpanel.service.auth import init_access_key, require_admin
from hookpanel.service.router import router
from hookpanel.service.system_router import public_router, router as system_router
from hookpanel.service.webhook_router import router as webhook_router
from hookpanel.static.config_store import ConfigStore
from hookpanel.static.scheduler import scheduler
from hookpanel.utils.errors import HookPanelError
from hookpanel.utils.logger_config import setup_logging
from hookpanel.utils.settings import get_settings

log = logger.bind(log_type="system")


def initialize(port: int = None):
    """Prepare data directories, tables, default configs and the access key"""
    init_db()
    db = SessionLocal()
    try:
        ConfigStore(db).seed_defaults(port or int(os.environ.get("PORT", 8080)))
    finally:
        db.close()
    init_access_key()


def create_app(start_scheduler: bool = True) -> FastAPI:
    app = FastAPI(
        title="Hook Panel API",
        description="Webhook-triggered script execution",
        version="1.0.0"
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HookPanelError)
    async def hook_panel_error_handler(request: Request, exc: HookPanelError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    app.include_router(public_router, tags=["system"])
    app.include_router(webhook_router, tags=["webhook"])
    app.include_router(router, prefix="/api", tags=["scripts"], dependencies=[Depends(require_admin)])
    app.include_router(system_router, prefix="/api", tags=["system"], dependencies=[Depends(require_admin)])

    @app.on_event("startup")
    async def startup_event():
        """Initialize services on startup"""
        log.info("Starting Hook Panel API")
        initialize()
        if start_scheduler:
            scheduler.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup on shutdown"""
        log.info("Shutting down Hook Panel API")
        scheduler.stop()

    return app


def main():
    parser = argparse.ArgumentParser(description="Hook Panel - webhook script management service")
    parser.add_argument("-p", "--port", type=int, default=int(os.environ.get("PORT", 8080)))
    parser.add_argument("--host", default="0.0.0.0")
    args = parser.parse_args()

    # Startup seeds system.domain from PORT
    os.environ["PORT"] = str(args.port)

    import uvicorn
    uvicorn.run(app, host=args.host, port=args.port)


# Set up logging
setup_logging(get_settings().service_log_dir)
app = create_app()

# Run the application
if __name__ == "__main__":
    main()

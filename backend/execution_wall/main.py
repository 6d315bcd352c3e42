import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from execution_wall.cleanup_jobs import cleanup_old_records
from execution_wall.config import settings
from execution_wall.database import init_db
from execution_wall.exceptions import AppError
from execution_wall.routers import (
    audit_logs_router,
    executions_router,
    positions_router,
    schedules_router,
    settings_router,
    system_router,
    ticker_configs_router,
    trade_intents_router,
    webhook_router,
)
from execution_wall.services.daily_reset import daily_reset_service
from execution_wall.services.execution_scheduler import execution_scheduler
from execution_wall.services.mode_scheduler import mode_scheduler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Execution Wall")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(webhook_router.router)
app.include_router(trade_intents_router.router)
app.include_router(executions_router.router)
app.include_router(positions_router.router)
app.include_router(ticker_configs_router.router)
app.include_router(settings_router.router)
app.include_router(schedules_router.router)
app.include_router(audit_logs_router.router)
app.include_router(system_router.router)

# Background task handles
cleanup_task = None


# Startup/Shutdown events
@app.on_event("startup")
async def startup_event():
    global cleanup_task

    logger.info("🚀 Initializing database...")
    await init_db()

    logger.info("🚀 Starting execution scheduler...")
    await execution_scheduler.start()

    logger.info("🚀 Starting mode scheduler...")
    await mode_scheduler.start()

    logger.info("🚀 Starting daily reset scheduler...")
    await daily_reset_service.start()

    cleanup_task = asyncio.create_task(cleanup_old_records())
    logger.info("🚀 Startup complete!")


@app.on_event("shutdown")
async def shutdown_event():
    global cleanup_task

    logger.info("🛑 Stopping background services...")
    await execution_scheduler.stop()
    await mode_scheduler.stop()
    await daily_reset_service.stop()

    if cleanup_task:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass

    logger.info("🛑 Shutdown complete")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

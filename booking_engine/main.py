from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from booking_engine.core.config import settings
from booking_engine.core.errors import BookingError
from booking_engine.api import admin, bookings
from booking_engine.core.logger import setup_logging, logger
from booking_engine.bootstrap import bootstrap
from booking_engine.services.booking_service import BookingService
from booking_engine.services.calendar_service import GoogleCalendarAdapter
from booking_engine.services.store import build_store
from contextlib import asynccontextmanager
from datetime import datetime

setup_logging()

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 Starting {settings.PROJECT_NAME} ({settings.STORE_BACKEND} store)")
    store = build_store(settings)
    if settings.BOOTSTRAP_ON_STARTUP:
        await bootstrap(store)
    app.state.booking_service = BookingService(
        store,
        calendar=GoogleCalendarAdapter.from_settings(settings),
        settings=settings,
    )
    yield
    await app.state.booking_service.drain()
    logger.info("🛑 Shutting down backend")

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan
)

@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(f"🔥 UNHANDLED ERROR: {exc}")
    return JSONResponse(
        status_code=500,
        content={"message": "Internal Server Error", "detail": "An unexpected error occurred. Please contact support."}
    )

app.include_router(bookings.router, prefix=settings.API_PREFIX, tags=["Bookings"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])

@app.get("/")
async def health_check():
    return {'status': 'active', 'time': datetime.now().isoformat()}

@app.get("/health")
async def health_check_std():
    return {"status": "ok", "environment": settings.ENVIRONMENT, "timestamp": datetime.now().isoformat()}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("booking_engine.main:app", host="0.0.0.0", port=settings.PORT, reload=True)

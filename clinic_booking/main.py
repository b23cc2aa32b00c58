import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clinic_booking.config import settings
from clinic_booking.core.exceptions import DomainException
from clinic_booking.core.scheduler import start_scheduler, stop_scheduler
from clinic_booking.crud.records import ensure_admin_user
from clinic_booking.database import Base, SessionLocal, engine
from clinic_booking.models import appointment, doctor, medical_record, patient, room, service, user  # noqa: F401
from clinic_booking.routers import appointments, auth, doctors, lookups, patients, rooms

logging.basicConfig(
    level=settings.LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(title=settings.PROJECT_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException):
    http_exc = exc.to_http_exception()
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


# Include routers
app.include_router(auth.router)
app.include_router(lookups.router)
app.include_router(doctors.router)
app.include_router(patients.router)
app.include_router(rooms.router)
app.include_router(appointments.router)


@app.on_event("startup")
async def startup_event():
    db = SessionLocal()
    try:
        ensure_admin_user(db)
    finally:
        db.close()

    if settings.SCHEDULER_ENABLED:
        start_scheduler()


@app.on_event("shutdown")
async def shutdown_event():
    stop_scheduler()


@app.get("/")
async def root():
    return {"message": "Welcome to Clinic Booking API"}

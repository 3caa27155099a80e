import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.errors import AppError, app_error_handler
from app.database import create_db_and_tables
from app.models import (  # noqa: F401  register tables
    appointment,
    barber,
    schedule_lock,
    service,
    shop,
    transaction,
    user,
    working_hours,
)
from app.routers import appointments, auth, barbers, payments, services, users


logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    logger.info("Database tables ready")
    yield


app = FastAPI(title="Barber booking API", lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

# the booking front end calls the API from the browser
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.CLIENT_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(users.router)
app.include_router(auth.router)
app.include_router(barbers.router)
app.include_router(services.router)
app.include_router(appointments.router)
app.include_router(payments.router)


@app.get("/")
def root():
    return {"message": "Barber booking API running"}

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

import auth
import bookings
import config
import database
import guides
from errors import AppError
from schemas import (
    Booking, BookingCreate, ChangePasswordRequest, GuideAccount, GuideAuthResponse,
    GuideProfile, GuideProfileCreate, GuideProfileUpdate, Identity, LoginRequest,
    RatingRequest, RegisterGuideRequest, RegisterTouristRequest, StatusUpdate,
    TouristAccount, TouristAuthResponse,
)

config.setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await run_in_threadpool(database.ensure_indexes)
    yield


app = FastAPI(title="Guide Marketplace API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -------------------- Error translation --------------------
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{where}: {first.get('msg')}" if where else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"message": message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


# -------------------- Health --------------------
@app.get("/")
def root():
    return {"name": "Guide Marketplace API", "status": "ok"}


@app.get("/test")
def test_database():
    """Database wiring plus per-collection document counts and unique-index state."""
    response = {
        "backend": "running",
        "database_configured": bool(config.DATABASE_URL and config.DATABASE_NAME),
        "connection_status": "Not Connected",
        "collections": {},
    }
    if database.db is None:
        return response
    try:
        response["collections"] = database.collection_status()
        response["connection_status"] = "Connected"
    except PyMongoError as e:
        logger.warning("Database check failed: %s", e)
        response["connection_status"] = f"Error: {str(e)[:80]}"
    return response

# -------------------- Guide auth --------------------
@app.post("/guide-auth/register", response_model=GuideAuthResponse, status_code=201)
def register_guide(payload: RegisterGuideRequest):
    account, token = auth.register("guide", payload.email, payload.password, payload.full_name)
    return {**account, "token": token}


@app.post("/guide-auth/login", response_model=GuideAuthResponse)
def login_guide(payload: LoginRequest):
    account, token = auth.login("guide", payload.email, payload.password)
    return {**account, "token": token}


@app.get("/guide-auth/me", response_model=GuideAccount)
def guide_account(identity: Identity = Depends(auth.current_guide)):
    return auth.get_account(identity)


@app.put("/guide-auth/password")
def change_guide_password(payload: ChangePasswordRequest, identity: Identity = Depends(auth.current_guide)):
    auth.change_password(identity, payload.current_password, payload.new_password)
    return {"updated": True}


@app.get("/guide-auth/{guide_id}/requests", response_model=List[Booking])
def guide_requests(guide_id: str, status: Optional[str] = None, identity: Identity = Depends(auth.current_identity)):
    return bookings.list_guide_requests(identity, guide_id, status)


@app.patch("/guide-auth/{guide_id}/requests/{request_id}", response_model=Booking)
def respond_to_request(guide_id: str, request_id: str, payload: StatusUpdate, identity: Identity = Depends(auth.current_identity)):
    return bookings.respond_to_request(identity, guide_id, request_id, payload.status)

# -------------------- Tourist auth --------------------
@app.post("/tourist-auth/register", response_model=TouristAuthResponse, status_code=201)
def register_tourist(payload: RegisterTouristRequest):
    account, token = auth.register("tourist", payload.email, payload.password, payload.full_name, payload.nationality)
    return {**account, "token": token}


@app.post("/tourist-auth/login", response_model=TouristAuthResponse)
def login_tourist(payload: LoginRequest):
    account, token = auth.login("tourist", payload.email, payload.password)
    return {**account, "token": token}


@app.get("/tourist-auth/profile", response_model=TouristAccount)
def tourist_profile(identity: Identity = Depends(auth.current_tourist)):
    return auth.get_account(identity)


@app.put("/tourist-auth/password")
def change_tourist_password(payload: ChangePasswordRequest, identity: Identity = Depends(auth.current_tourist)):
    auth.change_password(identity, payload.current_password, payload.new_password)
    return {"updated": True}

# -------------------- Guide directory --------------------
@app.post("/guides", response_model=GuideProfile, status_code=201)
def create_guide(payload: GuideProfileCreate, identity: Identity = Depends(auth.current_guide)):
    return guides.create_profile(identity, payload)


@app.get("/guides", response_model=List[GuideProfile])
def list_guides(city: Optional[str] = None):
    return guides.list_profiles(city)


@app.get("/guides/search", response_model=List[GuideProfile])
def search_guides(
    city: Optional[str] = None,
    languages: Optional[str] = None,
    min_rating: Optional[float] = None,
    max_price: Optional[float] = None,
):
    langs = [l.strip() for l in languages.split(",") if l.strip()] if languages else None
    return guides.search(city=city, languages=langs, min_rating=min_rating, max_price=max_price)


@app.get("/guides/{guide_id}", response_model=GuideProfile)
def get_guide(guide_id: str):
    return guides.get_profile(guide_id)


@app.put("/guides/{guide_id}", response_model=GuideProfile)
def update_guide(guide_id: str, payload: GuideProfileUpdate, identity: Identity = Depends(auth.current_identity)):
    return guides.update_profile(identity, guide_id, payload)


@app.put("/guides/{guide_id}/rating", response_model=GuideProfile)
def rate_guide(guide_id: str, payload: RatingRequest):
    return guides.record_rating(guide_id, payload.rating)

# -------------------- Bookings --------------------
@app.post("/bookings", response_model=Booking, status_code=201)
def create_booking(payload: BookingCreate, identity: Identity = Depends(auth.current_tourist)):
    return bookings.create_booking(identity, payload)


@app.get("/bookings/tourist/{tourist_id}", response_model=List[Booking])
def tourist_bookings(tourist_id: str, status: Optional[str] = None, identity: Identity = Depends(auth.current_identity)):
    return bookings.list_by_tourist(identity, tourist_id, status)


@app.get("/bookings/guide/{guide_id}", response_model=List[Booking])
def guide_bookings(guide_id: str, status: Optional[str] = None, identity: Identity = Depends(auth.current_identity)):
    return bookings.list_by_guide(identity, guide_id, status)


@app.get("/bookings/{booking_id}", response_model=Booking)
def get_booking(booking_id: str, identity: Identity = Depends(auth.current_identity)):
    return bookings.get_booking(identity, booking_id)


@app.patch("/bookings/{booking_id}/status", response_model=Booking)
def update_booking_status(booking_id: str, payload: StatusUpdate, identity: Identity = Depends(auth.current_identity)):
    return bookings.set_status(identity, booking_id, payload.status)


@app.post("/bookings/{booking_id}/cancel", response_model=Booking)
def cancel_booking(booking_id: str, identity: Identity = Depends(auth.current_identity)):
    return bookings.cancel_booking(identity, booking_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)

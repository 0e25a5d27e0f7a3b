"""FastAPI backend for the travel planner: auth, trips, chat, places, admin."""
import asyncio
import logging
import os
import threading
import time
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import List, Optional

# Load .env before anything else
from dotenv import load_dotenv
load_dotenv()

from fastapi import Depends, FastAPI, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import Role, User, get_db, init_db
from errors import ForbiddenError, NotFoundError, TravelPlannerError, UnauthorizedError
from repositories import PlaceRepository, UserRepository
from schemas import (
    AdminRegisterRequest,
    AuthResponse,
    ChatRequest,
    ChatTurn,
    ConversationDeleted,
    ConversationStats,
    DailyItinerary,
    GeocodeResponse,
    LoginRequest,
    PlaceRecommendationResponse,
    PlaceResponse,
    RegisterRequest,
    TripRequest,
    TripResponse,
    UserProfile,
    UserSummary,
)
from services.admin_service import AdminService
from services.chat_service import ChatService
from services.geocoding import Geocoder
from services.llm_client import ChatModelClient, llm_name
from services.place_recommender import PlaceRecommender
from services.trip_service import TripPlanRequest, TripService
from services.user_service import UserService
from services.weather import WeatherClient

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"

# Security
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))  # 24 hours

DISCONNECT_POLL_SECONDS = float(os.getenv("DISCONNECT_POLL_SECONDS", "0.5"))

bearer_scheme = HTTPBearer(auto_error=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Travel Planner API",
    description="Trip synthesis with geocoding, weather, and AI recommendations",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_request_timing(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    if elapsed_ms > float(os.getenv("SLOW_REQUEST_MS", "1000")):
        logger.warning("SLOW REQUEST: %s %s took %.0f ms", request.method, request.url.path, elapsed_ms)
    else:
        logger.debug("%s %s took %.0f ms", request.method, request.url.path, elapsed_ms)
    return response


# Error envelope
@app.exception_handler(TravelPlannerError)
def handle_domain_error(request: Request, exc: TravelPlannerError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if not errors:
        return JSONResponse(status_code=400, content={"error": "Invalid request"})
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    message = str(first.get("msg", "invalid value")).removeprefix("Value error, ")
    return JSONResponse(status_code=400, content={"error": f"{field}: {message}" if field else message})


@app.exception_handler(StarletteHTTPException)
def handle_http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(Exception)
def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Helper functions
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=15)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def _auth_response(user: User) -> AuthResponse:
    token = create_access_token(
        {"sub": user.username, "role": user.role.value},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return AuthResponse(token=token, user=UserSummary.model_validate(user))


# Dependencies
def get_geocoder() -> Geocoder:
    return Geocoder()


def get_weather_client() -> WeatherClient:
    return WeatherClient()


def get_chat_model() -> ChatModelClient:
    return ChatModelClient()


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise UnauthorizedError("Missing bearer token")
    try:
        payload = jwt.decode(credentials.credentials, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise UnauthorizedError("Invalid or expired token")
    username = payload.get("sub")
    user = UserRepository(db).get_by_username(username) if username else None
    if user is None:
        raise UnauthorizedError("Invalid or expired token")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != Role.ADMIN:
        raise ForbiddenError("Admin access required")
    return user


# Auth endpoints
@app.post("/auth/register", response_model=AuthResponse)
def register(body: RegisterRequest, db: Session = Depends(get_db)):
    user = UserService(db).register(body.username, body.email, body.password)
    return _auth_response(user)


@app.post("/auth/register-admin", response_model=AuthResponse)
def register_admin(body: AdminRegisterRequest, db: Session = Depends(get_db)):
    user = UserService(db).register_admin(body.username, body.email, body.password, body.admin_secret_code)
    return _auth_response(user)


@app.post("/auth/login", response_model=AuthResponse)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    user = UserService(db).authenticate(body.username, body.password)
    return _auth_response(user)


# Trip endpoints
async def watch_disconnect(http_request: Request, abandoned: threading.Event) -> None:
    """Set ``abandoned`` once the client has hung up."""
    while not abandoned.is_set():
        if await http_request.is_disconnected():
            logger.info("Client left %s %s early", http_request.method, http_request.url.path)
            abandoned.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


@app.post("/trips", response_model=TripResponse)
async def create_trip(
    body: TripRequest,
    http_request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    geocoder: Geocoder = Depends(get_geocoder),
    weather: WeatherClient = Depends(get_weather_client),
    chat_model: ChatModelClient = Depends(get_chat_model),
):
    request = TripPlanRequest(
        source_city=body.source_city,
        destination_city=body.destination_city,
        passengers=body.passengers,
        budget=body.budget,
        comfort_level=body.comfort_level.value,
        interests=body.interests,
        trip_duration=body.trip_duration,
    )
    service = TripService(db, geocoder, weather, chat_model)
    abandoned = threading.Event()
    watcher = asyncio.create_task(watch_disconnect(http_request, abandoned))
    try:
        trip = await run_in_threadpool(service.create_trip, request, user.username, abandoned)
        return await run_in_threadpool(TripResponse.from_trip, trip)
    finally:
        watcher.cancel()


@app.get("/trips", response_model=List[TripResponse])
def get_trips(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = TripService(db)
    return [TripResponse.from_trip(t) for t in service.get_user_trips(user.username)]


@app.get("/trips/{trip_id}", response_model=TripResponse)
def get_trip(
    trip_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = TripService(db)
    return TripResponse.from_trip(service.get_user_trip(trip_id, user.username))


# Chat endpoints
@app.post("/chat", response_model=ChatTurn)
def send_chat_message(
    body: ChatRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chat_model: ChatModelClient = Depends(get_chat_model),
):
    turn = ChatService(db, chat_model).process_message(body.message, user.username, body.conversation_id)
    return ChatTurn.from_history(turn)


@app.get("/chat/history", response_model=List[ChatTurn])
def get_chat_history(
    conversation_id: Optional[str] = Query(None, alias="conversationId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    turns = ChatService(db, chat_model=None).history(user.username, conversation_id)
    return [ChatTurn.from_history(t) for t in turns]


# Place endpoints (specific paths before /places/{place_id})
@app.get("/places/ai-recommendations", response_model=PlaceRecommendationResponse)
def get_ai_recommendations(
    city: str = Query(..., min_length=1),
    interests: List[str] = Query(default=[]),
    duration: int = Query(3, ge=1, le=30),
    budget: float = Query(0.0, ge=0),
    companions: str = Query("solo"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    chat_model: ChatModelClient = Depends(get_chat_model),
):
    # ?interests=a,b and ?interests=a&interests=b are both accepted
    wanted = [i.strip() for raw in interests for i in raw.split(",") if i.strip()]
    rec = PlaceRecommender(chat_model).recommend(db, city.strip(), wanted, duration, budget, companions)
    return PlaceRecommendationResponse(
        recommended_places=[PlaceResponse.from_place(p) for p in rec.places],
        daily_itinerary=[
            DailyItinerary(day=d.day, places=d.place_names, description=d.description)
            for d in rec.daily_itinerary
        ],
        total_cost_estimate=rec.total_cost_estimate,
        reasoning=rec.reasoning,
    )


@app.get("/places/geocode", response_model=GeocodeResponse)
def geocode_city(
    city: str = Query(..., min_length=1),
    user: User = Depends(get_current_user),
    geocoder: Geocoder = Depends(get_geocoder),
):
    return GeocodeResponse.model_validate(geocoder.get_coordinates_with_details(city.strip()))


@app.get("/places/city/{city}/category/{category}", response_model=List[PlaceResponse])
def get_places_by_category(
    city: str,
    category: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [PlaceResponse.from_place(p) for p in PlaceRepository(db).list_by_city_and_category(city, category)]


@app.get("/places/city/{city}/top-rated", response_model=List[PlaceResponse])
def get_top_rated_places(
    city: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [PlaceResponse.from_place(p) for p in PlaceRepository(db).top_rated(city)]


@app.get("/places/city/{city}", response_model=List[PlaceResponse])
def get_places_by_city(
    city: str,
    page: Optional[int] = Query(None, ge=0),
    size: Optional[int] = Query(None, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [PlaceResponse.from_place(p) for p in PlaceRepository(db).list_by_city(city, page, size)]


@app.get("/places", response_model=List[PlaceResponse])
def get_places(
    page: Optional[int] = Query(None, ge=0),
    size: Optional[int] = Query(None, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [PlaceResponse.from_place(p) for p in PlaceRepository(db).list_all(page, size)]


@app.get("/places/{place_id}", response_model=PlaceResponse)
def get_place(
    place_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    place = PlaceRepository(db).get(place_id)
    if place is None:
        raise NotFoundError(f"Place not found: {place_id}")
    return PlaceResponse.from_place(place)


# Admin endpoints
@app.get("/admin/users", response_model=List[UserProfile])
def admin_list_users(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return AdminService(db).list_users()


@app.get("/admin/trips", response_model=List[TripResponse])
def admin_list_trips(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return AdminService(db).list_trips()


@app.get("/admin/chats", response_model=List[ChatTurn])
def admin_list_chats(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return AdminService(db).list_chats()


@app.get("/admin/users/{user_id}/trips", response_model=List[TripResponse])
def admin_user_trips(user_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return AdminService(db).user_trips(user_id)


@app.get("/admin/users/{user_id}/chats", response_model=List[ChatTurn])
def admin_user_chats(user_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return AdminService(db).user_chats(user_id)


@app.delete("/admin/users/{user_id}")
def admin_delete_user(user_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return AdminService(db).delete_user(user_id)


@app.delete("/admin/trips/{trip_id}")
def admin_delete_trip(trip_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return AdminService(db).delete_trip(trip_id)


@app.delete("/admin/chats/{chat_id}")
def admin_delete_chat(chat_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return AdminService(db).delete_chat(chat_id)


@app.get("/admin/conversations/{conversation_id}/stats", response_model=ConversationStats)
def admin_conversation_stats(conversation_id: str, admin: User = Depends(require_admin),
                             db: Session = Depends(get_db)):
    return AdminService(db).conversation_stats(conversation_id)


@app.delete("/admin/conversations/{conversation_id}", response_model=ConversationDeleted)
def admin_delete_conversation(conversation_id: str, admin: User = Depends(require_admin),
                              db: Session = Depends(get_db)):
    return AdminService(db).delete_conversation(conversation_id)


# Health check
@app.get("/health")
def health_check():
    return {
        "status": "ok",
        "version": APP_VERSION,
        "llm": llm_name(),
        "llmProvider": os.getenv("LLM_PROVIDER", "openai"),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))

from __future__ import annotations

import json
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, Field
from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, create_engine, text
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from .chat_responder import GeminiResponder, convert_chat_history
from .config import Settings, configure_logging, is_dev_mode, load_settings
from .crisis_detector import DetectionResult, detect_and_notify, get_crisis_response
from .crisis_notifier import CrisisNotifier
from .wellness_engine import build_analytics, build_wellness_context

APP_VERSION = "1.0.0"
ALGORITHM = "HS256"
MAX_MESSAGE_LENGTH = 1000
MAX_NOTES_LENGTH = 1000
HISTORY_CONTEXT_LIMIT = 10
CHAT_RATE_LIMIT = 30
CHAT_RATE_WINDOW = timedelta(minutes=5)
SNIPPET_LENGTH = 200

settings = load_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

engine = create_engine(settings.database_url, connect_args={"check_same_thread": False})
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

crisis_notifier = CrisisNotifier(settings.crisis_webhook_url, timeout=settings.crisis_webhook_timeout)
ai_responder = GeminiResponder(
    settings.gemini_api_key,
    model=settings.gemini_model,
    timeout=settings.gemini_timeout,
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    chat_messages = relationship("ChatMessage", back_populates="user")
    wellness_entries = relationship("WellnessEntry", back_populates="user")


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    session_id = Column(String, nullable=False, index=True)
    sender = Column(String, nullable=False)
    content = Column(String, nullable=False)
    crisis_detected = Column(Boolean, default=False, nullable=False, index=True)
    crisis_keywords_json = Column(String, nullable=False, default="[]")
    crisis_confidence = Column(Float, nullable=False, default=0.0)
    response_time_ms = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="chat_messages")


class WellnessEntry(Base):
    __tablename__ = "wellness_entries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    entry_date = Column(Date, default=date.today, nullable=False)
    mood_rating = Column(Integer, nullable=True)
    energy_level = Column(Integer, nullable=True)
    stress_level = Column(Integer, nullable=True)
    sleep_hours = Column(Float, nullable=True)
    sleep_quality = Column(Integer, nullable=True)
    notes = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="wellness_entries")


class CrisisEvent(Base):
    __tablename__ = "crisis_events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    source = Column(String, nullable=False)
    snippet = Column(String, nullable=True)
    matched_signals_json = Column(String, nullable=False, default="[]")
    confidence = Column(Float, nullable=False)
    response_shown = Column(Boolean, default=False, nullable=False)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    first_name: str
    last_name: str


class UserResponse(BaseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: datetime


class ChatRequest(BaseModel):
    message: str
    session_id: Optional[str] = None


class ChatMessageResponse(BaseModel):
    id: int
    session_id: str
    sender: str
    content: str
    crisis_detected: bool
    crisis_keywords: List[str]
    crisis_confidence: float
    response_time_ms: float
    created_at: datetime


class ChatResponse(BaseModel):
    message: ChatMessageResponse
    session_id: str
    crisis_detected: bool
    crisis_response_shown: bool
    response_time_ms: float


class ChatHistoryResponse(BaseModel):
    messages: List[ChatMessageResponse]
    count: int


class CrisisCheckRequest(BaseModel):
    message: str


class CrisisCheckResponse(BaseModel):
    is_crisis: bool
    confidence: float
    keywords: List[str]
    response: Optional[str] = None


class WellnessCreate(BaseModel):
    mood_rating: Optional[int] = Field(None, ge=1, le=10)
    energy_level: Optional[int] = Field(None, ge=1, le=10)
    stress_level: Optional[int] = Field(None, ge=1, le=10)
    sleep_hours: Optional[float] = Field(None, ge=0, le=24)
    sleep_quality: Optional[int] = Field(None, ge=1, le=10)
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)
    entry_date: Optional[date] = None


class WellnessResponse(BaseModel):
    id: int
    entry_date: date
    mood_rating: Optional[int] = None
    energy_level: Optional[int] = None
    stress_level: Optional[int] = None
    sleep_hours: Optional[float] = None
    sleep_quality: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime
    crisis: Optional[dict] = None


app = FastAPI(title="FitCare API", version=APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    Base.metadata.create_all(bind=engine)
    if not crisis_notifier.enabled:
        logger.info("Crisis webhook disabled (CRISIS_WEBHOOK_URL not set)")
    logger.info("FitCare API %s using database %s", APP_VERSION, settings.db_path)


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_settings() -> Settings:
    return settings


def get_notifier() -> CrisisNotifier:
    return crisis_notifier


def get_responder() -> GeminiResponder:
    return ai_responder


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=ALGORITHM)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
        user_id = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError as exc:
        raise credentials_exception from exc

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None:
        raise credentials_exception
    return user


@app.get("/health")
def health() -> dict:
    db_status = "ok"
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception:
        db_status = "error"
    return {
        "status": "ok",
        "version": APP_VERSION,
        "db": db_status,
        "dev_mode": is_dev_mode(),
        "crisis_webhook": crisis_notifier.enabled,
    }


@app.get("/meta")
def meta() -> dict:
    return {
        "version": APP_VERSION,
        "dev_mode": is_dev_mode(),
        "db_path": settings.db_path,
        "ai_model": settings.gemini_model,
    }


@app.post("/auth/register", response_model=TokenResponse)
def register_user(payload: RegisterRequest, db: Session = Depends(get_db)) -> TokenResponse:
    email = payload.email.strip().lower()
    if not email or "@" not in email:
        raise HTTPException(status_code=400, detail="Please provide a valid email address")
    if not payload.first_name.strip() or not payload.last_name.strip():
        raise HTTPException(status_code=400, detail="First and last name are required")
    if len(payload.password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters long")
    if len(payload.password.encode("utf-8")) > 72:
        raise HTTPException(
            status_code=400,
            detail="Password too long (bcrypt limit is 72 bytes). Use a shorter password.",
        )
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")
    try:
        hashed_password = get_password_hash(payload.password)
    except Exception as exc:
        raise HTTPException(
            status_code=500,
            detail="Unable to process password at this time.",
        ) from exc
    user = User(
        email=email,
        hashed_password=hashed_password,
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return TokenResponse(access_token=token, token_type="bearer")


@app.post("/auth/login", response_model=TokenResponse)
def login_user(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
) -> TokenResponse:
    user = db.query(User).filter(User.email == form_data.username.strip().lower()).first()
    if not user or not verify_password(form_data.password, user.hashed_password):
        logger.warning("Failed login attempt")
        raise HTTPException(status_code=400, detail="Invalid email or password")
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return TokenResponse(access_token=token, token_type="bearer")


@app.get("/auth/me", response_model=UserResponse)
def read_current_user(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        created_at=user.created_at,
    )


@app.post("/chat/message", response_model=ChatResponse)
def send_chat_message(
    payload: ChatRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    notifier: CrisisNotifier = Depends(get_notifier),
    responder: GeminiResponder = Depends(get_responder),
) -> ChatResponse:
    message = validate_message(payload.message)
    now = datetime.utcnow()
    enforce_chat_rate_limit(user.id, db, now)
    session_id = (payload.session_id or "").strip() or generate_session_id()
    logger.info("Chat request from user %s", user.id)

    crisis_check = detect_and_notify(message, notifier)
    db.add(ChatMessage(
        user_id=user.id,
        session_id=session_id,
        sender="user",
        content=message,
        crisis_detected=crisis_check.is_crisis,
        crisis_keywords_json=json.dumps(list(crisis_check.matched_signals)),
        crisis_confidence=crisis_check.confidence,
        response_time_ms=0.0,
        created_at=now,
    ))
    db.flush()

    crisis_response_shown = should_show_crisis_response(crisis_check, app_settings.crisis_response_threshold)
    if crisis_check.is_crisis:
        record_crisis_event(
            user_id=user.id,
            source="chat",
            message=message,
            result=crisis_check,
            response_shown=crisis_response_shown,
            db=db,
        )

    if crisis_response_shown:
        reply_content = get_crisis_response()
        response_time_ms = round((datetime.utcnow() - now).total_seconds() * 1000, 2)
    else:
        history = convert_chat_history(recent_history(user.id, db, exclude_latest=True))
        latest_entry = latest_wellness_entry(user.id, db)
        context = build_wellness_context(wellness_to_dict(latest_entry) if latest_entry else None)
        reply = responder.generate(message, history, context)
        reply_content = reply.content
        response_time_ms = reply.response_time_ms

    bot_message = ChatMessage(
        user_id=user.id,
        session_id=session_id,
        sender="bot",
        content=reply_content,
        crisis_detected=False,
        crisis_keywords_json="[]",
        crisis_confidence=0.0,
        response_time_ms=response_time_ms,
        created_at=datetime.utcnow(),
    )
    db.add(bot_message)
    db.commit()
    db.refresh(bot_message)
    logger.info("Response sent to user %s in %sms", user.id, response_time_ms)
    return ChatResponse(
        message=chat_message_to_response(bot_message),
        session_id=session_id,
        crisis_detected=crisis_check.is_crisis,
        crisis_response_shown=crisis_response_shown,
        response_time_ms=response_time_ms,
    )


@app.get("/chat/history", response_model=ChatHistoryResponse)
def chat_history(
    limit: int = Query(50, ge=1, le=200),
    session_id: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ChatHistoryResponse:
    query = db.query(ChatMessage).filter(ChatMessage.user_id == user.id)
    if session_id:
        query = query.filter(ChatMessage.session_id == session_id)
    rows = query.order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc()).limit(limit).all()
    messages = [chat_message_to_response(row) for row in reversed(rows)]
    return ChatHistoryResponse(messages=messages, count=len(messages))


@app.post("/chat/crisis-check", response_model=CrisisCheckResponse)
def crisis_check_endpoint(
    payload: CrisisCheckRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: CrisisNotifier = Depends(get_notifier),
) -> CrisisCheckResponse:
    message = validate_message(payload.message)
    logger.info("Crisis check for user %s", user.id)
    result = detect_and_notify(message, notifier)
    if result.is_crisis:
        record_crisis_event(
            user_id=user.id,
            source="crisis_check",
            message=message,
            result=result,
            response_shown=True,
            db=db,
        )
        db.commit()
    return CrisisCheckResponse(
        is_crisis=result.is_crisis,
        confidence=result.confidence,
        keywords=list(result.matched_signals),
        response=get_crisis_response() if result.is_crisis else None,
    )


@app.post("/wellness", response_model=WellnessResponse, status_code=201)
def create_wellness_entry(
    payload: WellnessCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: CrisisNotifier = Depends(get_notifier),
) -> WellnessResponse:
    today = date.today()
    entry_date = payload.entry_date or today
    if entry_date != today and not is_dev_mode():
        raise HTTPException(
            status_code=400,
            detail="entry_date must be today unless dev mode is enabled.",
        )
    notes = (payload.notes or "").strip() or None
    entry = WellnessEntry(
        user_id=user.id,
        entry_date=entry_date,
        mood_rating=payload.mood_rating,
        energy_level=payload.energy_level,
        stress_level=payload.stress_level,
        sleep_hours=payload.sleep_hours,
        sleep_quality=payload.sleep_quality,
        notes=notes,
        created_at=datetime.utcnow(),
    )
    db.add(entry)
    logger.info("Creating wellness entry for user %s", user.id)
    crisis_payload = None
    if notes:
        result = detect_and_notify(notes, notifier)
        if result.is_crisis:
            record_crisis_event(
                user_id=user.id,
                source="wellness_notes",
                message=notes,
                result=result,
                response_shown=False,
                db=db,
            )
            crisis_payload = result.to_dict()
            crisis_payload["response"] = get_crisis_response()
    db.commit()
    db.refresh(entry)
    return wellness_to_response(entry, crisis=crisis_payload)


@app.get("/wellness", response_model=List[WellnessResponse])
def list_wellness_entries(
    days: int = Query(30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[WellnessResponse]:
    return [wellness_to_response(entry) for entry in fetch_wellness_entries(user.id, db, days)]


@app.get("/wellness/latest", response_model=WellnessResponse)
def latest_wellness(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> WellnessResponse:
    entry = latest_wellness_entry(user.id, db)
    if entry is None:
        raise HTTPException(status_code=404, detail="No wellness data found for this user")
    return wellness_to_response(entry)


@app.get("/wellness/analytics")
def wellness_analytics(
    days: int = Query(30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    logger.info("Getting wellness analytics for user %s", user.id)
    entries = fetch_wellness_entries(user.id, db, days)
    payload = build_analytics([wellness_to_dict(entry) for entry in entries])
    payload["days"] = days
    return payload


@app.get("/safety/resources")
def safety_resources() -> dict:
    return {
        "us": [
            {"label": "988 Suicide & Crisis Lifeline", "note": "Call or text 988 in the U.S. for immediate support."},
            {"label": "Crisis Text Line", "note": "Text HOME to 741741 to reach a trained crisis counselor."},
            {"label": "Emergency", "note": "If you are in immediate danger, call 911 or local emergency services."},
        ],
        "international": [
            "If you are outside the U.S., contact local emergency services or a local crisis line.",
            "If you are in immediate danger, seek urgent help right away.",
        ],
        "crisis_response": get_crisis_response(),
        "safety_note": "This app is not medical advice. If you feel unsafe, seek immediate support.",
    }


@app.get("/safety/events")
def safety_events(
    days: int = Query(30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[dict]:
    if not is_dev_mode():
        raise HTTPException(status_code=403, detail="Developer mode disabled")
    start = datetime.utcnow() - timedelta(days=days)
    events = (
        db.query(CrisisEvent)
        .filter(
            CrisisEvent.user_id == user.id,
            CrisisEvent.created_at >= start,
        )
        .order_by(CrisisEvent.created_at.desc())
        .limit(50)
        .all()
    )
    return [
        {
            "source": event.source,
            "confidence": event.confidence,
            "matched_signals": json.loads(event.matched_signals_json or "[]"),
            "response_shown": event.response_shown,
            "snippet": event.snippet,
            "created_at": event.created_at.isoformat(),
        }
        for event in events
    ]


def should_show_crisis_response(result: DetectionResult, threshold: float) -> bool:
    return result.is_crisis and result.confidence > threshold


def validate_message(raw: str) -> str:
    message = (raw or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    if len(message) > MAX_MESSAGE_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters",
        )
    return message


def generate_session_id() -> str:
    return f"session_{uuid.uuid4().hex}"


def calculate_retry_after(
    oldest_created_at: Optional[datetime],
    now: Optional[datetime] = None,
    window: timedelta = CHAT_RATE_WINDOW,
) -> int:
    window_seconds = int(window.total_seconds())
    if not oldest_created_at:
        return window_seconds
    now = now or datetime.utcnow()
    remaining = window_seconds - (now - oldest_created_at).total_seconds()
    return max(1, int(remaining))


def enforce_chat_rate_limit(user_id: int, db: Session, now: Optional[datetime] = None) -> None:
    now = now or datetime.utcnow()
    cutoff = now - CHAT_RATE_WINDOW
    recent = (
        db.query(ChatMessage)
        .filter(
            ChatMessage.user_id == user_id,
            ChatMessage.sender == "user",
            ChatMessage.created_at >= cutoff,
        )
    )
    if recent.count() < CHAT_RATE_LIMIT:
        return
    oldest = recent.order_by(ChatMessage.created_at.asc()).first()
    retry_after = calculate_retry_after(oldest.created_at if oldest else None, now)
    logger.warning("Chat rate limit reached for user %s", user_id)
    raise HTTPException(
        status_code=429,
        detail="Too many chat requests, please try again later.",
        headers={"Retry-After": str(retry_after)},
    )


def record_crisis_event(
    user_id: int,
    source: str,
    message: str,
    result: DetectionResult,
    response_shown: bool,
    db: Session,
) -> None:
    db.add(CrisisEvent(
        user_id=user_id,
        created_at=datetime.utcnow(),
        source=source,
        snippet=message[:SNIPPET_LENGTH],
        matched_signals_json=json.dumps(list(result.matched_signals)),
        confidence=result.confidence,
        response_shown=response_shown,
    ))
    logger.info("Crisis event logged for user %s (source=%s)", user_id, source)


def recent_history(user_id: int, db: Session, exclude_latest: bool = False) -> List[dict]:
    rows = (
        db.query(ChatMessage)
        .filter(ChatMessage.user_id == user_id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(HISTORY_CONTEXT_LIMIT + (1 if exclude_latest else 0))
        .all()
    )
    if exclude_latest:
        rows = rows[1:]
    return [{"sender": row.sender, "content": row.content} for row in reversed(rows)]


def latest_wellness_entry(user_id: int, db: Session) -> Optional[WellnessEntry]:
    return (
        db.query(WellnessEntry)
        .filter(WellnessEntry.user_id == user_id)
        .order_by(WellnessEntry.entry_date.desc(), WellnessEntry.created_at.desc())
        .first()
    )


def fetch_wellness_entries(user_id: int, db: Session, days: int) -> List[WellnessEntry]:
    start_date = date.today() - timedelta(days=days - 1)
    return (
        db.query(WellnessEntry)
        .filter(
            WellnessEntry.user_id == user_id,
            WellnessEntry.entry_date >= start_date,
        )
        .order_by(WellnessEntry.entry_date.desc(), WellnessEntry.created_at.desc())
        .limit(200)
        .all()
    )


def wellness_to_dict(entry: WellnessEntry) -> dict:
    return {
        "entry_date": entry.entry_date,
        "created_at": entry.created_at,
        "mood_rating": entry.mood_rating,
        "energy_level": entry.energy_level,
        "stress_level": entry.stress_level,
        "sleep_hours": entry.sleep_hours,
        "sleep_quality": entry.sleep_quality,
        "notes": entry.notes,
    }


def wellness_to_response(entry: WellnessEntry, crisis: Optional[dict] = None) -> WellnessResponse:
    return WellnessResponse(
        id=entry.id,
        entry_date=entry.entry_date,
        mood_rating=entry.mood_rating,
        energy_level=entry.energy_level,
        stress_level=entry.stress_level,
        sleep_hours=entry.sleep_hours,
        sleep_quality=entry.sleep_quality,
        notes=entry.notes,
        created_at=entry.created_at,
        crisis=crisis,
    )


def chat_message_to_response(row: ChatMessage) -> ChatMessageResponse:
    return ChatMessageResponse(
        id=row.id,
        session_id=row.session_id,
        sender=row.sender,
        content=row.content,
        crisis_detected=row.crisis_detected,
        crisis_keywords=json.loads(row.crisis_keywords_json or "[]"),
        crisis_confidence=row.crisis_confidence,
        response_time_ms=row.response_time_ms,
        created_at=row.created_at,
    )

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Path, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core import accounts, leaderboard as ranking
from core.auth import decode_access_token
from core.config import ALLOWED_ORIGINS, EXPOSE_LEGACY_PASSWORD_HASHES, LOG_LEVEL, PORT
from core.database import engine, get_db, init_models
from core.errors import GameBackendError, NotAuthenticated, StoreFailure, UserNotFound
from core.models import INT32_MAX, INT32_MIN, User
from core.stats import StatsSubmission, StoreInt, merge_stats

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("mathgame")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await init_models(engine)
    except (SQLAlchemyError, OSError):
        # Keep serving; requests will report the store failure themselves
        logger.exception("Error initializing database")
    yield
    await engine.dispose()


app = FastAPI(title="Math Game Backend API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=ALLOWED_ORIGINS != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)
    grade: StoreInt
    school_name: Optional[str] = Field(None, max_length=100)


class LoginRequest(BaseModel):
    username: str
    password: str


class StatsUpdateRequest(BaseModel):
    username: str
    stats: StatsSubmission = Field(default_factory=StatsSubmission)


@app.exception_handler(GameBackendError)
async def game_backend_error_handler(request: Request, exc: GameBackendError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, NotAuthenticated) else None
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Unhandled store error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": StoreFailure.message})


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/login", auto_error=False)


async def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: AsyncSession = Depends(get_db)) -> User:
    if not token:
        raise NotAuthenticated()
    payload = decode_access_token(token)
    try:
        user = await accounts.get_user_by_id(db, payload["id"])
    except UserNotFound:
        # Account deleted after the token was issued
        raise NotAuthenticated()
    if user.username != payload["sub"]:
        raise NotAuthenticated()
    return user


@app.get("/")
async def health_check():
    return {"message": "Math Game Backend API"}


@app.post("/api/register", status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, db: AsyncSession = Depends(get_db)):
    try:
        user, token = await accounts.register(
            db, payload.username, payload.password, payload.grade, payload.school_name
        )
    except SQLAlchemyError as exc:
        logger.exception("Registration error")
        raise StoreFailure("Registration failed") from exc
    return {"success": True, "user": user.public_dict(), "token": token}


@app.post("/api/login")
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    try:
        user, stats, token = await accounts.authenticate(db, payload.username, payload.password)
    except SQLAlchemyError as exc:
        logger.exception("Login error")
        raise StoreFailure("Login failed") from exc
    return {"success": True, "user": {**user.public_dict(), "stats": stats}, "token": token}


@app.post("/api/stats/update")
async def update_stats(payload: StatsUpdateRequest, db: AsyncSession = Depends(get_db)):
    try:
        await merge_stats(db, payload.username, payload.stats)
    except SQLAlchemyError as exc:
        logger.exception("Stats update error")
        raise StoreFailure("Failed to update stats") from exc
    return {"success": True, "message": "Stats updated successfully"}


@app.get("/api/leaderboard")
async def get_leaderboard(db: AsyncSession = Depends(get_db)):
    try:
        entries = await ranking.leaderboard(db)
    except SQLAlchemyError as exc:
        logger.exception("Leaderboard error")
        raise StoreFailure("Failed to get leaderboard") from exc
    return {"success": True, "leaderboard": entries}


@app.get("/api/leaderboard/{grade}")
async def get_grade_leaderboard(grade: int = Path(..., ge=INT32_MIN, le=INT32_MAX), db: AsyncSession = Depends(get_db)):
    try:
        entries = await ranking.leaderboard(db, grade=grade)
    except SQLAlchemyError as exc:
        logger.exception("Leaderboard error (grade=%s)", grade)
        raise StoreFailure("Failed to get leaderboard") from exc
    return {"success": True, "leaderboard": entries}


@app.get("/api/users")
async def get_users(db: AsyncSession = Depends(get_db)):
    # Legacy listing kept for older clients
    try:
        users = await ranking.all_users(db, include_password_hash=EXPOSE_LEGACY_PASSWORD_HASHES)
    except SQLAlchemyError as exc:
        logger.exception("Get users error")
        raise StoreFailure("Failed to get users") from exc
    return {"users": users}


@app.get("/api/me")
async def get_me(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    try:
        stats = await accounts.get_stats(db, current_user.id)
    except SQLAlchemyError as exc:
        logger.exception("Profile error")
        raise StoreFailure("Failed to get profile") from exc
    return {"success": True, "user": {**current_user.public_dict(), "stats": stats.to_dict() if stats else {}}}


@app.delete("/api/me")
async def delete_me(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    username = current_user.username
    try:
        await accounts.delete_user(db, current_user.id)
    except SQLAlchemyError as exc:
        logger.exception("Account deletion error")
        raise StoreFailure("Failed to delete account") from exc
    return {"success": True, "username": username}


if __name__ == "__main__":
    logger.info("Server running on port %s", PORT)
    uvicorn.run(app, host="0.0.0.0", port=PORT)

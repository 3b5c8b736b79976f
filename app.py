#!/usr/bin/env python3
import logging
import sqlite3
from typing import List, Optional
from fastapi import FastAPI, Depends, Query, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from database import DatabaseManager, timestamp
from exceptions import Exceptions
from models import (RankCreate, RankUpdate, RankRecord, RankListResponse,
                    RankCountListResponse, UserRankResponse, ErrorResponse)
from ranks import DEFAULT_RANKS, RankResolver, format_for_display, validate_active_rows
from security import SecurityManager
from config import (SECRET_KEY, DB_PATH, ALLOWED_ORIGINS, ALLOWED_HOSTS, MAX_REQUEST_SIZE_MB,
                    GZIP_MIN_SIZE, HTTP_REQUEST_ENTITY_TOO_LARGE, HTTP_UNPROCESSABLE_ENTITY,
                    HTTP_INTERNAL_SERVER_ERROR)


logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Request size limit (1MB for API requests)
        content_length = request.headers.get("content-length")
        if content_length and int(content_length) > MAX_REQUEST_SIZE_MB * 1024 * 1024:
            return JSONResponse(
                status_code=HTTP_REQUEST_ENTITY_TOO_LARGE,
                content={"message": "Request entity too large"}
            )

        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return response


app = FastAPI(title="Forum Ranks API", description="User rank ladder for the forum", version="1.0.0")

security = HTTPBearer()
security_manager = SecurityManager(secret_key=SECRET_KEY)
db = DatabaseManager(DB_PATH)
rank_resolver = RankResolver(db)

app.add_middleware(GZipMiddleware, minimum_size=GZIP_MIN_SIZE)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"]
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=ALLOWED_HOSTS)


def get_db() -> DatabaseManager:
    return db


def get_rank_resolver() -> RankResolver:
    return rank_resolver


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security),
                           store: DatabaseManager = Depends(get_db)) -> dict:
    payload = security_manager.verify_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise Exceptions.UNAUTHORIZED

    try:
        user = await store.get_user_by_id(int(user_id))
    except ValueError:
        raise Exceptions.UNAUTHORIZED

    if not user or user.get("is_banned"):
        raise Exceptions.UNAUTHORIZED
    return user


async def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    if not current_user.get("is_admin"):
        raise Exceptions.ADMIN_REQUIRED
    return current_user


async def validate_rank_exists(store: DatabaseManager, rank_id: int) -> dict:
    rank = await store.get_rank_by_id(rank_id)
    if not rank:
        raise Exceptions.RANK_NOT_FOUND
    return rank


async def check_ladder_after(store: DatabaseManager, rank_id: int = None, changes: dict = None,
                             new_rank: dict = None):
    """Reject a rank write whose resulting active ladder would fail validation"""
    rows = await store.list_all_ranks()
    if rank_id is not None:
        rows = [dict(row, **changes) if row["rank_id"] == rank_id else row for row in rows]
    if new_rank is not None:
        rows.append(new_rank)

    # no active rows at all means the default ladder is served
    if not any(row["is_active"] for row in rows):
        return
    try:
        validate_active_rows(rows)
    except ValueError as e:
        logger.info("Rejected rank change: %s", e)
        raise Exceptions.INVALID_RANK_TABLE


@app.get("/api/user-ranks")
async def get_user_ranks(post_count: Optional[int] = Query(None, alias="postCount", ge=0),
                         with_counts: bool = Query(False, alias="withCounts"),
                         resolver: RankResolver = Depends(get_rank_resolver)):
    if post_count is not None:
        return await resolver.resolve_rank_with_progress(post_count)

    if with_counts:
        return RankCountListResponse(ranks=await resolver.resolve_ranks_with_user_counts())

    return RankListResponse(ranks=list(await resolver.get_rank_table()))


@app.get("/api/users/{user_id}/rank", response_model=UserRankResponse)
async def get_user_rank(user_id: int, store: DatabaseManager = Depends(get_db),
                        resolver: RankResolver = Depends(get_rank_resolver)):
    user = await store.get_user_by_id(user_id)
    if not user:
        raise Exceptions.USER_NOT_FOUND

    progress = await resolver.resolve_rank_with_progress(user["post_count"])
    return UserRankResponse(
        user_id=user["user_id"],
        username=user["username"],
        post_count=user["post_count"],
        rank=progress,
        badge=format_for_display(progress.current)
    )


@app.get("/api/admin/ranks", response_model=List[RankRecord])
async def list_ranks(current_user: dict = Depends(require_admin), store: DatabaseManager = Depends(get_db)):
    return await store.list_all_ranks()


@app.post("/api/admin/ranks", response_model=RankRecord, status_code=status.HTTP_201_CREATED)
async def create_rank(rank_data: RankCreate, current_user: dict = Depends(require_admin),
                      store: DatabaseManager = Depends(get_db),
                      resolver: RankResolver = Depends(get_rank_resolver)):
    await check_ladder_after(store, new_rank=rank_data.model_dump())

    try:
        rank_id = await store.create_rank(rank_data.name, rank_data.min_posts, rank_data.color,
                                          rank_data.icon, rank_data.is_active)
    except sqlite3.IntegrityError:
        raise Exceptions.RANK_EXISTS

    resolver.clear_cache()
    logger.info("Rank %r created by user %s", rank_data.name, current_user["user_id"])
    return await store.get_rank_by_id(rank_id)


@app.put("/api/admin/ranks/{rank_id}", response_model=RankRecord)
async def update_rank(rank_id: int, update_data: RankUpdate, current_user: dict = Depends(require_admin),
                      store: DatabaseManager = Depends(get_db),
                      resolver: RankResolver = Depends(get_rank_resolver)):
    await validate_rank_exists(store, rank_id)

    updates = update_data.model_dump(exclude_none=True)
    if not updates:
        raise Exceptions.NO_FIELDS

    await check_ladder_after(store, rank_id, updates)

    try:
        await store.update_rank(rank_id, updates)
    except sqlite3.IntegrityError:
        raise Exceptions.RANK_EXISTS

    resolver.clear_cache()
    logger.info("Rank %s updated by user %s: %s", rank_id, current_user["user_id"], sorted(updates))
    return await store.get_rank_by_id(rank_id)


@app.delete("/api/admin/ranks/{rank_id}")
async def deactivate_rank(rank_id: int, current_user: dict = Depends(require_admin),
                          store: DatabaseManager = Depends(get_db),
                          resolver: RankResolver = Depends(get_rank_resolver)):
    await validate_rank_exists(store, rank_id)
    await check_ladder_after(store, rank_id, {"is_active": False})
    await store.deactivate_rank(rank_id)
    resolver.clear_cache()
    logger.info("Rank %s deactivated by user %s", rank_id, current_user["user_id"])
    return {"message": "Rank deactivated successfully"}


@app.post("/api/admin/ranks/cache/clear")
async def clear_rank_cache(current_user: dict = Depends(require_admin),
                           resolver: RankResolver = Depends(get_rank_resolver)):
    resolver.clear_cache()
    return {"message": "Rank cache cleared"}


@app.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": timestamp()}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.__class__.__name__, message=str(exc.detail)).model_dump(),
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=HTTP_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error=exc.__class__.__name__,
            message="Invalid request parameters",
            details={"errors": jsonable_encoder(exc.errors())}
        ).model_dump()
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=HTTP_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error="InternalServerError", message="An unexpected error occurred").model_dump()
    )


@app.on_event("startup")
async def startup_event():
    await db.init_schema()
    await db.seed_default_ranks(DEFAULT_RANKS)

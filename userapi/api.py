"""FastAPI application exposing the user endpoints."""
from __future__ import annotations

from typing import Dict, List, Sequence

from fastapi import Depends, FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.httpsredirect import HTTPSRedirectMiddleware
from pydantic import BaseModel, Field, field_validator
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .database import Database
from .models import User


class UserCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=1, max_length=255)

    @field_validator("name", "email")
    @classmethod
    def _strip(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped


class UserSummary(BaseModel):
    name: str
    email: str


class UserResponse(BaseModel):
    id: int
    name: str
    email: str


def user_to_summary(user: User) -> UserSummary:
    return UserSummary(name=user.name, email=user.email)


def user_to_response(user: User) -> UserResponse:
    return UserResponse(id=user.id, name=user.name, email=user.email)


def _trusted_hosts(proxies: Sequence[str]) -> List[str] | str:
    hosts = [item.strip() for item in proxies if item.strip()]
    if not hosts or "*" in hosts:
        return "*"
    return hosts


def create_app(
    *,
    database: Database,
    cors_origins: Sequence[str] = ("*",),
    trusted_proxies: Sequence[str] = ("*",),
    enforce_https: bool = False,
    docs_enabled: bool = True,
) -> FastAPI:
    """Build the ASGI application around an already-migrated database."""

    app = FastAPI(
        title="User API",
        description="Minimal user directory backed by a relational database",
        version="1.0.0",
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if enforce_https:
        app.add_middleware(HTTPSRedirectMiddleware)
    # Added last so it runs first and the redirect sees the forwarded scheme.
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=_trusted_hosts(trusted_proxies))
    app.state.database = database

    def get_db() -> Database:
        return database

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/test")
    async def test_endpoint() -> Response:
        return Response(status_code=status.HTTP_200_OK)

    @app.get("/users", response_model=List[UserSummary])
    async def list_users(db: Database = Depends(get_db)) -> List[UserSummary]:
        return [user_to_summary(user) for user in db.list_users()]

    @app.post("/user", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
    async def create_user(
        payload: UserCreateRequest,
        response: Response,
        db: Database = Depends(get_db),
    ) -> UserResponse:
        user = db.create_user(payload.name, payload.email)
        response.headers["Location"] = f"/users?id={user.id}"
        return user_to_response(user)

    return app


__all__ = ["UserCreateRequest", "UserResponse", "UserSummary", "create_app"]

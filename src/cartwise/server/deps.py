"""Dependency definitions for the Cartwise API server."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status

from cartwise.config import get_settings
from cartwise.db.backends import Repository, SqlRepository
from cartwise.server.workspace import LockRegistry, Workspace

_LOCKS = LockRegistry()


def get_repository() -> Repository:
    """Return the default SQLite-backed repository."""

    return SqlRepository()


def get_workspace(repository: Repository = Depends(get_repository)) -> Workspace:
    return Workspace(repository, settings=get_settings(), locks=_LOCKS)


def require_api_token(
    request: Request,
    settings = Depends(get_settings),
) -> None:
    """Ensure requests carry the configured API token when required."""

    token = settings.api_token
    if not token:
        return

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.split("Bearer ")[-1].strip() == token:
        return

    if request.headers.get("X-API-Key") == token:
        return

    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


__all__ = ["get_repository", "get_workspace", "require_api_token"]

"""
Shared request dependencies.
"""

from fastapi import Cookie, HTTPException, Query, Request

from mailroom.pipeline import Pipeline


def get_pipeline(request: Request) -> Pipeline:
    """The process-wide pipeline created in the app lifespan."""
    return request.app.state.pipeline


def get_session_id(
    external_id: str | None = Query(None),
    external_id_cookie: str | None = Cookie(None, alias="external_id"),
) -> str:
    """Session identity: external_id cookie first, query parameter otherwise."""
    session_id = external_id_cookie or external_id
    if not session_id:
        raise HTTPException(status_code=400, detail="external_id missing")
    return session_id

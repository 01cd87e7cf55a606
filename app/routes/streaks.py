#streaks.py
from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from app.logging_utils import bind_log_context
from app.routes.error_responses import streak_error_response

router = APIRouter(prefix="/api/streak", tags=["Streak"])


class ActivityRequest(BaseModel):
    duration: float = Field(default=0, ge=0)
    lessons_completed: int = Field(default=1, ge=0)


def _unauthorized(request: Request):
    return streak_error_response(request, "AUTH_REQUIRED")


def _session(request: Request):
    registry = request.app.state.streak_sessions
    today = request.app.state.today()
    bind_log_context(streak_day=today.isoformat())
    return registry.session(request.state.user_id, today), today


@router.get("")
async def get_streak_stats(request: Request):
    if not request.state.user_id:
        return _unauthorized(request)

    session_ctx, _today = _session(request)
    async with session_ctx as session:
        return {
            **session.engine.stats(),
            "motivational_message": session.engine.motivational_message(),
        }


@router.post("/activity")
async def record_activity(payload: ActivityRequest, request: Request):
    if not request.state.user_id:
        return _unauthorized(request)

    session_ctx, today = _session(request)
    async with session_ctx as session:
        await session.engine.record_activity(
            today,
            duration=payload.duration,
            lessons_completed=payload.lessons_completed,
        )
        return {
            **session.engine.stats(),
            "notifications": session.toasts.drain(),
        }


@router.get("/weekly")
async def get_weekly_pattern(request: Request):
    if not request.state.user_id:
        return _unauthorized(request)

    session_ctx, today = _session(request)
    async with session_ctx as session:
        return {"days": session.engine.weekly_pattern(today)}


@router.get("/message")
async def get_motivational_message(request: Request):
    if not request.state.user_id:
        return _unauthorized(request)

    session_ctx, _today = _session(request)
    async with session_ctx as session:
        return {
            "current_streak": session.engine.current_streak,
            "message": session.engine.motivational_message(),
            "notifications": session.toasts.drain(),
        }


@router.post("/reset")
async def reset_streak(request: Request):
    if not request.state.user_id:
        return _unauthorized(request)

    session_ctx, _today = _session(request)
    async with session_ctx as session:
        await session.engine.reset()
        return session.engine.stats()

"""Gamification API endpoints: event intake for internal callers plus read-only views."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from academy.auth.dependencies import require_service_token
from academy.config import Settings, get_settings
from academy.database import get_session
from academy.dependencies import get_redis_dep
from academy.gamification.badges import BADGE_CATALOG
from academy.gamification.level_thresholds import LEVEL_THRESHOLDS
from academy.gamification.reward_engine import XP_REWARDS, InvalidEventError, RewardEngine
from academy.gamification.schemas import (
    BadgeResponse,
    ConfigResponse,
    CourseCompletedEvent,
    LeaderboardEntry,
    LeaderboardResponse,
    LessonCompletedEvent,
    LevelEntry,
    QuizCompletedEvent,
    RewardResponse,
    ShieldGrantRequest,
    ShieldGrantResponse,
    StatsResponse,
    XPHistoryEntry,
    XPHistoryResponse,
)
from academy.gamification.xp_service import LEADERBOARD_PERIODS, get_leaderboard, get_xp_history, grant_streak_shields

router = APIRouter(prefix="/api/v1/gamification", tags=["Gamification"])


# ── Event intake (progress / quiz subsystems) ──


@router.post(
    "/events/lesson-complete",
    response_model=RewardResponse,
    dependencies=[Depends(require_service_token)],
)
async def lesson_complete(
    event: LessonCompletedEvent,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
) -> RewardResponse:
    """Award a completed lesson. Repeats of the same lesson return already_processed."""
    engine = RewardEngine(db, redis)
    try:
        return await engine.process_lesson_completed(event)
    except InvalidEventError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@router.post(
    "/events/quiz-complete",
    response_model=RewardResponse,
    dependencies=[Depends(require_service_token)],
)
async def quiz_complete(
    event: QuizCompletedEvent,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
) -> RewardResponse:
    """Award a passed quiz; 100% earns the perfect-score reward."""
    engine = RewardEngine(db, redis)
    try:
        return await engine.process_quiz_completed(event)
    except InvalidEventError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@router.post(
    "/events/course-complete",
    response_model=RewardResponse,
    dependencies=[Depends(require_service_token)],
)
async def course_complete(
    event: CourseCompletedEvent,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
) -> RewardResponse:
    engine = RewardEngine(db, redis)
    try:
        return await engine.process_course_completed(event)
    except InvalidEventError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@router.post(
    "/users/{user_id}/streak-shields",
    response_model=ShieldGrantResponse,
    dependencies=[Depends(require_service_token)],
)
async def add_streak_shields(
    user_id: str,
    body: ShieldGrantRequest,
    db: AsyncSession = Depends(get_session),
) -> ShieldGrantResponse:
    """Grant streak shields (support tooling, promotions)."""
    gam = await grant_streak_shields(db, user_id, body.count)
    await db.commit()
    return ShieldGrantResponse(user_id=user_id, streak_shields=gam.streak_shields)


# ── Read-only views ──


@router.get("/users/{user_id}/stats", response_model=StatsResponse)
async def user_stats(
    user_id: str,
    db: AsyncSession = Depends(get_session),
) -> StatsResponse:
    """Dashboard stats. Users with no activity get zeroed defaults."""
    return await RewardEngine(db).get_stats(user_id)


@router.get("/users/{user_id}/xp/history", response_model=XPHistoryResponse)
async def xp_history(
    user_id: str,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> XPHistoryResponse:
    """Paginated XP ledger, newest first."""
    entries, total = await get_xp_history(db, user_id, page=page, per_page=per_page)
    return XPHistoryResponse(
        entries=[XPHistoryEntry.model_validate(e, from_attributes=True) for e in entries],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    period: str = Query("weekly"),
    limit: int = Query(20, ge=1),
    db: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> LeaderboardResponse:
    """Top learners by XP earned in the period."""
    if period not in LEADERBOARD_PERIODS:
        raise HTTPException(status_code=400, detail=f"period must be one of {sorted(LEADERBOARD_PERIODS)}")
    rows = await get_leaderboard(db, period=period, limit=min(limit, settings.leaderboard_max_limit))
    return LeaderboardResponse(period=period, entries=[LeaderboardEntry(**r) for r in rows])


@router.get("/config", response_model=ConfigResponse)
async def gamification_config() -> ConfigResponse:
    """Level table, badge catalog and XP reward table for the frontend."""
    return ConfigResponse(
        levels=[LevelEntry(**entry) for entry in LEVEL_THRESHOLDS],
        badges=[BadgeResponse(**b.to_dict()) for b in BADGE_CATALOG],
        xp_rewards=dict(XP_REWARDS),
    )

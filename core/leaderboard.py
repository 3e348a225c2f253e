# core/leaderboard.py
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.models import DEFAULT_TIER, User, UserStats

LEADERBOARD_LIMIT = 100


async def leaderboard(db: AsyncSession, grade: Optional[int] = None) -> List[Dict[str, Any]]:
    """Top players by best score, then furthest stage. Users without stats are left out."""
    query = (
        select(
            User.username,
            User.grade,
            User.school_name,
            UserStats.best_score,
            UserStats.best_stage,
            UserStats.tier,
            UserStats.correct_answers,
            UserStats.total_answers,
            UserStats.last_played,
        )
        .join(UserStats, UserStats.user_id == User.id)
        .order_by(UserStats.best_score.desc(), UserStats.best_stage.desc(), User.id)
        .limit(LEADERBOARD_LIMIT)
    )
    if grade is not None:
        query = query.where(User.grade == grade)

    result = await db.execute(query)
    return [dict(row._mapping) for row in result]


def _stats_or_defaults(stats: Optional[UserStats]) -> Dict[str, Any]:
    if stats is None:
        stats = UserStats()
    return {
        "bestScore": stats.best_score or 0,
        "bestStage": stats.best_stage or 1,
        "playCount": stats.play_count or 0,
        "correctAnswers": stats.correct_answers or 0,
        "totalAnswers": stats.total_answers or 0,
        "tier": stats.tier or DEFAULT_TIER,
        "gradeRank": stats.grade_rank or 0,
        "lastPlayed": stats.last_played,
        "gradeHistory": stats.grade_history or {},
    }


async def all_users(db: AsyncSession, include_password_hash: bool = False) -> List[Dict[str, Any]]:
    """Every user, newest first, with defaults filled in where stats are missing."""
    query = (
        select(User, UserStats)
        .outerjoin(UserStats, UserStats.user_id == User.id)
        .order_by(User.created_at.desc(), User.id.desc())
    )
    result = await db.execute(query)

    users = []
    for user, stats in result.all():
        entry = {
            "username": user.username,
            "grade": user.grade,
            "schoolName": user.school_name,
            "stats": _stats_or_defaults(stats),
            "createdAt": user.created_at,
        }
        if include_password_hash:
            entry["password"] = user.hashed_password
        users.append(entry)
    return users

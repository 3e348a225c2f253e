# core/stats.py
"""Merging of play results into the per-user statistics row.

Every submission goes through one conflict-resolving write so that two
submissions for the same user racing each other both count:

* ``best_score`` / ``best_stage`` only ever grow,
* ``play_count`` grows by exactly one per submission,
* everything else is overwritten with the submitted value,
* ``grade_history`` is replaced as a whole, never merged key by key.
"""
import logging
from typing import Annotated, Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import case, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from core.accounts import get_user
from core.models import DEFAULT_TIER, INT32_MAX, INT32_MIN, TIER_MAX_LENGTH, UserStats

logger = logging.getLogger(__name__)

StoreInt = Annotated[int, Field(ge=INT32_MIN, le=INT32_MAX)]

# Dialects with INSERT ... ON CONFLICT DO UPDATE
UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class StatsSubmission(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    best_score: StoreInt = 0
    best_stage: StoreInt = 1
    play_count: StoreInt = 0
    correct_answers: StoreInt = 0
    total_answers: StoreInt = 0
    tier: str = Field(DEFAULT_TIER, max_length=TIER_MAX_LENGTH)
    grade_rank: StoreInt = 0
    grade_history: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _empty_means_default(cls, data):
        # Game clients send 0, "" or null for fields they have nothing for
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value}
        return data

    def column_values(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=False)


def merged_values(existing: Optional[UserStats], submission: StatsSubmission) -> Dict[str, Any]:
    """Column values after applying ``submission`` to ``existing``."""
    values = submission.column_values()
    if existing is None:
        return values

    values["best_score"] = max(existing.best_score or 0, submission.best_score)
    values["best_stage"] = max(existing.best_stage or 0, submission.best_stage)
    values["play_count"] = (existing.play_count or 0) + 1
    return values


def _greatest(current, incoming):
    return case(
        (current.is_(None), incoming),
        (incoming > current, incoming),
        else_=current,
    )


def upsert_statement(dialect_name: str, user_id: int, submission: StatsSubmission):
    insert = UPSERT_INSERTS[dialect_name]
    stmt = insert(UserStats).values(user_id=user_id, last_played=func.now(), **submission.column_values())
    excluded = stmt.excluded
    return stmt.on_conflict_do_update(
        index_elements=[UserStats.user_id],
        set_={
            "best_score": _greatest(UserStats.best_score, excluded.best_score),
            "best_stage": _greatest(UserStats.best_stage, excluded.best_stage),
            "play_count": func.coalesce(UserStats.play_count, 0) + 1,
            "correct_answers": excluded.correct_answers,
            "total_answers": excluded.total_answers,
            "tier": excluded.tier,
            "grade_rank": excluded.grade_rank,
            "last_played": func.now(),
            "grade_history": excluded.grade_history,
        },
    )


async def merge_with_row_lock(db: AsyncSession, user_id: int, submission: StatsSubmission) -> None:
    """Same merge for stores without ON CONFLICT: lock the row, merge, write back."""
    result = await db.execute(
        select(UserStats)
        .where(UserStats.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    existing = result.scalars().first()
    values = merged_values(existing, submission)

    if existing is None:
        db.add(UserStats(user_id=user_id, last_played=func.now(), **values))
    else:
        for column, value in values.items():
            setattr(existing, column, value)
        existing.last_played = func.now()
    await db.flush()


async def merge_stats(db: AsyncSession, username: str, submission: StatsSubmission) -> None:
    user_id = (await get_user(db, username)).id

    dialect_name = db.get_bind().dialect.name
    if dialect_name in UPSERT_INSERTS:
        await db.execute(upsert_statement(dialect_name, user_id, submission))
    else:
        await merge_with_row_lock(db, user_id, submission)
    await db.commit()
    logger.debug("Merged stats for %s (score=%s, stage=%s)", username, submission.best_score, submission.best_stage)

# core/accounts.py
import logging
from typing import Optional, Tuple

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import burn_password_check, get_password_hash, token_for_user, verify_password
from core.errors import DuplicateUsername, InvalidCredentials, UserNotFound
from core.models import User, UserStats

logger = logging.getLogger(__name__)


async def register(
    db: AsyncSession,
    username: str,
    password: str,
    grade: int,
    school_name: Optional[str] = None,
) -> Tuple[User, str]:
    """Create a user and its zeroed stats row in one transaction."""
    result = await db.execute(select(User.id).where(User.username == username))
    if result.first() is not None:
        raise DuplicateUsername()

    # bcrypt is CPU bound, keep it off the event loop
    hashed_pw = await run_in_threadpool(get_password_hash, password)
    new_user = User(username=username, hashed_password=hashed_pw, grade=grade, school_name=school_name)
    db.add(new_user)
    try:
        await db.flush()
        db.add(UserStats(user_id=new_user.id))
        await db.commit()
    except IntegrityError as exc:
        # Lost a race against another registration with the same name
        await db.rollback()
        raise DuplicateUsername() from exc

    logger.info("Registered user %s (id=%s, grade=%s)", new_user.username, new_user.id, new_user.grade)
    return new_user, token_for_user(new_user)


async def authenticate(db: AsyncSession, username: str, password: str) -> Tuple[User, dict, str]:
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalars().first()

    if user is None:
        await run_in_threadpool(burn_password_check, password)
        logger.info("Login rejected: unknown username %r", username)
        raise InvalidCredentials()

    if not await run_in_threadpool(verify_password, password, user.hashed_password):
        logger.info("Login rejected: bad password for %r", username)
        raise InvalidCredentials()

    stats = await get_stats(db, user.id)
    return user, (stats.to_dict() if stats else {}), token_for_user(user)


async def get_user(db: AsyncSession, username: str) -> User:
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalars().first()
    if user is None:
        raise UserNotFound()
    return user


async def get_user_by_id(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFound()
    return user


async def get_stats(db: AsyncSession, user_id: int) -> Optional[UserStats]:
    result = await db.execute(select(UserStats).where(UserStats.user_id == user_id))
    return result.scalars().first()


async def delete_user(db: AsyncSession, user_id: int) -> None:
    """Delete a user; the store drops its stats row through ON DELETE CASCADE."""
    result = await db.execute(delete(User).where(User.id == user_id))
    await db.commit()
    if result.rowcount == 0:
        raise UserNotFound()
    logger.info("Deleted user id=%s", user_id)

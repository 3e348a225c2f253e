# core/models.py
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB

from core.database import Base

DEFAULT_TIER = "브론즈"
TIER_MAX_LENGTH = 20

# Range of the INTEGER columns
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    # bcrypt hash; the column keeps its historical name
    hashed_password = Column("password", String(255), nullable=False)
    grade = Column(Integer, nullable=False)
    school_name = Column(String(100), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    def public_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "grade": self.grade,
            "schoolName": self.school_name,
        }


class UserStats(Base):
    __tablename__ = "user_stats"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    # Monotonic maxima
    best_score = Column(Integer, default=0, server_default="0")
    best_stage = Column(Integer, default=1, server_default="1")

    play_count = Column(Integer, default=0, server_default="0")
    correct_answers = Column(Integer, default=0, server_default="0")
    total_answers = Column(Integer, default=0, server_default="0")
    tier = Column(String(TIER_MAX_LENGTH), default=DEFAULT_TIER, server_default=DEFAULT_TIER)
    grade_rank = Column(Integer, default=0, server_default="0")
    last_played = Column(DateTime, server_default=func.now())

    # Opaque to the backend, stored and returned as sent
    grade_history = Column(JSON().with_variant(JSONB(), "postgresql"), default=dict, server_default="{}")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "best_score": self.best_score,
            "best_stage": self.best_stage,
            "play_count": self.play_count,
            "correct_answers": self.correct_answers,
            "total_answers": self.total_answers,
            "tier": self.tier,
            "grade_rank": self.grade_rank,
            "last_played": self.last_played,
            "grade_history": self.grade_history,
        }

from sqlalchemy import (
    Column, Integer, Text, Float, Boolean, ForeignKey, Index, JSON, String,
    DateTime,
)
from sqlalchemy.orm import relationship
from pgvector.sqlalchemy import Vector

from config import settings
from db.database import Base
from utils.datetime_utils import utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(Text)
    password_hash = Column(Text)
    token_version = Column(Integer, nullable=False, default=0)
    date_of_birth = Column(DateTime)
    gender = Column(String(50))
    height = Column(Float)  # metres
    activity_level = Column(String(50), default="normal")  # sedentary | normal | active | athlete
    health_goal = Column(String(100), default="gesund_bleiben")  # abnehmen | zunehmen | muskelaufbau | gesund_bleiben
    target_weight = Column(Float)
    custom_alert_thresholds = Column(JSON)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    health_data = relationship("HealthData", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    embedding = relationship(
        "HealthEmbedding", back_populates="user", uselist=False, cascade="all, delete-orphan", passive_deletes=True
    )
    cache_entries = relationship("AIResponseCache", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    alerts = relationship("AlertHistory", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)


class HealthData(Base):
    __tablename__ = "health_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    date = Column(DateTime, nullable=False)

    # Every metric is optional; no zero defaults.
    steps = Column(Integer)
    heart_rate = Column(Integer)
    sleep_hours = Column(Float)
    weight = Column(Float)
    calories = Column(Float)
    respiratory_rate = Column(Integer)
    blood_pressure_systolic = Column(Integer)
    blood_pressure_diastolic = Column(Integer)
    blood_group = Column(String(10))
    bmi = Column(Float)
    body_temp = Column(Float)
    oxygen_saturation = Column(Float)
    stair_steps = Column(Integer)
    elevation = Column(Float)
    muscle_mass = Column(Float)
    body_fat = Column(Float)
    meal_type = Column(String(50))
    medications = Column(Text)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="health_data")

    __table_args__ = (
        Index("health_data_user_idx", "user_id"),
        Index("health_data_date_idx", "date"),
    )


class HealthEmbedding(Base):
    __tablename__ = "health_embeddings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    content = Column(Text, nullable=False)
    # pgvector on Postgres; plain JSON list on SQLite.
    embedding = Column(Vector(settings.EMBEDDING_DIM).with_variant(JSON(), "sqlite"))
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="embedding")


class AIResponseCache(Base):
    __tablename__ = "ai_response_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    cache_key = Column(String(255), nullable=False)  # daily_plan | coach_analysis | alerts
    response = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    user = relationship("User", back_populates="cache_entries")

    __table_args__ = (
        Index("ai_cache_user_key_idx", "user_id", "cache_key"),
        Index("ai_cache_expires_idx", "expires_at"),
    )


class AlertHistory(Base):
    __tablename__ = "alert_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    alert_type = Column(String(50), nullable=False)
    severity = Column(String(20), nullable=False)  # warning | critical
    message = Column(Text, nullable=False)
    value = Column(Float)
    threshold = Column(Float)
    acknowledged = Column(Boolean, nullable=False, default=False)

    user = relationship("User", back_populates="alerts")

    __table_args__ = (
        Index("alert_history_user_idx", "user_id"),
        Index("alert_history_date_idx", "created_at"),
    )

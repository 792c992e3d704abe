from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Float, Text, ForeignKey, UniqueConstraint
from .db import Base


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	email = Column(String(256), nullable=True)
	requests_used = Column(Integer, default=0, nullable=False)
	requests_limit = Column(Integer, default=200, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class DailyCache(Base):
	__tablename__ = "daily_cache"
	__table_args__ = (UniqueConstraint("category", "date_key", name="uq_daily_cache_category_date"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	category = Column(String(64), nullable=False)
	# ISO calendar date, e.g. 2026-10-19
	date_key = Column(String(10), nullable=False)
	content = Column(Text, nullable=False)  # JSON string snapshot
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class LecturetteTopic(Base):
	__tablename__ = "lecturette_topics"
	topic = Column(String(256), primary_key=True)
	board = Column(String(64), nullable=True)
	category = Column(String(64), nullable=True)
	content = Column(Text, nullable=False)  # JSON outline
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class GPEScenario(Base):
	__tablename__ = "gpe_scenarios"
	id = Column(Integer, primary_key=True, autoincrement=True)
	title = Column(String(256), nullable=False)
	narrative = Column(Text, nullable=False)
	difficulty = Column(String(16), default="Medium", nullable=False)
	image_url = Column(Text, nullable=True)  # URL or data URL of an uploaded image
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class OIRSet(Base):
	__tablename__ = "oir_sets"
	id = Column(Integer, primary_key=True, autoincrement=True)
	title = Column(String(256), nullable=False)
	time_limit_seconds = Column(Integer, default=900, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class OIRQuestion(Base):
	__tablename__ = "oir_questions"
	id = Column(Integer, primary_key=True, autoincrement=True)
	set_id = Column(Integer, ForeignKey("oir_sets.id", ondelete="CASCADE"), nullable=False, index=True)
	text = Column(Text, nullable=False)
	image_url = Column(Text, nullable=True)  # URL or data URL of an uploaded image
	options = Column(Text, nullable=False)  # JSON list of strings
	correct_index = Column(Integer, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class PPDTScenario(Base):
	__tablename__ = "ppdt_scenarios"
	id = Column(Integer, primary_key=True, autoincrement=True)
	image_url = Column(Text, nullable=True)  # URL or data URL of an uploaded image
	description = Column(Text, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class HistoryEntry(Base):
	__tablename__ = "test_history"
	id = Column(Integer, primary_key=True, autoincrement=True)
	username = Column(String(128), nullable=False, index=True)
	test_type = Column(String(64), nullable=False)
	score = Column(Float, default=0, nullable=False)
	# PENDING when the evaluation failed and can be retried, COMPLETED otherwise
	status = Column(String(16), default="COMPLETED", nullable=False)
	result_data = Column(Text, nullable=True)  # JSON evaluation
	inputs = Column(Text, nullable=True)  # JSON raw inputs kept for retry
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

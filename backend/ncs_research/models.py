from __future__ import annotations
from datetime import datetime
from sqlalchemy import CheckConstraint, Column, String, DateTime, Integer, Text, UniqueConstraint
from .db import Base


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	email = Column(String(256), nullable=True)
	full_name = Column(String(256), default="", nullable=False)
	role = Column(String(64), default="Researcher", nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# JWT jti
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class TokenAccount(Base):
	__tablename__ = "token_accounts"
	__table_args__ = (
		CheckConstraint("balance >= 0", name="ck_token_accounts_balance"),
		CheckConstraint("total_earned >= 0", name="ck_token_accounts_earned"),
		CheckConstraint("total_spent >= 0", name="ck_token_accounts_spent"),
		CheckConstraint("referral_count >= 0", name="ck_token_accounts_referrals"),
	)
	username = Column(String(128), primary_key=True, index=True)
	# balance == total_earned - total_spent; only ledger.py writes these columns
	balance = Column(Integer, default=0, nullable=False)
	total_earned = Column(Integer, default=0, nullable=False)
	total_spent = Column(Integer, default=0, nullable=False)
	referral_count = Column(Integer, default=0, nullable=False)
	referral_code = Column(String(32), unique=True, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class LedgerEntry(Base):
	__tablename__ = "ledger_entries"
	# Append-only. seq gives a stable insertion order for history reads.
	seq = Column(Integer, primary_key=True, autoincrement=True)
	entry_id = Column(String(32), unique=True, nullable=False)
	username = Column(String(128), nullable=False, index=True)
	amount = Column(Integer, nullable=False)
	source = Column(String(64), nullable=False)
	description = Column(Text, default="", nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Task(Base):
	__tablename__ = "tasks"
	__table_args__ = (CheckConstraint("token_reward >= 0", name="ck_tasks_reward"),)
	id = Column(String(64), primary_key=True)
	title = Column(String(256), nullable=False)
	description = Column(Text, default="", nullable=False)
	task_type = Column(String(64), nullable=False)
	token_reward = Column(Integer, default=0, nullable=False)
	requirements = Column(Text, nullable=True)  # JSON string


class TaskCompletion(Base):
	__tablename__ = "task_completions"
	# The unique pair is what makes completion race-safe
	__table_args__ = (UniqueConstraint("username", "task_id", name="uq_task_completions_user_task"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	username = Column(String(128), nullable=False)
	task_id = Column(String(64), nullable=False)
	# Null when the task pays no reward
	entry_id = Column(String(32), nullable=True)
	completed_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Referral(Base):
	__tablename__ = "referrals"
	id = Column(Integer, primary_key=True, autoincrement=True)
	referrer = Column(String(128), nullable=False, index=True)
	referred_name = Column(String(256), nullable=False)
	referred_email = Column(String(256), nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ContactMessage(Base):
	__tablename__ = "contact_messages"
	id = Column(Integer, primary_key=True, autoincrement=True)
	name = Column(String(256), nullable=False)
	email = Column(String(256), nullable=False)
	category = Column(String(32), default="general", nullable=False)
	subject = Column(String(512), nullable=False)
	message = Column(Text, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserPreferences(Base):
	__tablename__ = "user_preferences"
	username = Column(String(128), primary_key=True)
	theme = Column(String(16), default="light", nullable=False)
	language = Column(String(8), default="en", nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

"""
Token ledger service.

Every balance change is an append-only ``LedgerEntry`` plus a matching update
of the ``TokenAccount`` aggregate, committed in one transaction. The database
does the serialization:

- spends use a conditional UPDATE (``WHERE balance >= amount``), so two
  concurrent spends cannot both be approved against a balance that covers one;
- task completions insert into ``task_completions`` first, whose unique
  (username, task_id) constraint rejects a duplicate before any reward is paid.

Writes are never retried here. Reads retry a bounded number of times on
``OperationalError``.
"""

from __future__ import annotations
import logging
import secrets
import uuid
from datetime import datetime
from typing import Callable, List, Optional, TypeVar

from pydantic import BaseModel
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import AlreadyCompleted, InsufficientBalance, InvalidAmount, NotFound, ValidationError
from .levels import LevelProgress, evaluate_level
from .models import LedgerEntry, Referral, Task, TaskCompletion, TokenAccount
from .settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

SOURCE_TASK = "task-completion"
SOURCE_REFERRAL = "referral-bonus"
SOURCE_WELCOME = "welcome-bonus"
SOURCE_REDEMPTION = "redemption"


class AccountSnapshot(BaseModel):
	username: str
	balance: int
	total_earned: int
	total_spent: int
	referral_count: int
	referral_code: str
	level: LevelProgress


class LedgerEntryOut(BaseModel):
	id: str
	amount: int
	transaction_type: str
	source: str
	description: str
	created_at: datetime


def _new_referral_code() -> str:
	return "NCS-" + secrets.token_hex(4).upper()


def _check_amount(amount: int) -> None:
	if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
		logger.error("rejected non-positive ledger amount %r", amount)
		raise InvalidAmount(f"amount must be a positive integer, got {amount!r}")


def _read_with_retry(db: Session, read: Callable[[], T]) -> T:
	attempts = max(0, settings.db_read_retries) + 1
	for attempt in range(1, attempts + 1):
		try:
			return read()
		except OperationalError as exc:
			db.rollback()
			if attempt >= attempts:
				raise
			logger.warning("read failed (attempt %d/%d): %s", attempt, attempts, exc)
	raise RuntimeError("unreachable")


def ensure_account(db: Session, username: str) -> TokenAccount:
	row = db.get(TokenAccount, username)
	if row is not None:
		return row
	try:
		db.add(TokenAccount(username=username, referral_code=_new_referral_code()))
		db.commit()
	except IntegrityError:
		# Created concurrently by another request
		db.rollback()
	row = db.get(TokenAccount, username)
	if row is None:
		raise NotFound(f"account {username} could not be created")
	return row


def _snapshot(row: TokenAccount) -> AccountSnapshot:
	return AccountSnapshot(
		username=row.username,
		balance=row.balance,
		total_earned=row.total_earned,
		total_spent=row.total_spent,
		referral_count=row.referral_count,
		referral_code=row.referral_code,
		level=evaluate_level(row.total_earned, row.referral_count),
	)


def get_account(db: Session, username: str) -> AccountSnapshot:
	def read() -> AccountSnapshot:
		row = db.get(TokenAccount, username)
		if row is None:
			raise NotFound(f"no token account for {username}")
		db.refresh(row)
		return _snapshot(row)

	return _read_with_retry(db, read)


def list_entries(db: Session, username: str, limit: int = 50) -> List[LedgerEntryOut]:
	def read() -> List[LedgerEntryOut]:
		rows = db.execute(
			select(LedgerEntry)
			.where(LedgerEntry.username == username)
			.order_by(LedgerEntry.seq.desc())
			.limit(limit)
		).scalars().all()
		return [
			LedgerEntryOut(
				id=r.entry_id,
				amount=r.amount,
				transaction_type="earned" if r.amount > 0 else "spent",
				source=r.source,
				description=r.description,
				created_at=r.created_at,
			)
			for r in rows
		]

	return _read_with_retry(db, read)


def _credit(db: Session, username: str, amount: int, source: str, description: str, entry_id: Optional[str] = None) -> str:
	# Caller owns the transaction
	entry_id = entry_id or uuid.uuid4().hex
	res = db.execute(
		update(TokenAccount)
		.where(TokenAccount.username == username)
		.values(
			balance=TokenAccount.balance + amount,
			total_earned=TokenAccount.total_earned + amount,
			updated_at=datetime.utcnow(),
		)
		.execution_options(synchronize_session=False)
	)
	if res.rowcount != 1:
		raise NotFound(f"no token account for {username}")
	db.execute(
		insert(LedgerEntry).values(
			entry_id=entry_id,
			username=username,
			amount=amount,
			source=source,
			description=description,
			created_at=datetime.utcnow(),
		)
	)
	return entry_id


def record_earning(db: Session, username: str, amount: int, source: str, description: str = "") -> AccountSnapshot:
	_check_amount(amount)
	ensure_account(db, username)
	try:
		_credit(db, username, amount, source, description)
		db.commit()
	except (SQLAlchemyError, NotFound):
		db.rollback()
		raise
	logger.info("earned %d tokens for %s (%s)", amount, username, source)
	return get_account(db, username)


def record_spend(db: Session, username: str, amount: int, source: str = SOURCE_REDEMPTION, description: str = "") -> AccountSnapshot:
	_check_amount(amount)
	ensure_account(db, username)
	try:
		res = db.execute(
			update(TokenAccount)
			.where(TokenAccount.username == username, TokenAccount.balance >= amount)
			.values(
				balance=TokenAccount.balance - amount,
				total_spent=TokenAccount.total_spent + amount,
				updated_at=datetime.utcnow(),
			)
			.execution_options(synchronize_session=False)
		)
		if res.rowcount != 1:
			db.rollback()
			balance = get_account(db, username).balance
			logger.info("spend of %d refused for %s, balance %d", amount, username, balance)
			raise InsufficientBalance(balance=balance, requested=amount)
		db.execute(
			insert(LedgerEntry).values(
				entry_id=uuid.uuid4().hex,
				username=username,
				amount=-amount,
				source=source,
				description=description,
				created_at=datetime.utcnow(),
			)
		)
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		raise
	logger.info("spent %d tokens for %s (%s)", amount, username, source)
	return get_account(db, username)


def complete_task(db: Session, username: str, task_id: str) -> AccountSnapshot:
	task = db.get(Task, task_id)
	if task is None:
		raise NotFound(f"unknown task {task_id}")
	reward = task.token_reward
	title = task.title
	ensure_account(db, username)
	entry_id = uuid.uuid4().hex if reward > 0 else None
	try:
		# Insert the completion first: the unique pair rejects duplicates before any payout
		db.execute(
			insert(TaskCompletion).values(
				username=username,
				task_id=task_id,
				entry_id=entry_id,
				completed_at=datetime.utcnow(),
			)
		)
		if reward > 0:
			_credit(db, username, reward, SOURCE_TASK, f"Completed task: {title}", entry_id=entry_id)
		db.commit()
	except IntegrityError:
		db.rollback()
		logger.info("duplicate completion of %s by %s ignored", task_id, username)
		raise AlreadyCompleted(task_id)
	except (SQLAlchemyError, NotFound):
		db.rollback()
		raise
	logger.info("%s completed task %s (+%d)", username, task_id, reward)
	return get_account(db, username)


def send_referral(db: Session, username: str, name: Optional[str], email: Optional[str]) -> AccountSnapshot:
	name = (name or "").strip()
	email = (email or "").strip()
	if not name:
		raise ValidationError("referred name is required", field="referred_name")
	if not email:
		raise ValidationError("referred email is required", field="referred_email")
	ensure_account(db, username)
	bonus = settings.referral_bonus_tokens
	try:
		db.execute(
			insert(Referral).values(
				referrer=username,
				referred_name=name,
				referred_email=email,
				created_at=datetime.utcnow(),
			)
		)
		db.execute(
			update(TokenAccount)
			.where(TokenAccount.username == username)
			.values(referral_count=TokenAccount.referral_count + 1)
			.execution_options(synchronize_session=False)
		)
		if bonus > 0:
			_credit(db, username, bonus, SOURCE_REFERRAL, f"Referral: {name}")
		db.commit()
	except (SQLAlchemyError, NotFound):
		db.rollback()
		raise
	logger.info("%s referred %s (+%d)", username, email, bonus)
	return get_account(db, username)


def open_account(db: Session, username: str) -> None:
	"""Stage a new token account and its welcome bonus in the caller's transaction.

	Nothing is committed here so registration can insert the user, the account
	and the bonus entry all or nothing. A duplicate account surfaces as
	``IntegrityError`` on flush.
	"""
	db.add(TokenAccount(username=username, referral_code=_new_referral_code()))
	db.flush()
	amount = settings.welcome_bonus_tokens
	if amount > 0:
		_credit(db, username, amount, SOURCE_WELCOME, "Welcome bonus")

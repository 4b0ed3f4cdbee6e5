from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import AlreadyCompleted
from ..ledger import (
	SOURCE_REDEMPTION,
	AccountSnapshot,
	LedgerEntryOut,
	complete_task,
	ensure_account,
	get_account,
	list_entries,
	record_spend,
	send_referral,
)
from ..tasks import TaskOut, list_tasks
from .auth import User, get_current_user

router = APIRouter(tags=["wallet"])


class TokensResponse(BaseModel):
	account: AccountSnapshot
	transactions: List[LedgerEntryOut]


class SpendRequest(BaseModel):
	amount: int = Field(gt=0)
	description: str = ""
	source: str = SOURCE_REDEMPTION


class CompleteTaskResponse(BaseModel):
	task_id: str
	already_completed: bool = False
	message: str = ""
	account: AccountSnapshot


class ReferralRequest(BaseModel):
	referred_name: Optional[str] = None
	referred_email: Optional[str] = None


@router.get("/user/tokens", response_model=TokensResponse)
async def user_tokens(
	limit: int = Query(default=50, ge=1, le=500),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	ensure_account(db, user.username)
	return TokensResponse(account=get_account(db, user.username), transactions=list_entries(db, user.username, limit))


@router.post("/wallet/spend", response_model=AccountSnapshot)
async def spend(req: SpendRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return record_spend(db, user.username, req.amount, req.source or SOURCE_REDEMPTION, req.description)


@router.get("/tasks", response_model=List[TaskOut])
async def tasks(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return list_tasks(db, user.username)


@router.post("/tasks/{task_id}/complete", response_model=CompleteTaskResponse)
async def complete(task_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	try:
		account = complete_task(db, user.username, task_id)
	except AlreadyCompleted as e:
		# Duplicate submissions are a no-op for the caller
		return CompleteTaskResponse(
			task_id=task_id,
			already_completed=True,
			message=e.message,
			account=get_account(db, user.username),
		)
	return CompleteTaskResponse(task_id=task_id, account=account)


@router.post("/referral/send", response_model=AccountSnapshot)
async def referral(req: ReferralRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return send_referral(db, user.username, req.referred_name, req.referred_email)

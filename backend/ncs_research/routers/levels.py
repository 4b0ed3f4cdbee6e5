from __future__ import annotations
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..ledger import ensure_account, get_account
from ..levels import LEVELS, Level, LevelProgress
from .auth import User, get_current_user

router = APIRouter(prefix="/user", tags=["levels"])


class LevelInfoResponse(BaseModel):
	levels: List[Level]


class UserLevelResponse(BaseModel):
	total_earned: int
	referral_count: int
	progress: LevelProgress


@router.get("/level-info", response_model=LevelInfoResponse)
async def level_info():
	return LevelInfoResponse(levels=LEVELS)


@router.get("/level", response_model=UserLevelResponse)
async def user_level(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	ensure_account(db, user.username)
	account = get_account(db, user.username)
	return UserLevelResponse(
		total_earned=account.total_earned,
		referral_count=account.referral_count,
		progress=account.level,
	)

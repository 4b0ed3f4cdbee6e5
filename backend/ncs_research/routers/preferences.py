"""Per-user display preferences.

The presentation layer reads this object at startup and writes it back
through ``PUT``; there is no other shared mutable theme state.
"""

from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import ValidationError
from ..models import UserPreferences
from ..settings import settings
from .auth import User, get_current_user

router = APIRouter(prefix="/preferences", tags=["preferences"])

THEMES = ("light", "dark")
LANGUAGES = ("en", "vi")


class Preferences(BaseModel):
	theme: str
	language: str


class PreferencesUpdate(BaseModel):
	theme: Optional[str] = None
	language: Optional[str] = None


def _current(db: Session, username: str) -> Preferences:
	row = db.get(UserPreferences, username)
	if row is None:
		return Preferences(theme=settings.default_theme, language=settings.default_language)
	return Preferences(theme=row.theme, language=row.language)


@router.get("", response_model=Preferences)
async def read_preferences(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return _current(db, user.username)


@router.put("", response_model=Preferences)
async def update_preferences(req: PreferencesUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	if req.theme is not None and req.theme not in THEMES:
		raise ValidationError(f"theme must be one of {', '.join(THEMES)}", field="theme")
	if req.language is not None and req.language not in LANGUAGES:
		raise ValidationError(f"language must be one of {', '.join(LANGUAGES)}", field="language")
	current = _current(db, user.username)
	row = UserPreferences(
		username=user.username,
		theme=req.theme or current.theme,
		language=req.language or current.language,
	)
	db.merge(row)
	db.commit()
	return _current(db, user.username)

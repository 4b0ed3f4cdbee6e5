from __future__ import annotations
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import ValidationError
from ..models import ContactMessage

router = APIRouter(prefix="/contact", tags=["contact"])

logger = logging.getLogger(__name__)

CATEGORIES = ("general", "technical", "billing", "feature", "bug", "partnership")


class ContactRequest(BaseModel):
	name: Optional[str] = None
	email: Optional[str] = None
	subject: Optional[str] = None
	message: Optional[str] = None
	category: str = "general"


@router.post("", status_code=201)
async def submit(req: ContactRequest, db: Session = Depends(get_db)):
	values = {k: (getattr(req, k) or "").strip() for k in ("name", "email", "subject", "message")}
	for field, value in values.items():
		if not value:
			raise ValidationError(f"{field} is required", field=field)
	category = (req.category or "general").strip().lower()
	if category not in CATEGORIES:
		raise ValidationError(f"unknown category: {category}", field="category")
	row = ContactMessage(category=category, **values)
	db.add(row)
	db.commit()
	logger.info("contact message %s from %s (%s)", row.id, values["email"], category)
	return {"ok": True, "id": row.id}

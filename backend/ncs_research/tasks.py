from __future__ import annotations
import json
import logging
from typing import Any, Dict, List

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import Task, TaskCompletion

logger = logging.getLogger(__name__)


class TaskOut(BaseModel):
	id: str
	title: str
	description: str
	task_type: str
	token_reward: int
	requirements: Dict[str, Any] = {}
	completed: bool = False


# Each task pays its reward once per user
TASK_CATALOG: List[Dict[str, Any]] = [
	{
		"id": "complete-profile",
		"title": "Complete your profile",
		"description": "Add your institution, research field and a short bio.",
		"task_type": "onboarding",
		"token_reward": 50,
		"requirements": {"fields": ["institution", "research_field", "bio"]},
	},
	{
		"id": "first-project",
		"title": "Create your first project",
		"description": "Start a research project in the project manager.",
		"task_type": "project",
		"token_reward": 100,
		"requirements": {"projects": 1},
	},
	{
		"id": "literature-review",
		"title": "Run a literature review",
		"description": "Collect and annotate at least ten sources.",
		"task_type": "research",
		"token_reward": 150,
		"requirements": {"sources": 10},
	},
	{
		"id": "survey-creation",
		"title": "Publish a survey",
		"description": "Design a survey instrument and share it with respondents.",
		"task_type": "research",
		"token_reward": 100,
		"requirements": {"surveys": 1},
	},
	{
		"id": "data-analysis",
		"title": "Analyse a dataset",
		"description": "Upload data and run a descriptive statistics or reliability analysis.",
		"task_type": "analysis",
		"token_reward": 200,
		"requirements": {"analyses": 1},
	},
	{
		"id": "quality-checklist",
		"title": "Pass the quality checklist",
		"description": "Review a manuscript against the quality checklist.",
		"task_type": "writing",
		"token_reward": 75,
		"requirements": {"checklist_items": 20},
	},
]


def seed_tasks(db: Session, catalog: List[Dict[str, Any]] = TASK_CATALOG) -> int:
	"""Insert or refresh catalog tasks by id. Returns the number of rows written."""
	written = 0
	for item in catalog:
		row = Task(
			id=item["id"],
			title=item["title"],
			description=item.get("description", ""),
			task_type=item["task_type"],
			token_reward=int(item["token_reward"]),
			requirements=json.dumps(item.get("requirements") or {}, sort_keys=True),
		)
		db.merge(row)
		written += 1
	db.commit()
	logger.info("seeded %d catalog tasks", written)
	return written


def list_tasks(db: Session, username: str) -> List[TaskOut]:
	done = set(
		db.execute(select(TaskCompletion.task_id).where(TaskCompletion.username == username)).scalars().all()
	)
	rows = db.execute(select(Task).order_by(Task.id)).scalars().all()
	out: List[TaskOut] = []
	for row in rows:
		try:
			reqs = json.loads(row.requirements) if row.requirements else {}
		except ValueError:
			reqs = {}
		out.append(
			TaskOut(
				id=row.id,
				title=row.title,
				description=row.description,
				task_type=row.task_type,
				token_reward=row.token_reward,
				requirements=reqs,
				completed=row.id in done,
			)
		)
	return out

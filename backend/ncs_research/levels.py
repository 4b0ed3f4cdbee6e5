"""
Level / progression evaluation.

A user's level is derived from two cumulative totals (earned tokens and
referrals) against an ordered table of thresholds. It is never stored: every
caller recomputes it from the account snapshot.
"""

from __future__ import annotations
from typing import List, Optional, Sequence

from pydantic import BaseModel

from .errors import InvalidAmount


class Level(BaseModel):
	name: str
	min_tokens: int
	min_referrals: int
	description: str = ""
	benefits: List[str] = []


class LevelProgress(BaseModel):
	current: Level
	next: Optional[Level] = None
	token_progress: float
	referral_progress: float
	# Binding constraint is the laggard dimension, so this is the min, not the average
	combined: float


LEVELS: List[Level] = [
	Level(
		name="Researcher",
		min_tokens=0,
		min_referrals=0,
		description="Starting level for every member",
		benefits=["Basic analysis tools", "Create projects", "Earn tokens"],
	),
	Level(
		name="Scholar",
		min_tokens=1000,
		min_referrals=5,
		description="Active contributor with a growing network",
		benefits=["Advanced analysis tools", "Review projects", "Higher token rewards"],
	),
	Level(
		name="Mentor",
		min_tokens=5000,
		min_referrals=20,
		description="Guides other researchers",
		benefits=["Mentor projects", "Priority support", "Exclusive features"],
	),
	Level(
		name="Editor",
		min_tokens=15000,
		min_referrals=50,
		description="Curates and reviews platform content",
		benefits=["Editorial access", "Quality control", "Premium features"],
	),
	Level(
		name="Founder",
		min_tokens=50000,
		min_referrals=100,
		description="Shapes the direction of the platform",
		benefits=["All features", "Platform governance", "Special recognition"],
	),
]


def validate_table(levels: Sequence[Level]) -> None:
	if not levels:
		raise ValueError("level table is empty")
	names = [lv.name for lv in levels]
	if len(set(names)) != len(names):
		raise ValueError("level names must be unique")
	if levels[0].min_tokens != 0 or levels[0].min_referrals != 0:
		raise ValueError("the lowest level must have zero thresholds")
	for lower, upper in zip(levels, levels[1:]):
		if upper.min_tokens < lower.min_tokens or upper.min_referrals < lower.min_referrals:
			raise ValueError(f"thresholds of {upper.name} are below those of {lower.name}")


def _percent(value: int, threshold: int) -> float:
	if threshold <= 0:
		return 100.0
	return min(100.0, 100.0 * value / threshold)


def evaluate_level(total_earned: int, referral_count: int, levels: Sequence[Level] = LEVELS) -> LevelProgress:
	"""Return current level, next level and progress toward it.

	The current level is the highest rank whose token and referral thresholds
	are both met; rank 0 is always met. Negative totals are rejected.
	"""
	if total_earned < 0 or referral_count < 0:
		raise InvalidAmount(f"level inputs must be non-negative (tokens={total_earned}, referrals={referral_count})")
	index = 0
	for i, level in enumerate(levels):
		if total_earned >= level.min_tokens and referral_count >= level.min_referrals:
			index = i
		else:
			# Thresholds are monotonic, so no higher rank can be met either
			break
	current = levels[index]
	nxt = levels[index + 1] if index + 1 < len(levels) else None
	if nxt is None:
		return LevelProgress(current=current, next=None, token_progress=100.0, referral_progress=100.0, combined=100.0)
	tokens = _percent(total_earned, nxt.min_tokens)
	referrals = _percent(referral_count, nxt.min_referrals)
	return LevelProgress(
		current=current,
		next=nxt,
		token_progress=tokens,
		referral_progress=referrals,
		combined=min(tokens, referrals),
	)


validate_table(LEVELS)

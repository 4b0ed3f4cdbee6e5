"""
Stub analysis endpoint.

Returns random placeholder numbers shaped like the results the analysis pages
expect. Nothing here is computed from the submitted data apart from variable
names and row counts; every response carries ``"stub": true``.
"""

from __future__ import annotations
import random
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from .auth import User, get_current_user

router = APIRouter(prefix="/analysis", tags=["analysis"])


class AnalysisRequest(BaseModel):
	analysis_type: str
	data: Dict[str, Any] = {}


def _rows(data: Dict[str, Any]) -> List[Dict[str, Any]]:
	rows = data.get("data")
	if not isinstance(rows, list):
		return []
	return [row for row in rows if isinstance(row, dict)]


def _names(value: Any, default: List[str]) -> List[str]:
	# Accepts a list of names or a mapping keyed by name.
	if not isinstance(value, (list, dict)):
		return default
	names = [str(name) for name in value if isinstance(name, (str, int, float))]
	return names or default


def _descriptive(rng: random.Random, data: Dict[str, Any]) -> List[Dict[str, Any]]:
	rows = _rows(data)
	first = rows[0] if rows else {}
	return [
		{
			"variable": str(name),
			"mean": round(rng.uniform(1, 11), 3),
			"median": round(rng.uniform(1, 11), 3),
			"std_dev": round(rng.uniform(0.5, 2.5), 3),
			"min": round(rng.uniform(0, 5), 3),
			"max": round(rng.uniform(5, 20), 3),
			"count": len(rows),
		}
		for name in list(first.keys())[:5]
	]


def _cronbach(rng: random.Random, data: Dict[str, Any]) -> Dict[str, float]:
	constructs = _names(data.get("constructs"), [])
	return {name: round(rng.uniform(0.6, 0.9), 3) for name in constructs}


def _vif(rng: random.Random, data: Dict[str, Any]) -> Dict[str, Any]:
	variables = _names(data.get("variables"), ["var1", "var2", "var3"])
	return {
		"vif_scores": {v: round(rng.uniform(1, 4), 2) for v in variables},
		"multicollinearity": "None detected",
	}


def _regression(rng: random.Random, data: Dict[str, Any]) -> Dict[str, Any]:
	coefficients = {"intercept": round(rng.uniform(-1, 1), 3)}
	for name in _names(data.get("independent_vars"), []):
		coefficients[name] = round(rng.uniform(0.1, 0.6), 3)
	return {
		"r_squared": round(rng.uniform(0.5, 0.8), 3),
		"adjusted_r_squared": round(rng.uniform(0.45, 0.75), 3),
		"coefficients": coefficients,
	}


_HANDLERS = {
	"descriptive-stats": _descriptive,
	"cronbach-alpha": _cronbach,
	"vif": _vif,
	"regression": _regression,
}


def simulate(analysis_type: str, data: Dict[str, Any], seed: Optional[int] = None) -> Any:
	rng = random.Random(seed)
	handler = _HANDLERS.get(analysis_type)
	if handler is None:
		return {
			"message": f"Analysis '{analysis_type}' completed successfully",
			"status": "completed",
			"timestamp": datetime.now(timezone.utc).isoformat(),
		}
	return handler(rng, data)


@router.post("")
async def analyse(req: AnalysisRequest, user: User = Depends(get_current_user)):
	return {"stub": True, "analysis_type": req.analysis_type, "results": simulate(req.analysis_type, req.data)}

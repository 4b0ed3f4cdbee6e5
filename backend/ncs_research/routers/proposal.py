from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from ..proposal import ProposalFields, export, render_markdown
from .auth import User, get_current_user

router = APIRouter(prefix="/proposal", tags=["proposal"])


@router.post("/generate")
async def generate(fields: ProposalFields, user: User = Depends(get_current_user)):
	return {"proposal": render_markdown(fields)}


@router.post("/export")
async def export_proposal(
	fields: ProposalFields,
	format: str = Query(default="md"),
	user: User = Depends(get_current_user),
):
	content, media_type, filename = export(fields, format)
	return Response(
		content=content,
		media_type=media_type,
		headers={"Content-Disposition": f'attachment; filename="{filename}"'},
	)

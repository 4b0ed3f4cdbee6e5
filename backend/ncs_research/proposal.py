"""
Proposal generator: turns the flat proposal form into a document.

The form is a passthrough: absent fields become empty strings and nothing is
checked for content. Output is deterministic for equal input in the text
formats (Markdown, HTML). PDF export draws the document onto one tall canvas
at a standard page width and slices it into fixed-height pages.
"""

from __future__ import annotations
import html
import io
import math
import textwrap
from typing import List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont
from pydantic import BaseModel, field_validator

from .errors import ValidationError
from .settings import settings

DOCUMENT_TITLE = "Research Proposal"
EXPORT_BASENAME = "research_proposal"

# Fixed order and heading text
SECTIONS: List[Tuple[str, str]] = [
	("title", "Title"),
	("abstract", "Abstract"),
	("introduction", "Introduction"),
	("methodology", "Methodology"),
	("expected_results", "Expected Results"),
	("timeline", "Timeline"),
	("budget", "Budget"),
	("references", "References"),
]

EXPORT_FORMATS = {
	"md": "text/markdown; charset=utf-8",
	"html": "text/html; charset=utf-8",
	"pdf": "application/pdf",
}

_HTML_STYLE = (
	"body{font-family:Georgia,'Times New Roman',serif;max-width:800px;margin:40px auto;"
	"padding:0 24px;color:#1f2937;line-height:1.6}"
	"h1{text-align:center;color:#1e3a8a}"
	"h2{border-bottom:1px solid #e5e7eb;padding-bottom:4px;color:#1e40af}"
	".body{white-space:pre-wrap}"
)


class ProposalFields(BaseModel):
	title: Optional[str] = ""
	abstract: Optional[str] = ""
	introduction: Optional[str] = ""
	methodology: Optional[str] = ""
	expected_results: Optional[str] = ""
	timeline: Optional[str] = ""
	budget: Optional[str] = ""
	references: Optional[str] = ""

	@field_validator("*", mode="before")
	@classmethod
	def _none_to_empty(cls, v):
		return "" if v is None else v


def _sections(fields: ProposalFields) -> List[Tuple[str, str]]:
	return [(heading, getattr(fields, name) or "") for name, heading in SECTIONS]


def render_markdown(fields: ProposalFields) -> str:
	parts = [f"# {DOCUMENT_TITLE}", ""]
	for heading, body in _sections(fields):
		parts.extend([f"## {heading}", "", body, ""])
	return "\n".join(parts)


def render_html(fields: ProposalFields) -> str:
	page_title = html.escape(fields.title or DOCUMENT_TITLE)
	body = [f"<h1>{html.escape(DOCUMENT_TITLE)}</h1>"]
	for heading, text in _sections(fields):
		body.append(f'<section><h2>{html.escape(heading)}</h2><div class="body">{html.escape(text)}</div></section>')
	return (
		'<!DOCTYPE html><html><head><meta charset="UTF-8">'
		f"<title>{page_title}</title><style>{_HTML_STYLE}</style></head>"
		f"<body>{''.join(body)}</body></html>"
	)


_FONT = ImageFont.load_default()
_MARGIN = 60


def _line_height(font) -> int:
	left, top, right, bottom = font.getbbox("Ay")
	return max(12, int((bottom - top) * 1.6))


def _wrap(text: str, width_chars: int) -> List[str]:
	lines: List[str] = []
	for para in (text or "").splitlines():
		if not para.strip():
			lines.append("")
			continue
		lines.extend(textwrap.wrap(para, width=width_chars) or [""])
	return lines


def _layout(fields: ProposalFields, width: int) -> List[Tuple[str, str]]:
	char_w = max(1.0, float(_FONT.getlength("n")))
	width_chars = max(20, int((width - 2 * _MARGIN) / char_w))
	rows: List[Tuple[str, str]] = [("title", DOCUMENT_TITLE), ("gap", "")]
	for heading, body in _sections(fields):
		rows.append(("heading", heading))
		rows.extend(("text", ln) for ln in _wrap(body, width_chars))
		rows.append(("gap", ""))
	return rows


def render_pdf(fields: ProposalFields, *, page_width: Optional[int] = None, page_height: Optional[int] = None) -> bytes:
	width = page_width or settings.export_page_width_px
	page_h = page_height or settings.export_page_height_px
	line_h = _line_height(_FONT)
	rows = _layout(fields, width)
	total_h = 2 * _MARGIN + line_h * len(rows)

	canvas = Image.new("RGB", (width, total_h), (255, 255, 255))
	draw = ImageDraw.Draw(canvas)
	y = _MARGIN
	for kind, text in rows:
		if kind == "title":
			draw.text((_MARGIN, y), text, font=_FONT, fill=(30, 58, 138))
		elif kind == "heading":
			draw.text((_MARGIN, y), text, font=_FONT, fill=(30, 64, 175))
			draw.line((_MARGIN, y + line_h - 4, width - _MARGIN, y + line_h - 4), fill=(229, 231, 235), width=1)
		elif kind == "text" and text:
			draw.text((_MARGIN, y), text, font=_FONT, fill=(31, 41, 55))
		y += line_h

	pages: List[Image.Image] = []
	for i in range(max(1, math.ceil(total_h / page_h))):
		page = Image.new("RGB", (width, page_h), (255, 255, 255))
		top = i * page_h
		page.paste(canvas.crop((0, top, width, min(total_h, top + page_h))), (0, 0))
		pages.append(page)

	out = io.BytesIO()
	pages[0].save(out, format="PDF", save_all=True, append_images=pages[1:], resolution=150.0)
	return out.getvalue()


def export(fields: ProposalFields, fmt: str) -> Tuple[bytes, str, str]:
	"""Return (content, media type, filename) for a download."""
	fmt = (fmt or "").strip().lower()
	if fmt not in EXPORT_FORMATS:
		raise ValidationError(f"unsupported export format: {fmt or '(empty)'}", field="format")
	if fmt == "md":
		content = render_markdown(fields).encode("utf-8")
	elif fmt == "html":
		content = render_html(fields).encode("utf-8")
	else:
		content = render_pdf(fields)
	return content, EXPORT_FORMATS[fmt], f"{EXPORT_BASENAME}.{fmt}"

import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .db import Base, engine, get_db
from .cleanup import purge_stale_sessions
from .errors import AlreadyCompleted, InsufficientBalance, InvalidAmount, NCSError, ValidationError
from .settings import settings
from .tasks import seed_tasks
from .routers import auth
from .routers import wallet
from .routers import levels
from .routers import proposal
from .routers import contact
from .routers import preferences
from .routers import analysis

logging.basicConfig(
	level=getattr(logging, str(settings.log_level).upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="NCS Research Platform API")
app.include_router(auth.router)
app.include_router(wallet.router)
app.include_router(levels.router)
app.include_router(proposal.router)
app.include_router(contact.router)
app.include_router(preferences.router)
app.include_router(analysis.router)


@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError):
	return JSONResponse(status_code=400, content={"detail": exc.message, "field": exc.field})


@app.exception_handler(InsufficientBalance)
async def _insufficient_balance(request: Request, exc: InsufficientBalance):
	return JSONResponse(
		status_code=409,
		content={"detail": exc.message, "balance": exc.balance, "requested": exc.requested},
	)


@app.exception_handler(AlreadyCompleted)
async def _already_completed(request: Request, exc: AlreadyCompleted):
	return JSONResponse(status_code=200, content={"detail": exc.message, "already_completed": True})


@app.exception_handler(InvalidAmount)
async def _invalid_amount(request: Request, exc: InvalidAmount):
	logger.error("invalid amount reached %s: %s", request.url.path, exc.message)
	return JSONResponse(status_code=500, content={"detail": "internal error"})


@app.exception_handler(NCSError)
async def _ncs_error(request: Request, exc: NCSError):
	return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/info")
def root():
	return {"status": "ok"}


def _run_cleanup() -> None:
	db = next(get_db())
	try:
		removed = purge_stale_sessions(db)
		if removed:
			logger.info("purged %d stale sessions", removed)
	except Exception:
		logger.exception("session cleanup failed")
	finally:
		db.close()


async def _cleanup_watcher():
	while True:
		await asyncio.sleep(24 * 60 * 60)
		_run_cleanup()


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	db = next(get_db())
	try:
		seed_tasks(db)
	finally:
		db.close()
	_run_cleanup()
	# Start periodic cleanup loop
	app.state.cleanup_task = asyncio.create_task(_cleanup_watcher())


@app.on_event("shutdown")
async def shutdown_event():
	task = getattr(app.state, "cleanup_task", None)
	if task is None:
		return
	task.cancel()
	try:
		await task
	except asyncio.CancelledError:
		pass
	app.state.cleanup_task = None

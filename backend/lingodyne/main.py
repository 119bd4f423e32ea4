import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .db import Base, SessionLocal, engine, ensure_schema
from .access import ensure_roles_exist
from .cleanup import purge_expired
from .errors import AlreadySubmitted, LingodyneError
from .settings import settings
from .routers import admin, auth, reviewer, templates, user_tests

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Lingodyne API")
app.include_router(auth.router)
app.include_router(auth.user_router)
app.include_router(templates.router)
app.include_router(templates.demo_router)
app.include_router(user_tests.router)
app.include_router(reviewer.router)
app.include_router(admin.router)


@app.exception_handler(LingodyneError)
async def lingodyne_error_handler(request: Request, exc: LingodyneError):
	body = {"error": exc.message, "code": exc.code}
	if isinstance(exc, AlreadySubmitted) and exc.status:
		body["status"] = exc.status
	if exc.status_code >= 500:
		logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
	return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
	# Malformed bodies are a ValidationFailed like any other bad input
	problems = []
	for err in exc.errors():
		where = ".".join(str(part) for part in err.get("loc", ())[1:])
		problems.append(f"{where}: {err.get('msg')}" if where else str(err.get("msg")))
	return JSONResponse(status_code=400, content={"error": "; ".join(problems) or "Invalid request", "code": "ValidationFailed"})


@app.get("/info")
def root():
	return {
		"status": "ok",
		"email_configured": bool(settings.resend_api_key),
		"default_pass_threshold": settings.default_pass_threshold,
	}


def _run_cleanup() -> int:
	db = SessionLocal()
	try:
		return purge_expired(db)
	finally:
		db.close()


async def _cleanup_watcher():
	# Startup already ran one pass; repeat daily
	while True:
		await asyncio.sleep(24 * 60 * 60)
		try:
			removed = _run_cleanup()
			logger.info("Daily cleanup removed %d rows", removed)
		except Exception:
			logger.exception("Daily cleanup failed")


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	# Apply lightweight dev migrations
	added = ensure_schema()
	if added:
		logger.info("Added columns: %s", ", ".join(added))
	db = SessionLocal()
	try:
		ensure_roles_exist(db)
		db.commit()
	finally:
		db.close()
	removed = _run_cleanup()
	logger.info("Startup cleanup removed %d rows", removed)
	asyncio.create_task(_cleanup_watcher())

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .db import Base, engine, SessionLocal
from .errors import InvalidArgument, KnowledgeTestError
from .gemini_client import GeminiClient
from .logging_config import configure_logging
from .settings import settings
from .store import PassageStore
from .routers import knowledge_tests

logger = logging.getLogger(__name__)

app = FastAPI(title="LearnBoost Knowledge Tests API")
app.include_router(knowledge_tests.router)


@app.exception_handler(KnowledgeTestError)
async def knowledge_test_error_handler(request: Request, exc: KnowledgeTestError):
	if exc.status_code >= 500:
		logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.kind)
	return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
	# Malformed bodies are reported like every other invalid_argument
	problems = "; ".join(_describe(err) for err in exc.errors())
	error = InvalidArgument(problems or "Invalid request body")
	return JSONResponse(status_code=error.status_code, content=error.to_dict())


def _describe(err: dict) -> str:
	field = ".".join(str(p) for p in err.get("loc", ()) if p != "body") or "body"
	return f"{field}: {err.get('msg', 'invalid')}"


@app.get("/info")
def root():
	return {"status": "ok", "gemini_configured": bool(settings.gemini_api_key)}


@app.on_event("startup")
async def startup_event():
	configure_logging()
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	app.state.store = PassageStore(SessionLocal)
	# One client per process so the discovered model is cached across requests
	app.state.gemini = GeminiClient() if settings.gemini_api_key else None
	if app.state.gemini is None:
		logger.warning("GEMINI_API_KEY not set; test generation and justification are disabled")


@app.on_event("shutdown")
async def shutdown_event():
	client = getattr(app.state, "gemini", None)
	if client is not None:
		await client.aclose()

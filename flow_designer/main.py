# flow_designer/main.py
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from flow_designer.api import router as api_router
from flow_designer.core.config import settings
from flow_designer.core.exceptions import (
    ConfirmationRequiredError,
    FlowValidationError,
    GenerationError,
    NoGeneratedFlowError,
    NodeNotFoundException,
    PromptTextEmptyError,
    StaleGenerationError,
)
from flow_designer.core.limiter import limiter

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup Logic ---
    service = api_router.get_service()
    print(f"Flow store ready at {getattr(service.store, 'base_dir', 'memory')}")
    if not settings.GEMINI_API_KEY:
        print("GEMINI_API_KEY is not set; generation requests must carry their own api_key.")
    yield
    # --- Shutdown Logic ---
    print("Prompt flow designer shutting down.")


app = FastAPI(
    title="Prompt Flow Designer API",
    description="Compiles graphs of prompt steps into ordered prompt transcripts.",
    version="1.0.0",
    lifespan=lifespan
)

# Add Limiter to the application state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Exempt all OPTIONS requests from rate limiting to prevent CORS preflight issues
app.state.limiter.exempt_methods = ["OPTIONS"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["Content-Type", "X-User-ID"],
)


def _message_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": exc.message})


@app.exception_handler(NodeNotFoundException)
async def node_not_found_exception_handler(request: Request, exc: NodeNotFoundException):
    return _message_response(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(FlowValidationError)
async def flow_validation_exception_handler(request: Request, exc: FlowValidationError):
    return _message_response(status.HTTP_422_UNPROCESSABLE_ENTITY, exc)


@app.exception_handler(PromptTextEmptyError)
async def prompt_text_empty_exception_handler(request: Request, exc: PromptTextEmptyError):
    return _message_response(status.HTTP_400_BAD_REQUEST, exc)


@app.exception_handler(ConfirmationRequiredError)
async def confirmation_required_exception_handler(request: Request, exc: ConfirmationRequiredError):
    return _message_response(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(StaleGenerationError)
async def stale_generation_exception_handler(request: Request, exc: StaleGenerationError):
    return _message_response(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(NoGeneratedFlowError)
async def no_generated_flow_exception_handler(request: Request, exc: NoGeneratedFlowError):
    return _message_response(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(GenerationError)
async def generation_exception_handler(request: Request, exc: GenerationError):
    return _message_response(status.HTTP_502_BAD_GATEWAY, exc)


app.include_router(api_router.router)


@app.get("/")
async def root():
    return {"message": "Welcome to the Prompt Flow Designer API"}


@app.get("/healthz", tags=["Health"], status_code=status.HTTP_200_OK)
async def health_check():
    """Returns the operational status of the service."""
    return {
        "status": "ok",
        "generation_configured": bool(settings.GEMINI_API_KEY),
    }

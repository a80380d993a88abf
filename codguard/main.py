from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .errors import NotFoundError, ValidationFailed, InvalidTransition, IntegrationError
from .routes.risk import router as risk_router
from .routes.voice import router as voice_router
from .routes.tracking import router as tracking_router
from .routes.notifications import router as notifications_router
from .utils.logging import logger

app = FastAPI(title="CODGuard Backend",
              description="Order risk scoring, voice confirmation and carrier tracking",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json")

app.include_router(risk_router)
app.include_router(voice_router)
app.include_router(tracking_router)
app.include_router(notifications_router)

@app.exception_handler(NotFoundError)
async def not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"ok": False, "error": str(exc)})

@app.exception_handler(ValidationFailed)
async def validation_failed(request: Request, exc: ValidationFailed):
    return JSONResponse(status_code=422, content={"ok": False, "error": str(exc)})

@app.exception_handler(InvalidTransition)
async def invalid_transition(request: Request, exc: InvalidTransition):
    return JSONResponse(status_code=409, content={"ok": False, "error": str(exc)})

@app.exception_handler(IntegrationError)
async def integration_error(request: Request, exc: IntegrationError):
    logger.error("Integration error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"ok": False, "error": str(exc)})

@app.get("/health")
def health():
    return {"ok": True}

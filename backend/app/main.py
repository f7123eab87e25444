import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import router
from app.core.config import settings
from app.core.errors import RelayError, UnexpectedError, ValidationError
from app.services.predictions import new_http_client

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    provider = settings.prediction_provider.lower()
    if provider == "replicate" and not settings.replicate_api_token:
        logger.error("Missing REPLICATE_API_TOKEN; transform requests will fail until it is set")
    logger.info("%s starting (env=%s, provider=%s)", settings.app_name, settings.env, provider)
    app.state.http_client = new_http_client(settings.http_timeout_seconds)
    yield
    logger.info("%s shutting down", settings.app_name)
    await app.state.http_client.aclose()


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = {str(err.get("loc", ())[-1]) for err in exc.errors() if err.get("loc")}
    logger.warning("Rejected request to %s: invalid %s", request.url.path, ", ".join(sorted(fields)) or "body")
    err = ValidationError() if "image" in fields else ValidationError("Invalid request")
    return JSONResponse(status_code=err.status_code, content={"error": err.message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    err = UnexpectedError()
    return JSONResponse(status_code=err.status_code, content={"error": err.message})


app.include_router(router, prefix=settings.api_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level=settings.log_level.lower())

import logging
import uuid
from collections.abc import AsyncIterator
from typing import Protocol

import httpx
from fastapi import Request

from app.core.config import Settings, settings
from app.core.errors import ConfigurationError, UpstreamRejected
from app.models import Prediction
from app.schemas.prediction import GenerationParams, PredictionCreate, PredictionInput

logger = logging.getLogger(__name__)


class PredictionClient(Protocol):
    async def create_prediction(self, image: str, params: GenerationParams) -> Prediction: ...

    async def get_prediction(self, prediction_id: str) -> Prediction: ...

    async def cancel_prediction(self, prediction_id: str) -> None: ...

    async def aclose(self) -> None: ...


def _json_or_none(resp: httpx.Response):
    try:
        return resp.json()
    except ValueError:
        return None


def new_http_client(timeout: float, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=timeout,
        trust_env=False,
        transport=transport,
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
    )


class ReplicateClient:
    def __init__(
        self,
        api_token: str,
        base_url: str,
        model_version: str,
        timeout: float = 60,
        transport: httpx.AsyncBaseTransport | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        if not api_token:
            raise ConfigurationError()
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.model_version = model_version
        self.timeout = timeout
        self._transport = transport
        # A shared pool belongs to the app lifespan and is never closed here.
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Shared pool when one was given, otherwise a lazily-created private client."""
        if self._http_client is None or (self._owns_client and self._http_client.is_closed):
            self._http_client = new_http_client(self.timeout, transport=self._transport)
            self._owns_client = True
        return self._http_client

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_token}", "Accept": "application/json"}

    async def aclose(self) -> None:
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def create_prediction(self, image: str, params: GenerationParams) -> Prediction:
        payload = PredictionCreate(
            version=self.model_version,
            input=PredictionInput(image=image, **params.model_dump()),
        )
        resp = await self.http_client.post(
            f"{self.base_url}/v1/predictions", headers=self.headers, json=payload.model_dump()
        )
        data = _json_or_none(resp)
        if not resp.is_success:
            logger.error("Prediction create rejected: %s %s", resp.status_code, data or resp.text[:500])
            detail = data.get("detail") if isinstance(data, dict) else None
            if not isinstance(detail, str):
                detail = None
            raise UpstreamRejected(detail or None, status_code=resp.status_code)
        if data is None:
            raise ValueError(f"PREDICTION_INVALID: non-JSON create response ({resp.status_code})")
        return Prediction.model_validate(data)

    async def get_prediction(self, prediction_id: str) -> Prediction:
        resp = await self.http_client.get(f"{self.base_url}/v1/predictions/{prediction_id}", headers=self.headers)
        resp.raise_for_status()
        return Prediction.model_validate(resp.json())

    async def cancel_prediction(self, prediction_id: str) -> None:
        resp = await self.http_client.post(
            f"{self.base_url}/v1/predictions/{prediction_id}/cancel", headers=self.headers
        )
        resp.raise_for_status()


class MockPredictionClient:
    """Finishes every prediction on creation with a fixed output URL."""

    def __init__(self, output_url: str):
        self.output_url = output_url
        self.predictions: dict[str, Prediction] = {}

    async def create_prediction(self, image: str, params: GenerationParams) -> Prediction:
        prediction = Prediction(id=f"mock-{uuid.uuid4().hex}", status="succeeded", output=[self.output_url])
        self.predictions[prediction.id] = prediction
        return prediction

    async def get_prediction(self, prediction_id: str) -> Prediction:
        return self.predictions[prediction_id]

    async def cancel_prediction(self, prediction_id: str) -> None:
        self.predictions.pop(prediction_id, None)

    async def aclose(self) -> None:
        return None


def build_prediction_client(cfg: Settings, http_client: httpx.AsyncClient | None = None) -> PredictionClient:
    provider = cfg.prediction_provider.lower()
    if provider == "mock":
        return MockPredictionClient(cfg.mock_output_url)
    if provider != "replicate":
        logger.error("Unknown prediction provider %r", cfg.prediction_provider)
        raise ConfigurationError()
    if not cfg.replicate_api_token:
        logger.error("Missing REPLICATE_API_TOKEN")
        raise ConfigurationError()
    return ReplicateClient(
        api_token=cfg.replicate_api_token,
        base_url=cfg.replicate_base_url,
        model_version=cfg.replicate_model_version,
        timeout=cfg.http_timeout_seconds,
        http_client=http_client,
    )


async def get_prediction_client(request: Request) -> AsyncIterator[PredictionClient]:
    # Settings are read per request; the connection pool lives on app.state.
    client = build_prediction_client(settings, http_client=getattr(request.app.state, "http_client", None))
    try:
        yield client
    finally:
        await client.aclose()

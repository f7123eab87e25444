import asyncio
import base64
import logging
from collections.abc import Awaitable, Callable

from app.core.config import Settings
from app.core.errors import (
    GenerationFailed,
    GenerationTimeout,
    RelayError,
    RequestCancelled,
    UnexpectedError,
)
from app.models import JobStatus, Prediction
from app.schemas.prediction import GenerationParams
from app.services.predictions import PredictionClient

logger = logging.getLogger(__name__)


def encode_data_url(data: bytes, content_type: str | None) -> str:
    mime = content_type or "application/octet-stream"
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


class TransformRelay:
    """Submits one image to the prediction service and waits for the job to finish.

    Polls run strictly one after another. The wait is bounded by ``max_attempts``
    and stops early when ``is_disconnected`` reports that the caller went away;
    either way the remote job is cancelled before the relay gives up.
    """

    def __init__(
        self,
        client: PredictionClient,
        params: GenerationParams,
        poll_interval: float = 2.0,
        max_attempts: int = 150,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.params = params
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    @classmethod
    def from_settings(cls, client: PredictionClient, cfg: Settings) -> "TransformRelay":
        return cls(
            client,
            GenerationParams.from_settings(cfg),
            poll_interval=cfg.poll_interval_seconds,
            max_attempts=cfg.poll_max_attempts,
        )

    async def run(
        self,
        image: bytes,
        content_type: str | None,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> str:
        try:
            prediction = await self.client.create_prediction(encode_data_url(image, content_type), self.params)
            logger.info("Prediction %s created with status %s", prediction.id, prediction.status)
            prediction = await self._wait(prediction, is_disconnected)
            return self._result(prediction)
        except RelayError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error: %s", exc)
            raise UnexpectedError() from exc

    async def _wait(
        self,
        prediction: Prediction,
        is_disconnected: Callable[[], Awaitable[bool]] | None,
    ) -> Prediction:
        current = prediction.job_status
        attempts = 0
        try:
            while not prediction.is_terminal:
                if attempts >= self.max_attempts:
                    logger.error("Prediction %s still %s after %d polls", prediction.id, prediction.status, attempts)
                    await self._cancel_quietly(prediction.id)
                    raise GenerationTimeout()
                if is_disconnected is not None and await is_disconnected():
                    logger.info("Client disconnected; cancelling prediction %s", prediction.id)
                    await self._cancel_quietly(prediction.id)
                    raise RequestCancelled()

                await self._sleep(self.poll_interval)
                prediction = await self.client.get_prediction(prediction.id)
                attempts += 1

                status = prediction.job_status
                if status.rank < current.rank:
                    logger.warning("Prediction %s reported %s after %s", prediction.id, status.value, current.value)
                else:
                    current = status
                logger.info("Polling status: %s", prediction.status)
        except asyncio.CancelledError:
            await self._cancel_quietly(prediction.id)
            raise
        return prediction

    async def _cancel_quietly(self, prediction_id: str) -> None:
        try:
            await self.client.cancel_prediction(prediction_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to cancel prediction %s: %s", prediction_id, exc)

    def _result(self, prediction: Prediction) -> str:
        if prediction.job_status is JobStatus.succeeded:
            url = prediction.first_output
            if not url:
                logger.error("Prediction %s succeeded without output", prediction.id)
                raise GenerationFailed("Image generation returned no output")
            return url

        logger.error("Prediction %s ended as %s: %s", prediction.id, prediction.status, prediction.error)
        raise GenerationFailed(prediction.error or None)

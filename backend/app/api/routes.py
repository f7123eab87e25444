import logging

from fastapi import APIRouter, Depends, File, Request, UploadFile

from app.core.config import settings
from app.core.errors import ValidationError
from app.schemas.transform import ErrorOut, HealthOut, TransformOut
from app.services.predictions import PredictionClient, get_prediction_client
from app.services.relay import TransformRelay

router = APIRouter()
logger = logging.getLogger(__name__)

_ERROR_RESPONSES = {code: {"model": ErrorOut} for code in (400, 413, 500, 504)}


@router.post("/transform", response_model=TransformOut, responses=_ERROR_RESPONSES)
async def transform_image(
    request: Request,
    image: UploadFile | None = File(None),
    client: PredictionClient = Depends(get_prediction_client),
):
    if image is None:
        raise ValidationError()

    content = await image.read()
    if not content:
        raise ValidationError()
    if len(content) > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise ValidationError(f"Image exceeds the {limit_mb}MB upload limit", status_code=413)

    relay = TransformRelay.from_settings(client, settings)
    url = await relay.run(content, image.content_type, is_disconnected=request.is_disconnected)
    return TransformOut(transformed_url=url)


@router.get("/health", response_model=HealthOut)
def health():
    provider = settings.prediction_provider.lower()
    configured = provider == "mock" or (provider == "replicate" and bool(settings.replicate_api_token))
    return HealthOut(status="ok", provider=provider, configured=configured)

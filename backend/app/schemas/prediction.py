from pydantic import BaseModel, ConfigDict, Field

from app.core.config import Settings


class GenerationParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str = Field(min_length=1)
    negative_prompt: str = ""
    num_inference_steps: int = Field(default=30, ge=1, le=500)
    guidance_scale: float = Field(default=7.5, ge=0.0)
    strength: float = Field(default=0.8, ge=0.0, le=1.0)

    @classmethod
    def from_settings(cls, cfg: Settings) -> "GenerationParams":
        return cls(
            prompt=cfg.transform_prompt,
            negative_prompt=cfg.transform_negative_prompt,
            num_inference_steps=cfg.num_inference_steps,
            guidance_scale=cfg.guidance_scale,
            strength=cfg.strength,
        )


class PredictionInput(GenerationParams):
    image: str


class PredictionCreate(BaseModel):
    version: str
    input: PredictionInput

from pydantic import BaseModel, ConfigDict, Field


class TransformOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transformed_url: str = Field(alias="transformedUrl")


class ErrorOut(BaseModel):
    error: str


class HealthOut(BaseModel):
    status: str
    provider: str
    configured: bool

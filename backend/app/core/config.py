from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Photo Transform API"
    env: str = "dev"
    api_prefix: str = "/api"
    log_level: str = "INFO"
    cors_allow_origins: str = "*"

    prediction_provider: str = "replicate"
    replicate_api_token: str = ""
    replicate_base_url: str = "https://api.replicate.com"
    replicate_model_version: str = "ac732df83cea7fff18b8472768c88ad041fa750ff7682a21affe81863cbe77e4"
    http_timeout_seconds: int = 60

    transform_prompt: str = (
        "cute kawaii Labubu character style, big round eyes, pointed ears, pastel colors, "
        "adorable expression, toy-like appearance, Pop Mart style figure, soft lighting, "
        "high quality, detailed"
    )
    transform_negative_prompt: str = "realistic, human, photograph, dark, scary, ugly, low quality, blurry"
    num_inference_steps: int = 30
    guidance_scale: float = 7.5
    strength: float = 0.8

    poll_interval_seconds: float = 2.0
    poll_max_attempts: int = 150

    max_upload_bytes: int = 10 * 1024 * 1024
    mock_output_url: str = "https://example.com/mock/result.png"
    download_filename: str = "labubu-transformation.png"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]


settings = Settings()

import os
from pathlib import Path

from pydantic import BaseModel

from .prompts import DEFAULT_PROMPT_TEMPLATE

PACKAGE_DIR = Path(__file__).resolve().parent
STATIC_DIR = PACKAGE_DIR / "static"
DEFAULT_EXAMPLE_ROOMS_DIR = STATIC_DIR / "example-rooms"


class StagerSettings(BaseModel):
    fal_key: str = ""
    fal_model: str = "fal-ai/nano-banana/edit"
    fal_run_url: str = "https://fal.run"
    fal_storage_url: str = "https://rest.alpha.fal.ai"
    fal_timeout_seconds: float | None = None
    example_rooms_dir: Path = DEFAULT_EXAMPLE_ROOMS_DIR
    max_reference_images: int = 3
    prompt_template: str = DEFAULT_PROMPT_TEMPLATE
    log_level: str = "INFO"


def _optional_float(raw: str | None) -> float | None:
    if raw is None or not raw.strip():
        return None
    return float(raw)


def _load_prompt_template() -> str:
    inline = os.getenv("STAGING_PROMPT")
    if inline and inline.strip():
        return inline.strip()

    prompt_file = os.getenv("STAGING_PROMPT_FILE")
    if prompt_file:
        return Path(prompt_file).read_text(encoding="utf-8").strip()

    return DEFAULT_PROMPT_TEMPLATE


def load_settings() -> StagerSettings:
    """Build settings from the process environment (``.env`` is loaded by the app lifespan)."""
    return StagerSettings(
        fal_key=os.getenv("FAL_KEY", ""),
        fal_model=os.getenv("FAL_MODEL", "fal-ai/nano-banana/edit"),
        fal_run_url=os.getenv("FAL_RUN_URL", "https://fal.run").rstrip("/"),
        fal_storage_url=os.getenv("FAL_STORAGE_URL", "https://rest.alpha.fal.ai").rstrip("/"),
        fal_timeout_seconds=_optional_float(os.getenv("FAL_TIMEOUT_SECONDS")),
        example_rooms_dir=Path(os.getenv("EXAMPLE_ROOMS_DIR") or DEFAULT_EXAMPLE_ROOMS_DIR),
        max_reference_images=int(os.getenv("MAX_REFERENCE_IMAGES", "3")),
        prompt_template=_load_prompt_template(),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )

import logging
import re
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from starlette.datastructures import UploadFile

from .config import STATIC_DIR, StagerSettings, load_settings
from .errors import DownstreamError, error_details, error_status
from .fal import FalClient
from .prompts import build_staging_prompt
from .references import list_reference_files, mime_type_for, resolve_reference_urls, select_policy

logger = logging.getLogger(__name__)

ROOM_IMAGE_FIELD = "roomImage"
DEFAULT_DESCRIPTION = "Room staged successfully"
HEIC_CONTENT_TYPE = re.compile(r"image/heic|image/heif", re.IGNORECASE)


class StageRoomResponse(BaseModel):
    success: bool = True
    originalImageUrl: str
    stagedImageUrl: str
    description: str


def get_settings(request: Request) -> StagerSettings:
    return request.app.state.settings


def get_fal_client(request: Request) -> FalClient:
    return request.app.state.fal_client


def _is_heic(file_name: str, content_type: str) -> bool:
    lower_name = file_name.lower()
    return (
        lower_name.endswith(".heic")
        or lower_name.endswith(".heif")
        or bool(HEIC_CONTENT_TYPE.search(content_type))
    )


def _request_origin(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def _first_image_url(container: Any) -> str:
    if not isinstance(container, dict):
        return ""
    images = container.get("images")
    if isinstance(images, list) and images and isinstance(images[0], dict):
        url = images[0].get("url")
        return url if isinstance(url, str) else ""
    return ""


def _extract_generation(result: dict[str, Any]) -> tuple[str, str]:
    data = result.get("data") if isinstance(result.get("data"), dict) else {}
    staged_url = _first_image_url(result) or _first_image_url(data)
    for candidate in (result.get("description"), data.get("description")):
        if isinstance(candidate, str) and candidate:
            return staged_url, candidate
    return staged_url, DEFAULT_DESCRIPTION


async def _reference_urls(request: Request, settings: StagerSettings, fal_client: FalClient) -> list[str]:
    policy = select_policy(_request_origin(request), fal_client)
    try:
        return await resolve_reference_urls(settings.example_rooms_dir, policy, settings.max_reference_images)
    except DownstreamError as e:
        logger.warning("Uploading example rooms failed, staging without references: %s", e)
        return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    load_dotenv()
    settings = load_settings()
    logging.basicConfig(level=settings.log_level)
    app.state.settings = settings
    app.state.fal_client = FalClient(
        api_key=settings.fal_key,
        run_url=settings.fal_run_url,
        storage_url=settings.fal_storage_url,
        timeout=settings.fal_timeout_seconds,
    )
    if not settings.fal_key:
        logger.warning("FAL_KEY is not set; staging requests will fail")
    yield


app = FastAPI(title="Room Stager", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.post("/api/stage-room", response_model=StageRoomResponse)
async def stage_room(
    request: Request,
    settings: StagerSettings = Depends(get_settings),
    fal_client: FalClient = Depends(get_fal_client),
) -> StageRoomResponse | JSONResponse:
    form = await request.form()
    try:
        return await _stage_form(request, form.get(ROOM_IMAGE_FIELD), settings, fal_client)
    finally:
        await form.close()


async def _stage_form(
    request: Request,
    room_image: Any,
    settings: StagerSettings,
    fal_client: FalClient,
) -> StageRoomResponse | JSONResponse:
    if not isinstance(room_image, UploadFile):
        return JSONResponse({"error": "No room image provided"}, status_code=400)

    file_name = room_image.filename or ""
    content_type = room_image.content_type or ""
    if _is_heic(file_name, content_type):
        return JSONResponse(
            {"error": "Unsupported image format (HEIC/HEIF). Please upload JPG, PNG, or WEBP."},
            status_code=415,
        )

    try:
        content = await room_image.read()
        original_url = await fal_client.upload(content, content_type or "application/octet-stream", file_name or None)

        reference_urls = await _reference_urls(request, settings, fal_client)
        prompt = build_staging_prompt(bool(reference_urls), settings.prompt_template)

        logger.info("Staging %s (%d bytes) with %d reference image(s)", file_name or "upload", len(content), len(reference_urls))
        result = await fal_client.generate(
            settings.fal_model,
            {
                "prompt": prompt,
                "image_urls": [original_url, *reference_urls],
                "num_images": 1,
                "output_format": "jpeg",
            },
        )
        staged_url, description = _extract_generation(result)
        return StageRoomResponse(
            originalImageUrl=original_url,
            stagedImageUrl=staged_url,
            description=description,
        )
    except Exception as e:
        logger.exception("Error staging room")
        return JSONResponse(
            {"error": "Failed to stage room", "details": error_details(e)},
            status_code=error_status(e),
        )


@app.get("/example-rooms/{file_name}")
async def example_room(file_name: str, settings: StagerSettings = Depends(get_settings)) -> FileResponse:
    try:
        selected = {path.name: path for path in list_reference_files(settings.example_rooms_dir, settings.max_reference_images)}
    except OSError:
        selected = {}
    path = selected.get(file_name)
    if path is None:
        raise HTTPException(status_code=404, detail="Example room not found")
    return FileResponse(path, media_type=mime_type_for(path))


@app.get("/result", response_model=None)
async def result_page(original: str | None = None, staged: str | None = None) -> Response:
    if not original or not staged:
        return RedirectResponse("/", status_code=307)
    return FileResponse(STATIC_DIR / "result.html")


@app.get("/")
async def root() -> FileResponse:
    return FileResponse(STATIC_DIR / "index.html")


app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

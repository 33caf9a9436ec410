"""Thin wrapper around the fal-client SDK for styling and face swapping."""

import base64
import logging
from dataclasses import dataclass
from typing import Any, Optional

import fal_client
import requests

import settings
from errors import ApiError, FalServiceError

logger = logging.getLogger(__name__)

FEATURES = ("ai-style", "custom", "face-swap")

DEFAULT_STYLE_PROMPT = (
    "Transform this portrait into a beautiful stylized artwork with enhanced colors, "
    "artistic lighting, and professional quality. Maintain the person's facial features "
    "while applying artistic enhancement."
)

# Known result layouts, checked in order
_URL_PATHS = (
    ("image", "url"),
    ("images", 0, "url"),
    ("output", "url"),
    ("result", "url"),
    ("generated_image", "url"),
    ("swap_image", "url"),
    ("image_url",),
    ("image",),
)


@dataclass
class UploadedImage:
    data: bytes
    content_type: str = "image/jpeg"
    filename: str = "image.jpg"


@dataclass
class GenerationResult:
    public_url: str
    image_bytes: bytes
    prompt: Optional[str] = None


def _ensure_api_key() -> None:
    if not settings.fal_configured():
        raise ApiError(500, "FAL_KEY not configured")


def to_data_url(data: bytes, content_type: str = "image/jpeg") -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


def _lookup(obj: Any, path):
    for key in path:
        if isinstance(key, int):
            if not isinstance(obj, list) or len(obj) <= key:
                return None
        elif not isinstance(obj, dict):
            return None
        obj = obj[key] if isinstance(key, int) else obj.get(key)
        if obj is None:
            return None
    return obj


def extract_image_url(result: Any) -> Optional[str]:
    """Return the first output image URL found in a FAL result."""
    candidates = [result]
    if isinstance(result, dict) and isinstance(result.get("data"), dict):
        candidates.append(result["data"])
    for candidate in candidates:
        for path in _URL_PATHS:
            url = _lookup(candidate, path)
            if isinstance(url, str) and url.startswith(("http://", "https://", "data:")):
                return url
    return None


def _log_queue_update(update) -> None:
    logger.info("Queue update: %s", type(update).__name__)
    if isinstance(update, fal_client.InProgress):
        for log in update.logs or []:
            logger.info("fal: %s", log.get("message") if isinstance(log, dict) else log)


def _subscribe(model: str, arguments: dict, error: str) -> dict:
    logger.info("Submitting job to %s", model)
    try:
        return fal_client.subscribe(
            model,
            arguments=arguments,
            with_logs=True,
            on_queue_update=_log_queue_update,
        )
    except Exception as exc:
        logger.error("FAL.ai request to %s failed: %s", model, exc)
        raise FalServiceError.from_exception(error, exc) from exc


def download_image(url: str) -> bytes:
    """Fetch the generated image so it can be returned inline."""
    try:
        resp = requests.get(
            url,
            timeout=settings.DOWNLOAD_TIMEOUT,
            headers={"User-Agent": settings.USER_AGENT},
        )
        resp.raise_for_status()
    except requests.Timeout as exc:
        raise ApiError(500, "Request timeout", "Downloading the generated image took too long") from exc
    except requests.ConnectionError as exc:
        raise ApiError(500, "Network error", "Unable to connect to FAL.ai services") from exc
    except requests.HTTPError as exc:
        if exc.response is not None and exc.response.status_code == 404:
            raise ApiError(500, "Generated image not found", "The generated image URL is no longer accessible") from exc
        raise ApiError(500, "Failed to download generated image", str(exc)) from exc
    logger.info("Downloaded generated image, %d bytes", len(resp.content))
    return resp.content


def _finish(result: dict, prompt: Optional[str] = None) -> GenerationResult:
    url = extract_image_url(result)
    if not url:
        logger.error("No image URL in FAL result, keys: %s", sorted(result) if isinstance(result, dict) else type(result))
        raise ApiError(
            500,
            "No generated image found in response",
            "FAL.ai completed the request but returned no image URL",
        )
    return GenerationResult(public_url=url, image_bytes=download_image(url), prompt=prompt)


def generate_image(image: UploadedImage, feature: str = "ai-style", prompt: Optional[str] = None) -> GenerationResult:
    """Stylize ``image`` with the generation model.

    ``custom`` uses the caller's prompt; every other feature uses the default
    stylization prompt.
    """
    if feature not in FEATURES:
        raise ApiError(400, "Invalid feature", f"feature must be one of: {', '.join(FEATURES)}")
    if feature == "custom":
        prompt = (prompt or "").strip()
        if not prompt:
            raise ApiError(400, "Custom prompt is required")
    else:
        prompt = DEFAULT_STYLE_PROMPT

    _ensure_api_key()
    result = _subscribe(
        settings.GENERATE_MODEL,
        {"prompt": prompt, "image_url": to_data_url(image.data, image.content_type)},
        "Failed to process image",
    )
    return _finish(result, prompt=prompt)


def upload_image(image: UploadedImage) -> str:
    """Upload image bytes to fal storage and return the URL."""
    url = fal_client.upload(image.data, image.content_type, file_name=image.filename)
    if isinstance(url, dict):
        url = url.get("url") or url.get("file_url")
    if not url:
        raise FalServiceError("FAL.ai upload failed", "Upload returned no URL")
    return url


def face_swap(
    face_image: UploadedImage,
    target_image: UploadedImage,
    gender_0: Optional[str] = None,
    workflow_type: Optional[str] = None,
    upscale: Any = False,
) -> GenerationResult:
    """Swap the camera-captured face into ``target_image``."""
    _ensure_api_key()
    try:
        face_url = upload_image(face_image)
        target_url = upload_image(target_image)
    except FalServiceError:
        raise
    except Exception as exc:
        logger.error("FAL.ai upload failed: %s", exc)
        raise FalServiceError.from_exception("FAL.ai face-swap failed", exc) from exc

    arguments = {
        "face_image_0": face_url,
        "target_image": target_url,
        "gender_0": gender_0 or "male",
        "workflow_type": workflow_type or "user_hair",
        "upscale": parse_bool(upscale),
    }
    logger.info(
        "Face swap parameters: gender_0=%s workflow_type=%s upscale=%s",
        arguments["gender_0"], arguments["workflow_type"], arguments["upscale"],
    )
    result = _subscribe(settings.FACE_SWAP_MODEL, arguments, "FAL.ai face-swap failed")
    return _finish(result)

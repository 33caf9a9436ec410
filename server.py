import asyncio
import contextlib
import html
import logging
import os
import time
from datetime import datetime, timezone
from typing import Optional

import anyio.to_thread
import uvicorn
from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, Response

import fal_service
import qr_codes
import settings
from errors import ApiError
from fal_service import UploadedImage
from image_store import ImageStore, run_cleanup_loop

logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()
image_store = ImageStore()


@contextlib.asynccontextmanager
async def lifespan(app):
    logger.info("%s %s starting (environment=%s, fal_configured=%s)",
                settings.SERVICE_NAME, settings.VERSION, settings.ENVIRONMENT, settings.fal_configured())
    if not settings.fal_configured():
        logger.error("FAL_KEY not found in environment variables")
    cleanup = asyncio.create_task(run_cleanup_loop(image_store, settings.CLEANUP_INTERVAL_SECONDS))
    try:
        yield
    finally:
        cleanup.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await cleanup


def cors_options(production):
    options = {"allow_credentials": True, "allow_methods": ["*"], "allow_headers": ["*"]}
    if production:
        options["allow_origin_regex"] = r"https://.*\.railway\.app"
    else:
        options["allow_origins"] = ["*"]
    return options


app = FastAPI(title="AssetWise AI Generator", version=settings.VERSION, lifespan=lifespan)
app.add_middleware(CORSMiddleware, **cors_options(settings.is_production()))


def _timestamp():
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_download_url(request: Request, image_id: str) -> str:
    base = str(request.base_url).rstrip("/")
    return f"{base}/download/{image_id}"


async def read_image(upload: Optional[UploadFile], missing_error: str) -> UploadedImage:
    """Read an uploaded image, enforcing the content type and size limits."""
    if upload is None or not upload.filename:
        raise ApiError(400, missing_error)
    content_type = upload.content_type or ""
    if not content_type.startswith("image/"):
        raise ApiError(400, "Only image files are allowed", f"{upload.filename} has content type {content_type or 'unknown'}")
    data = await upload.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise ApiError(400, "File too large", f"Images must be at most {settings.MAX_UPLOAD_BYTES} bytes")
    if not data:
        raise ApiError(400, missing_error, f"{upload.filename} is empty")
    return UploadedImage(data=data, content_type=content_type, filename=upload.filename)


def _store_and_describe(request: Request, result):
    image_id = image_store.put(result.image_bytes)
    return {
        "generatedImage": fal_service.to_data_url(result.image_bytes, "image/jpeg"),
        "publicImageUrl": result.public_url,
        "downloadUrl": build_download_url(request, image_id),
        "qrCode": qr_codes.qr_data_url(result.public_url),
        "imageId": image_id,
    }


# --- Error handling ---
@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.error, exc.details)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.error)
    body = exc.to_dict()
    body["timestamp"] = _timestamp()
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}" for err in exc.errors()
    )
    return await api_error_handler(request, ApiError(400, "Invalid request", details))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(exc)})


# --- Endpoints ---
@app.get("/health")
def health():
    return {
        "status": "healthy",
        "timestamp": _timestamp(),
        "service": settings.SERVICE_NAME,
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
        "port": settings.PORT,
        "fal_configured": settings.fal_configured(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "stored_images": len(image_store),
    }


@app.post("/api/generate")
async def generate(
    request: Request,
    image: Optional[UploadFile] = File(None),
    feature: str = Form("ai-style"),
    prompt: Optional[str] = Form(None),
):
    try:
        upload = await read_image(image, "No main image provided")
        logger.info("Generate request: feature=%s, image=%d bytes", feature, len(upload.data))
        result = await anyio.to_thread.run_sync(
            lambda: fal_service.generate_image(upload, feature=feature, prompt=prompt)
        )
        payload = _store_and_describe(request, result)
    except ApiError:
        raise
    except Exception as exc:
        logger.exception("Error processing /api/generate")
        raise ApiError(500, "Failed to process image", str(exc)) from exc

    return {
        "success": True,
        **payload,
        "feature": feature,
        "promptUsed": result.prompt,
        "timestamp": _timestamp(),
    }


@app.post("/api/face-swap")
async def face_swap(
    request: Request,
    face_image: Optional[UploadFile] = File(None),
    target_image: Optional[UploadFile] = File(None),
    gender_0: Optional[str] = Form(None),
    workflow_type: Optional[str] = Form(None),
    upscale: Optional[str] = Form(None),
):
    try:
        face = await read_image(face_image, "Face image (camera capture) is required")
        target = await read_image(target_image, "Target image is required")
        logger.info("Face swap request: face=%d bytes, target=%d bytes", len(face.data), len(target.data))
        result = await anyio.to_thread.run_sync(
            lambda: fal_service.face_swap(face, target, gender_0=gender_0, workflow_type=workflow_type, upscale=upscale)
        )
        payload = _store_and_describe(request, result)
    except ApiError:
        raise
    except Exception as exc:
        logger.exception("Error in face swap")
        raise ApiError(500, "Failed to process advanced face-swap", str(exc)) from exc

    return {
        "success": True,
        **payload,
        "feature": "face-swap",
        "parameters": {
            "workflow_type": workflow_type or "user_hair",
            "gender_0": gender_0 or "male",
            "upscale": fal_service.parse_bool(upscale),
        },
        "processedImages": {
            "faceImageSize": len(face.data),
            "targetImageSize": len(target.data),
        },
        "timestamp": _timestamp(),
        "message": "Advanced face-swap processing completed successfully",
    }


@app.get("/download/{image_id}")
def download(image_id: str):
    data = image_store.get(image_id)
    if data is None:
        raise ApiError(404, "Image not found", "The requested image is no longer available for download")
    image_id = image_id[: -len(".jpg")] if image_id.endswith(".jpg") else image_id
    logger.info("Sending image %s for download, %d bytes", image_id, len(data))
    return Response(
        content=data,
        media_type="image/jpeg",
        headers={
            "Content-Disposition": f'attachment; filename="assetwise-generated-{image_id}.jpg"',
            "Cache-Control": "no-cache",
        },
    )


@app.get("/view/{image_id}", response_class=HTMLResponse)
def view(request: Request, image_id: str):
    if image_id not in image_store:
        return HTMLResponse(
            "<!doctype html><html><body><h3>Image not found or expired</h3></body></html>",
            status_code=404,
        )
    dl_url = html.escape(build_download_url(request, image_id))
    return HTMLResponse(f"""
    <!doctype html>
    <html>
      <head>
        <meta charset="utf-8"/>
        <meta name="viewport" content="width=device-width,initial-scale=1"/>
        <title>Your AssetWise image</title>
        <style>
          body {{ font-family: Arial, sans-serif; margin: 24px; text-align: center; }}
          img {{ max-width: 100%; height: auto; border-radius: 12px; }}
          a.button {{ display:inline-block;margin-top:16px;padding:12px 18px;border-radius:10px;
                      background:#111;color:#fff;text-decoration:none; }}
        </style>
      </head>
      <body>
        <h2>Your AI image</h2>
        <img src="{dl_url}" alt="Generated image"/>
        <div><a class="button" href="{dl_url}" download>Download Image</a></div>
      </body>
    </html>
    """)


# --- Front end ---
def mount_frontend(app, static_dir):
    """Serve the built front end, falling back to index.html for client-side routes."""
    root = os.path.realpath(static_dir)

    @app.get("/{full_path:path}", include_in_schema=False)
    def spa(full_path: str):
        path = os.path.realpath(os.path.join(root, full_path))
        if path.startswith(root + os.sep) and os.path.isfile(path):
            return FileResponse(path)
        return FileResponse(os.path.join(root, "index.html"))


if os.path.isdir(settings.STATIC_DIR):
    mount_frontend(app, settings.STATIC_DIR)


def main():
    settings.setup_logging()
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL)


if __name__ == "__main__":
    main()

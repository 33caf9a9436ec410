import os
import logging

from dotenv import load_dotenv

load_dotenv()


def _env_int(name, default):
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


# --- Server ---
SERVICE_NAME = "assetwise-ai-generator"
VERSION = "2.0.0"
HOST = os.getenv("HOST", "0.0.0.0")
PORT = _env_int("PORT", 3000)
LOG_LEVEL = os.getenv("LOG_LEVEL", "info").strip().lower()
ENVIRONMENT = os.getenv("ENVIRONMENT", os.getenv("NODE_ENV", "development")).strip().lower()
STATIC_DIR = os.getenv("STATIC_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "dist"))

# --- FAL ---
FAL_KEY = os.getenv("FAL_KEY", os.getenv("FAL_API_KEY", "")).strip()
if FAL_KEY:
    # fal_client reads its credentials from the environment
    os.environ["FAL_KEY"] = FAL_KEY

GENERATE_MODEL = os.getenv("FAL_GENERATE_MODEL", "fal-ai/flux-pro/kontext/max").strip()
FACE_SWAP_MODEL = os.getenv("FAL_FACE_SWAP_MODEL", "easel-ai/advanced-face-swap").strip()
DOWNLOAD_TIMEOUT = _env_int("DOWNLOAD_TIMEOUT", 30)
USER_AGENT = "AssetWise-AI-Generator/1.0"

# --- Uploads ---
MAX_UPLOAD_BYTES = _env_int("MAX_UPLOAD_MB", 10) * 1024 * 1024

# --- Image store ---
IMAGE_TTL_SECONDS = _env_int("IMAGE_TTL_SECONDS", 60 * 60)
CLEANUP_INTERVAL_SECONDS = _env_int("CLEANUP_INTERVAL_SECONDS", 60 * 60)

# --- Clients ---
SERVER_URL = os.getenv("ASSETWISE_SERVER_URL", f"http://127.0.0.1:{PORT}")
CLIENT_TIMEOUT = _env_int("CLIENT_TIMEOUT", 180)
FRAME_WIDTH = 640
FRAME_HEIGHT = 480
CAMERA_INDEX = _env_int("CAMERA_INDEX", 0)
DEFAULT_FPS = 30


def fal_configured():
    return bool(os.getenv("FAL_KEY", "").strip())


def is_production():
    return ENVIRONMENT == "production"


def setup_logging(level=None):
    """Configure root logging once for the server and the clients."""
    level_name = (level or LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

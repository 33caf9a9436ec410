import argparse
import base64
import logging
import os
import sys

import cv2
import requests

import settings
from capture_flow import CaptureFlow

logger = logging.getLogger(__name__)


class ClientError(Exception):
    def __init__(self, message, status_code=None, details=None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


def decode_data_url(url):
    """Return the bytes of a ``data:<type>;base64,...`` URL."""
    header, sep, payload = url.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        raise ValueError("not a base64 data URL")
    return base64.b64decode(payload)


class AssetWiseClient:
    """Small requests-based client for the generation server."""

    def __init__(self, base_url=settings.SERVER_URL, timeout=settings.CLIENT_TIMEOUT, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _check(self, response):
        if response.status_code < 400:
            return response
        try:
            body = response.json()
        except ValueError:
            body = {}
        raise ClientError(
            body.get("error") or f"Server error: {response.status_code}",
            status_code=response.status_code,
            details=body.get("details"),
        )

    def health(self):
        return self._check(self.session.get(f"{self.base_url}/health", timeout=self.timeout)).json()

    def generate(self, jpeg, feature="ai-style", prompt=None):
        data = {"feature": feature}
        if feature == "custom" and prompt and prompt.strip():
            data["prompt"] = prompt.strip()
        response = self.session.post(
            f"{self.base_url}/api/generate",
            data=data,
            files={"image": ("image.jpg", jpeg, "image/jpeg")},
            timeout=self.timeout,
        )
        return self._check(response).json()

    def face_swap(self, face_jpeg, target_jpeg, gender_0="male", workflow_type="user_hair", upscale=False):
        response = self.session.post(
            f"{self.base_url}/api/face-swap",
            data={"gender_0": gender_0, "workflow_type": workflow_type, "upscale": str(bool(upscale)).lower()},
            files={
                "face_image": ("face.jpg", face_jpeg, "image/jpeg"),
                "target_image": ("target.jpg", target_jpeg, "image/jpeg"),
            },
            timeout=self.timeout,
        )
        return self._check(response).json()

    def download(self, image_id):
        return self._check(self.session.get(f"{self.base_url}/download/{image_id}", timeout=self.timeout)).content

    def process(self, flow):
        """Send the flow's capture with its selected feature."""
        if flow.feature == "face-swap":
            return self.face_swap(flow.captured, flow.target_image)
        return self.generate(flow.captured, flow.feature, flow.prompt)


# --- Camera helpers ---
def _available_camera_apis():
    """Return camera APIs to try, prioritizing platform-native backends."""
    apis = [
        getattr(cv2, "CAP_AVFOUNDATION", None),
        getattr(cv2, "CAP_DSHOW", None),
        getattr(cv2, "CAP_MSMF", None),
        cv2.CAP_ANY,
    ]
    return [api for api in apis if api is not None]


def _configure_capture(cap):
    """Ask for 640x480 and confirm the driver delivers frames."""
    cap.set(cv2.CAP_PROP_FRAME_WIDTH, settings.FRAME_WIDTH)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, settings.FRAME_HEIGHT)

    for _ in range(10):  # pull a few frames to let the driver settle
        ret, frame = cap.read()
        if ret and frame is not None:
            return True
    return False


def create_capture(camera_index=settings.CAMERA_INDEX):
    for api in _available_camera_apis():
        cap = cv2.VideoCapture(camera_index, api)
        if not cap.isOpened():
            cap.release()
            continue
        if _configure_capture(cap):
            return cap
        cap.release()
    raise RuntimeError("No camera found. Please ensure your device has a camera.")


def encode_jpeg(frame, quality=90):
    success, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not success:
        return None
    return buffer.tobytes()


def grab_jpeg(cap, mirror=False):
    ret, frame = cap.read()
    if not ret or frame is None:
        return None
    if mirror:
        frame = cv2.flip(frame, 1)
    return encode_jpeg(frame)


def read_image_file(path):
    """Load an image from disk and re-encode it as JPEG."""
    img = cv2.imread(path)
    if img is None:
        raise RuntimeError(f"Failed to read image: {path}")
    return encode_jpeg(img)


def capture_from_camera(camera_index, mirror=False):
    """Open the camera, show a live preview and return the frame taken with space."""
    cap = create_capture(camera_index)
    try:
        print("Press SPACE to take the photo, 'q' to quit")
        while True:
            ret, frame = cap.read()
            if not ret:
                continue
            if mirror:
                frame = cv2.flip(frame, 1)
            cv2.imshow("AssetWise Camera", frame)
            key = cv2.waitKey(1) & 0xFF
            if key == ord(" "):
                return encode_jpeg(frame)
            if key == ord("q"):
                return None
    finally:
        cap.release()
        cv2.destroyAllWindows()


def save_result(result, out_dir, filename):
    os.makedirs(out_dir, exist_ok=True)
    image_path = os.path.join(out_dir, filename)
    with open(image_path, "wb") as f:
        f.write(decode_data_url(result["generatedImage"]))
    qr_path = None
    if result.get("qrCode"):
        qr_path = os.path.splitext(image_path)[0] + "-qr.png"
        with open(qr_path, "wb") as f:
            f.write(decode_data_url(result["qrCode"]))
    return image_path, qr_path


def run(args, client=None):
    client = client or AssetWiseClient(args.server)
    flow = CaptureFlow()
    flow.select_feature(args.feature)
    flow.set_prompt(args.prompt)
    if args.target:
        flow.set_target_image(read_image_file(args.target))

    flow.start_camera()
    jpeg = read_image_file(args.image) if args.image else capture_from_camera(args.camera, args.mirror)
    if not flow.capture(jpeg):
        print(f"Error: {flow.error}")
        return 1

    if not flow.begin_processing():
        print(f"Error: {flow.error}")
        return 1

    print(f"Processing with {args.feature}...")
    try:
        flow.complete(client.process(flow))
    except (ClientError, requests.RequestException) as e:
        flow.fail(str(e))

    if flow.state != "result":
        print(f"Error: {flow.error}")
        return 1

    image_path, qr_path = save_result(flow.result, args.out, flow.download_filename())
    print(f"Saved image: {image_path}")
    if qr_path:
        print(f"Saved QR code: {qr_path}")
    print(f"Public URL: {flow.result.get('publicImageUrl')}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(description="Capture a photo and transform it with AssetWise AI")
    parser.add_argument("-f", "--feature", choices=["ai-style", "custom", "face-swap"], default="ai-style")
    parser.add_argument("-p", "--prompt", default="", help="Prompt for the custom feature")
    parser.add_argument("-t", "--target", help="Target image for face swap")
    parser.add_argument("-i", "--image", help="Use this image instead of the camera")
    parser.add_argument("-c", "--camera", type=int, default=settings.CAMERA_INDEX, help="Camera ID (default: 0)")
    parser.add_argument("-m", "--mirror", action="store_true", help="Mirror the camera feed")
    parser.add_argument("-o", "--out", default=".", help="Output directory")
    parser.add_argument("-s", "--server", default=settings.SERVER_URL, help="Server base URL")
    return parser


def main(argv=None):
    settings.setup_logging()
    args = build_parser().parse_args(argv)
    try:
        return run(args)
    except RuntimeError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""Screen flow shared by the capture clients.

welcome -> camera -> preview -> processing -> result, with retake going back
to the camera, a failed request going back to the preview, and reset going
back to the welcome screen from anywhere.
"""

from datetime import date

WELCOME = "welcome"
CAMERA = "camera"
PREVIEW = "preview"
PROCESSING = "processing"
RESULT = "result"

STATES = (WELCOME, CAMERA, PREVIEW, PROCESSING, RESULT)

FEATURES = {
    "ai-style": ("AI Style", "Apply beautiful AI styling"),
    "face-swap": ("Face Swap", "Advanced face swapping"),
    "custom": ("Custom Prompt", "Your own creative prompt"),
}


class InvalidTransition(Exception):
    pass


def download_filename(feature, today=None):
    today = today or date.today()
    return f"assetwise-ai-{feature}-{today.strftime('%d-%m-%Y')}.jpg"


class CaptureFlow:
    def __init__(self):
        self.state = WELCOME
        self.feature = "ai-style"
        self.prompt = ""
        self.captured = None
        self.target_image = None
        self.result = None
        self.error = None

    def _require(self, *states):
        if self.state not in states:
            raise InvalidTransition(f"cannot leave {self.state!r} here (expected one of {', '.join(states)})")

    # --- Options ---
    def select_feature(self, feature):
        if feature not in FEATURES:
            raise ValueError(f"unknown feature: {feature}")
        self.feature = feature

    def set_prompt(self, text):
        self.prompt = text or ""

    def set_target_image(self, data):
        self.target_image = data or None

    # --- Transitions ---
    def start_camera(self):
        self._require(WELCOME, PREVIEW, RESULT)
        self.error = None
        self.state = CAMERA

    def capture(self, jpeg):
        self._require(CAMERA)
        if not jpeg:
            self.error = "Camera not ready. Please wait for the camera to load."
            return False
        self.captured = jpeg
        self.error = None
        self.state = PREVIEW
        return True

    def retake(self):
        self._require(PREVIEW)
        self.captured = None
        self.start_camera()

    def begin_processing(self):
        """Move to processing, or stay in preview with an error if inputs are incomplete."""
        self._require(PREVIEW)
        if not self.captured:
            self.error = "Take a photo first."
        elif self.feature == "custom" and not self.prompt.strip():
            self.error = "Custom prompt is required."
        elif self.feature == "face-swap" and not self.target_image:
            self.error = "Choose a target image for the face swap."
        else:
            self.error = None
            self.state = PROCESSING
            return True
        return False

    def complete(self, response):
        self._require(PROCESSING)
        if not response or not response.get("success") or not response.get("generatedImage"):
            self.fail("Invalid response from server")
            return False
        self.result = response
        self.state = RESULT
        return True

    def fail(self, message):
        self._require(PROCESSING)
        self.error = f"Failed to process image: {message}"
        self.state = PREVIEW

    def reset(self):
        self.__init__()

    def download_filename(self, today=None):
        return download_filename(self.feature, today)

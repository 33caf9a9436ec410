from datetime import date

import pytest

import capture_flow
from capture_flow import CaptureFlow, InvalidTransition, download_filename

GOOD_RESPONSE = {"success": True, "generatedImage": "data:image/jpeg;base64,AAAA", "qrCode": "data:image/png;base64,"}


@pytest.fixture
def preview():
    flow = CaptureFlow()
    flow.start_camera()
    flow.capture(b"jpeg")
    return flow


def test_starts_on_welcome():
    flow = CaptureFlow()
    assert flow.state == capture_flow.WELCOME
    assert flow.feature == "ai-style"


def test_happy_path(preview):
    assert preview.state == capture_flow.PREVIEW
    assert preview.begin_processing()
    assert preview.state == capture_flow.PROCESSING
    assert preview.complete(GOOD_RESPONSE)
    assert preview.state == capture_flow.RESULT
    assert preview.result == GOOD_RESPONSE


def test_capture_without_frame_stays_on_camera():
    flow = CaptureFlow()
    flow.start_camera()
    assert not flow.capture(None)
    assert flow.state == capture_flow.CAMERA
    assert flow.error.startswith("Camera not ready")


def test_retake_clears_capture(preview):
    preview.retake()
    assert preview.state == capture_flow.CAMERA
    assert preview.captured is None


def test_custom_requires_prompt(preview):
    preview.select_feature("custom")
    preview.set_prompt("   ")
    assert not preview.begin_processing()
    assert preview.state == capture_flow.PREVIEW
    assert preview.error == "Custom prompt is required."

    preview.set_prompt("a pirate")
    assert preview.begin_processing()


def test_face_swap_requires_target(preview):
    preview.select_feature("face-swap")
    assert not preview.begin_processing()
    preview.set_target_image(b"target")
    assert preview.begin_processing()


def test_failure_returns_to_preview(preview):
    preview.begin_processing()
    preview.fail("Server error: 500")
    assert preview.state == capture_flow.PREVIEW
    assert preview.error == "Failed to process image: Server error: 500"
    assert preview.captured == b"jpeg"


@pytest.mark.parametrize("response", [None, {}, {"success": False}, {"success": True}])
def test_invalid_response_is_a_failure(preview, response):
    preview.begin_processing()
    assert not preview.complete(response)
    assert preview.state == capture_flow.PREVIEW
    assert preview.error == "Failed to process image: Invalid response from server"


def test_reset_clears_everything(preview):
    preview.select_feature("custom")
    preview.set_prompt("x")
    preview.begin_processing()
    preview.complete(GOOD_RESPONSE)
    preview.reset()
    assert preview.state == capture_flow.WELCOME
    assert preview.feature == "ai-style"
    assert preview.prompt == ""
    assert preview.captured is None
    assert preview.result is None


def test_result_can_restart_camera(preview):
    preview.begin_processing()
    preview.complete(GOOD_RESPONSE)
    preview.start_camera()
    assert preview.state == capture_flow.CAMERA


@pytest.mark.parametrize("action", ["retake", "begin_processing", "fail"])
def test_illegal_transitions(action):
    flow = CaptureFlow()
    with pytest.raises(InvalidTransition):
        if action == "fail":
            flow.fail("x")
        else:
            getattr(flow, action)()


def test_capture_outside_camera_is_illegal():
    with pytest.raises(InvalidTransition):
        CaptureFlow().capture(b"jpeg")


def test_unknown_feature():
    with pytest.raises(ValueError):
        CaptureFlow().select_feature("sketch")


def test_download_filename():
    assert download_filename("face-swap", date(2025, 3, 7)) == "assetwise-ai-face-swap-07-03-2025.jpg"
    flow = CaptureFlow()
    assert flow.download_filename(date(2025, 12, 31)) == "assetwise-ai-ai-style-31-12-2025.jpg"

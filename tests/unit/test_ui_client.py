import os

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
QtWidgets = pytest.importorskip("PySide6.QtWidgets")

import capture_flow
from ui_client import CameraApp


@pytest.fixture(scope="module")
def qapp():
    return QtWidgets.QApplication.instance() or QtWidgets.QApplication([])


@pytest.fixture
def window(qapp):
    w = CameraApp(client=object())
    yield w
    w.close()


def _radio(window, feature):
    for btn in window.feature_group.buttons():
        if btn.property("feature") == feature:
            return btn
    raise AssertionError(f"no button for {feature}")


def test_selecting_face_swap_shows_target_picker(window):
    _radio(window, "face-swap").click()
    assert window.flow.feature == "face-swap"
    assert not window.target_btn.isHidden()
    assert window.prompt.isHidden()


def test_reset_checks_default_feature(window):
    _radio(window, "face-swap").click()
    window.reset()

    assert window.flow.state == capture_flow.WELCOME
    assert window.flow.feature == "ai-style"
    assert window.feature_group.checkedButton().property("feature") == "ai-style"
    assert window.target_btn.isHidden()

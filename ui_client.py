import sys
import threading

import cv2
import numpy as np
import requests
from PySide6.QtCore import QObject, Qt, QTimer, Signal
from PySide6.QtGui import QImage, QPixmap
from PySide6.QtWidgets import (
    QApplication,
    QButtonGroup,
    QFileDialog,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMessageBox,
    QPushButton,
    QRadioButton,
    QVBoxLayout,
    QWidget,
)

import capture_flow
import settings
from capture_flow import CaptureFlow
from client import AssetWiseClient, ClientError, create_capture, decode_data_url, encode_jpeg, read_image_file


def _pixmap_from_bgr(frame, width=settings.FRAME_WIDTH):
    h, w, ch = frame.shape
    qt_img = QImage(frame.data, w, h, ch * w, QImage.Format_BGR888).copy()
    return QPixmap.fromImage(qt_img).scaledToWidth(width, Qt.SmoothTransformation)


def _pixmap_from_bytes(data, width=settings.FRAME_WIDTH):
    img = cv2.imdecode(np.frombuffer(data, np.uint8), cv2.IMREAD_COLOR)
    if img is None:
        return QPixmap()
    return _pixmap_from_bgr(img, width)


class _Bridge(QObject):
    finished = Signal(dict)
    failed = Signal(str)


class CameraApp(QWidget):
    def __init__(self, client=None):
        super().__init__()
        self.setWindowTitle("AssetWise AI Camera")
        self.client = client or AssetWiseClient()
        self.flow = CaptureFlow()

        self.cap = None
        self.last_frame = None
        self.timer = QTimer()
        self.timer.timeout.connect(self.update_frame)
        self.bridge = _Bridge()
        self.bridge.finished.connect(self.on_finished)
        self.bridge.failed.connect(self.on_failed)

        layout = QVBoxLayout()
        self.setLayout(layout)

        self.title = QLabel()
        self.title.setAlignment(Qt.AlignCenter)
        layout.addWidget(self.title)

        self.image = QLabel()
        self.image.setAlignment(Qt.AlignCenter)
        layout.addWidget(self.image)

        self.qr = QLabel()
        self.qr.setAlignment(Qt.AlignCenter)
        layout.addWidget(self.qr)

        self.error = QLabel()
        self.error.setStyleSheet("color: #c00;")
        self.error.setWordWrap(True)
        layout.addWidget(self.error)

        # Feature selection
        features = QHBoxLayout()
        self.feature_group = QButtonGroup(self)
        for feature_id, (name, description) in capture_flow.FEATURES.items():
            btn = QRadioButton(name)
            btn.setToolTip(description)
            btn.setProperty("feature", feature_id)
            btn.setChecked(feature_id == self.flow.feature)
            self.feature_group.addButton(btn)
            features.addWidget(btn)
        self.feature_group.buttonClicked.connect(self.select_feature)
        layout.addLayout(features)

        self.prompt = QLineEdit()
        self.prompt.setPlaceholderText("Enter your custom prompt...")
        self.prompt.textChanged.connect(self.flow.set_prompt)
        layout.addWidget(self.prompt)

        self.target_btn = QPushButton("Choose Target Image")
        self.target_btn.clicked.connect(self.select_target)
        layout.addWidget(self.target_btn)

        buttons = QHBoxLayout()
        self.start_btn = self._button(buttons, "Start Camera", self.start_camera)
        self.capture_btn = self._button(buttons, "Capture", self.capture)
        self.retake_btn = self._button(buttons, "Retake", self.retake)
        self.generate_btn = self._button(buttons, "Generate", self.generate)
        self.save_btn = self._button(buttons, "Save Image", self.save_image)
        self.reset_btn = self._button(buttons, "Start Over", self.reset)
        layout.addLayout(buttons)

        self.render()

    def _button(self, layout, text, slot):
        btn = QPushButton(text)
        btn.clicked.connect(slot)
        layout.addWidget(btn)
        return btn

    # --- Screens ---
    def render(self):
        state = self.flow.state
        titles = {
            capture_flow.WELCOME: "Welcome! Pick a style and start the camera.",
            capture_flow.CAMERA: "Look at the camera",
            capture_flow.PREVIEW: "Happy with this photo?",
            capture_flow.PROCESSING: "Creating your AI image...",
            capture_flow.RESULT: "Your AI image is ready. Scan the QR code to get it.",
        }
        self.title.setText(titles[state])
        self.error.setText(self.flow.error or "")

        choosing = state in (capture_flow.WELCOME, capture_flow.PREVIEW)
        for btn in self.feature_group.buttons():
            btn.setEnabled(choosing)
            if btn.property("feature") == self.flow.feature:
                btn.setChecked(True)
        self.prompt.setVisible(choosing and self.flow.feature == "custom")
        self.target_btn.setVisible(choosing and self.flow.feature == "face-swap")

        self.start_btn.setVisible(state == capture_flow.WELCOME)
        self.capture_btn.setVisible(state == capture_flow.CAMERA)
        self.retake_btn.setVisible(state == capture_flow.PREVIEW)
        self.generate_btn.setVisible(state == capture_flow.PREVIEW)
        self.save_btn.setVisible(state == capture_flow.RESULT)
        self.reset_btn.setVisible(state in (capture_flow.PREVIEW, capture_flow.RESULT))
        self.qr.setVisible(state == capture_flow.RESULT)

        if state == capture_flow.WELCOME:
            self.image.setText("AssetWise AI Camera")
        elif state == capture_flow.PREVIEW and self.flow.captured:
            self.image.setPixmap(_pixmap_from_bytes(self.flow.captured))
        elif state == capture_flow.RESULT:
            self.image.setPixmap(_pixmap_from_bytes(decode_data_url(self.flow.result["generatedImage"])))
            if self.flow.result.get("qrCode"):
                self.qr.setPixmap(_pixmap_from_bytes(decode_data_url(self.flow.result["qrCode"]), width=200))

    # --- Options ---
    def select_feature(self, btn):
        self.flow.select_feature(btn.property("feature"))
        self.render()

    def select_target(self):
        path, _ = QFileDialog.getOpenFileName(self, "Select Target Image", "", "Image Files (*.jpg *.png *.jpeg)")
        if not path:
            return
        try:
            self.flow.set_target_image(read_image_file(path))
        except RuntimeError as e:
            QMessageBox.warning(self, "Target Image", str(e))
            return
        self.target_btn.setText(f"Target: {path}")

    # --- Camera ---
    def _open_camera(self):
        if self.cap is None:
            try:
                self.cap = create_capture()
            except RuntimeError as e:
                QMessageBox.critical(self, "Camera Error", f"Unable to access camera:\n{e}")
                return False
        self.last_frame = None
        self.timer.start(int(1000 / settings.DEFAULT_FPS))
        return True

    def start_camera(self):
        if self._open_camera():
            self.flow.start_camera()
            self.render()

    def stop_camera(self):
        self.timer.stop()
        if self.cap is not None:
            self.cap.release()
            self.cap = None

    def update_frame(self):
        if self.cap is None:
            return
        ret, frame = self.cap.read()
        if not ret:
            return
        self.last_frame = cv2.flip(frame, 1)
        self.image.setPixmap(_pixmap_from_bgr(self.last_frame))

    def capture(self):
        jpeg = encode_jpeg(self.last_frame) if self.last_frame is not None else None
        if self.flow.capture(jpeg):
            self.stop_camera()
        self.render()

    def retake(self):
        if self._open_camera():
            self.flow.retake()
            self.render()

    # --- Processing ---
    def generate(self):
        if not self.flow.begin_processing():
            self.render()
            return
        self.render()

        def work():
            try:
                self.bridge.finished.emit(self.client.process(self.flow))
            except (ClientError, requests.RequestException) as e:
                self.bridge.failed.emit(str(e))

        # Run the request in a separate thread so the GUI doesn't freeze
        threading.Thread(target=work, daemon=True).start()

    def on_finished(self, response):
        self.flow.complete(response)
        self.render()

    def on_failed(self, message):
        self.flow.fail(message)
        self.render()

    def save_image(self):
        path, _ = QFileDialog.getSaveFileName(self, "Save Image", self.flow.download_filename(), "JPEG (*.jpg)")
        if not path:
            return
        with open(path, "wb") as f:
            f.write(decode_data_url(self.flow.result["generatedImage"]))
        QMessageBox.information(self, "Image Saved", f"Saved to:\n{path}")

    def reset(self):
        self.stop_camera()
        self.flow.reset()
        self.prompt.clear()
        self.target_btn.setText("Choose Target Image")
        self.render()

    def closeEvent(self, event):
        self.stop_camera()
        super().closeEvent(event)


def main():
    settings.setup_logging()
    app = QApplication(sys.argv)
    window = CameraApp()
    window.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())

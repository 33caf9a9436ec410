import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

import fal_service
import server

PUBLIC_URL = "https://fal.media/files/panda/generated.jpg"


def make_jpeg(color=(200, 120, 40), size=(32, 32)):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="JPEG")
    return buf.getvalue()


class FakeFal:
    """Records calls made through fal_client and returns canned results."""

    def __init__(self, result=None, error=None):
        self.result = result if result is not None else {"images": [{"url": PUBLIC_URL}]}
        self.error = error
        self.calls = []
        self.uploads = []

    def subscribe(self, application, arguments, with_logs=False, on_queue_update=None, **kwargs):
        self.calls.append((application, arguments))
        if self.error is not None:
            raise self.error
        return self.result

    def upload(self, data, content_type, file_name=None, **kwargs):
        self.uploads.append((data, content_type, file_name))
        return f"https://fal.media/uploads/{len(self.uploads)}.jpg"


@pytest.fixture
def jpeg():
    return make_jpeg()


@pytest.fixture
def fal_key(monkeypatch):
    monkeypatch.setenv("FAL_KEY", "test-key")


@pytest.fixture
def fake_fal(monkeypatch, fal_key):
    fake = FakeFal()
    monkeypatch.setattr(fal_service.fal_client, "subscribe", fake.subscribe)
    monkeypatch.setattr(fal_service.fal_client, "upload", fake.upload)
    return fake


@pytest.fixture
def downloaded(monkeypatch):
    output = make_jpeg(color=(10, 200, 10))
    monkeypatch.setattr(fal_service, "download_image", lambda url: output)
    return output


@pytest.fixture(autouse=True)
def clean_store():
    server.image_store.clear()
    yield
    server.image_store.clear()


@pytest.fixture
def client():
    return TestClient(server.app)

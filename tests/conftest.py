from io import BytesIO
import time
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, List, Optional

import numpy as np
import pytest
from PIL import Image

from rembg_service.config import Settings
from rembg_service.inference import InferenceInvoker
from rembg_service.model_loader import ModelProvisioner
from rembg_service.pipeline import BackgroundRemover
from rembg_service.profiles import build_descriptors


class FakeSession:
    """Stands in for onnxruntime.InferenceSession."""

    def __init__(self, outputs: Dict[str, np.ndarray], error: Optional[Exception] = None):
        self.outputs = outputs
        self.error = error
        self.calls: List[dict] = []

    def get_outputs(self):
        return [SimpleNamespace(name=name) for name in self.outputs]

    def run(self, names, feeds):
        self.calls.append(feeds)
        if self.error is not None:
            raise self.error
        return [self.outputs[name] for name in names]


class FakeSessionFactory:
    def __init__(self, value: float = 1.0, error: Optional[Exception] = None):
        self.value = value
        self.error = error
        self.created: List[Path] = []
        self.sessions: List[FakeSession] = []

    def __call__(self, model_path: Path) -> FakeSession:
        self.created.append(model_path)
        if model_path.name == "u2net_med.onnx":
            outputs = {"output": np.full((1, 1, 1024, 1024), self.value, dtype=np.float32)}
        else:
            # Side outputs carry a different value so a wrong pick is visible.
            outputs = {
                "1960": np.full((1, 1, 320, 320), 0.5, dtype=np.float32),
                "1959": np.full((1, 1, 320, 320), self.value, dtype=np.float32),
                "1961": np.full((1, 1, 320, 320), 0.25, dtype=np.float32),
            }
        session = FakeSession(outputs, self.error)
        self.sessions.append(session)
        return session


class FakeFetcher:
    """Records download attempts and writes a placeholder model file."""

    def __init__(self, error: Optional[Exception] = None, delay: float = 0.0):
        self.error = error
        self.delay = delay
        self.calls: List[tuple] = []

    def __call__(self, url: str, dest: Path, md5: str) -> None:
        self.calls.append((url, dest, md5))
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        dest.write_bytes(b"onnx")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        u2net_home=tmp_path / "models",
        u2net_med_url="https://example.invalid/u2net_med.onnx",
        u2net_med_md5="0" * 32,
        prefetch_on_startup=False,
    )


@pytest.fixture
def descriptors(settings):
    return build_descriptors(settings)


@pytest.fixture
def model_files(descriptors):
    for descriptor in descriptors.values():
        descriptor.path.parent.mkdir(parents=True, exist_ok=True)
        descriptor.path.write_bytes(b"onnx")
    return descriptors


@pytest.fixture
def make_remover(settings, descriptors):
    def factory(value: float = 1.0, error: Optional[Exception] = None, fetcher: Optional[FakeFetcher] = None):
        session_factory = FakeSessionFactory(value=value, error=error)
        remover = BackgroundRemover(
            settings=settings,
            descriptors=descriptors,
            provisioner=ModelProvisioner(descriptors.values(), fetcher=fetcher or FakeFetcher()),
            invoker=InferenceInvoker(session_factory=session_factory),
        )
        return remover, session_factory

    return factory


@pytest.fixture
def fake_fetcher_cls():
    return FakeFetcher


@pytest.fixture
def fake_session_factory_cls():
    return FakeSessionFactory


def solid_image(width: int, height: int, color=(200, 100, 50), mode: str = "RGB") -> Image.Image:
    if mode == "RGBA" and len(color) == 3:
        color = (*color, 255)
    return Image.new(mode, (width, height), color)


@pytest.fixture
def make_image():
    return solid_image


@pytest.fixture
def png_bytes():
    def encode(image: Image.Image) -> bytes:
        buf = BytesIO()
        image.save(buf, format="PNG")
        return buf.getvalue()

    return encode

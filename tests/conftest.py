"""Shared test fixtures and fakes."""

from concurrent.futures import Future
from io import BytesIO

import httpx
import pytest
from botocore.exceptions import ClientError
from PIL import Image
from PIL.PngImagePlugin import PngInfo

from claim_triage.config import Settings
from claim_triage.models import ImageRecord
from claim_triage.workers import TASKS, WorkerPool, WorkerTaskError


def make_png(color=(128, 128, 128), size=(64, 64), comment=None) -> bytes:
    info = PngInfo()
    if comment:
        info.add_text("Comment", comment)
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG", pnginfo=info)
    return buf.getvalue()


def make_checkerboard(size=64, cell=8) -> bytes:
    img = Image.new("L", (size, size))
    img.putdata([255 if ((x // cell) + (y // cell)) % 2 else 0
                 for y in range(size) for x in range(size)])
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def make_record(url: str, fingerprint: str = "0" * 16, area: str = "roof",
                severity: int = 2, quality: float = 1.0) -> ImageRecord:
    return ImageRecord(url=url, area=area, severity=severity,
                       quality_score=quality, fingerprint=fingerprint)


class FakeRekognition:
    """Stands in for a boto3 Rekognition client; labels are keyed by image bytes."""

    def __init__(self, labels_by_bytes=None, fail_on=()):
        self.labels_by_bytes = labels_by_bytes or {}
        self.fail_on = set(fail_on)
        self.calls = []

    def detect_labels(self, Image, MaxLabels, MinConfidence):
        data = Image["Bytes"]
        self.calls.append({"MaxLabels": MaxLabels, "MinConfidence": MinConfidence})
        if data in self.fail_on:
            raise ClientError(
                {"Error": {"Code": "ThrottlingException", "Message": "slow down"}},
                "DetectLabels",
            )
        labels = self.labels_by_bytes.get(data, [])
        return {"Labels": [{"Name": n, "Confidence": c} for n, c in labels]}


class FakePool:
    """Runs worker tasks inline and hands back already-completed futures."""

    def __init__(self, fail_on=(), fail_kinds=()):
        self.fail_on = set(fail_on)
        self.fail_kinds = set(fail_kinds)
        self.calls = []

    def submit(self, kind, data):
        self.calls.append(kind)
        fut = Future()
        if data in self.fail_on or kind in self.fail_kinds:
            fut.set_exception(WorkerTaskError("UnidentifiedImageError: cannot identify image"))
        else:
            fut.set_result(TASKS[kind](data))
        return fut


def mock_http(responses) -> httpx.AsyncClient:
    """AsyncClient whose URLs map to bytes (200) or an int status code."""

    def handler(request: httpx.Request) -> httpx.Response:
        answer = responses.get(str(request.url), 404)
        if isinstance(answer, int):
            return httpx.Response(answer)
        return httpx.Response(200, content=answer)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(fetch_retry_delay=0, fetch_attempts=3)


@pytest.fixture(scope="module")
def worker_pool():
    with WorkerPool(2) as pool:
        yield pool

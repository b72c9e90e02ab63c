import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from botocore.exceptions import ClientError  # noqa: E402

from paymail_api.core.settings import Settings  # noqa: E402
from paymail_api.observability.notifications import get_notification_store  # noqa: E402
from paymail_api.services.storage import ObjectNotFoundError, ObjectStoreError, normalize_container  # noqa: E402


def client_error(code: str, operation: str, message: str = "") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


class StubBody:
    def __init__(self, payload: bytes) -> None:
        self._payload = payload

    def read(self) -> bytes:
        return self._payload


class StubS3Client:
    """Minimal ``get_object`` stand-in keyed by (bucket, key)."""

    def __init__(self, objects: dict[tuple[str, str], bytes] | None = None) -> None:
        self.objects = dict(objects or {})
        self.error_code: str | None = None
        self.calls: list[tuple[str, str]] = []

    def get_object(self, *, Bucket: str, Key: str) -> dict[str, Any]:
        self.calls.append((Bucket, Key))
        if self.error_code:
            raise client_error(self.error_code, "GetObject")
        if (Bucket, Key) not in self.objects:
            raise client_error("NoSuchKey", "GetObject", "The specified key does not exist.")
        return {"Body": StubBody(self.objects[(Bucket, Key)])}


class MemoryObjectStore:
    """In-memory ``ObjectStore`` keyed by "bucket/prefix/path"."""

    def __init__(self, objects: dict[str, str | bytes] | None = None) -> None:
        self.objects: dict[str, bytes] = {}
        for key, value in (objects or {}).items():
            self.put(key, value)
        self.failing: set[str] = set()
        self.requests: list[str] = []

    def put(self, key: str, value: str | bytes) -> None:
        self.objects[key] = value.encode("utf-8") if isinstance(value, str) else value

    async def download(self, container: str, path: str) -> bytes:
        key = normalize_container(container).qualified(path)
        self.requests.append(key)
        if key in self.failing:
            raise ObjectStoreError(f"AccessDenied for {key}")
        if key not in self.objects:
            raise ObjectNotFoundError(container, path)
        return self.objects[key]


class StubSesClient:
    """sesv2 stand-in covering suppression lookups and sends."""

    def __init__(self) -> None:
        self.suppressed: dict[str, str] = {}
        self.lookup_error_code: str | None = None
        self.send_error: tuple[str, str] | None = None
        self.lookups: list[str] = []
        self.sent: list[dict[str, Any]] = []

    def get_suppressed_destination(self, *, EmailAddress: str) -> dict[str, Any]:
        self.lookups.append(EmailAddress)
        if self.lookup_error_code:
            raise client_error(self.lookup_error_code, "GetSuppressedDestination")
        reason = self.suppressed.get(EmailAddress)
        if reason is None:
            raise client_error("NotFoundException", "GetSuppressedDestination")
        return {"SuppressedDestination": {"EmailAddress": EmailAddress, "Reason": reason}}

    def send_email(self, **request: Any) -> dict[str, Any]:
        if self.send_error:
            code, message = self.send_error
            raise client_error(code, "SendEmail", message)
        self.sent.append(request)
        return {"MessageId": f"ses-{len(self.sent)}"}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def s3_client() -> StubS3Client:
    return StubS3Client()


@pytest.fixture
def memory_store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
def ses_client() -> StubSesClient:
    return StubSesClient()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret="whsec_test",
        templates_bucket="gs://paymail-templates",
        assets_bucket=None,
        test_to=None,
    )


@pytest.fixture(autouse=True)
def reset_notification_store():
    store = get_notification_store()
    store.reset()
    yield store
    store.reset()


@pytest_asyncio.fixture
async def api_app():
    from paymail_api.app import create_app

    app = create_app()
    try:
        yield app
    finally:
        app.dependency_overrides.clear()

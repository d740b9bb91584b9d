import pytest

from cliprecall.config import Settings
from cliprecall.models import ContentType
from cliprecall.storage import StorageManager
from cliprecall.utils import compute_hash


class FakeClock:
    """Callable clock returning epoch seconds that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePasteboard:
    def __init__(self):
        self.count = 0
        self.text: str | None = None
        self.image: bytes | None = None

    def change_count(self) -> int:
        return self.count

    def read_text(self) -> str | None:
        return self.text

    def read_image(self) -> bytes | None:
        return self.image

    def write_text(self, text: str) -> None:
        self.set_text(text)

    def write_image(self, png_bytes: bytes) -> None:
        self.set_image(png_bytes)

    def set_text(self, text: str | None) -> None:
        self.count += 1
        self.text = text
        self.image = None

    def set_image(self, data: bytes | None) -> None:
        self.count += 1
        self.text = None
        self.image = data


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(store_sensitive=True, sensitive_ttl=60, max_history=500)


@pytest.fixture
def storage(settings, clock):
    mgr = StorageManager(db_path=":memory:", settings=settings, clock=clock)
    yield mgr
    mgr.close()


@pytest.fixture
def pasteboard():
    return FakePasteboard()


@pytest.fixture
def add_text(storage, clock):
    """Factory fixture inserting a text entry, one second after the previous one."""

    def _add_text(text: str, expires_at=None, is_sensitive: bool = False) -> int:
        clock.advance(1)
        return storage.insert_or_touch(
            ContentType.TEXT,
            text,
            None,
            compute_hash(text),
            expires_at=expires_at,
            is_sensitive=is_sensitive,
        )

    return _add_text

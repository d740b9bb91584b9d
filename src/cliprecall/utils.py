import hashlib
import struct
from datetime import datetime

from cliprecall.config import DATA_DIR

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def compute_hash(data: str | bytes) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def truncate_text(text: str, max_len: int) -> str:
    single_line = " ".join(text.split())
    if len(single_line) <= max_len:
        return single_line
    return single_line[: max_len - 3] + "..."


def ensure_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)


def is_png(data: bytes) -> bool:
    return data[:8] == PNG_SIGNATURE


def get_image_dimensions(png_bytes: bytes) -> tuple[int, int]:
    if len(png_bytes) < 24 or not is_png(png_bytes):
        return (0, 0)
    width = struct.unpack(">I", png_bytes[16:20])[0]
    height = struct.unpack(">I", png_bytes[20:24])[0]
    return (width, height)


def to_timestamp(value: datetime | None) -> float | None:
    if value is None:
        return None
    return value.timestamp()


def from_timestamp(value: float | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value)

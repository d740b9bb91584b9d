"""Platform seams: the system pasteboard and the global hotkey.

The history engine only talks to the two protocols below. ``MacPasteboard``
is the AppKit-backed implementation; AppKit is imported when it is
constructed, so the rest of the package imports on any platform.
"""

import logging
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)

NSBITMAP_PNG_FILE_TYPE = 4


class PasteboardSource(Protocol):
    def change_count(self) -> int:
        """Counter that increases every time the pasteboard contents change."""

    def read_text(self) -> str | None:
        """Current plain text, if any."""

    def read_image(self) -> bytes | None:
        """Current image encoded as PNG, if any."""

    def write_text(self, text: str) -> None: ...

    def write_image(self, png_bytes: bytes) -> None: ...


class HotkeyTrigger(Protocol):
    def register(self, callback: Callable[[], None]) -> None: ...

    def unregister(self) -> None: ...


class MacPasteboard:
    """PasteboardSource backed by ``NSPasteboard.generalPasteboard()``."""

    def __init__(self):
        from AppKit import NSPasteboard

        self._pasteboard = NSPasteboard.generalPasteboard()

    def change_count(self) -> int:
        return int(self._pasteboard.changeCount())

    def read_text(self) -> str | None:
        from AppKit import NSPasteboardTypeString

        text = self._pasteboard.stringForType_(NSPasteboardTypeString)
        return str(text) if text is not None else None

    def read_image(self) -> bytes | None:
        from AppKit import NSPasteboardTypePNG, NSPasteboardTypeTIFF

        png = self._pasteboard.dataForType_(NSPasteboardTypePNG)
        if png is not None:
            return bytes(png)

        tiff = self._pasteboard.dataForType_(NSPasteboardTypeTIFF)
        if tiff is None:
            return None
        return tiff_to_png(bytes(tiff))

    def write_text(self, text: str) -> None:
        from AppKit import NSPasteboardTypeString

        self._pasteboard.clearContents()
        self._pasteboard.setString_forType_(text, NSPasteboardTypeString)

    def write_image(self, png_bytes: bytes) -> None:
        from AppKit import NSPasteboardTypePNG
        from Foundation import NSData

        data = NSData.dataWithBytes_length_(png_bytes, len(png_bytes))
        self._pasteboard.clearContents()
        self._pasteboard.setData_forType_(data, NSPasteboardTypePNG)


def tiff_to_png(tiff_bytes: bytes) -> bytes | None:
    """Transcode a TIFF raster to PNG using a native NSBitmapImageRep.

    Returns:
        PNG bytes, or None if the data could not be decoded.
    """
    try:
        from AppKit import NSBitmapImageRep
        from Foundation import NSData

        data = NSData.dataWithBytes_length_(tiff_bytes, len(tiff_bytes))
        bitmap_rep = NSBitmapImageRep.imageRepWithData_(data)
        if not bitmap_rep:
            return None

        png_data = bitmap_rep.representationUsingType_properties_(NSBITMAP_PNG_FILE_TYPE, None)
        if not png_data:
            return None
        return bytes(png_data)
    except Exception:
        logger.exception("Could not transcode TIFF image to PNG")
        return None

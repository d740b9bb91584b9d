import argparse
import logging
import sys
import time

from cliprecall.config import DB_PATH, DEFAULT_LIST_LIMIT, LOG_PATH, Settings
from cliprecall.models import ClipboardEntry, ContentType
from cliprecall.storage import StorageManager
from cliprecall.utils import ensure_dirs, get_image_dimensions, truncate_text

logger = logging.getLogger(__name__)

LINE_PREVIEW_LENGTH = 60


def open_storage(settings: Settings) -> StorageManager:
    ensure_dirs()
    return StorageManager(DB_PATH, settings)


def format_entry(entry: ClipboardEntry) -> str:
    """Render one history entry as a single terminal line."""
    marks = ("P" if entry.pinned else "-") + ("S" if entry.is_sensitive else "-")
    if entry.content_type == ContentType.IMAGE and entry.image_bytes:
        width, height = get_image_dimensions(entry.image_bytes)
        preview = f"[Image: {width}x{height}]" if width > 0 else "[Image]"
    else:
        preview = truncate_text(entry.preview, LINE_PREVIEW_LENGTH)
    line = f"{entry.id:>6}  {marks}  {entry.created_at:%Y-%m-%d %H:%M:%S}  {preview}"
    if entry.tags:
        line += "  " + " ".join(f"#{tag}" for tag in entry.tags)
    return line


def print_entries(entries: list[ClipboardEntry]) -> None:
    if not entries:
        print("(No clipboard history)")
        return
    for entry in entries:
        print(format_entry(entry))


def wait_for_interrupt() -> None:
    while True:
        time.sleep(1.0)


def run_app(settings: Settings) -> int:
    """Record clipboard history in the foreground until interrupted."""
    ensure_dirs()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(LOG_PATH),
            logging.StreamHandler(sys.stderr),
        ],
    )

    from cliprecall.monitor import ClipboardMonitor
    from cliprecall.pasteboard import MacPasteboard
    from cliprecall.scheduler import ExpirySweeper

    storage = StorageManager(DB_PATH, settings)
    monitor = ClipboardMonitor(storage, MacPasteboard(), settings)
    sweeper = ExpirySweeper(storage)

    sweeper.run_once()
    monitor.start()
    sweeper.start()
    try:
        wait_for_interrupt()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        sweeper.stop()
        monitor.stop()
        storage.close()
    return 0


def cmd_list(storage: StorageManager, args: argparse.Namespace) -> int:
    print_entries(storage.list_entries(limit=args.limit, include_image_bytes=False))
    return 0


def cmd_search(storage: StorageManager, args: argparse.Namespace, settings: Settings) -> int:
    from cliprecall.search import SearchSession

    query = " ".join(args.query)
    if args.literal:
        results = storage.search_entries(query, include_image_bytes=False)
    else:
        results = SearchSession(storage, settings).query(query)
    print_entries(results)
    return 0


def _require_entry(storage: StorageManager, entry_id: int) -> ClipboardEntry | None:
    entry = storage.get_entry(entry_id)
    if entry is None:
        print(f"No entry with id {entry_id}")
    return entry


def cmd_pin(storage: StorageManager, args: argparse.Namespace) -> int:
    if _require_entry(storage, args.id) is None:
        return 1
    pinned = args.command == "pin"
    storage.set_pinned(args.id, pinned)
    print("Pinned" if pinned else "Unpinned")
    return 0


def cmd_tag(storage: StorageManager, args: argparse.Namespace) -> int:
    if _require_entry(storage, args.id) is None:
        return 1
    for tag in args.tags:
        storage.add_tag(args.id, tag)
    entry = storage.get_entry(args.id)
    print("Tags: " + (", ".join(entry.tags) if entry and entry.tags else "(none)"))
    return 0


def cmd_untag(storage: StorageManager, args: argparse.Namespace) -> int:
    if _require_entry(storage, args.id) is None:
        return 1
    storage.set_tags(args.id, [])
    print("Tags cleared")
    return 0


def cmd_copy(storage: StorageManager, args: argparse.Namespace) -> int:
    entry = _require_entry(storage, args.id)
    if entry is None:
        return 1

    from cliprecall.pasteboard import MacPasteboard

    pasteboard = MacPasteboard()
    if entry.content_type == ContentType.IMAGE:
        image = storage.fetch_image_bytes(entry.id)
        if not image:
            print(f"Entry {entry.id} has no image data")
            return 1
        pasteboard.write_image(image)
    else:
        pasteboard.write_text(entry.text_content or "")
    print("Copied to clipboard")
    return 0


def cmd_delete(storage: StorageManager, args: argparse.Namespace) -> int:
    if _require_entry(storage, args.id) is None:
        return 1
    storage.delete_entry(args.id)
    print(f"Deleted entry {args.id}")
    return 0


def cmd_stats(storage: StorageManager, args: argparse.Namespace) -> int:
    print(f"Entries: {storage.count()}")
    print(f"Pinned:  {storage.count_pinned()}")
    return 0


def cmd_sweep(storage: StorageManager, args: argparse.Namespace) -> int:
    deleted = storage.sweep_expired()
    print(f"Removed {deleted} expired entries")
    return 0


def cmd_clear(storage: StorageManager, args: argparse.Namespace) -> int:
    if not args.yes:
        answer = input("Clear all clipboard history? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Cancelled")
            return 1
    storage.clear_all()
    print("History cleared")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cliprecall",
        description="cliprecall - searchable clipboard history",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cliprecall run                 # record clipboard history in the foreground
  cliprecall search tag:work db  # fuzzy search entries tagged "work"
  cliprecall pin 42              # keep entry 42 out of eviction
""",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Record clipboard history (default)")

    list_parser = sub.add_parser("list", help="Show recent entries")
    list_parser.add_argument("-n", "--limit", type=int, default=DEFAULT_LIST_LIMIT)

    search_parser = sub.add_parser("search", help="Search entries (tag:<name> filters by tag)")
    search_parser.add_argument("query", nargs="*", default=[])
    search_parser.add_argument("--literal", action="store_true", help="Plain substring match")

    for name, help_text in (("pin", "Pin an entry"), ("unpin", "Unpin an entry")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("id", type=int)

    tag_parser = sub.add_parser("tag", help="Add tags to an entry")
    tag_parser.add_argument("id", type=int)
    tag_parser.add_argument("tags", nargs="+")

    untag_parser = sub.add_parser("untag", help="Remove all tags from an entry")
    untag_parser.add_argument("id", type=int)

    copy_parser = sub.add_parser("copy", help="Put an entry back on the clipboard")
    copy_parser.add_argument("id", type=int)

    delete_parser = sub.add_parser("delete", help="Delete one entry")
    delete_parser.add_argument("id", type=int)

    sub.add_parser("stats", help="Show entry counts")

    sub.add_parser("sweep", help="Delete expired entries now")

    clear_parser = sub.add_parser("clear", help="Delete all history")
    clear_parser.add_argument("-y", "--yes", action="store_true")

    return parser


COMMANDS = {
    "list": cmd_list,
    "pin": cmd_pin,
    "unpin": cmd_pin,
    "tag": cmd_tag,
    "untag": cmd_untag,
    "copy": cmd_copy,
    "delete": cmd_delete,
    "stats": cmd_stats,
    "sweep": cmd_sweep,
    "clear": cmd_clear,
}


def main(argv: list[str] | None = None):
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()

    if args.command in (None, "run"):
        sys.exit(run_app(settings))

    storage = open_storage(settings)
    try:
        if args.command == "search":
            code = cmd_search(storage, args, settings)
        else:
            code = COMMANDS[args.command](storage, args)
    finally:
        storage.close()
    sys.exit(code)


if __name__ == "__main__":
    main()

"""Entry point: python -m memolog <command> [args]

- add <category> <text>          Append a memo to today's unit for category
- list [category]                Show active root memos
- reply <parent-id> <text>       Reply to a memo
- trash <id> / restore <id>      Soft delete / restore with replies
- delete <id>                    Permanently delete with replies
- cleanup                        Purge trash past the retention period
- export <markdown|json|csv> [category]
"""

from __future__ import annotations

import logging
import sys

from memolog.config import load_config
from memolog.errors import InvalidStateError
from memolog.manager import MemoManager
from memolog.memo import query
from memolog.memo.threads import flat_view

_USAGE = """\
Usage: python -m memolog <command> [args]
  add <category> <text>     Append a memo
  list [category]           Show active root memos
  reply <parent-id> <text>  Reply to a memo
  trash <id>                Move a memo to the trash
  restore <id>              Restore a memo and its trashed replies
  delete <id>               Permanently delete a memo and its replies
  cleanup                   Purge expired trash
  export <format> [category]  Export as markdown, json or csv"""


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _usage() -> None:
    print(_USAGE)
    sys.exit(1)


def _locate(manager: MemoManager, memo_id: str) -> str:
    found = manager.locate(memo_id)
    if found is None:
        print(f"memo not found: {memo_id}")
        sys.exit(1)
    return found[0]


def _cmd_list(manager: MemoManager, args: list[str]) -> None:
    category = args[0] if args else ""
    records = query.sort_with_pinned_first(flat_view(manager.all_memos(category)), manager.config.order)
    for r in records:
        first_line = r.content.split("\n", 1)[0]
        pin = "*" if r.is_pinned else " "
        print(f"{pin} {r.id}  {r.timestamp}  [{r.category}] {first_line}")


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    if not args:
        _usage()
    cmd, rest = args[0], args[1:]

    config = load_config()
    _setup_logging(config.log_level)
    manager = MemoManager(config)

    try:
        if cmd == "add" and len(rest) >= 2:
            record = manager.add_memo(rest[0], " ".join(rest[1:]))
            print(record.id)
        elif cmd == "list":
            _cmd_list(manager, rest)
        elif cmd == "reply" and len(rest) >= 2:
            unit = _locate(manager, rest[0])
            print(manager.add_reply(unit, rest[0], " ".join(rest[1:])).id)
        elif cmd == "trash" and len(rest) == 1:
            unit = _locate(manager, rest[0])
            if not manager.trash_with_descendants(unit, rest[0]):
                sys.exit(1)
        elif cmd == "restore" and len(rest) == 1:
            unit = _locate(manager, rest[0])
            if not manager.restore_with_descendants(unit, rest[0]):
                sys.exit(1)
        elif cmd == "delete" and len(rest) == 1:
            unit = _locate(manager, rest[0])
            if not manager.delete_with_descendants(unit, rest[0]):
                sys.exit(1)
        elif cmd == "cleanup":
            print(f"removed {manager.cleanup_trash()}")
        elif cmd == "export" and rest and rest[0] in ("markdown", "json", "csv"):
            result = manager.export(rest[0], categories=rest[1:] or None)
            print(result.content)
        else:
            _usage()
    except InvalidStateError as e:
        print(f"error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

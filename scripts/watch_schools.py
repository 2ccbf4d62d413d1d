#!/usr/bin/env python3
"""Console view of the schools table, kept live by the change feed.

Reads ``SUPABASE_URL`` and ``SUPABASE_ANON_KEY`` (plus optional
``SCHOOLS_*`` variables) from the environment, loads the table, prints it
on every change and optionally performs one mutation first.

Examples:
    python scripts/watch_schools.py
    python scripts/watch_schools.py --add "Escuela Lincoln" --duration 30
    python scripts/watch_schools.py --rename 3 "Escuela Normal" --duration 0
    python scripts/watch_schools.py --delete 3 --duration 0
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from pyschools import ReconciliationEngine, School, SchoolsClient, SchoolsConfig, SchoolsConfigError


def _render(records: tuple[School, ...]) -> None:
    print(f"--- {len(records)} school(s) ---")
    for record in records:
        print(f"{record.id:>6}  {record.name}")


def _report_error(error: Exception | None) -> None:
    if error is not None:
        print(f"! {error}", file=sys.stderr)


async def _mutate(engine: ReconciliationEngine, args: argparse.Namespace) -> None:
    if args.add:
        engine.pending_name.set(args.add)
        await engine.create_record()
    if args.rename:
        record_id, name = args.rename
        await engine.update_record(int(record_id), {"name": name})
    if args.delete is not None:
        await engine.delete_record(args.delete)


async def _run(args: argparse.Namespace) -> int:
    try:
        config = SchoolsConfig.from_env(**({"table": args.table} if args.table else {}))
    except SchoolsConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    async with SchoolsClient(config) as client:
        engine = client.create_engine()
        engine.items.subscribe(_render)
        engine.last_error.subscribe(_report_error)

        async with engine:
            if engine.items.get() == ():
                _render(())
            await _mutate(engine, args)
            if args.duration > 0:
                await asyncio.sleep(args.duration)
            elif args.duration < 0:
                await asyncio.Event().wait()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--table", help="Override SCHOOLS_TABLE")
    parser.add_argument("--add", metavar="NAME", help="Create a school with this name")
    parser.add_argument("--rename", nargs=2, metavar=("ID", "NAME"), help="Rename a school")
    parser.add_argument("--delete", type=int, metavar="ID", help="Delete a school")
    parser.add_argument(
        "--duration",
        type=float,
        default=-1,
        help="Seconds to keep watching (negative: until interrupted, 0: exit immediately)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable DEBUG logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())

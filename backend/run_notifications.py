"""Run a single trip notification pass against the configured database.

Run from the backend directory inside an active virtual environment:
    python run_notifications.py [--now 2025-03-08T10:30:00Z]

Prints the run summary as JSON. Exit code 2 when the run aborted."""
import argparse
import asyncio
import json
import sys

from trip_scheduler.core.config import settings
from trip_scheduler.core.logging import configure_logging
from trip_scheduler.services.reminder_scheduler import build_scheduler
from trip_scheduler.services.validation import parse_instant

def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--now", help="simulated current instant (ISO-8601, UTC if no offset)")
    args = parser.parse_args()

    now = None
    if args.now:
        now = parse_instant(args.now)
        if now is None:
            parser.error(f"invalid --now value: {args.now!r}")

    configure_logging(settings.log_level)
    summary = asyncio.run(build_scheduler(settings).run_once(now))
    print(json.dumps(summary.to_payload(), indent=2))
    if summary.aborted:
        sys.exit(2)

if __name__ == "__main__":
    main()

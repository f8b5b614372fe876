"""Management CLI.

Usage:
    python -m repairhub.cli sweep-forfeitures   # Run the forfeiture sweep once (cron)
"""

import asyncio
import logging
import sys

from repairhub.services.scheduler import run_scheduled_sweep


def sweep_forfeitures() -> int:
    result = asyncio.run(run_scheduled_sweep())
    print(f"  Warnings sent:        {result.warnings_sent}")
    print(f"  Forfeited:            {result.forfeited}")
    print(f"  Added to inventory:   {result.devices_added_to_inventory}")
    for error in result.errors:
        print(f"  FAILED: {error}")
    return 1 if result.errors else 0


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "sweep-forfeitures":
        sys.exit(sweep_forfeitures())
    else:
        print("Usage: python -m repairhub.cli [sweep-forfeitures]")

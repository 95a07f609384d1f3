"""Run Safewatch maintenance jobs by hand.

The scheduler runs these on its own (sweep daily, patterns hourly); this is
for operators who need a pass right now, or want to see what the store holds.
Jobs run either directly against the local sqlite store, or through the admin
endpoints of a running backend with --remote.

Usage:
  python scripts/maintenance.py sweep                                # Delete expired reports
  python scripts/maintenance.py patterns                             # Rebuild the pattern set
  python scripts/maintenance.py status                               # Collection counts
  python scripts/maintenance.py status --db /tmp/safewatch.db        # Another store file
  python scripts/maintenance.py sweep --remote http://localhost:8000  # Through a running server
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import httpx

ROOT_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT_DIR / "backend"))

from config import DB_PATH  # noqa: E402
from engine import SafetyEngine  # noqa: E402
from errors import SafewatchError  # noqa: E402
from store import DocumentStore  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("safewatch.maintenance")


def _engine(args) -> SafetyEngine:
    return SafetyEngine(DocumentStore(args.db))


def _remote(args, method: str, path: str) -> dict:
    with httpx.Client(base_url=args.remote, timeout=120) as client:
        resp = client.request(method, path)
        resp.raise_for_status()
        return resp.json()


def cmd_sweep(args):
    if args.remote:
        result = _remote(args, "POST", "/api/admin/sweep")
        deleted = result["deleted"]
    else:
        deleted = _engine(args).scheduler.sweep.run_once()
    logger.info(f"Sweep complete: {deleted} expired reports deleted")


def cmd_patterns(args):
    if args.remote:
        result = _remote(args, "POST", "/api/admin/patterns")
    else:
        result = _engine(args).scheduler.patterns.run_once().model_dump(mode="json")
    if not result["completed"]:
        logger.error(f"Pattern run failed, previous patterns kept: {result['error']}")
        sys.exit(1)
    logger.info(f"Pattern run complete: {result['patterns']} patterns from "
                f"{result['reportsScanned']} recent reports")


def cmd_status(args):
    if args.remote:
        status = _remote(args, "GET", "/api/admin/status")
        counts = status["collections"]
    else:
        if not Path(args.db).exists():
            print("No store found. Start the backend or submit a report first.")
            return
        counts = _engine(args).store.stats()
        status = {"collections": counts}

    print(f"\n{'Collection':<24} {'Documents':>10}")
    print("-" * 35)
    for name, n in sorted(counts.items()):
        print(f"{name:<24} {n:>10,}")
    if "jobs" in status:
        print(f"\nJobs: {json.dumps(status['jobs'])}")


def main():
    parser = argparse.ArgumentParser(description="Safewatch maintenance jobs")
    parser.add_argument("--db", default=DB_PATH, help=f"sqlite store path (default: {DB_PATH})")
    parser.add_argument("--remote", help="Base URL of a running backend; use its admin endpoints instead")
    sub = parser.add_subparsers(dest="command")

    p_sweep = sub.add_parser("sweep", help="Delete reports past their expiry")
    p_sweep.set_defaults(func=cmd_sweep)

    p_pat = sub.add_parser("patterns", help="Run one pattern detection pass")
    p_pat.set_defaults(func=cmd_patterns)

    p_st = sub.add_parser("status", help="Show document counts per collection")
    p_st.set_defaults(func=cmd_status)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)
    try:
        args.func(args)
    except (SafewatchError, httpx.HTTPError) as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

"""
rewardledger.jobs — Entry point for ``python -m rewardledger.jobs``
===================================================================

Wiring:
1. Load .env (secrets, DATABASE_URL).
2. Load config.yaml (reference timezone, batch size).
3. Create the SQLAlchemy engine and ensure tables + seeds exist.
4. Run the requested job and print its JSON report.

Run with::

    python -m rewardledger.jobs issue-cards      # daily, shortly after midnight
    python -m rewardledger.jobs reconcile        # weekly balance audit

Both jobs are idempotent; cron may re-run them freely.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from dotenv import load_dotenv

from rewardledger.config import load_config
from rewardledger.database.engine import create_db_engine, init_db
from rewardledger.engine.retry import retry_call
from rewardledger.services.reconciliation_service import reconcile_balances
from rewardledger.services.scratch_card_service import issue_daily_cards

logger = logging.getLogger("rewardledger")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m rewardledger.jobs")
    parser.add_argument(
        "--config", default="config.yaml", help="Path to config.yaml",
    )
    sub = parser.add_subparsers(dest="job", required=True)
    sub.add_parser("issue-cards", help="Issue today's free scratch card to every member")
    sub.add_parser("reconcile", help="Compare balances against the coin ledger")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run one job.  Returns the process exit code."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    args = _build_parser().parse_args(argv)

    load_dotenv()
    cfg = load_config(args.config)
    logger.info("Config loaded — Community: %s (%s)", cfg.community_name, cfg.timezone)

    engine = create_db_engine()
    init_db(engine)

    if args.job == "issue-cards":
        # Safe to replay whole: every insert is fenced
        report = retry_call(
            issue_daily_cards, (engine, cfg.tz),
            {"batch_size": cfg.scratch_card_batch_size},
        )
        exit_code = 1 if report.get("errored") else 0
    else:
        report = reconcile_balances(engine)
        exit_code = 1 if report["drifted"] else 0

    print(json.dumps(report, indent=2, default=str))
    return exit_code


if __name__ == "__main__":
    sys.exit(main())

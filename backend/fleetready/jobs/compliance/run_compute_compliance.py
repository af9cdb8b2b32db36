import argparse
from datetime import datetime, timedelta, timezone

from fleetready.core.config import load_settings
from fleetready.core.db import SessionLocal
from fleetready.core.log import configure_logging_if_needed
from fleetready.jobs.compliance.compute_compliance import compute_compliance, default_window
from fleetready.jobs.ingest.normalizer import normalize_ship_id


def _utc_date(value: str) -> datetime:
    d = datetime.fromisoformat(value)
    if d.tzinfo is None:
        d = d.replace(tzinfo=timezone.utc)
    return d.astimezone(timezone.utc)


def main():
    p = argparse.ArgumentParser(description="Compute ship compliance scores into compliance_scores")
    p.add_argument("--window-start", help="YYYY-MM-DD (default: end minus FLEET_SCORE_WINDOW_DAYS)")
    p.add_argument("--window-end", help="YYYY-MM-DD, exclusive (default: today 00:00 UTC)")
    p.add_argument("--ship", action="append", help="Hull id; repeatable. Default: every ship")
    args = p.parse_args()

    settings = load_settings()
    configure_logging_if_needed(settings.log_level)

    start, end = default_window(settings.score_window_days, datetime.now(timezone.utc))
    if args.window_end:
        end = _utc_date(args.window_end)
        start = end - timedelta(days=settings.score_window_days)
    if args.window_start:
        start = _utc_date(args.window_start)

    db = SessionLocal()
    try:
        res = compute_compliance(
            db,
            window_start=start,
            window_end=end,
            params=settings.scoring,
            ship_ids=[normalize_ship_id(s) for s in args.ship] if args.ship else None,
        )
        print(res)
    finally:
        db.close()


if __name__ == "__main__":
    main()

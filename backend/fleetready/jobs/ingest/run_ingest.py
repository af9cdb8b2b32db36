import argparse

from sqlalchemy.orm import Session

from fleetready.core.config import load_settings
from fleetready.core.db import SessionLocal
from fleetready.core.log import configure_logging_if_needed
from fleetready.core.secrets import EnvSecretStore
from fleetready.jobs.ingest.job import run_ingest_job
from fleetready.jobs.ingest.registry import FORMATS
from fleetready.jobs.ingest.sources.file import FileSource
from fleetready.jobs.ingest.sources.rest.config import load_endpoints
from fleetready.jobs.ingest.sources.rest.http import HttpPolicy
from fleetready.jobs.ingest.sources.rest.source import RestSource
from fleetready.jobs.scheduler import IntervalTrigger


def main():
    p = argparse.ArgumentParser(description="Ingest vendor maintenance feeds into the canonical store")
    p.add_argument("--source", required=True, choices=["file", "rest"])

    p.add_argument("--path", action="append", help="File path or glob; repeatable (file source)")
    p.add_argument("--format", choices=sorted(FORMATS), help="Format tag; inferred from extension if omitted")
    p.add_argument("--feed", help="Feed name (default: parent directory name)")

    p.add_argument("--endpoint", action="append", help="Endpoint name from the sources file; repeatable (rest source)")

    p.add_argument("--every", type=float, help="Repeat every N seconds instead of running once")
    p.add_argument("--max-runs", type=int, help="Stop after N scheduled runs")

    args = p.parse_args()

    settings = load_settings()
    configure_logging_if_needed(settings.log_level)

    if args.source == "file":
        if not args.path:
            p.error("--path is required for --source file")
        source = FileSource()
        fetch_kwargs = {"paths": args.path, "format_tag": args.format, "feed": args.feed}
    else:
        source = RestSource(
            load_endpoints(settings.sources_file),
            EnvSecretStore(),
            HttpPolicy.from_settings(settings),
        )
        fetch_kwargs = {"endpoint_names": args.endpoint}

    def run_once():
        db: Session = SessionLocal()
        try:
            result = run_ingest_job(db, source, settings, job_meta=vars(args), **fetch_kwargs)
            print(result)
        finally:
            db.close()

    if args.every:
        IntervalTrigger(args.every).run(run_once, max_runs=args.max_runs)
    else:
        run_once()


if __name__ == "__main__":
    main()

# Manual historical backfill: python -m samsync.scripts.backfill [months]
import logging
import sys

from samsync.ingest.sam_gov import SamGovClient
from samsync.scripts.init_db import main as init_db_main
from samsync.settings import settings
from samsync.sync import SyncOrchestrator

def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    months = int(argv[0]) if argv else settings.BACKFILL_MONTHS

    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    init_db_main()

    outcome = SyncOrchestrator(SamGovClient()).backfill(months)
    print(f"Backfill: {len(outcome.succeeded)} windows ok, {len(outcome.failed)} failed, {outcome.records} records.")
    for start, end, error in outcome.failed:
        print(f"  {start} to {end}: {error}")
    return 1 if outcome.failed else 0

if __name__ == "__main__":
    sys.exit(main())

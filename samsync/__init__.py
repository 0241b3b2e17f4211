"""SAM.gov opportunity cache, sync/backfill pipeline and capability matching."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from samsync.db import SessionLocal
from samsync.errors import StorageError
from samsync.ingest.base import SyncContext
from samsync.models import ApiCredential
from samsync.settings import settings

logger = logging.getLogger("samsync.credentials")

SERVICE_NAME = "SAM.gov"

def resolve_sync_context(
    session_factory: sessionmaker | None = None,
    system_key: str | None = None,
) -> SyncContext:
    """
    Pick the identity a background sync runs under:
    1. a system-wide key (settings, then an active row with no organization),
    2. else any active organization key, running as that organization,
    3. else no identity at all; the source client will raise ConfigurationError.
    A failed lookup raises StorageError.
    """
    system_key = system_key if system_key is not None else settings.SAM_API_KEY
    if system_key:
        logger.info("[SAM.gov Sync] Using System API Key")
        return SyncContext(api_key=system_key, source="system")

    try:
        with (session_factory or SessionLocal)() as session:
            row = session.execute(
                select(ApiCredential)
                .where(
                    ApiCredential.service_name == SERVICE_NAME,
                    ApiCredential.is_active.is_(True),
                    ApiCredential.organization_id.is_(None),
                )
                .order_by(ApiCredential.id)
                .limit(1)
            ).scalar_one_or_none()
            if row is not None:
                logger.info("[SAM.gov Sync] Using System API Key")
                return SyncContext(api_key=row.api_key, source="system")

            row = session.execute(
                select(ApiCredential)
                .where(
                    ApiCredential.service_name == SERVICE_NAME,
                    ApiCredential.is_active.is_(True),
                    ApiCredential.organization_id.is_not(None),
                )
                .order_by(ApiCredential.id)
                .limit(1)
            ).scalar_one_or_none()
            if row is not None:
                logger.info(f"[SAM.gov Sync] Using Fallback Organization Key (OrgID: {row.organization_id})")
                return SyncContext(
                    organization_id=row.organization_id,
                    api_key=row.api_key,
                    source="organization",
                )
    except SQLAlchemyError as e:
        logger.error(f"[SAM.gov Sync] Error determining sync context: {e}")
        raise StorageError(f"Could not read API credentials: {e}") from e

    logger.warning("[SAM.gov Sync] ⚠️ No valid API Key found (System or Organization)")
    return SyncContext()

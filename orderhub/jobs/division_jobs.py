"""
Division Jobs

Periodic reconciliation of split orders. Divisions change state on their
own; when a partial split left the original order in place, its status is
brought in line with the aggregate verdict of its divisions.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from orderhub.core.exceptions import TransientDataError

logger = logging.getLogger(__name__)


async def sync_divided_orders(session_factory=None) -> Dict[str, Any]:
    """
    Sync every original order that still has open divisions.

    Returns counts of refs checked, originals updated and failures.
    """
    from orderhub.database import get_db_session
    from orderhub.services.division_completion_service import DivisionCompletionService

    start_time = datetime.now(timezone.utc)
    checked = 0
    updated = 0
    failed = 0

    async with get_db_session(session_factory) as session:
        service = DivisionCompletionService(session)
        refs = await service.get_open_original_refs()

        for original_ref in sorted(refs):
            checked += 1
            try:
                original = await service.sync_original_order(original_ref)
                if original is not None:
                    updated += 1
            except TransientDataError as e:
                failed += 1
                logger.error(f"Division sync failed for original order {original_ref}: {e.message}")

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    if checked:
        logger.info(
            f"Division sync completed in {duration:.2f}s: "
            f"{checked} original orders checked, {updated} updated, {failed} failed"
        )

    return {"checked": checked, "updated": updated, "failed": failed}

"""View counter.

Admission of a view is one atomic conditional increment performed by the
repository (``BundleRepository.admit_view``): the count goes up only if
``max_views == 0 or current_views < max_views``. With ``max_views = N`` and
any number of concurrent callers starting from zero, exactly N are admitted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ...observability.logging import get_logger
from ...observability.metrics import QR_VIEW_ADMISSIONS_TOTAL
from ..errors import NotFound
from .model import AdmitResult

if TYPE_CHECKING:
    from ..protocols import BundleRepository

logger = get_logger(__name__)


class ViewCounter:
    def __init__(self, repo: BundleRepository) -> None:
        self._repo = repo

    async def admit_view(self, bundle_id: str) -> AdmitResult:
        """Atomically admit one view.

        Raises:
            NotFound: If the bundle no longer exists.
        """
        result = await self._repo.admit_view(bundle_id)
        if result is None:
            raise NotFound()
        QR_VIEW_ADMISSIONS_TOTAL.labels(
            result='admitted' if result.admitted else 'quota_exceeded',
        ).inc()
        if not result.admitted:
            logger.info('qr_view_rejected', bundle_id=bundle_id, current_views=result.new_count)
        return result

"""
ConversionService - One-way conversion marking on the click ledger
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError

from repositories.click_repository import ClickRepository
from services.epc_service import EPCService
from services.exceptions import ValidationError, NotFoundError, InternalError
from survey_database import ClickTrack
from utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class ConversionService:
    """
    Marks clicks as converted exactly once.

    UNCONVERTED -> CONVERTED is the only transition. Marking a click that is
    already converted is a successful no-op that returns the stored record;
    the revenue supplied by the replay is ignored.
    """

    def __init__(self,
                 click_repository: ClickRepository,
                 epc_service: Optional[EPCService] = None,
                 clock: Optional[Clock] = None):
        self.click_repository = click_repository
        self.epc_service = epc_service
        self.clock = clock or SystemClock()

    @staticmethod
    def _parse_revenue(revenue: Union[None, int, float, str, Decimal]) -> Optional[Decimal]:
        if revenue is None or revenue == '':
            return None
        if isinstance(revenue, bool):
            raise ValidationError("Revenue must be a number", code="INVALID_REVENUE")
        try:
            amount = Decimal(str(revenue))
        except (InvalidOperation, ValueError):
            raise ValidationError("Revenue must be a number", code="INVALID_REVENUE")
        if not amount.is_finite():
            raise ValidationError("Revenue must be a number", code="INVALID_REVENUE")
        if amount < 0:
            raise ValidationError("Revenue cannot be negative", code="INVALID_REVENUE")
        # Zero revenue is recorded as no revenue
        return amount if amount > 0 else None

    def _apply_conversion(self, click_id: str, revenue: Optional[Decimal]) -> Tuple[ClickTrack, bool]:
        click = self.click_repository.get_by_click_id(click_id)
        if click is None:
            raise NotFoundError(f"Click {click_id} not found", code="CLICK_NOT_FOUND")

        if click.converted:
            logger.info(f"Click {click_id} already converted, ignoring replay")
            return click, False

        transitioned = self.click_repository.mark_converted_if_unconverted(
            click_id, revenue, self.clock.now()
        )
        if not transitioned:
            logger.info(f"Click {click_id} was converted by a concurrent request")

        return self.click_repository.get_by_click_id(click_id, refresh=True), transitioned

    def mark_conversion(self, click_id: str, revenue=None) -> ClickTrack:
        """
        Mark a click as converted.

        Args:
            click_id: Click identifier
            revenue: Optional non-negative revenue amount

        Returns:
            The click record, identical in shape whether this call converted it
            or found it already converted

        Raises:
            ValidationError: If click_id is missing or revenue is invalid
            NotFoundError: If the click does not exist
            InternalError: If the transaction fails
        """
        return self._convert(click_id, revenue, update_epc=False)

    def mark_conversion_with_epc_update(self, click_id: str, revenue=None) -> ClickTrack:
        """
        Mark a click as converted and refresh the offer's cached EPC in the
        same transaction.

        Raises:
            ValidationError, NotFoundError, InternalError: As mark_conversion
        """
        if self.epc_service is None:
            raise InternalError("EPC service is not configured")
        return self._convert(click_id, revenue, update_epc=True)

    def _convert(self, click_id: str, revenue, update_epc: bool) -> ClickTrack:
        if not click_id:
            raise ValidationError("Click ID is required", code="MISSING_CLICK_ID")
        amount = self._parse_revenue(revenue)

        try:
            with self.click_repository.atomic():
                click, transitioned = self._apply_conversion(click_id, amount)
                if update_epc:
                    self.epc_service.update_epc(click.offer_id, commit=False)
        except SQLAlchemyError as e:
            logger.error(f"Failed to mark click {click_id} converted: {e}")
            raise InternalError(f"Failed to record conversion for click {click_id}") from e

        if transitioned:
            logger.info(f"Click {click_id} converted with revenue {amount or 0}")
        return click

"""
OfferRepository - Data access layer for the offer catalog
"""

from typing import List, Optional, Dict, Any, Iterable
from datetime import datetime
from sqlalchemy import desc
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from repositories.base_repository import BaseRepository
from survey_database import Offer
from services.enums import OfferStatus
from utils.datetime_utils import format_utc_iso
import logging

logger = logging.getLogger(__name__)


class OfferRepository(BaseRepository[Offer]):
    """Repository for Offer data access"""

    def __init__(self, session: Session):
        """Initialize repository with database session"""
        super().__init__(session, Offer)

    def get_active_offers(self, offer_ids: Optional[Iterable[str]] = None) -> List[Offer]:
        """
        ACTIVE offers, newest first.

        Args:
            offer_ids: Optional allow-list; an empty list yields no offers
        """
        query = self.session.query(Offer).filter(Offer.status == OfferStatus.ACTIVE.value)
        if offer_ids is not None:
            offer_ids = list(offer_ids)
            if not offer_ids:
                return []
            query = query.filter(Offer.id.in_(offer_ids))
        return query.order_by(desc(Offer.created_at), Offer.id).all()

    def merge_cached_metrics(self, offer: Offer, metrics: Dict[str, Any],
                             stamped_at: datetime) -> Offer:
        """
        Merge freshly calculated metrics into the offer's cached metrics.

        Keys not present in ``metrics`` are preserved; ``last_updated`` is
        always restamped. A new dict is assigned so the JSON column is
        detected as changed.

        Raises:
            SQLAlchemyError: If database operation fails
        """
        existing = offer.metrics if isinstance(offer.metrics, dict) else {}
        merged = {**existing, **metrics, 'last_updated': format_utc_iso(stamped_at)}

        try:
            offer.metrics = merged
            self.session.flush()
            logger.debug(f"Merged cached metrics for offer {offer.id}")
            return offer
        except SQLAlchemyError as e:
            logger.error(f"Error caching metrics for offer {offer.id}: {e}")
            self.session.rollback()
            raise

"""
TrackingService - Click ledger writes, attribution URLs and ledger analytics
"""

import logging
import re
import uuid
from typing import Dict, Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from repositories.click_repository import ClickRepository
from repositories.offer_repository import OfferRepository
from repositories.question_repository import QuestionRepository
from repositories.survey_response_repository import SurveyResponseRepository
from services.enums import DeviceType
from services.exceptions import ValidationError, NotFoundError, InternalError
from survey_database import ClickTrack, Offer
from utils.clock import Clock, SystemClock
from utils.datetime_utils import to_epoch_ms, format_utc_iso
from utils.epc_calculator import calculate_epc
from utils import tracking_urls

logger = logging.getLogger(__name__)

TABLET_PATTERN = re.compile(r'iPad|Android(?!.*Mobile)', re.IGNORECASE)
MOBILE_PATTERN = re.compile(r'Mobile|iPhone|Android', re.IGNORECASE)


def detect_device_type(user_agent: Optional[str]) -> DeviceType:
    """Classify a user agent as TABLET, MOBILE or DESKTOP."""
    if not user_agent:
        return DeviceType.DESKTOP
    if TABLET_PATTERN.search(user_agent):
        return DeviceType.TABLET
    if MOBILE_PATTERN.search(user_agent):
        return DeviceType.MOBILE
    return DeviceType.DESKTOP


class TrackingService:
    """Service for recording CTA clicks and building attribution URLs"""

    DEFAULT_PIXEL_URL = 'https://tracking.survai.app/pixel'

    def __init__(self,
                 click_repository: ClickRepository,
                 offer_repository: OfferRepository,
                 response_repository: SurveyResponseRepository,
                 question_repository: Optional[QuestionRepository] = None,
                 clock: Optional[Clock] = None,
                 pixel_base_url: Optional[str] = None):
        """
        Initialize the tracking service.

        Args:
            click_repository: Click ledger access
            offer_repository: Offer lookups for status and destination template
            response_repository: Respondent session lookups
            question_repository: Question lookups for impression recording
            clock: Source of click timestamps
            pixel_base_url: Base URL of the conversion pixel endpoint
        """
        self.click_repository = click_repository
        self.offer_repository = offer_repository
        self.response_repository = response_repository
        self.question_repository = question_repository
        self.clock = clock or SystemClock()
        self.pixel_base_url = pixel_base_url or self.DEFAULT_PIXEL_URL

    # ===== Click recording =====

    def record_click(self,
                     session_id: str,
                     question_id: str,
                     offer_id: str,
                     button_variant_id: str,
                     timestamp: Optional[int] = None,
                     user_agent: Optional[str] = None,
                     ip_address: Optional[str] = None) -> ClickTrack:
        """
        Append a click to the ledger.

        The session must exist and the offer must exist and be ACTIVE; when
        either check fails nothing is written.

        Args:
            session_id: Respondent session identifier
            question_id: Question whose button was clicked
            offer_id: Offer behind the button
            button_variant_id: Button variant shown
            timestamp: Client epoch milliseconds, kept in the click metadata
            user_agent: Client user agent
            ip_address: Client IP address

        Returns:
            The persisted ClickTrack (VALID, unconverted)

        Raises:
            ValidationError: If an identifier is missing or the offer is not ACTIVE
            NotFoundError: If the session or offer does not exist
            InternalError: If the write fails
        """
        for name, value in (('session_id', session_id), ('question_id', question_id),
                            ('offer_id', offer_id), ('button_variant_id', button_variant_id)):
            if not value:
                raise ValidationError(f"{name} is required", code="MISSING_FIELD")

        response = self.response_repository.get_by_session_id(session_id)
        if response is None:
            raise NotFoundError(f"Session {session_id} not found", code="SESSION_NOT_FOUND")

        offer = self.offer_repository.get_by_id(offer_id)
        if offer is None:
            raise NotFoundError(f"Offer {offer_id} not found", code="OFFER_NOT_FOUND")
        if not offer.is_active:
            raise ValidationError(f"Offer {offer_id} is not active", code="OFFER_NOT_ACTIVE")

        clicked_at = self.clock.now()
        click_data = {
            'click_id': str(uuid.uuid4()),
            'offer_id': offer_id,
            'response_id': response.id,
            'session_id': session_id,
            'question_id': question_id,
            'button_variant_id': button_variant_id,
            'ip_address': ip_address,
            'user_agent': user_agent,
            'device_type': detect_device_type(user_agent).value,
            'clicked_at': clicked_at,
            'click_metadata': {
                'questionId': question_id,
                'buttonVariantId': button_variant_id,
                'timestamp': timestamp if timestamp is not None else to_epoch_ms(clicked_at)
            }
        }

        try:
            with self.click_repository.atomic():
                click = self.click_repository.create_click(click_data)
        except SQLAlchemyError as e:
            logger.error(f"Failed to record click for offer {offer_id}: {e}")
            raise InternalError("Failed to record click") from e

        logger.info(f"Recorded click {click.click_id} for offer {offer_id} question {question_id}")
        return click

    def track_click(self, session_id: str, question_id: str, offer_id: str,
                    button_variant_id: str, timestamp: Optional[int] = None,
                    user_agent: Optional[str] = None,
                    ip_address: Optional[str] = None) -> Dict[str, Any]:
        """
        Record a click and build the offer redirect for it.

        Returns:
            dict with the click record and the redirect URL
        """
        click = self.record_click(session_id, question_id, offer_id, button_variant_id,
                                  timestamp=timestamp, user_agent=user_agent,
                                  ip_address=ip_address)

        response = self.response_repository.get_by_session_id(session_id)
        offer = self.offer_repository.get_by_id(offer_id)
        redirect_url = self.build_offer_url(offer, {
            'click_id': click.click_id,
            'survey_id': response.survey_id if response else None,
            'session_id': session_id
        })

        return {'click': click, 'redirect_url': redirect_url}

    # ===== Impressions =====

    def record_impression(self, question_id: str, session_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Record that a question was shown.

        Raises:
            ValidationError: If question_id is missing
            NotFoundError: If the question or the given session does not exist
            InternalError: If the write fails
        """
        if not question_id:
            raise ValidationError("question_id is required", code="MISSING_FIELD")

        question = self.question_repository.get_by_id(question_id)
        if question is None:
            raise NotFoundError(f"Question {question_id} not found", code="QUESTION_NOT_FOUND")

        response_id = None
        if session_id:
            response = self.response_repository.get_by_session_id(session_id)
            if response is None:
                raise NotFoundError(f"Session {session_id} not found", code="SESSION_NOT_FOUND")
            response_id = response.id

        try:
            with self.question_repository.atomic():
                impression = self.question_repository.record_impression(
                    question_id, response_id=response_id, shown_at=self.clock.now()
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to record impression for question {question_id}: {e}")
            raise InternalError("Failed to record impression") from e

        return {
            'id': impression.id,
            'question_id': question_id,
            'response_id': response_id,
            'shown_at': format_utc_iso(impression.shown_at)
        }

    # ===== URL builders =====

    def build_pixel_url(self, click_id: str, survey_id: str) -> str:
        """Conversion pixel URL for a click, cache-busted with the current time."""
        return tracking_urls.build_pixel_url(
            self.pixel_base_url, click_id, survey_id, to_epoch_ms(self.clock.now())
        )

    def generate_pixel(self, click_id: str, survey_id: str) -> str:
        if not click_id or not survey_id:
            raise ValidationError("click_id and survey_id are required", code="MISSING_FIELD")
        return self.build_pixel_url(click_id, survey_id)

    @staticmethod
    def build_offer_url(offer: Offer, variables: Dict[str, Optional[str]]) -> str:
        """
        Substitute tracking variables into the offer's destination template.

        Raises:
            ValidationError: If click_id is missing
        """
        try:
            return tracking_urls.build_offer_url(offer.destination_url, variables)
        except ValueError as e:
            raise ValidationError(str(e), code="MISSING_CLICK_ID")

    # ===== Analytics =====

    def get_analytics(self, offer_id: Optional[str] = None) -> Dict[str, Any]:
        """All-time ledger totals, optionally for a single offer."""
        totals = self.click_repository.get_all_time_totals(offer_id)
        metrics = calculate_epc(totals.total_clicks, totals.total_conversions,
                                totals.total_revenue, now=self.clock.now())
        return {
            'offer_id': offer_id,
            'total_clicks': metrics.total_clicks,
            'conversions': metrics.total_conversions,
            'conversion_rate': metrics.conversion_rate,
            'total_revenue': metrics.total_revenue,
            'epc': metrics.epc
        }

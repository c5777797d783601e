# survey_database.py

from extensions import db
from utils.datetime_utils import utc_now, ensure_utc, format_utc_iso
from services.enums import (
    OfferStatus, OfferCategory, ClickStatus, ResponseStatus, QuestionStatus
)
from decimal import Decimal
import uuid


def _uuid_str() -> str:
    return str(uuid.uuid4())


def _iso(value):
    return format_utc_iso(value) if value else None


# --- Survey session ---
class SurveyResponse(db.Model):
    """A respondent's session inside a survey"""
    __tablename__ = 'survey_responses'

    id = db.Column(db.String(36), primary_key=True, default=_uuid_str)
    survey_id = db.Column(db.String(255), nullable=False, index=True)
    session_id = db.Column(db.String(255), nullable=False, unique=True, index=True)
    status = db.Column(db.String(20), nullable=False, default=ResponseStatus.IN_PROGRESS.value)

    # Session context captured when the respondent landed
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(1000), nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    clicks = db.relationship('ClickTrack', backref='response', lazy=True)

    def __repr__(self):
        return f'<SurveyResponse {self.session_id} ({self.status})>'


# --- Offer catalog ---
class Offer(db.Model):
    """A promotable affiliate destination"""
    __tablename__ = 'offers'

    id = db.Column(db.String(36), primary_key=True, default=_uuid_str)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(20), nullable=False, default=OfferCategory.OTHER.value)
    status = db.Column(db.String(20), nullable=False, default=OfferStatus.ACTIVE.value, index=True)

    # Destination template, may contain {click_id}, {survey_id}, {session_id}
    destination_url = db.Column(db.String(2048), nullable=False)
    pixel_url = db.Column(db.String(2048), nullable=True)

    # Commercial configuration
    payout = db.Column(db.Numeric(12, 2), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default='USD')
    daily_click_cap = db.Column(db.Integer, nullable=True)

    # Write-back cache of EPC calculator output, never authoritative
    metrics = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    clicks = db.relationship('ClickTrack', backref='offer', lazy=True)

    @property
    def is_active(self) -> bool:
        return self.status == OfferStatus.ACTIVE.value

    def __repr__(self):
        return f'<Offer {self.id}: {self.title} ({self.status})>'

    def to_dict(self):
        """Convert offer to dictionary"""
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'category': self.category,
            'status': self.status,
            'destination_url': self.destination_url,
            'pixel_url': self.pixel_url,
            'payout': float(self.payout) if self.payout is not None else None,
            'currency': self.currency,
            'daily_click_cap': self.daily_click_cap,
            'metrics': self.metrics or {},
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


# --- Question catalog ---
class Question(db.Model):
    """A CTA question shown to respondents"""
    __tablename__ = 'questions'

    id = db.Column(db.String(36), primary_key=True, default=_uuid_str)
    survey_id = db.Column(db.String(255), nullable=False, index=True)
    # Generated elsewhere; stored and returned, never inspected
    text = db.Column(db.Text, nullable=False)
    # Static fallback order, ascending = earlier
    order = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default=QuestionStatus.ACTIVE.value)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)

    offer_links = db.relationship('QuestionOffer', backref='question', lazy=True,
                                  cascade="all, delete-orphan")
    impressions = db.relationship('QuestionImpression', backref='question', lazy=True)

    def __repr__(self):
        return f'<Question {self.id} order={self.order}>'

    def to_dict(self):
        return {
            'id': self.id,
            'survey_id': self.survey_id,
            'text': self.text,
            'order': self.order,
            'status': self.status
        }


class QuestionOffer(db.Model):
    """Offers explicitly eligible for a question"""
    __tablename__ = 'question_offers'

    question_id = db.Column(db.String(36), db.ForeignKey('questions.id'), primary_key=True)
    offer_id = db.Column(db.String(36), db.ForeignKey('offers.id'), primary_key=True)

    offer = db.relationship('Offer')


class QuestionImpression(db.Model):
    """One showing of a question to a respondent"""
    __tablename__ = 'question_impressions'

    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.String(36), db.ForeignKey('questions.id'), nullable=False, index=True)
    response_id = db.Column(db.String(36), db.ForeignKey('survey_responses.id'), nullable=True)
    shown_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, index=True)

    __table_args__ = (
        db.Index('idx_question_impressions_question_shown', 'question_id', 'shown_at'),
    )


# --- Click ledger ---
class ClickTrack(db.Model):
    """
    One click-through on a CTA button. System of record for attribution.

    Created once, converted at most once, never deleted by the service.
    """
    __tablename__ = 'click_tracks'

    id = db.Column(db.Integer, primary_key=True)
    click_id = db.Column(db.String(36), nullable=False, unique=True, index=True)

    offer_id = db.Column(db.String(36), db.ForeignKey('offers.id'), nullable=False, index=True)
    response_id = db.Column(db.String(36), db.ForeignKey('survey_responses.id'), nullable=True)
    session_id = db.Column(db.String(255), nullable=False)
    question_id = db.Column(db.String(36), nullable=True, index=True)
    button_variant_id = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=ClickStatus.VALID.value)

    # Conversion state, set once
    converted = db.Column(db.Boolean, nullable=False, default=False)
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revenue = db.Column(db.Numeric(12, 2), nullable=True)

    # Client context
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(1000), nullable=True)
    device_type = db.Column(db.String(10), nullable=True)

    clicked_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, index=True)
    click_metadata = db.Column(db.JSON, nullable=True)

    __table_args__ = (
        db.Index('idx_click_tracks_offer_clicked', 'offer_id', 'clicked_at'),
        db.Index('idx_click_tracks_question_clicked', 'question_id', 'clicked_at'),
    )

    def __repr__(self):
        return f'<ClickTrack {self.click_id} offer={self.offer_id} converted={self.converted}>'

    @property
    def revenue_amount(self) -> Decimal:
        return Decimal(self.revenue) if self.revenue is not None else Decimal('0')

    def to_dict(self):
        """Convert click record to the API representation"""
        return {
            'id': self.id,
            'click_id': self.click_id,
            'offer_id': self.offer_id,
            'response_id': self.response_id,
            'session_id': self.session_id,
            'question_id': self.question_id,
            'button_variant_id': self.button_variant_id,
            'status': self.status,
            'converted': bool(self.converted),
            'converted_at': _iso(self.converted_at),
            'revenue': float(self.revenue_amount),
            'device_type': self.device_type,
            'clicked_at': _iso(ensure_utc(self.clicked_at)) if self.clicked_at else None,
            'metadata': self.click_metadata or {}
        }

# tests/conftest.py
"""
Shared fixtures for the pytest test suite.

Every test gets a fresh application on an in-memory SQLite database and a
frozen clock registered before any service is built, so window boundaries
are deterministic.
"""
import os
import uuid
import pytest
from datetime import datetime, timezone, timedelta
from decimal import Decimal

from app import create_app
from extensions import db
from survey_database import SurveyResponse, Offer, Question, QuestionOffer, QuestionImpression, ClickTrack
from services.enums import OfferStatus, ClickStatus
from utils.clock import FrozenClock

FROZEN_NOW = datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


def create_test_offer(**kwargs):
    """Offer with sensible defaults; not added to the session."""
    defaults = {
        'id': str(uuid.uuid4()),
        'title': 'Test Offer',
        'category': 'FINANCE',
        'status': OfferStatus.ACTIVE.value,
        'destination_url': 'https://offers.example.com/land?ref={click_id}',
        'payout': Decimal('5.00'),
        'currency': 'USD',
        'created_at': FROZEN_NOW - timedelta(days=30)
    }
    defaults.update(kwargs)
    return Offer(**defaults)


def create_test_click(**kwargs):
    """ClickTrack with sensible defaults; not added to the session."""
    defaults = {
        'click_id': str(uuid.uuid4()),
        'session_id': 'session-1',
        'status': ClickStatus.VALID.value,
        'converted': False,
        'clicked_at': FROZEN_NOW - timedelta(hours=1)
    }
    defaults.update(kwargs)
    return ClickTrack(**defaults)


class Seeder:
    """Adds rows to the test database and commits"""

    def __init__(self, session):
        self.session = session

    def _save(self, entity):
        self.session.add(entity)
        self.session.commit()
        return entity

    def response(self, session_id='session-1', survey_id='survey-1', **kwargs):
        return self._save(SurveyResponse(session_id=session_id, survey_id=survey_id, **kwargs))

    def offer(self, **kwargs):
        return self._save(create_test_offer(**kwargs))

    def question(self, survey_id='survey-1', order=1, text='Would you like to save on insurance?', **kwargs):
        return self._save(Question(survey_id=survey_id, order=order, text=text, **kwargs))

    def link(self, question, offer):
        return self._save(QuestionOffer(question_id=question.id, offer_id=offer.id))

    def impression(self, question, shown_at=None):
        return self._save(QuestionImpression(
            question_id=question.id,
            shown_at=shown_at or FROZEN_NOW - timedelta(hours=2)
        ))

    def click(self, offer, converted=False, revenue=None, **kwargs):
        click = create_test_click(offer_id=offer.id, converted=converted, **kwargs)
        if converted:
            click.revenue = Decimal(str(revenue)) if revenue is not None else None
            click.converted_at = kwargs.get('clicked_at', FROZEN_NOW)
        return self._save(click)


@pytest.fixture
def frozen_clock():
    return FrozenClock(FROZEN_NOW)


@pytest.fixture
def app(frozen_clock):
    """A fresh application per test with all tables created."""
    os.environ['FLASK_ENV'] = 'testing'

    app = create_app(config_name='testing')
    app.services.register('clock', frozen_clock)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    return db.session


@pytest.fixture
def seed(db_session):
    return Seeder(db_session)


@pytest.fixture
def runner(app):
    return app.test_cli_runner()

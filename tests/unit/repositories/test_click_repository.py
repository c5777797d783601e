"""
Tests for ClickRepository against a real SQLite session
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from repositories.click_repository import ClickRepository, ClickTotals
from services.enums import ClickStatus
from tests.conftest import FROZEN_NOW

WEEK_AGO = FROZEN_NOW - timedelta(days=7)


class TestClickRepository:

    @pytest.fixture
    def repository(self, db_session):
        return ClickRepository(db_session)

    @pytest.fixture
    def offer(self, seed):
        return seed.offer()

    # ===== create_click =====

    def test_create_click_starts_valid_and_unconverted(self, repository, offer):
        click = repository.create_click({
            'click_id': 'clk-1',
            'offer_id': offer.id,
            'session_id': 'session-1',
            'clicked_at': FROZEN_NOW,
            # caller-supplied conversion state is ignored
            'converted': True,
            'revenue': Decimal('99')
        })

        assert click.id is not None
        assert click.status == ClickStatus.VALID.value
        assert click.converted is False
        assert click.revenue is None

    def test_create_click_requires_identifiers(self, repository, offer):
        with pytest.raises(ValueError):
            repository.create_click({'offer_id': offer.id, 'session_id': 'session-1'})

    # ===== conditional conversion =====

    def test_conversion_update_matches_only_once(self, repository, seed, offer):
        # Arrange
        seed.click(offer, click_id='clk-1')

        # Act
        first = repository.mark_converted_if_unconverted('clk-1', Decimal('10'), FROZEN_NOW)
        second = repository.mark_converted_if_unconverted('clk-1', Decimal('20'), FROZEN_NOW)
        repository.commit()

        # Assert
        assert first is True
        assert second is False
        click = repository.get_by_click_id('clk-1', refresh=True)
        assert click.converted is True
        assert click.revenue == Decimal('10')

    def test_conversion_update_unknown_click(self, repository):
        assert repository.mark_converted_if_unconverted('missing', None, FROZEN_NOW) is False

    def test_refresh_reloads_row_held_by_session(self, repository, seed, offer):
        held = seed.click(offer, click_id='clk-1')
        assert held.converted is False

        repository.mark_converted_if_unconverted('clk-1', Decimal('3'), FROZEN_NOW)
        reloaded = repository.get_by_click_id('clk-1', refresh=True)

        assert reloaded is held
        assert held.converted is True

    # ===== windowed totals =====

    def test_window_includes_click_exactly_at_lower_bound(self, repository, seed, offer):
        seed.click(offer, converted=True, revenue=5, clicked_at=WEEK_AGO)

        totals = repository.get_window_totals(offer.id, WEEK_AGO, FROZEN_NOW)

        assert totals == ClickTotals(1, 1, Decimal('5'))

    def test_window_excludes_click_one_second_older(self, repository, seed, offer):
        seed.click(offer, converted=True, revenue=5, clicked_at=WEEK_AGO - timedelta(seconds=1))

        totals = repository.get_window_totals(offer.id, WEEK_AGO, FROZEN_NOW)

        assert totals.total_clicks == 0
        assert totals.total_revenue == Decimal('0')

    def test_window_totals_count_revenue_of_converted_clicks_only(self, repository, seed, offer):
        # Arrange
        seed.click(offer, converted=True, revenue=10)
        seed.click(offer, converted=True, revenue=None)
        seed.click(offer)
        seed.click(offer, status=ClickStatus.DUPLICATE.value)

        # Act
        totals = repository.get_window_totals(offer.id, WEEK_AGO, FROZEN_NOW)

        # Assert
        assert totals.total_clicks == 4
        assert totals.total_conversions == 2
        assert totals.total_revenue == Decimal('10')

    def test_totals_by_offer_groups_and_omits_idle_offers(self, repository, seed, offer):
        other = seed.offer()
        idle = seed.offer()
        seed.click(offer, converted=True, revenue=4)
        seed.click(offer)
        seed.click(other, converted=True, revenue='2.50')
        seed.click(other, clicked_at=FROZEN_NOW - timedelta(days=10))

        totals = repository.get_totals_by_offer([offer.id, other.id, idle.id], WEEK_AGO, FROZEN_NOW)

        assert totals[offer.id] == ClickTotals(2, 1, Decimal('4'))
        assert totals[other.id] == ClickTotals(1, 1, Decimal('2.5'))
        assert idle.id not in totals

    def test_totals_by_offer_with_no_ids(self, repository):
        assert repository.get_totals_by_offer([], WEEK_AGO, FROZEN_NOW) == {}

    def test_clicks_by_question(self, repository, seed, offer):
        seed.click(offer, question_id='q-1')
        seed.click(offer, question_id='q-1')
        seed.click(offer, question_id='q-2', clicked_at=FROZEN_NOW - timedelta(days=8))

        counts = repository.count_clicks_by_question(['q-1', 'q-2'], WEEK_AGO, FROZEN_NOW)

        assert counts == {'q-1': 2}

    def test_all_time_totals(self, repository, seed, offer):
        other = seed.offer()
        seed.click(offer, converted=True, revenue=10, clicked_at=FROZEN_NOW - timedelta(days=90))
        seed.click(other)

        assert repository.get_all_time_totals(offer.id) == ClickTotals(1, 1, Decimal('10'))
        assert repository.get_all_time_totals().total_clicks == 2

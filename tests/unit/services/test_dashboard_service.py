"""
Tests for DashboardService - filters, rollups and summary
"""

import pytest
from contextlib import contextmanager
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import Mock

from repositories.click_repository import ClickRepository, ClickTotals
from repositories.offer_repository import OfferRepository
from repositories.question_repository import QuestionRepository
from services.dashboard_service import (
    DashboardService,
    DashboardFilters,
    DashboardSnapshot,
    OfferPerformance,
)
from services.enums import TimeRange
from services.epc_service import EPCService
from services.exceptions import ValidationError
from utils.clock import FrozenClock

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def _row(offer_id, clicks, revenue, epc, conversions=0):
    return OfferPerformance(
        offer_id=offer_id, title=offer_id, category='OTHER', status='ACTIVE',
        total_clicks=clicks, total_conversions=conversions, total_revenue=revenue,
        conversion_rate=0.0, epc=epc, last_updated=NOW
    )


class TestDashboardFilters:

    def test_defaults(self):
        filters = DashboardFilters.from_params()

        assert filters.time_range == TimeRange.LAST_7D
        assert filters.offer_ids is None
        assert filters.min_epc is None

    def test_parses_values(self):
        filters = DashboardFilters.from_params('last30d', ['a', 'b'], '1.5')

        assert filters.time_range.days == 30
        assert filters.offer_ids == ('a', 'b')
        assert filters.min_epc == 1.5

    @pytest.mark.parametrize('kwargs', [
        {'time_range': 'last90d'},
        {'min_epc': '-1'},
        {'min_epc': 'lots'},
        {'offer_ids': ['']},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValidationError):
            DashboardFilters.from_params(**kwargs)


class TestDashboardService:

    @pytest.fixture
    def repositories(self):
        return SimpleNamespace(
            click=Mock(spec=ClickRepository),
            offer=Mock(spec=OfferRepository),
            question=Mock(spec=QuestionRepository),
            epc=Mock(spec=EPCService)
        )

    @pytest.fixture
    def service(self, repositories):
        session = Mock()

        @contextmanager
        def scope():
            yield session

        def factory(bound_session, now, window_days):
            assert bound_session is session
            return DashboardSnapshot(repositories.click, repositories.offer, repositories.question,
                                     repositories.epc, now)

        return DashboardService(scope, clock=FrozenClock(NOW), snapshot_factory=factory)

    # ===== summary =====

    def test_summary_sums_rows_and_takes_unweighted_mean(self, service):
        rows = [_row('a', 100, 50.0, 0.5, 5), _row('b', 2, 10.0, 5.0, 1), _row('c', 10, 0.0, 0.0)]

        summary = service.calculate_dashboard_summary(rows)

        assert summary['total_offers'] == 3
        assert summary['total_clicks'] == 112
        assert summary['total_conversions'] == 6
        assert summary['total_revenue'] == 60.0
        # (0.5 + 5.0 + 0.0) / 3, not 60 / 112
        assert summary['average_epc'] == 1.83
        assert summary['top_performing_offer']['offer_id'] == 'b'

    def test_summary_of_nothing(self, service):
        summary = service.calculate_dashboard_summary([])

        assert summary == {
            'total_offers': 0,
            'total_clicks': 0,
            'total_conversions': 0,
            'total_revenue': 0.0,
            'average_epc': 0.0,
            'top_performing_offer': None
        }

    def test_summary_top_offer_first_on_tie(self, service):
        summary = service.calculate_dashboard_summary([_row('a', 1, 1.0, 1.0), _row('b', 1, 1.0, 1.0)])

        assert summary['top_performing_offer']['offer_id'] == 'a'

    # ===== offer rollup =====

    def test_offer_rollup_filters_then_ranks(self, service, repositories):
        # Arrange
        offers = [SimpleNamespace(id=i, title=i, category='OTHER', status='ACTIVE') for i in ('a', 'b', 'c')]
        repositories.offer.get_active_offers.return_value = offers
        repositories.click.get_totals_by_offer.return_value = {
            'a': ClickTotals(4, 2, Decimal('55')),
            'b': ClickTotals(10, 1, Decimal('5')),
        }
        filters = DashboardFilters(time_range=TimeRange.LAST_24H, offer_ids=('a', 'b', 'c'), min_epc=0.5)

        # Act
        rows = service.aggregate_offer_metrics(filters)

        # Assert
        repositories.offer.get_active_offers.assert_called_once_with(('a', 'b', 'c'))
        repositories.click.get_totals_by_offer.assert_called_once_with(
            ['a', 'b', 'c'], NOW - timedelta(days=1), NOW
        )
        assert [(r.offer_id, r.epc, r.rank) for r in rows] == [('a', 13.75, 1), ('b', 0.5, 2)]

    def test_offer_without_clicks_has_zero_metrics(self, service, repositories):
        repositories.offer.get_active_offers.return_value = [
            SimpleNamespace(id='a', title='A', category='OTHER', status='ACTIVE')
        ]
        repositories.click.get_totals_by_offer.return_value = {}

        rows = service.aggregate_offer_metrics(DashboardFilters())

        assert rows[0].total_clicks == 0
        assert rows[0].epc == 0
        assert rows[0].rank == 1

    # ===== question rollup =====

    def test_question_rollup(self, service, repositories):
        # Arrange
        repositories.question.get_all_ordered.return_value = [
            SimpleNamespace(id='q1', text='First?', order=1),
            SimpleNamespace(id='q2', text='Second?', order=2),
            SimpleNamespace(id='q3', text='Third?', order=3),
        ]
        repositories.question.count_impressions_by_question.return_value = {'q1': 8, 'q2': 2}
        repositories.click.count_clicks_by_question.return_value = {'q1': 2, 'q2': 5}
        repositories.epc.get_question_epc.side_effect = lambda qid: {'q1': 1.234, 'q2': 0.0, 'q3': 0.0}[qid]

        # Act
        rows = service.aggregate_question_metrics(DashboardFilters())

        # Assert
        q1, q2, q3 = rows
        assert (q1.impressions, q1.button_clicks, q1.skips) == (8, 2, 6)
        assert q1.skip_rate == 75.0
        assert q1.click_through_rate == 25.0
        assert q1.average_epc == 1.23
        # more clicks than impressions floors skips at zero
        assert q2.skips == 0
        assert q2.click_through_rate == 250.0
        assert (q3.impressions, q3.skip_rate, q3.click_through_rate) == (0, 0.0, 0.0)

    # ===== full dashboard =====

    def test_dashboard_reads_one_snapshot(self, repositories):
        opened = []

        @contextmanager
        def scope():
            opened.append(True)
            yield Mock()

        def factory(session, now, window_days):
            return DashboardSnapshot(repositories.click, repositories.offer, repositories.question,
                                     repositories.epc, now)

        service = DashboardService(scope, clock=FrozenClock(NOW), snapshot_factory=factory)
        repositories.offer.get_active_offers.return_value = [
            SimpleNamespace(id='a', title='A', category='OTHER', status='ACTIVE')
        ]
        repositories.click.get_totals_by_offer.return_value = {'a': ClickTotals(2, 1, Decimal('3'))}
        repositories.question.get_all_ordered.return_value = []
        repositories.question.count_impressions_by_question.return_value = {}
        repositories.click.count_clicks_by_question.return_value = {}

        result = service.get_dashboard_metrics(DashboardFilters())

        assert len(opened) == 1
        assert result['summary']['total_revenue'] == 3.0
        assert result['offer_metrics'][0]['epc'] == 1.5
        assert result['time_range'] == {
            'start_date': (NOW - timedelta(days=7)).isoformat(),
            'end_date': NOW.isoformat(),
            'range': 'last7days'
        }

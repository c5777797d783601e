"""
Tests for EPCService - windowed EPC, cache write-back and question EPC policy
"""

import pytest
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import Mock

from sqlalchemy.exc import OperationalError

from repositories.click_repository import ClickRepository, ClickTotals
from repositories.offer_repository import OfferRepository
from services.epc_service import EPCService
from services.exceptions import ValidationError, NotFoundError, InternalError, EPCComputationError
from services.offer_eligibility import OfferEligibilityLookup
from utils.clock import FrozenClock
from utils.epc_calculator import EPCMetrics

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def _offer(offer_id):
    return SimpleNamespace(id=offer_id, metrics={})


class TestEPCService:
    """Test EPCService against repository doubles"""

    @pytest.fixture
    def mock_click_repository(self):
        return Mock(spec=ClickRepository)

    @pytest.fixture
    def mock_offer_repository(self):
        return Mock(spec=OfferRepository)

    @pytest.fixture
    def mock_eligibility(self):
        return Mock(spec=OfferEligibilityLookup)

    @pytest.fixture
    def service(self, mock_click_repository, mock_offer_repository, mock_eligibility):
        return EPCService(
            click_repository=mock_click_repository,
            offer_repository=mock_offer_repository,
            eligibility_lookup=mock_eligibility,
            clock=FrozenClock(NOW)
        )

    # ===== calculate_epc =====

    def test_calculate_epc_uses_inclusive_seven_day_window(self, service, mock_click_repository):
        # Arrange
        mock_click_repository.get_window_totals.return_value = ClickTotals(4, 2, Decimal('55'))

        # Act
        metrics = service.calculate_epc('offer-1')

        # Assert
        mock_click_repository.get_window_totals.assert_called_once_with(
            'offer-1', NOW - timedelta(days=7), NOW
        )
        assert metrics.epc == 13.75
        assert metrics.conversion_rate == 50.0
        assert metrics.last_updated == NOW

    def test_calculate_epc_custom_window(self, service, mock_click_repository):
        mock_click_repository.get_window_totals.return_value = ClickTotals()

        service.calculate_epc('offer-1', window_days=30)

        args = mock_click_repository.get_window_totals.call_args[0]
        assert args[1] == NOW - timedelta(days=30)

    def test_calculate_epc_no_clicks(self, service, mock_click_repository):
        mock_click_repository.get_window_totals.return_value = ClickTotals()

        metrics = service.calculate_epc('offer-1')

        assert metrics.epc == 0
        assert metrics.conversion_rate == 0

    def test_calculate_epc_rejects_negative_window(self, service):
        with pytest.raises(ValidationError):
            service.calculate_epc('offer-1', window_days=-1)

    def test_calculate_epc_requires_offer_id(self, service):
        with pytest.raises(ValidationError):
            service.calculate_epc('')

    def test_calculate_epc_unknown_offer(self, service, mock_offer_repository, mock_click_repository):
        mock_offer_repository.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            service.calculate_epc('missing')

        mock_click_repository.get_window_totals.assert_not_called()

    def test_offer_epc_result_unknown_offer_is_failure(self, service, mock_offer_repository):
        mock_offer_repository.get_by_id.return_value = None

        result = service.offer_epc_result('missing')

        assert result.is_failure
        assert 'not found' in result.error

    # ===== update_epc =====

    def test_update_epc_records_trend_against_cached_epc(self, service, mock_click_repository,
                                                        mock_offer_repository):
        # Arrange: cached epc 4.00, recomputed 5.00
        offer = SimpleNamespace(id='offer-1', metrics={'epc': 4.0})
        mock_offer_repository.get_by_id.return_value = offer
        mock_click_repository.get_window_totals.return_value = ClickTotals(2, 1, Decimal('10'))

        # Act
        service.update_epc('offer-1')

        # Assert
        payload = mock_offer_repository.merge_cached_metrics.call_args[0][1]
        assert payload['epc_trend'] == {'delta': 1.0, 'percentage': 25.0, 'trend': 'up'}

    def test_update_epc_first_refresh_compares_against_zero(self, service, mock_click_repository,
                                                           mock_offer_repository):
        mock_offer_repository.get_by_id.return_value = _offer('offer-1')
        mock_click_repository.get_window_totals.return_value = ClickTotals()

        service.update_epc('offer-1')

        payload = mock_offer_repository.merge_cached_metrics.call_args[0][1]
        assert payload['epc_trend']['trend'] == 'flat'

    def test_update_epc_refuses_inconsistent_totals(self, service, mock_click_repository, mock_offer_repository):
        # Arrange: more conversions than clicks
        mock_offer_repository.get_by_id.return_value = _offer('offer-1')
        mock_click_repository.get_window_totals.return_value = ClickTotals(1, 3, Decimal('10'))

        # Act / Assert
        with pytest.raises(EPCComputationError):
            service.update_epc('offer-1')

        mock_offer_repository.merge_cached_metrics.assert_not_called()
        mock_offer_repository.commit.assert_not_called()

    def test_update_epc_merges_and_commits(self, service, mock_click_repository, mock_offer_repository):
        # Arrange
        offer = _offer('offer-1')
        mock_offer_repository.get_by_id.return_value = offer
        mock_click_repository.get_window_totals.return_value = ClickTotals(2, 1, Decimal('10'))

        # Act
        metrics = service.update_epc('offer-1')

        # Assert
        merged_offer, payload, stamped_at = mock_offer_repository.merge_cached_metrics.call_args[0]
        assert merged_offer is offer
        assert payload['epc'] == 5.0
        assert payload['total_clicks'] == 2
        assert stamped_at == NOW
        mock_offer_repository.commit.assert_called_once()
        assert metrics.epc == 5.0

    def test_update_epc_inside_caller_transaction_does_not_commit(self, service, mock_click_repository,
                                                                  mock_offer_repository):
        mock_offer_repository.get_by_id.return_value = _offer('offer-1')
        mock_click_repository.get_window_totals.return_value = ClickTotals()

        service.update_epc('offer-1', commit=False)

        mock_offer_repository.commit.assert_not_called()

    def test_update_epc_unknown_offer(self, service, mock_offer_repository):
        mock_offer_repository.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            service.update_epc('missing')

        mock_offer_repository.merge_cached_metrics.assert_not_called()

    def test_update_epc_storage_failure_propagates(self, service, mock_click_repository, mock_offer_repository):
        mock_offer_repository.get_by_id.return_value = _offer('offer-1')
        mock_click_repository.get_window_totals.return_value = ClickTotals()
        mock_offer_repository.merge_cached_metrics.side_effect = OperationalError('UPDATE', {}, Exception('locked'))

        with pytest.raises(InternalError):
            service.update_epc('offer-1')

    # ===== question EPC =====

    def test_question_epc_averages_positive_values_only(self, service, mock_click_repository, mock_eligibility):
        # Arrange: EPCs 10.00, 0.00, 5.00
        mock_eligibility.get_eligible_offers.return_value = [_offer('a'), _offer('b'), _offer('c')]
        totals = {
            'a': ClickTotals(1, 1, Decimal('10')),
            'b': ClickTotals(3, 0, Decimal('0')),
            'c': ClickTotals(2, 1, Decimal('10')),
        }
        mock_click_repository.get_window_totals.side_effect = lambda offer_id, start, end: totals[offer_id]

        # Act
        result = service.question_epc_result('q-1')

        # Assert
        assert result.is_success
        assert result.data == 7.5
        assert result.metadata['offers_considered'] == 3
        assert result.metadata['offers_failed'] == 0

    def test_question_epc_no_eligible_offers_is_zero(self, service, mock_eligibility):
        mock_eligibility.get_eligible_offers.return_value = []

        assert service.get_question_epc('q-1') == 0.0

    def test_question_epc_all_zero_is_zero(self, service, mock_click_repository, mock_eligibility):
        mock_eligibility.get_eligible_offers.return_value = [_offer('a'), _offer('b')]
        mock_click_repository.get_window_totals.return_value = ClickTotals(5, 0, Decimal('0'))

        assert service.get_question_epc('q-1') == 0.0

    def test_failed_offer_is_excluded_not_averaged_as_zero(self, service, mock_click_repository,
                                                           mock_eligibility):
        # Arrange: offer b fails, offer a has EPC 4.00
        mock_eligibility.get_eligible_offers.return_value = [_offer('a'), _offer('b')]

        def totals(offer_id, start, end):
            if offer_id == 'b':
                raise OperationalError('SELECT', {}, Exception('timeout'))
            return ClickTotals(1, 1, Decimal('4'))

        mock_click_repository.get_window_totals.side_effect = totals

        # Act
        result = service.question_epc_result('q-1')

        # Assert
        assert result.data == 4.0
        assert result.metadata['offers_failed'] == 1

    def test_eligibility_failure_is_a_failure_result(self, service, mock_eligibility):
        mock_eligibility.get_eligible_offers.side_effect = RuntimeError('lookup down')

        result = service.question_epc_result('q-1')

        assert result.is_failure
        assert result.code == 'ELIGIBILITY_LOOKUP_FAILED'
        assert service.get_question_epc('q-1') == 0.0

    def test_offer_epc_result_wraps_errors(self, service, mock_click_repository):
        mock_click_repository.get_window_totals.side_effect = OperationalError('SELECT', {}, Exception('x'))

        result = service.offer_epc_result('offer-1')

        assert result.is_failure
        assert result.code == 'EPC_COMPUTATION_FAILED'

    def test_offer_epc_result_success(self, service, mock_click_repository):
        mock_click_repository.get_window_totals.return_value = ClickTotals(4, 2, Decimal('55'))

        result = service.offer_epc_result('offer-1')

        assert isinstance(result.unwrap(), EPCMetrics)
        assert result.unwrap().epc == 13.75

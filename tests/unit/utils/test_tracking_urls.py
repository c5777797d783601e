"""
Tests for pixel and offer URL builders
"""

import pytest
from urllib.parse import urlsplit, parse_qs, parse_qsl

from utils.tracking_urls import build_pixel_url, build_offer_url


def _query(url):
    return {key: values[0] for key, values in parse_qs(urlsplit(url).query).items()}


class TestBuildPixelUrl:

    def test_pixel_url_shape(self):
        url = build_pixel_url('https://tracking.survai.app/pixel', 'clk-1', 'srv-1', 1700000000000)

        assert url == 'https://tracking.survai.app/pixel?click_id=clk-1&survey_id=srv-1&t=1700000000000'

    def test_base_with_existing_query_uses_ampersand(self):
        url = build_pixel_url('https://px.example.com/p?src=survey', 'clk-1', 'srv-1', 5)

        assert url.startswith('https://px.example.com/p?src=survey&click_id=clk-1')


class TestBuildOfferUrl:

    def test_substitutes_tokens_and_appends_params(self):
        url = build_offer_url(
            'https://offers.example.com/land/{survey_id}?ref={click_id}',
            {'click_id': 'clk-1', 'survey_id': 'srv-1', 'session_id': 'ses-1'}
        )

        parts = urlsplit(url)
        assert parts.path == '/land/srv-1'
        assert _query(url) == {
            'ref': 'clk-1',
            'click_id': 'clk-1',
            'survey_id': 'srv-1',
            'session_id': 'ses-1'
        }

    def test_appends_params_when_template_has_no_tokens(self):
        url = build_offer_url('https://offers.example.com/land',
                              {'click_id': 'clk-1', 'survey_id': 'srv-1', 'session_id': 'ses-1'})

        assert _query(url) == {'click_id': 'clk-1', 'survey_id': 'srv-1', 'session_id': 'ses-1'}

    def test_overwrites_existing_param_of_same_name(self):
        url = build_offer_url('https://offers.example.com/land?click_id=stale&aff=7',
                              {'click_id': 'clk-1'})

        assert _query(url) == {'click_id': 'clk-1', 'aff': '7'}

    def test_repeated_template_params_are_kept(self):
        url = build_offer_url('https://offers.example.com/land?tag=a&tag=b&click_id=stale',
                              {'click_id': 'clk-1'})

        assert parse_qsl(urlsplit(url).query) == [('tag', 'a'), ('tag', 'b'), ('click_id', 'clk-1')]

    def test_values_are_url_encoded(self):
        url = build_offer_url('https://offers.example.com/{session_id}',
                              {'click_id': 'clk-1', 'session_id': 'a b/c'})

        assert '/a%20b%2Fc' in url
        assert _query(url)['session_id'] == 'a b/c'

    def test_missing_values_are_not_appended(self):
        url = build_offer_url('https://offers.example.com/land', {'click_id': 'clk-1', 'survey_id': None})

        assert _query(url) == {'click_id': 'clk-1'}

    def test_requires_click_id(self):
        with pytest.raises(ValueError, match='click_id'):
            build_offer_url('https://offers.example.com/land', {'survey_id': 'srv-1'})

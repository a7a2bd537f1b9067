#!/usr/bin/env python3
"""
Tests for app/services/enrichment_service.py.

Run with:
    python -m pytest tests/test_enrichment_service.py
"""
import os
import sys
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.exceptions import ProviderUnavailable
from app.services.cache_service import ONE_HOUR, TTLCacheService
from app.services.enrichment_service import (
    EnrichmentService, apply_enrichment, needs_enrichment,
)


HIT_PAYLOAD = {
    'links': [
        {'name': "Baldur's Gate 3", 'provider_name': 'Larian Studios',
         'release_date': '2023-09-06T00:00:00Z'},
        {'name': "Baldur's Gate 3 Deluxe", 'provider_name': 'Someone Else'},
    ]
}


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class EnrichmentTestCase(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.cache = TTLCacheService(timer=self.clock, name='psnsearch')
        self.client = MagicMock()
        self.service = EnrichmentService(self.client, self.cache)


class TestEnrich(EnrichmentTestCase):

    def test_takes_first_link(self):
        self.client.search_game.return_value = HIT_PAYLOAD
        result = self.service.enrich("Baldur's Gate 3", 'US', 'en', 19)
        self.assertEqual(result, {'publisher': 'Larian Studios', 'release_date': 'Sep 2023'})
        self.client.search_game.assert_called_once_with('Baldurs Gate 3', 'US', 'en', 19)

    def test_default_sku_fallback(self):
        self.client.search_game.return_value = {'links': [{
            'default_sku': {'provider_name': 'Sony', 'release_date': '2018-04-20T00:00:00Z'},
        }]}
        result = self.service.enrich('God of War', 'US', 'en', 19)
        self.assertEqual(result, {'publisher': 'Sony', 'release_date': 'Apr 2018'})

    def test_hit_is_cached(self):
        self.client.search_game.return_value = HIT_PAYLOAD
        self.service.enrich("Baldur's Gate 3", 'US', 'en', 19)
        self.service.enrich("baldur's gate 3", 'US', 'en', 19)
        self.assertEqual(self.client.search_game.call_count, 1)

    def test_cached_result_is_a_copy(self):
        self.client.search_game.return_value = HIT_PAYLOAD
        first = self.service.enrich("Baldur's Gate 3", 'US', 'en', 19)
        first['publisher'] = 'mutated'
        second = self.service.enrich("Baldur's Gate 3", 'US', 'en', 19)
        self.assertEqual(second['publisher'], 'Larian Studios')

    def test_locale_is_part_of_cache_key(self):
        self.client.search_game.return_value = HIT_PAYLOAD
        self.service.enrich('Hades', 'US', 'en', 19)
        self.service.enrich('Hades', 'GB', 'en', 19)
        self.assertEqual(self.client.search_game.call_count, 2)

    def test_miss_is_retried_after_an_hour(self):
        self.client.search_game.return_value = {'links': []}
        result = self.service.enrich('Obscure Game', 'US', 'en', 19)
        self.assertEqual(result, {'publisher': None, 'release_date': None})

        self.clock.now = ONE_HOUR - 1
        self.service.enrich('Obscure Game', 'US', 'en', 19)
        self.assertEqual(self.client.search_game.call_count, 1)

        self.clock.now = ONE_HOUR + 1
        self.service.enrich('Obscure Game', 'US', 'en', 19)
        self.assertEqual(self.client.search_game.call_count, 2)

    def test_provider_error_returns_nulls(self):
        self.client.search_game.side_effect = ProviderUnavailable('timeout')
        result = self.service.enrich('Hades', 'US', 'en', 19)
        self.assertEqual(result, {'publisher': None, 'release_date': None})
        key = EnrichmentService.cache_key('Hades', 'US', 'en', 19)
        self.assertIn(key, self.cache.keys())

    def test_malformed_default_sku_is_a_miss(self):
        self.client.search_game.return_value = {'links': [{'default_sku': ['x']}]}
        result = self.service.enrich('Hades', 'US', 'en', 19)
        self.assertEqual(result, {'publisher': None, 'release_date': None})

        self.clock.now = ONE_HOUR + 1
        self.service.enrich('Hades', 'US', 'en', 19)
        self.assertEqual(self.client.search_game.call_count, 2)

    def test_non_text_values_ignored(self):
        self.client.search_game.return_value = {'links': [{
            'provider_name': {'en': 'Supergiant'},
            'release_date': 20200917,
            'default_sku': {'provider_name': 'Supergiant Games'},
        }]}
        result = self.service.enrich('Hades', 'US', 'en', 19)
        self.assertEqual(result, {'publisher': 'Supergiant Games', 'release_date': None})

    def test_enrich_game_survives_malformed_payload(self):
        self.client.search_game.return_value = {'links': [{'default_sku': 'oops',
                                                           'provider_name': 42}]}
        self.assertEqual(self.service.enrich_game('Hades'),
                         {'publisher': None, 'release_date': None})

    def test_missing_arguments_skip_network(self):
        for args in (('', 'US', 'en', 19), ('Hades', '', 'en', 19),
                     ('Hades', 'US', None, 19), ('Hades', 'US', 'en', None)):
            self.assertEqual(self.service.enrich(*args),
                             {'publisher': None, 'release_date': None})
        self.client.search_game.assert_not_called()

    def test_symbol_only_name_skips_network_and_cache(self):
        self.assertEqual(self.service.enrich('™™', 'US', 'en', 19),
                         {'publisher': None, 'release_date': None})
        self.client.search_game.assert_not_called()
        self.assertEqual(self.cache.keys(), [])

    def test_enrich_game_uses_defaults(self):
        service = EnrichmentService(self.client, self.cache, default_country='GB',
                                    default_language='fr', default_age_group=5)
        self.client.search_game.return_value = {}
        service.enrich_game('Hades')
        self.client.search_game.assert_called_once_with('Hades', 'GB', 'fr', 5)


class TestApplyEnrichment(unittest.TestCase):

    RESULT = {'publisher': 'Larian Studios', 'release_date': 'Sep 2023'}

    def test_fills_placeholder_studio_and_missing_date(self):
        merged = apply_enrichment({'name': 'BG3', 'studio': 'Unknown Studio'}, self.RESULT)
        self.assertEqual(merged['studio'], 'Larian Studios')
        self.assertEqual(merged['release_date'], 'Sep 2023')

    def test_trusted_values_are_kept(self):
        cand = {'name': 'BG3', 'studio': 'Larian', 'release_date': 'Aug 2023'}
        merged = apply_enrichment(cand, self.RESULT)
        self.assertEqual(merged['studio'], 'Larian')
        self.assertEqual(merged['release_date'], 'Aug 2023')

    def test_null_result_changes_nothing(self):
        cand = {'name': 'BG3'}
        self.assertEqual(apply_enrichment(cand, {'publisher': None, 'release_date': None}), cand)

    def test_needs_enrichment(self):
        self.assertFalse(needs_enrichment({'studio': None}, False))
        self.assertTrue(needs_enrichment({'studio': 'Unknown Studio', 'release_date': 'x'}, True))
        self.assertTrue(needs_enrichment({'studio': 'Valve'}, True))
        self.assertFalse(needs_enrichment({'studio': 'Valve', 'release_date': 'Nov 2004'}, True))


if __name__ == '__main__':
    unittest.main()

#!/usr/bin/env python3
"""
Tests for app/services/catalog_service.py (Steam store search / details).

Run with:
    python -m pytest tests/test_catalog_service.py
"""
import os
import sys
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.exceptions import CatalogError, ProviderUnavailable, ValidationError
from app.services.cache_service import TTLCacheService
from app.services.catalog_service import CatalogService, normalize_store_details


PORTAL_2 = {
    'name': 'Portal 2',
    'release_date': {'coming_soon': False, 'date': '18 Apr, 2011'},
    'header_image': 'https://example.invalid/portal2.jpg',
    'developers': ['Valve'],
    'publishers': ['Valve'],
    'genres': [{'id': '1', 'description': 'Action'}],
    'short_description': 'Puzzles',
}


class TestNormalizeStoreDetails(unittest.TestCase):

    def test_basic_fields(self):
        details = normalize_store_details('620', PORTAL_2)
        self.assertEqual(details['release_date'], 'Apr 2011')
        self.assertEqual(details['studio'], 'Valve')
        self.assertEqual(details['cover'], 'https://example.invalid/portal2.jpg')
        self.assertEqual(details['steam_app_id'], '620')
        self.assertIsNone(details['price'])

    def test_coming_soon_has_no_date(self):
        data = dict(PORTAL_2, release_date={'coming_soon': True, 'date': 'Q4 2030'})
        self.assertIsNone(normalize_store_details('1', data)['release_date'])

    def test_out_of_range_year(self):
        data = dict(PORTAL_2, release_date={'coming_soon': False, 'date': '1 Jan, 2150'})
        self.assertIsNone(normalize_store_details('1', data)['release_date'])

    def test_no_developers(self):
        data = dict(PORTAL_2, developers=[])
        self.assertIsNone(normalize_store_details('1', data)['studio'])


class CatalogTestCase(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.cache = TTLCacheService(name='steam')
        self.service = CatalogService(self.client, self.cache, max_workers=4)


class TestSearch(CatalogTestCase):

    def test_short_term_rejected(self):
        with self.assertRaises(ValidationError):
            self.service.search(' ab ')
        self.client.search.assert_not_called()

    def test_search_cached(self):
        self.client.search.return_value = {'total': 1, 'items': [{'id': 620, 'name': 'Portal 2'}]}
        first = self.service.search('Portal')
        second = self.service.search('portal ')
        self.assertFalse(first['cached'])
        self.assertTrue(second['cached'])
        self.assertEqual(second['total'], 1)
        self.client.search.assert_called_once_with('portal')

    def test_provider_error_propagates(self):
        self.client.search.side_effect = ProviderUnavailable('down')
        with self.assertRaises(ProviderUnavailable):
            self.service.search('portal')
        self.assertEqual(self.cache.keys(), [])


class TestGetDetails(CatalogTestCase):

    def test_id_count_validated(self):
        with self.assertRaises(ValidationError):
            self.service.get_details([])
        with self.assertRaises(ValidationError):
            self.service.get_details([str(i) for i in range(11)])

    def test_details_cached_under_sorted_key(self):
        self.client.get_app_details.side_effect = lambda app_id: dict(PORTAL_2, name=app_id)
        result = self.service.get_details(['620', '400'])
        self.assertFalse(result['cached'])
        self.assertEqual(set(result['games']), {'620', '400'})
        self.assertIn('games:400,620', self.cache.keys())

        again = self.service.get_details(['400', '620'])
        self.assertTrue(again['cached'])
        self.assertEqual(self.client.get_app_details.call_count, 2)

    def test_partial_failure(self):
        def details(app_id):
            if app_id == '400':
                raise ProviderUnavailable('Steam API returned 500 for app 400')
            return PORTAL_2

        self.client.get_app_details.side_effect = details
        result = self.service.get_details(['620', '400'])
        self.assertEqual(list(result['games']), ['620'])
        self.assertEqual(result['errors'][0]['app_id'], '400')

    def test_all_failed(self):
        self.client.get_app_details.side_effect = ProviderUnavailable('timeout')
        with self.assertRaises(CatalogError) as ctx:
            self.service.get_details(['620', '400'])
        self.assertEqual(len(ctx.exception.errors), 2)

    def test_unsuccessful_apps_only(self):
        self.client.get_app_details.return_value = None
        with self.assertRaises(CatalogError):
            self.service.get_details(['1'])


class TestCacheAdmin(CatalogTestCase):

    def test_bust_one_and_all(self):
        self.cache.set('search:portal', {'total': 0, 'items': []})
        self.cache.set('search:hades', {'total': 0, 'items': []})
        self.assertEqual(self.service.bust(key='search:portal'), 1)
        self.assertEqual(self.service.bust(key='search:portal'), 0)
        self.assertEqual(self.service.bust(all_keys=True), 1)

    def test_bust_needs_argument(self):
        with self.assertRaises(ValidationError):
            self.service.bust()

    def test_stats(self):
        self.cache.set('search:portal', {})
        stats = self.service.stats()
        self.assertEqual(stats['keys'], 1)
        self.assertEqual(stats['sample_keys'], ['search:portal'])


if __name__ == '__main__':
    unittest.main()

#!/usr/bin/env python3
"""
Tests for app/normalization.py helpers.

Run with:
    python -m pytest tests/test_normalization.py
"""
import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.normalization import (
    blank_to_none, format_release_date, is_placeholder_studio,
    normalize_candidate, sanitize_search_name, split_platform_tags,
)


class TestSanitizeSearchName(unittest.TestCase):

    def test_strips_symbols_and_punctuation(self):
        self.assertEqual(sanitize_search_name("Marvel's Spider-Man™"), 'Marvels SpiderMan')

    def test_collapses_whitespace(self):
        self.assertEqual(sanitize_search_name('  God   of\tWar  '), 'God of War')

    def test_accented_letters_are_dropped(self):
        self.assertEqual(sanitize_search_name('Pokémon'), 'Pokmon')

    def test_empty_and_symbol_only(self):
        self.assertEqual(sanitize_search_name(''), '')
        self.assertEqual(sanitize_search_name(None), '')
        self.assertEqual(sanitize_search_name('™®!!'), '')


class TestPlaceholderStudio(unittest.TestCase):

    def test_placeholders(self):
        for value in (None, '', '   ', 'Unknown Studio', 'Unknown Publisher'):
            self.assertTrue(is_placeholder_studio(value), value)

    def test_real_studio(self):
        self.assertFalse(is_placeholder_studio('Valve'))


class TestFormatReleaseDate(unittest.TestCase):

    def test_iso_timestamp(self):
        self.assertEqual(format_release_date('2023-08-03T00:00:00Z'), 'Aug 2023')

    def test_steam_style_dates(self):
        self.assertEqual(format_release_date('21 Mar, 2020'), 'Mar 2020')
        self.assertEqual(format_release_date('Mar 21, 2020'), 'Mar 2020')

    def test_unparsable(self):
        self.assertIsNone(format_release_date('Coming soon'))
        self.assertIsNone(format_release_date(''))
        self.assertIsNone(format_release_date(None))

    def test_year_bounds(self):
        self.assertIsNone(format_release_date('1 Jan, 1960', min_year=1970))
        self.assertIsNone(format_release_date('1 Jan, 2150', max_year=2100))
        self.assertEqual(format_release_date('1 Jan, 1999', min_year=1970, max_year=2100),
                         'Jan 1999')


class TestCandidateHelpers(unittest.TestCase):

    def test_blank_to_none(self):
        self.assertIsNone(blank_to_none('   '))
        self.assertEqual(blank_to_none(' x '), 'x')
        self.assertEqual(blank_to_none(0), 0)

    def test_normalize_candidate(self):
        cand = normalize_candidate({
            'name': '  Portal 2 ', 'steam_app_id': 620, 'psn_id': '  ',
            'studio': '', 'price': '', 'time_played': 12,
        })
        self.assertEqual(cand, {'name': 'Portal 2', 'steam_app_id': '620', 'time_played': 12})

    def test_split_platform_tags(self):
        self.assertEqual(split_platform_tags(' ps4 ,PS5,, pc '), ['PS4', 'PS5', 'PC'])
        self.assertEqual(split_platform_tags(None), [])


if __name__ == '__main__':
    unittest.main()

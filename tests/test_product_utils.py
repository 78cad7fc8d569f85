"""
Unit tests for slug derivation and RawProduct field extraction.
"""
import unittest

from catalog_populator.utils.slug import taxonomy_slug, game_slug
from catalog_populator.utils.product_utils import (
    extract_taxonomy, parse_price, normalize_release_date,
)
from tests.fakes import FOO_BAR


class TestSlugs(unittest.TestCase):
    """Slug derivation must be deterministic, lowercase and whitespace-free."""

    def test_taxonomy_slug_is_lowercase_and_hyphenated(self):
        self.assertEqual(taxonomy_slug("Acme Games"), "acme-games")
        self.assertEqual(taxonomy_slug("CD PROJEKT RED"), "cd-projekt-red")

    def test_taxonomy_slug_is_deterministic(self):
        for name in ["Paradox Interactive", "Devolver Digital", "Ubisoft Montréal", "Co-op"]:
            self.assertEqual(taxonomy_slug(name), taxonomy_slug(name))
            slug = taxonomy_slug(name)
            self.assertEqual(slug, slug.lower())
            self.assertNotRegex(slug, r"\s")

    def test_taxonomy_slug_strips_punctuation_and_accents(self):
        self.assertEqual(taxonomy_slug("Ubisoft Montréal"), "ubisoft-montreal")
        self.assertEqual(taxonomy_slug("  11 bit studios!  "), "11-bit-studios")

    def test_game_slug_uses_underscores(self):
        self.assertEqual(game_slug("foo-bar"), "foo_bar")
        self.assertEqual(game_slug("the-witcher-3-wild-hunt"), "the_witcher_3_wild_hunt")


class TestExtractTaxonomy(unittest.TestCase):

    def test_extracts_all_four_entity_types(self):
        refs = extract_taxonomy(FOO_BAR)
        self.assertEqual(refs["developer"], [{"name": "Acme", "slug": "acme"}])
        self.assertEqual(refs["publisher"], [{"name": "Acme", "slug": "acme"}])
        self.assertEqual(refs["category"], [{"name": "Action", "slug": "action"}])
        self.assertEqual(refs["platform"], [{"name": "Windows", "slug": "windows"}])

    def test_category_keeps_source_slug(self):
        refs = extract_taxonomy({"genres": [{"name": "Role-playing", "slug": "rpg"}]})
        self.assertEqual(refs["category"], [{"name": "Role-playing", "slug": "rpg"}])

    def test_category_without_slug_derives_one(self):
        refs = extract_taxonomy({"genres": [{"name": "Point and Click"}]})
        self.assertEqual(refs["category"][0]["slug"], "point-and-click")

    def test_missing_and_blank_fields_are_ignored(self):
        refs = extract_taxonomy({"title": "Bare", "developers": None, "publishers": ["", "  "]})
        self.assertEqual(refs, {"developer": [], "publisher": [], "category": [], "platform": []})


class TestParsePrice(unittest.TestCase):

    def test_parses_amount_string(self):
        self.assertEqual(parse_price(FOO_BAR), 9.99)

    def test_missing_price_is_none(self):
        self.assertIsNone(parse_price({"title": "Free?"}))
        self.assertIsNone(parse_price({"title": "Odd", "price": {"finalMoney": {"amount": "n/a"}}}))


class TestNormalizeReleaseDate(unittest.TestCase):

    def test_plain_date(self):
        self.assertEqual(normalize_release_date("2020-01-01"), "2020-01-01T00:00:00.000Z")

    def test_dotted_date(self):
        self.assertEqual(normalize_release_date("2015.05.18"), "2015-05-18T00:00:00.000Z")

    def test_timestamp_with_offset_is_converted_to_utc(self):
        self.assertEqual(normalize_release_date("2021-06-01T02:30:00+02:00"), "2021-06-01T00:30:00.000Z")

    def test_unix_timestamp(self):
        self.assertEqual(normalize_release_date(1577836800), "2020-01-01T00:00:00.000Z")

    def test_unparsable_is_none(self):
        self.assertIsNone(normalize_release_date("soon"))
        self.assertIsNone(normalize_release_date(None))


if __name__ == "__main__":
    unittest.main()

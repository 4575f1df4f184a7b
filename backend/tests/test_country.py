import unittest

from tablestore.column_types.country import (
    CountryConversionError,
    convert_to_country_code,
    get_country_name,
    is_valid_country_input,
)


class CountryConversionTests(unittest.TestCase):
    def test_aliases(self):
        self.assertEqual(convert_to_country_code("UK"), "GB")
        self.assertEqual(convert_to_country_code("usa"), "US")
        self.assertEqual(convert_to_country_code("Holland"), "NL")

    def test_iso_codes(self):
        self.assertEqual(convert_to_country_code("de"), "DE")
        self.assertEqual(convert_to_country_code("FRA"), "FR")

    def test_names(self):
        self.assertEqual(convert_to_country_code("Nigeria"), "NG")
        self.assertEqual(convert_to_country_code("  france "), "FR")

    def test_namibia_is_not_empty(self):
        self.assertEqual(convert_to_country_code("NA"), "NA")

    def test_rejects_unknown_and_empty(self):
        for raw in ("ZZ", "", "N/A", None, "-", "Atlantis"):
            with self.assertRaises(CountryConversionError):
                convert_to_country_code(raw)

    def test_short_inputs_do_not_substring_match(self):
        self.assertFalse(is_valid_country_input("ger"))

    def test_idempotent(self):
        for raw in ("UK", "USA", "France", "fra", "de", "Nigeria", "Czech Republic", "NA"):
            once = convert_to_country_code(raw)
            self.assertEqual(convert_to_country_code(once), once, raw)

    def test_country_name(self):
        self.assertEqual(get_country_name("GB"), "United Kingdom")
        self.assertEqual(get_country_name("DEU"), "Germany")
        self.assertIsNone(get_country_name("ZZ"))


if __name__ == "__main__":
    unittest.main()

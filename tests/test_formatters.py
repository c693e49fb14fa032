"""Tests for display formatting helpers."""
import sys
import os
import unittest
from datetime import date, datetime

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from loandesk.formatters import (
    capitalize_words,
    format_cpf,
    format_currency,
    format_date,
    format_datetime,
    format_phone,
    only_digits,
    parse_date,
    sanitize_filename,
    to_storage_date,
)


class TestMasks(unittest.TestCase):

    def test_cpf_full(self):
        self.assertEqual(format_cpf("12345678901"), "123.456.789-01")

    def test_cpf_progressive(self):
        self.assertEqual(format_cpf("123"), "123")
        self.assertEqual(format_cpf("1234"), "123.4")
        self.assertEqual(format_cpf("1234567"), "123.456.7")
        self.assertEqual(format_cpf("1234567890"), "123.456.789-0")

    def test_cpf_ignores_existing_mask_and_extra_digits(self):
        self.assertEqual(format_cpf("123.456.789-0199"), "123.456.789-01")

    def test_phone_full(self):
        self.assertEqual(format_phone("11987654321"), "(11) 98765-4321")

    def test_phone_landline(self):
        self.assertEqual(format_phone("1133334444"), "(11) 33334-444")

    def test_phone_progressive(self):
        self.assertEqual(format_phone(""), "")
        self.assertEqual(format_phone("1"), "(1")
        self.assertEqual(format_phone("11"), "(11")
        self.assertEqual(format_phone("1198"), "(11) 98")

    def test_only_digits(self):
        self.assertEqual(only_digits("(11) 98765-4321"), "11987654321")
        self.assertEqual(only_digits(None), "")


class TestNames(unittest.TestCase):

    def test_connectives_stay_lowercase(self):
        self.assertEqual(capitalize_words("MARIA DA SILVA"), "Maria da Silva")
        self.assertEqual(capitalize_words("joao dos santos e souza"), "Joao dos Santos e Souza")

    def test_first_word_always_capitalized(self):
        self.assertEqual(capitalize_words("de souza"), "De Souza")

    def test_empty(self):
        self.assertEqual(capitalize_words(""), "")
        self.assertEqual(capitalize_words(None), "")

    def test_sanitize_filename(self):
        self.assertEqual(sanitize_filename("João da Silva"), "Joao_da_Silva")
        self.assertEqual(sanitize_filename("Ana  Paula", separator="-"), "Ana-Paula")
        self.assertEqual(sanitize_filename("a/b:c"), "abc")

    def test_sanitize_filename_fallback(self):
        self.assertEqual(sanitize_filename(""), "documento")
        self.assertEqual(sanitize_filename("!!!", fallback="cliente"), "cliente")


class TestMoneyAndDates(unittest.TestCase):

    def test_currency(self):
        self.assertEqual(format_currency(1234.5), "R$ 1234.50")
        self.assertEqual(format_currency(None), "R$ 0.00")
        self.assertEqual(format_currency("abc"), "R$ 0.00")
        self.assertEqual(format_currency(-0.001), "R$ 0.00")

    def test_parse_date(self):
        self.assertEqual(parse_date("2025-03-07"), date(2025, 3, 7))
        self.assertEqual(parse_date("2025-03-07 10:00:00"), date(2025, 3, 7))
        self.assertEqual(parse_date(datetime(2025, 3, 7, 9, 30)), date(2025, 3, 7))
        self.assertIsNone(parse_date(""))
        self.assertIsNone(parse_date(None))

    def test_parse_date_invalid(self):
        with self.assertRaises(ValueError):
            parse_date("07/03/2025")

    def test_display_formats(self):
        self.assertEqual(format_date("2025-03-07"), "07/03/2025")
        self.assertEqual(format_date(None), "-")
        self.assertEqual(format_datetime("2025-03-07 14:05:00"), "07/03/2025 14:05")
        self.assertEqual(format_datetime(None), "-")

    def test_storage_date(self):
        self.assertEqual(to_storage_date(date(2025, 1, 2)), "2025-01-02")
        self.assertIsNone(to_storage_date(None))


if __name__ == "__main__":
    unittest.main(verbosity=2)

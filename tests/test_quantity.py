import unittest
from decimal import Decimal

from src.common.quantity import QuantityError, is_quantity, parse_quantity


class QuantityParserTests(unittest.TestCase):
    def test_decimal_si_suffixes(self) -> None:
        self.assertEqual(parse_quantity("100m").value, Decimal("0.1"))
        self.assertEqual(parse_quantity("2k").value, Decimal(2000))
        self.assertEqual(parse_quantity("1").value, Decimal(1))

    def test_binary_si_suffixes(self) -> None:
        self.assertEqual(parse_quantity("1Gi").value, Decimal(1024 ** 3))
        self.assertEqual(parse_quantity("128Mi").value, Decimal(128 * 1024 ** 2))

    def test_decimal_exponent(self) -> None:
        self.assertEqual(parse_quantity("2e3").value, Decimal(2000))
        self.assertEqual(parse_quantity("5E-1").value, Decimal("0.5"))

    def test_fractional_and_signed_numbers(self) -> None:
        self.assertEqual(parse_quantity(".5").value, Decimal("0.5"))
        self.assertEqual(parse_quantity("1.").value, Decimal(1))
        self.assertEqual(parse_quantity("+1.5Gi").value, Decimal("1.5") * 1024 ** 3)
        self.assertEqual(parse_quantity("-1").value, Decimal(-1))

    def test_text_is_preserved(self) -> None:
        quantity = parse_quantity("250m")
        self.assertEqual(str(quantity), "250m")
        self.assertEqual(quantity.suffix, "m")

    def test_invalid_strings_are_rejected(self) -> None:
        for raw in ("not-a-quantity", "", "1.2.3", "10 Mi", " 1", "1Gb", "Mi", "1e", "1KiB", "--1"):
            with self.subTest(raw=raw):
                with self.assertRaises(QuantityError):
                    parse_quantity(raw)
                self.assertFalse(is_quantity(raw))

    def test_quantity_error_is_value_error(self) -> None:
        with self.assertRaises(ValueError):
            parse_quantity("abc")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()

"""
Tests for Value coercions.
"""

import unittest

from wisp.expr.value import EMPTY, FALSE, TRUE, Value, ValueKind, format_number
from wisp.utils.errors import TypeMismatch


class TestValueParse(unittest.TestCase):
    """Test classification of raw text."""

    def test_numbers(self):
        self.assertEqual(Value.parse("42"), Value.number(42))
        self.assertEqual(Value.parse("-1.5"), Value.number(-1.5))

    def test_booleans(self):
        self.assertEqual(Value.parse("true"), TRUE)
        self.assertEqual(Value.parse("false"), FALSE)

    def test_strings(self):
        self.assertEqual(Value.parse("dark").kind, ValueKind.STRING)
        self.assertEqual(Value.parse(""), EMPTY)
        self.assertEqual(Value.parse("True").kind, ValueKind.STRING)

    def test_from_python(self):
        self.assertEqual(Value.from_python(True), TRUE)
        self.assertEqual(Value.from_python(3), Value.number(3))
        self.assertEqual(Value.from_python("3"), Value.string("3"))
        with self.assertRaises(TypeMismatch):
            Value.from_python([1, 2])


class TestValueCoercion(unittest.TestCase):
    """Test explicit coercions between kinds."""

    def test_integral_numbers_print_without_fraction(self):
        self.assertEqual(Value.number(11).as_string(), "11")
        self.assertEqual(Value.number(2.5).as_string(), "2.5")
        self.assertEqual(format_number(-0.0), "0")

    def test_numbers_never_print_exponents(self):
        self.assertEqual(Value.number(1e-07).as_string(), "0.0000001")
        self.assertEqual(format_number(-2.5e-10), "-0.00000000025")
        self.assertEqual(format_number(1e21), "1000000000000000000000")
        self.assertEqual(format_number(float("inf")), "inf")

    def test_string_to_number(self):
        self.assertEqual(Value.string(" 7 ").as_number(), 7.0)
        with self.assertRaises(TypeMismatch):
            Value.string("seven").as_number()
        with self.assertRaises(TypeMismatch):
            Value.string("").as_number()

    def test_bool_to_number(self):
        self.assertEqual(TRUE.as_number(), 1.0)
        self.assertEqual(FALSE.as_number(), 0.0)

    def test_to_bool(self):
        self.assertTrue(Value.string("true").as_bool())
        self.assertFalse(Value.number(0).as_bool())
        self.assertTrue(Value.number(3).as_bool())
        with self.assertRaises(TypeMismatch):
            Value.string("yes").as_bool()

    def test_bool_to_string(self):
        self.assertEqual(TRUE.as_string(), "true")

    def test_equality_is_kind_sensitive(self):
        self.assertNotEqual(Value.string("1"), Value.number(1))
        self.assertEqual(Value.number(1), Value.number(1.0))

    def test_to_python(self):
        self.assertEqual(Value.number(3).to_python(), 3)
        self.assertIsInstance(Value.number(3).to_python(), int)
        self.assertEqual(Value.number(0.5).to_python(), 0.5)
        self.assertEqual(EMPTY.to_python(), "")


if __name__ == "__main__":
    unittest.main()

import sys
import unittest
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

from sec_shares_utils import as_list, as_str_dict, normalize_text  # noqa: E402


class TestPayloadHelpers(unittest.TestCase):
    def test_as_str_dict(self) -> None:
        self.assertEqual(as_str_dict({"a": 1}), {"a": 1})
        self.assertIsNone(as_str_dict({1: "a"}))
        self.assertIsNone(as_str_dict([("a", 1)]))

    def test_as_list_copies(self) -> None:
        source = [1, 2]
        copied = as_list(source)
        self.assertEqual(copied, [1, 2])
        self.assertIsNot(copied, source)
        self.assertIsNone(as_list((1, 2)))

    def test_normalize_text(self) -> None:
        self.assertEqual(normalize_text("  Air Products "), "Air Products")
        self.assertIsNone(normalize_text("   "))
        self.assertIsNone(normalize_text(42))


if __name__ == "__main__":
    unittest.main()

import unittest

import structlog

from flagsync.util.logs import configure_logging


class TestUtilLogs(unittest.TestCase):
    def tearDown(self) -> None:
        structlog.reset_defaults()

    def test_configure_logging_accepts_known_levels(self) -> None:
        configure_logging("debug", json_output=False)
        self.assertTrue(structlog.is_configured())

    def test_configure_logging_rejects_unknown_level(self) -> None:
        with self.assertRaises(ValueError):
            configure_logging("LOUD")


if __name__ == "__main__":
    unittest.main()

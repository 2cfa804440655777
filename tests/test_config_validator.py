"""Unit tests for JSON Schema configuration validation."""

import tempfile
import unittest
from pathlib import Path

from configs.validator import validate_config, validate_config_file
from exceptions import ConfigValidationError


class TestValidateConfig(unittest.TestCase):

    def test_valid_config_passes(self):
        validate_config({"scanner": {"canvas_width": 320, "facing": "user"}})

    def test_defaults_are_filled_in_place(self):
        config = {}
        validate_config(config)

        self.assertEqual(config["scanner"]["canvas_width"], 640)
        self.assertEqual(config["scanner"]["update_time_ms"], 500)
        self.assertIs(config["scanner"]["stop_after_scan"], True)

    def test_explicit_values_are_kept(self):
        config = {"scanner": {"mirror": True}}
        validate_config(config)
        self.assertIs(config["scanner"]["mirror"], True)

    def test_invalid_type_is_reported_with_path(self):
        with self.assertRaises(ConfigValidationError) as ctx:
            validate_config({"scanner": {"canvas_width": "wide"}})

        errors = ctx.exception.validation_errors
        self.assertEqual(len(errors), 1)
        self.assertIn("scanner -> canvas_width", errors[0])

    def test_out_of_range_interval(self):
        with self.assertRaises(ConfigValidationError):
            validate_config({"scanner": {"update_time_ms": 5}})

    def test_unknown_key_is_rejected(self):
        with self.assertRaises(ConfigValidationError) as ctx:
            validate_config({"scanner": {"flash": True}})
        self.assertIn("flash", ctx.exception.validation_errors[0])

    def test_empty_facing_is_rejected(self):
        with self.assertRaises(ConfigValidationError):
            validate_config({"scanner": {"facing": ""}})


class TestValidateConfigFile(unittest.TestCase):

    def test_default_config_file_is_valid(self):
        validate_config_file("configs/default.yaml")

    def test_missing_file(self):
        with self.assertRaises(ConfigValidationError):
            validate_config_file("does/not/exist.yaml")

    def test_unparseable_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "broken.yaml"
            path.write_text("scanner: {canvas_width: [1, 2\n")
            with self.assertRaises(ConfigValidationError):
                validate_config_file(str(path))


if __name__ == "__main__":
    unittest.main()

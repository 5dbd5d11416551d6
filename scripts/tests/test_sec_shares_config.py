import sys
import tempfile
import unittest
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

from sec_shares_config import SharesConfig, load_config  # noqa: E402
from sec_shares_errors import ConfigurationError  # noqa: E402


def write_yaml(temp_dir: str, text: str) -> Path:
    path = Path(temp_dir) / "shares.yml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        config = load_config(environ={})
        self.assertEqual(config, SharesConfig())
        self.assertEqual(config.cutoff_year, 2020)
        self.assertEqual(config.timeout_seconds, 15.0)
        self.assertEqual(config.effective_retries(), 0)

    def test_yaml_then_env_then_cli(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = write_yaml(
                temp_dir,
                "cutoff_year: 2018\ntransport: relay\nrelay_url: https://yaml.example/{cik}\ntimeout_seconds: 5\n",
            )
            config = load_config(
                path,
                cli_overrides={"cutoff_year": 2021, "max_retries": None},
                environ={"SEC_SHARES_RELAY_URL": "https://env.example/{cik}"},
            )
        self.assertEqual(config.cutoff_year, 2021)
        self.assertEqual(config.transport, "relay")
        self.assertEqual(config.relay_url, "https://env.example/{cik}")
        self.assertEqual(config.timeout_seconds, 5.0)
        self.assertEqual(config.effective_retries(), 2)

    def test_env_user_agent(self) -> None:
        config = load_config(environ={"SEC_USER_AGENT": "Jane Doe jane@example.com"})
        self.assertEqual(config.user_agent, "Jane Doe jane@example.com")

    def test_fallback_path_becomes_path(self) -> None:
        config = load_config(cli_overrides={"fallback_path": "snapshots/data.json"}, environ={})
        self.assertEqual(config.fallback_path, Path("snapshots/data.json"))

    def test_empty_yaml_is_allowed(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config = load_config(write_yaml(temp_dir, ""), environ={})
        self.assertEqual(config, SharesConfig())

    def test_invalid_values(self) -> None:
        cases = [
            {"transport": "carrier-pigeon"},
            {"timeout_seconds": 0},
            {"timeout_seconds": "soon"},
            {"max_retries": 5},
            {"cutoff_year": True},
            {"colour": "blue"},
        ]
        for overrides in cases:
            with self.assertRaises(ConfigurationError, msg=repr(overrides)):
                load_config(cli_overrides=overrides, environ={})

    def test_yaml_errors(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            with self.assertRaises(ConfigurationError):
                load_config(write_yaml(temp_dir, "- just\n- a list\n"), environ={})
            with self.assertRaises(ConfigurationError):
                load_config(write_yaml(temp_dir, "cutoff_year: [unclosed\n"), environ={})
            with self.assertRaises(ConfigurationError):
                load_config(Path(temp_dir) / "missing.yml", environ={})


if __name__ == "__main__":
    unittest.main()

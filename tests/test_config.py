"""Tests for service configuration."""

import json

from packpin_svc.config import Config


class TestConfig:
    def test_defaults(self):
        config = Config()
        assert config.server.port == 8060
        assert config.registry.definition_file is None
        assert config.storage.database is None
        assert config.audit.enabled
        assert config.logging.level == "INFO"

    def test_from_dict_partial(self):
        config = Config.from_dict({"server": {"port": 9000}, "logging": {"level": "DEBUG"}})
        assert config.server.port == 9000
        assert config.server.host == "0.0.0.0"
        assert config.logging.level == "DEBUG"

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "registry:\n"
            "  definition_file: pins.yaml\n"
            "storage:\n"
            "  database: var/packpin.db\n"
            "audit:\n"
            "  bootstrap_author: admin\n"
        )
        config = Config.from_yaml(str(path))
        assert config.registry.definition_file == "pins.yaml"
        assert config.storage.database == "var/packpin.db"
        assert config.audit.bootstrap_author == "admin"

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert Config.from_yaml(str(path)) == Config()

    def test_from_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"audit": {"enabled": False}}))
        assert not Config.from_json(str(path)).audit.enabled

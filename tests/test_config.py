"""Tests for enocean_exporter.config."""

import os

import pytest

from enocean_exporter.config import (
    MAX_RETRIES,
    RECONNECT_INITIAL_S,
    RECONNECT_MAX_S,
    ConfigError,
    load_config,
    parse_listen,
)


def _write_toml(tmp_path: str, text: str) -> str:
    """Write TOML text to a temp file and return its path."""
    path = os.path.join(tmp_path, "cfg.toml")
    with open(path, "w") as f:
        f.write(text)
    return path


_MINIMAL = (
    'listen = "127.0.0.1:9584"\n'
    'port = "/dev/ttyUSB0"\n'
)


class TestLoadConfig:
    """Tests for load_config()."""

    def test_full_config(self, tmp_path):
        """Every key is parsed and converted."""
        path = _write_toml(tmp_path, (
            'listen = "0.0.0.0:9100"\n'
            'port = ["/dev/ttyUSB0", "/dev/ttyUSB1"]\n'
            'profile = "a5-02-05"\n'
            'read_timeout = 900\n'
            'timestamps = true\n'
            '\n'
            '[reconnect]\n'
            'initial = 0.5\n'
            'max = 30\n'
            'retries = 5\n'
            '\n'
            '[devices]\n'
            '"0180A2F3" = "Living room"\n'
            '"0181b004" = "Bedroom"\n'
        ))
        cfg = load_config(path)
        assert cfg == {
            "listen": ("0.0.0.0", 9100),
            "ports": ["/dev/ttyUSB0", "/dev/ttyUSB1"],
            "profile": "A5-02-05",
            "read_timeout": 900.0,
            "timestamps": True,
            "reconnect_initial": 0.5,
            "reconnect_max": 30.0,
            "max_retries": 5,
            "devices": {0x0180A2F3: "Living room", 0x0181B004: "Bedroom"},
        }

    def test_defaults(self, tmp_path):
        """Optional keys fall back to the module defaults."""
        cfg = load_config(_write_toml(tmp_path, _MINIMAL))
        assert cfg["ports"] == ["/dev/ttyUSB0"]
        assert cfg["profile"] == "A5-02-05"
        assert cfg["read_timeout"] is None
        assert cfg["timestamps"] is False
        assert cfg["reconnect_initial"] == RECONNECT_INITIAL_S
        assert cfg["reconnect_max"] == RECONNECT_MAX_S
        assert cfg["max_retries"] == MAX_RETRIES
        assert cfg["devices"] == {}

    def test_config_error_is_value_error(self):
        """ConfigError can be caught as ValueError."""
        assert issubclass(ConfigError, ValueError)

    def test_missing_listen(self, tmp_path):
        """Missing 'listen' raises ConfigError."""
        path = _write_toml(tmp_path, 'port = "/dev/ttyUSB0"\n')
        with pytest.raises(ConfigError, match="listen"):
            load_config(path)

    def test_missing_port(self, tmp_path):
        """Missing 'port' raises ConfigError."""
        path = _write_toml(tmp_path, 'listen = "127.0.0.1:9584"\n')
        with pytest.raises(ConfigError, match="port"):
            load_config(path)

    def test_port_wrong_type(self, tmp_path):
        """Integer 'port' raises ConfigError."""
        path = _write_toml(tmp_path, 'listen = "127.0.0.1:9584"\nport = 3\n')
        with pytest.raises(ConfigError, match="port must be str"):
            load_config(path)

    def test_port_empty_list(self, tmp_path):
        """Empty port list raises ConfigError."""
        path = _write_toml(tmp_path, 'listen = "127.0.0.1:9584"\nport = []\n')
        with pytest.raises(ConfigError, match="empty"):
            load_config(path)

    def test_port_duplicates(self, tmp_path):
        """The same port twice raises ConfigError."""
        path = _write_toml(tmp_path, (
            'listen = "127.0.0.1:9584"\n'
            'port = ["/dev/ttyUSB0", "/dev/ttyUSB0"]\n'
        ))
        with pytest.raises(ConfigError, match="more than once"):
            load_config(path)

    def test_unknown_profile(self, tmp_path):
        """Unregistered profile raises ConfigError."""
        path = _write_toml(tmp_path, _MINIMAL + 'profile = "F6-02-01"\n')
        with pytest.raises(ConfigError, match="unsupported profile"):
            load_config(path)

    def test_read_timeout_not_positive(self, tmp_path):
        """Zero read_timeout raises ConfigError."""
        path = _write_toml(tmp_path, _MINIMAL + "read_timeout = 0\n")
        with pytest.raises(ConfigError, match="read_timeout must be > 0"):
            load_config(path)

    def test_read_timeout_wrong_type(self, tmp_path):
        """String read_timeout raises ConfigError."""
        path = _write_toml(tmp_path, _MINIMAL + 'read_timeout = "10"\n')
        with pytest.raises(ConfigError, match="read_timeout must be a number"):
            load_config(path)

    def test_timestamps_wrong_type(self, tmp_path):
        """Non-bool timestamps raises ConfigError."""
        path = _write_toml(tmp_path, _MINIMAL + "timestamps = 1\n")
        with pytest.raises(ConfigError, match="timestamps must be bool"):
            load_config(path)

    def test_reconnect_max_below_initial(self, tmp_path):
        """reconnect.max smaller than initial raises ConfigError."""
        path = _write_toml(tmp_path, _MINIMAL + (
            "[reconnect]\n"
            "initial = 10\n"
            "max = 5\n"
        ))
        with pytest.raises(ConfigError, match="reconnect.max"):
            load_config(path)

    def test_reconnect_initial_above_default_max(self, tmp_path):
        """A large initial delay raises the default ceiling with it."""
        path = _write_toml(tmp_path, _MINIMAL + "[reconnect]\ninitial = 120\n")
        cfg = load_config(path)
        assert cfg["reconnect_max"] == 120.0

    def test_reconnect_negative_retries(self, tmp_path):
        """Negative retries raises ConfigError."""
        path = _write_toml(tmp_path, _MINIMAL + "[reconnect]\nretries = -1\n")
        with pytest.raises(ConfigError, match="retries"):
            load_config(path)

    def test_reconnect_not_a_table(self, tmp_path):
        """A scalar reconnect value raises ConfigError."""
        path = _write_toml(tmp_path, _MINIMAL + "reconnect = 3\n")
        with pytest.raises(ConfigError, match="reconnect"):
            load_config(path)

    def test_bad_device_address(self, tmp_path):
        """Device keys must be 8 hex digits."""
        path = _write_toml(tmp_path, _MINIMAL + '[devices]\n"01:80:A2:F3" = "x"\n')
        with pytest.raises(ConfigError, match="8 hex digits"):
            load_config(path)

    def test_device_name_not_str(self, tmp_path):
        """Device names must be strings."""
        path = _write_toml(tmp_path, _MINIMAL + '[devices]\n"0180A2F3" = 5\n')
        with pytest.raises(ConfigError, match="must be str"):
            load_config(path)

    def test_device_listed_twice(self, tmp_path):
        """The same address in two spellings raises ConfigError."""
        path = _write_toml(tmp_path, _MINIMAL + (
            '[devices]\n'
            '"0180A2F3" = "a"\n'
            '"0180a2f3" = "b"\n'
        ))
        with pytest.raises(ConfigError, match="listed twice"):
            load_config(path)

    def test_malformed_toml(self, tmp_path):
        """TOML syntax errors surface as ConfigError."""
        path = _write_toml(tmp_path, 'listen = "127.0.0.1:9584\n')
        with pytest.raises(ConfigError):
            load_config(path)

    def test_missing_file(self, tmp_path):
        """A missing file propagates FileNotFoundError, not ConfigError."""
        with pytest.raises(FileNotFoundError):
            load_config(os.path.join(tmp_path, "enocean_exporter.toml"))


class TestParseListen:
    """Tests for parse_listen()."""

    def test_ipv4(self):
        """host:port splits into a tuple."""
        assert parse_listen("127.0.0.1:9584") == ("127.0.0.1", 9584)

    def test_hostname(self):
        """Hostnames are accepted."""
        assert parse_listen("localhost:80") == ("localhost", 80)

    def test_bracketed_ipv6(self):
        """Brackets are stripped from IPv6 hosts."""
        assert parse_listen("[::1]:9584") == ("::1", 9584)

    @pytest.mark.parametrize("text", [
        "9584", ":9584", "localhost:", "localhost:http", "localhost:0",
        "localhost:65536", "::1:9584",
    ])
    def test_invalid(self, text):
        """Malformed listen addresses raise ConfigError."""
        with pytest.raises(ConfigError):
            parse_listen(text)

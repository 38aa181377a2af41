"""
Unit tests for ServerConfig.
"""

import pytest

from ember import Ember, ServerConfig
from ember.errors import ValidationError


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        """A bare config listens on 0.0.0.0:80 with no trigger directory."""
        config = ServerConfig()

        assert config.host == "0.0.0.0"
        assert config.port == 80
        assert config.refresh_rate == 0.001
        assert config.trigger_dir is None

    def test_parameterless_server_uses_defaults(self):
        """Ember() needs no arguments."""
        app = Ember()

        assert app.host == "0.0.0.0"
        assert app.port == 80
        assert app.refresh_rate == 0.001
        assert app.trigger_dir is None
        assert app.running is False


class TestValidationOnAssignment:
    """Tests for eager validation."""

    @pytest.mark.parametrize("value", [8080.0, "8080", [80, 81], None, True, -1])
    def test_invalid_port_keeps_previous(self, value):
        """Bad ports raise and leave the old port in place."""
        config = ServerConfig(port=8080)

        with pytest.raises(ValidationError) as exc_info:
            config.port = value

        assert exc_info.value.field == "port"
        assert config.port == 8080

    def test_port_zero_allowed(self):
        """0 asks the OS for a free port."""
        config = ServerConfig()
        config.port = 0
        assert config.port == 0

    @pytest.mark.parametrize("value", [None, 127, ["a", "b"], b"localhost"])
    def test_invalid_host_keeps_previous(self, value):
        """Hosts must be one string."""
        config = ServerConfig(host="127.0.0.1")

        with pytest.raises(ValidationError):
            config.host = value

        assert config.host == "127.0.0.1"

    @pytest.mark.parametrize("value", [0, -0.5, "fast", None, [0.1, 0.2]])
    def test_invalid_refresh_rate_keeps_previous(self, value):
        """The refresh rate must be a single positive number."""
        config = ServerConfig(refresh_rate=0.01)

        with pytest.raises(ValidationError):
            config.refresh_rate = value

        assert config.refresh_rate == 0.01

    def test_integer_refresh_rate_allowed(self):
        """Any positive real number is accepted."""
        config = ServerConfig()
        config.refresh_rate = 1
        assert config.refresh_rate == 1

    def test_trigger_dir_must_exist(self, tmp_path):
        """A missing directory is rejected; the previous one stays."""
        config = ServerConfig(trigger_dir=str(tmp_path))

        with pytest.raises(ValidationError):
            config.trigger_dir = str(tmp_path / "missing")

        assert config.trigger_dir == str(tmp_path)

    def test_trigger_dir_accepts_path_objects(self, tmp_path):
        """os.PathLike values are normalized to str."""
        config = ServerConfig()
        config.trigger_dir = tmp_path

        assert config.trigger_dir == str(tmp_path)

    def test_trigger_dir_can_be_cleared(self, tmp_path):
        """None disables trigger files."""
        config = ServerConfig(trigger_dir=str(tmp_path))
        config.trigger_dir = None
        assert config.trigger_dir is None

    def test_trigger_dir_rejects_files(self, tmp_path):
        """A regular file is not a directory."""
        target = tmp_path / "file.txt"
        target.write_text("x")

        with pytest.raises(ValidationError):
            ServerConfig(trigger_dir=str(target))

    def test_constructor_validates(self):
        """Invalid constructor arguments fail the same way."""
        with pytest.raises(ValidationError):
            ServerConfig(port="eighty")

    def test_server_properties_validate(self):
        """Ember's host/port setters go through the config."""
        app = Ember()
        app.port = 9000

        with pytest.raises(ValidationError):
            app.port = "9001"

        assert app.port == 9000
        assert app.config.port == 9000

    def test_log_level_normalized(self):
        """Log levels are stored upper-case."""
        config = ServerConfig(log_level="debug")
        assert config.log_level == "DEBUG"
        assert config.log_level_number == 10

    def test_log_format_checked(self):
        """Only text and json are known formats."""
        with pytest.raises(ValidationError):
            ServerConfig(log_format="xml")


class TestValidate:
    """Tests for the cross-field checks."""

    def test_port_upper_bound(self):
        """Ports above 65535 are caught before binding."""
        config = ServerConfig()
        config.port = 70000

        with pytest.raises(ValidationError):
            config.validate()

    def test_buffer_size_minimum(self):
        """Tiny buffers are rejected."""
        config = ServerConfig(buffer_size=512)

        with pytest.raises(ValidationError):
            config.validate()

    def test_max_request_size_at_least_buffer(self):
        """A request limit below the read size makes no sense."""
        config = ServerConfig(buffer_size=4096, max_request_size=2048)

        with pytest.raises(ValidationError):
            config.validate()

    def test_defaults_validate(self):
        """The defaults pass."""
        ServerConfig().validate()


class TestFromEnv:
    """Tests for environment configuration."""

    def test_reads_environment(self, monkeypatch, tmp_path):
        """EMBER_* variables override the defaults."""
        monkeypatch.setenv("EMBER_HOST", "127.0.0.1")
        monkeypatch.setenv("EMBER_PORT", "3000")
        monkeypatch.setenv("EMBER_REFRESH_RATE", "0.5")
        monkeypatch.setenv("EMBER_TRIGGER_DIR", str(tmp_path))
        monkeypatch.setenv("EMBER_LOG_LEVEL", "warning")

        config = ServerConfig.from_env()

        assert config.host == "127.0.0.1"
        assert config.port == 3000
        assert config.refresh_rate == 0.5
        assert config.trigger_dir == str(tmp_path)
        assert config.log_level == "WARNING"

    def test_bad_number_raises_validation_error(self, monkeypatch):
        """Unparseable numbers surface as ValidationError."""
        monkeypatch.setenv("EMBER_PORT", "eighty")

        with pytest.raises(ValidationError):
            ServerConfig.from_env()

    def test_as_dict(self):
        """as_dict lists every field."""
        data = ServerConfig(port=1234).as_dict()
        assert data["port"] == 1234
        assert "daemon_poll_interval" in data

import json
import logging

from gateway_logging import configure_logging
from gateway_settings import DEFAULT_HEALTHCHECK_STATUS, load_settings


def test_defaults(monkeypatch):
    for name in ("PORT", "APIURL", "DEBUG", "LOG_LEVEL", "HEALTHCHECK_STATUS"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.port == 8080
    assert settings.api_url is None
    assert settings.debug is False
    assert settings.log_level == "INFO"
    assert settings.healthcheck_status == DEFAULT_HEALTHCHECK_STATUS == 400


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PORT", "9090")
    monkeypatch.setenv("APIURL", "https://backend.test/api")
    monkeypatch.setenv("SERVERCERTIFICATE", "/certs/client.crt")
    monkeypatch.setenv("SERVERPRIVATEKEY", "/certs/client.key")
    monkeypatch.setenv("SERVERCRTCERTIFICATE", "/certs/ca.crt")
    monkeypatch.setenv("DEBUG", "TRUE")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    settings = load_settings()
    assert settings.port == 9090
    assert settings.api_url == "https://backend.test/api"
    assert settings.debug is True
    assert settings.log_level == "DEBUG"
    assert settings.tls.cert_path == "/certs/client.crt"
    assert settings.tls.key_path == "/certs/client.key"
    assert settings.tls.ca_path == "/certs/ca.crt"


def test_json_log_lines(capsys):
    configure_logging("debug")
    assert logging.getLogger().level == logging.DEBUG
    logging.getLogger("gateway.test").info("Root tag", extra={"root_tag": "GetUser"})
    line = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert line["level"] == "INFO"
    assert line["logger"] == "gateway.test"
    assert line["message"] == "Root tag"
    assert line["root_tag"] == "GetUser"
    assert "timestamp" in line


def test_reconfiguring_replaces_handler():
    configure_logging("INFO")
    configure_logging("WARNING")
    handlers = [h for h in logging.getLogger().handlers if getattr(h, "_gateway_json", False)]
    assert len(handlers) == 1
    assert logging.getLogger().level == logging.WARNING

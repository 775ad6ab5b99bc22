"""Tests for the app factory, service wiring and logging setup."""

import json
import logging
import os
from unittest.mock import patch

from auth_server.app import create_app
from auth_server.auth import InMemoryAccountRepository, SqliteAccountRepository, TokenKind
from auth_server.logging_config import JSONFormatter
from auth_server.services import build_services
from config.settings import get_settings


class TestBuildServices:
    def test_in_memory_by_default(self):
        with patch.dict(os.environ, {"ACCOUNTS_DB_PATH": ""}, clear=False):
            get_settings.cache_clear()
            services = build_services(get_settings())
        assert isinstance(services.accounts, InMemoryAccountRepository)
        assert services.outcome_handler.token_issuer is services.token_issuer

    def test_sqlite_when_path_configured(self, tmp_path):
        db_path = str(tmp_path / "accounts.db")
        with patch.dict(os.environ, {"ACCOUNTS_DB_PATH": db_path}, clear=False):
            get_settings.cache_clear()
            services = build_services(get_settings())
        assert isinstance(services.accounts, SqliteAccountRepository)
        assert os.path.exists(db_path)

    def test_two_factor_settings_applied(self):
        with patch.dict(os.environ, {"TWO_FACTOR_VALID_WINDOW": "0",
                                     "TWO_FACTOR_TOKEN_EXPIRATION_MINUTES": "3"}, clear=False):
            get_settings.cache_clear()
            services = build_services(get_settings())
        assert services.two_factor.code_verifier.valid_window == 0
        assert services.token_issuer.ttl_for(TokenKind.TWO_FACTOR).total_seconds() == 180


class TestCreateApp:
    def test_blueprints_registered(self, app):
        rules = {rule.rule for rule in app.url_map.iter_rules()}
        assert '/api/auth/token' in rules
        assert '/api/auth/token/2fa' in rules
        assert '/api/auth/token/refresh' in rules
        assert '/api/users/<int:user_id>/2fa' in rules
        assert '/api/users' in rules

    def test_builds_services_from_settings(self):
        app = create_app(config={'TESTING': True})
        assert app.extensions["trak_auth"].token_issuer.algorithm == "HS512"

    def test_unknown_route_404(self, client):
        assert client.get('/api/nowhere').status_code == 404


class TestJSONFormatter:
    def test_formats_record_as_json(self):
        record = logging.LogRecord("auth_server.test", logging.INFO, __file__, 10,
                                   "User %s logged in", (7,), None)
        record.error_id = "abc123"

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "User 7 logged in"
        assert entry["level"] == "INFO"
        assert entry["error_id"] == "abc123"

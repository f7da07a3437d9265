"""
Unit tests for the Parser service HTTP surface.
"""

import json
import re
from pathlib import Path

import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_parser.app.backends.base import BackendResult
from service_parser.app.config import ParserConfig
from service_parser.app.main import ParserService, create_app
from shared.errors import BackendError
from shared.test_helpers import pdf_bytes


def pdf_upload(name: str = "check.pdf"):
    return {"pdf": (name, pdf_bytes(), "application/pdf")}


class TestParserService:
    """Test cases for ParserService."""

    @pytest.fixture
    def make_config(self, tmp_path, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        def _make(**overrides) -> ParserConfig:
            values = dict(
                upload_dir=tmp_path / "uploads",
                output_dir=tmp_path / "output",
                state_dir=tmp_path / ".openclaw",
                workspace_dir=tmp_path / "workspace",
                start_gateway=False,
                agent_bootstrap=False,
                enable_tracing=False,
                api_key=None,
                anthropic_api_key=None,
            )
            values.update(overrides)
            return ParserConfig(**values)
        return _make

    @pytest.fixture
    def make_client(self, make_config):
        """Build a started test client; the dispatcher is replaced per test."""
        clients = []

        def _make(**overrides):
            app = create_app(make_config(**overrides))
            client = TestClient(app)
            client.__enter__()
            clients.append(client)
            return client, app.state.parser_service

        yield _make

        for client in clients:
            client.__exit__(None, None, None)

    @pytest.fixture
    def client(self, make_client):
        return make_client()

    @staticmethod
    def dispatch_with(service: ParserService, write_csv: bool = True, message: str = "done",
                      error: Exception = None) -> AsyncMock:
        """Replace the dispatcher with one that optionally writes the CSV."""
        async def fake_process(pdf_path, csv_path):
            if write_csv:
                Path(csv_path).write_text("Owner/Payee name,Net value\nACME,10.00\n")
            if error is not None:
                raise error
            return BackendResult(success=True, message=message, backend="cli")

        service.dispatcher = MagicMock()
        service.dispatcher.process = AsyncMock(side_effect=fake_process)
        return service.dispatcher.process

    def test_health_endpoint(self, client):
        """Test health reports gateway readiness and key presence."""
        http, _ = client
        response = http.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "parser"
        assert data["gatewayReady"] is False
        assert data["anthropicKeySet"] is False
        assert "timestamp" in data

    def test_health_reports_key_set(self, make_client):
        """Test anthropicKeySet reflects configuration."""
        http, _ = make_client(anthropic_api_key="sk-ant-test")
        assert http.get("/health").json()["anthropicKeySet"] is True

    def test_bootstrap_uses_generated_gateway_token(self, make_client, tmp_path):
        """Test startup generates one token shared by the agent config and the supervisor."""
        _, service = make_client(agent_bootstrap=True, gateway_token=None)

        written = json.loads((tmp_path / ".openclaw" / "openclaw.json").read_text())

        assert re.fullmatch(r"[0-9a-f]{64}", service.supervisor.token)
        assert written["gateway"]["auth"]["token"] == service.supervisor.token

    def test_configured_gateway_token_kept(self, make_client):
        """Test an operator-supplied token is used as-is."""
        _, service = make_client(gateway_token="operator-token")
        assert service.supervisor.token == "operator-token"

    def test_gateway_status(self, make_client):
        """Test gateway status exposes readiness and port."""
        http, _ = make_client(gateway_port=19001)
        response = http.get("/api/gateway-status")

        assert response.status_code == 200
        assert response.json() == {"ready": False, "port": 19001}

    def test_parse_success_returns_download_url(self, client):
        """Test a CSV on disk yields a download URL that serves it."""
        http, service = client
        process = self.dispatch_with(service)

        response = http.post("/api/parse", files=pdf_upload())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "PDF parsed successfully"
        assert re.fullmatch(r"/api/download/\d{13}-[0-9a-f]{8}_parsed\.csv", data["downloadUrl"])
        assert response.headers["X-RateLimit-Limit"] == "100"
        assert response.headers["X-RateLimit-Remaining"] == "99"

        pdf_path, csv_path = process.await_args.args
        assert Path(pdf_path).parent == service.config.upload_dir
        assert Path(csv_path).parent == service.config.output_dir

        download = http.get(data["downloadUrl"])
        assert download.status_code == 200
        assert "ACME" in download.text

    def test_backend_failure_with_partial_csv_is_error(self, client):
        """Test a CSV left behind by failed backends does not turn the failure into success."""
        http, service = client
        self.dispatch_with(service, error=BackendError("Agent exited with code 1: no key"))

        response = http.post("/api/parse", files=pdf_upload())

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "Agent exited with code 1: no key"
        assert "downloadUrl" not in data

    def test_csv_existence_wins_over_error_message(self, client):
        """Test an alarming backend message does not override the CSV on disk."""
        http, service = client
        self.dispatch_with(service, message="Error: something went wrong")

        response = http.post("/api/parse", files=pdf_upload())

        assert response.json()["message"] == "PDF parsed successfully"

    def test_no_csv_returns_backend_message_with_note(self, client):
        """Test success without a CSV echoes the backend text and a note."""
        http, service = client
        self.dispatch_with(service, write_csv=False, message="No revenue rows found")

        response = http.post("/api/parse", files=pdf_upload())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "No revenue rows found"
        assert "downloadUrl" not in data
        assert data["note"].startswith("CSV may not have been generated")

    def test_backend_failure_without_csv(self, client):
        """Test a backend failure with no CSV becomes a 500 with its message."""
        http, service = client
        self.dispatch_with(service, write_csv=False, error=BackendError("Agent exited with code 1: no key"))

        response = http.post("/api/parse", files=pdf_upload())

        assert response.status_code == 500
        data = response.json()
        assert data["code"] == "BACKEND_ERROR"
        assert data["error"] == "Agent exited with code 1: no key"

    def test_missing_file(self, client):
        """Test a request without a pdf part is rejected."""
        http, service = client
        process = self.dispatch_with(service)

        response = http.post("/api/parse", data={"note": "nothing attached"})

        assert response.status_code == 400
        assert response.json()["error"] == "No PDF file uploaded"
        process.assert_not_called()

    def test_text_field_named_pdf(self, client):
        """Test a form value instead of a file is treated as no upload."""
        http, service = client
        process = self.dispatch_with(service)

        response = http.post("/api/parse", data={"pdf": "not a file"})

        assert response.status_code == 400
        assert response.json()["error"] == "No PDF file uploaded"
        process.assert_not_called()

    def test_wrong_content_type(self, client):
        """Test non-PDF uploads are rejected without staging anything."""
        http, service = client
        process = self.dispatch_with(service)

        response = http.post("/api/parse", files={"pdf": ("rows.csv", b"a,b\n", "text/csv")})

        assert response.status_code == 400
        assert response.json()["error"] == "Only PDF files allowed"
        assert list(service.config.upload_dir.iterdir()) == []
        process.assert_not_called()

    def test_oversize_upload(self, make_client):
        """Test uploads over the ceiling get 413."""
        http, service = make_client(max_upload_bytes=64)
        self.dispatch_with(service)

        response = http.post("/api/parse", files={"pdf": ("big.pdf", pdf_bytes(padding=1024), "application/pdf")})

        assert response.status_code == 413
        assert list(service.config.upload_dir.iterdir()) == []

    def test_api_key_required_when_configured(self, make_client):
        """Test the API key gate rejects missing or wrong keys."""
        http, service = make_client(api_key="s3cret")
        self.dispatch_with(service)

        assert http.post("/api/parse", files=pdf_upload()).status_code == 401
        assert http.post("/api/parse", files=pdf_upload(), headers={"X-API-Key": "nope"}).status_code == 401

        response = http.post("/api/parse", files=pdf_upload(), headers={"X-API-Key": "s3cret"})
        assert response.status_code == 200

    def test_no_api_key_configured_is_open(self, client):
        """Test any caller may parse when no key is configured."""
        http, service = client
        self.dispatch_with(service)

        response = http.post("/api/parse", files=pdf_upload(), headers={"X-API-Key": "anything"})

        assert response.status_code == 200

    def test_rate_limit(self, make_client):
        """Test the per-client ceiling yields 429 with retry headers."""
        http, service = make_client(rate_limit_requests=2)
        process = self.dispatch_with(service)

        assert http.post("/api/parse", files=pdf_upload()).status_code == 200
        assert http.post("/api/parse", files=pdf_upload()).status_code == 200

        response = http.post("/api/parse", files=pdf_upload())
        assert response.status_code == 429
        assert response.json()["error"] == "Rate limit exceeded. Try again later."
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert "Retry-After" in response.headers
        assert process.await_count == 2

    def test_forwarded_for_ignored_by_default(self, make_client):
        """Test a changing X-Forwarded-For cannot buy a fresh window."""
        http, service = make_client(rate_limit_requests=2)
        self.dispatch_with(service)

        statuses = [
            http.post("/api/parse", files=pdf_upload(), headers={"X-Forwarded-For": f"10.0.0.{i}"}).status_code
            for i in range(5)
        ]

        assert statuses == [200, 200, 429, 429, 429]

    def test_rate_limit_per_forwarded_client(self, make_client):
        """Test clients behind a trusted proxy are limited separately."""
        http, service = make_client(rate_limit_requests=1, trust_proxy_headers=True)
        self.dispatch_with(service)

        first = {"X-Forwarded-For": "203.0.113.1, 10.0.0.1"}
        second = {"X-Forwarded-For": "203.0.113.2"}
        assert http.post("/api/parse", files=pdf_upload(), headers=first).status_code == 200
        assert http.post("/api/parse", files=pdf_upload(), headers=first).status_code == 429
        assert http.post("/api/parse", files=pdf_upload(), headers=second).status_code == 200

    def test_upload_cleanup_scheduled(self, client):
        """Test the staged PDF is queued for removal after a parse."""
        http, service = client
        self.dispatch_with(service, write_csv=False)

        http.post("/api/parse", files=pdf_upload())

        assert service.cleanup.pending == 1
        assert len(list(service.config.upload_dir.iterdir())) == 1

    def test_download_existing_csv(self, client):
        """Test a generated CSV downloads as an attachment."""
        http, service = client
        (service.config.output_dir / "123-abcd_parsed.csv").write_text("a,b\n1,2\n")

        response = http.get("/api/download/123-abcd_parsed.csv")

        assert response.status_code == 200
        assert response.text == "a,b\n1,2\n"
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="123-abcd_parsed.csv"' in response.headers["content-disposition"]
        assert service.cleanup.pending == 1

    def test_download_invalid_filename(self, client):
        """Test non-CSV or dotted names are refused."""
        http, service = client
        (service.config.output_dir / "notes.txt").write_text("x")

        assert http.get("/api/download/notes.txt").status_code == 400
        response = http.get("/api/download/a..b.csv")
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid filename"

    def test_download_missing(self, client):
        """Test an absent CSV returns 404."""
        http, _ = client
        response = http.get("/api/download/missing.csv")

        assert response.status_code == 404
        assert response.json()["error"] == "File not found"

    def test_request_id_echoed(self, client):
        """Test the request id header is echoed back."""
        http, _ = client
        response = http.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

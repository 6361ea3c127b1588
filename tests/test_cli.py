"""CLI diagnostics."""

import asyncio

from typer.testing import CliRunner

import cli
from services.firestore_service import FirestoreService
from fakes import FakeFirestoreClient

runner = CliRunner()


def test_verify_firestore_without_config_fails(monkeypatch):
    monkeypatch.setattr(cli.settings, "firebase_project_id", "")
    monkeypatch.setattr(cli.settings, "firestore_emulator_host", None)
    monkeypatch.setattr(cli.settings, "google_application_credentials", "")

    result = runner.invoke(cli.app, ["verify-firestore"])

    assert result.exit_code == 1
    assert "Project ID" in result.output


def test_check_config_with_emulator(monkeypatch):
    monkeypatch.setattr(cli.settings, "firebase_project_id", "demo-hq")
    monkeypatch.setattr(cli.settings, "firestore_emulator_host", "localhost:8080")

    results = {check: status for check, status, _ in cli._check_config()}

    assert results == {"Project ID": "PASS", "Emulator": "PASS", "Credentials": "SKIP"}


def test_connectivity_probe_cleans_up():
    db = FakeFirestoreClient()
    service = FirestoreService(client=db)

    results = asyncio.run(cli._check_connectivity(service))

    assert [status for _, status, _ in results] == ["PASS", "PASS", "PASS"]
    assert asyncio.run(service.get_evidence()) == []

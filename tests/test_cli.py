# tests/test_cli.py
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from agentid.cli.config import get_db_path, load_config
from agentid.cli.main import app
from agentid.storage import default_db_path

runner = CliRunner()

DID = "did:web:example.com:agents:claude"


@pytest.fixture(autouse=True)
def agentid_home(tmp_path: Path, monkeypatch) -> Path:
    """Isolated config directory per test."""
    home = tmp_path / "home"
    monkeypatch.setenv("AGENTID_HOME", str(home))
    monkeypatch.delenv("AGENTID_DB_PATH", raising=False)
    return home


@pytest.fixture
def identity(agentid_home: Path) -> Path:
    """keygen + init; returns the keys directory."""
    result = runner.invoke(app, ["keygen"])
    assert result.exit_code == 0, result.output
    result = runner.invoke(app, ["init", "--domain", "example.com", "--path", "agents/claude"])
    assert result.exit_code == 0, result.output
    return agentid_home / "keys"


@pytest.fixture
def temp_db(tmp_path: Path) -> Path:
    return tmp_path / "test-cli.db"


def test_keygen_writes_keys_and_config(identity: Path):
    assert (identity / "public.key").exists()
    private = identity / "private.key"
    assert private.exists()
    assert private.stat().st_mode & 0o777 == 0o600

    config = load_config()
    assert config.did == DID
    assert config.private_key_path == str(private.resolve())


def test_sign_then_verify(identity: Path):
    result = runner.invoke(app, ["sign", "post", "/api/pr", "--body", '{"pr": 12}'])
    assert result.exit_code == 0, result.output
    headers = json.loads(result.stdout)
    assert headers["X-Agent-DID"] == DID
    assert headers["X-Agent-Method"] == "POST"

    args = ["verify", "--public-key", str(identity / "public.key")]
    for name, value in headers.items():
        args += ["-H", f"{name}:{value}"]

    ok = runner.invoke(app, args + ["--body", '{"pr": 12}'])
    assert ok.exit_code == 0, ok.output
    assert "valid" in ok.stdout

    tampered = runner.invoke(app, args + ["--body", '{"pr": 13}'])
    assert tampered.exit_code == 1
    assert "Invalid signature" in tampered.stdout


def test_sign_without_identity():
    result = runner.invoke(app, ["sign", "GET", "/"])
    assert result.exit_code == 1
    assert "No identity configured" in result.stdout


def test_sign_rejects_body_and_body_file(identity: Path, tmp_path: Path):
    body_file = tmp_path / "body.json"
    body_file.write_text("{}", encoding="utf-8")
    result = runner.invoke(app, ["sign", "POST", "/", "--body", "{}", "--body-file", str(body_file)])
    assert result.exit_code == 1


def test_verify_malformed_header(identity: Path):
    result = runner.invoke(app, ["verify", "--public-key", str(identity / "public.key"), "-H", "nocolon"])
    assert result.exit_code == 1
    assert "Malformed header" in result.stdout


def test_did_url():
    result = runner.invoke(app, ["did", "url", DID])
    assert result.exit_code == 0
    assert result.stdout.strip() == "https://example.com/agents/claude/did.json"

    result = runner.invoke(app, ["did", "url", "did:key:z6Mk"])
    assert result.exit_code == 1


def test_did_create(identity: Path, tmp_path: Path):
    printed = runner.invoke(app, ["did", "create"])
    assert printed.exit_code == 0, printed.output
    document = json.loads(printed.stdout)
    assert document["id"] == DID
    assert document["authentication"] == [f"{DID}#key-1"]
    assert "controller" not in document

    out = tmp_path / "did.json"
    written = runner.invoke(app, ["did", "create", "-o", str(out), "--controller", "did:web:guardian.org"])
    assert written.exit_code == 0, written.output
    saved = json.loads(out.read_text(encoding="utf-8"))
    assert saved["controller"] == "did:web:guardian.org"
    assert saved["verificationMethod"][0]["publicKeyMultibase"].startswith("z")


def test_registry_and_credits(identity: Path, temp_db: Path):
    db = ["--db", str(temp_db)]
    public_key = str(identity / "public.key")

    result = runner.invoke(app, ["agents", "register", DID, "--public-key", public_key, "--name", "Claude"] + db)
    assert result.exit_code == 0, result.output
    assert "100 credits" in result.stdout

    duplicate = runner.invoke(app, ["agents", "register", DID, "--public-key", public_key, "--name", "x"] + db)
    assert duplicate.exit_code == 1

    result = runner.invoke(
        app, ["credits", "record", DID, "pr_merged", "--amount", "10", "--reason", "PR 12"] + db
    )
    assert result.exit_code == 0, result.output

    result = runner.invoke(
        app, ["credits", "record", DID, "security_issue", "--amount=-500", "--reason", "leak"] + db
    )
    assert result.exit_code == 0, result.output
    assert "balance 0" in result.stdout

    balance = runner.invoke(app, ["credits", "balance", DID] + db)
    assert balance.exit_code == 0
    assert " 0 credits" in balance.stdout

    history = runner.invoke(app, ["credits", "history", DID] + db)
    assert history.exit_code == 0
    assert "security_issue" in history.stdout
    assert "pr_merged" in history.stdout


def test_unknown_event_type_is_rejected(identity: Path, temp_db: Path):
    runner.invoke(
        app,
        ["agents", "register", DID, "--public-key", str(identity / "public.key"), "--name", "C", "--db", str(temp_db)],
    )
    result = runner.invoke(
        app, ["credits", "record", DID, "bribe", "-a", "5", "-r", "x", "--db", str(temp_db)]
    )
    assert result.exit_code != 0


def test_agent_status_commands(identity: Path, temp_db: Path):
    db = ["--db", str(temp_db)]
    runner.invoke(app, ["agents", "register", DID, "--public-key", str(identity / "public.key"), "--name", "C"] + db)

    result = runner.invoke(app, ["agents", "suspend", DID, "--reason", "review"] + db)
    assert result.exit_code == 0
    assert "suspended" in result.stdout

    listed = runner.invoke(app, ["agents", "list", "--status", "suspended"] + db)
    assert listed.exit_code == 0
    assert "suspended" in listed.stdout

    missing = runner.invoke(app, ["agents", "revoke", "did:web:nobody.example", "--reason", "x"] + db)
    assert missing.exit_code == 1


def test_unknown_agent_balance(temp_db: Path):
    result = runner.invoke(app, ["credits", "balance", DID, "--db", str(temp_db)])
    assert result.exit_code == 1
    assert "Agent not found" in result.stdout


def test_cache_sweep(temp_db: Path):
    result = runner.invoke(app, ["cache", "sweep", "--db", str(temp_db)])
    assert result.exit_code == 0
    assert "Removed 0" in result.stdout


def test_cli_and_library_share_default_db(agentid_home: Path):
    assert get_db_path() == (agentid_home / "agentid.db").resolve()
    assert get_db_path() == default_db_path().resolve()

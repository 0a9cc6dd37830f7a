# agentid/cli/main.py
"""
CLI for managing agent keys and DIDs, signing and verifying requests, and
inspecting the credit ledger.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from agentid.cli.config import get_db_path, keys_dir, load_config, update_config
from agentid.core.encoding import b64url_decode
from agentid.core.errors import AgentIDError, AgentNotFound
from agentid.core.types import AgentStatus, CreditEventType, ServiceEndpoint, SignableRequest
from agentid.crypto.keys import AgentKeyPair
from agentid.did import (
    create_did_document,
    extract_public_key,
    generate_did,
    get_well_known_url,
    resolve_did,
)
from agentid.ledger import CreditLedger
from agentid.storage import SQLiteStorage
from agentid.verify.replay import ReplayCache
from agentid.verify.request import sign_request, verify_request

app = typer.Typer(
    name="agentid",
    help="Agent identities: keys, did:web documents, signed requests and credits",
    add_completion=False,
    no_args_is_help=True,
)
did_app = typer.Typer(help="DID operations (create, url, resolve)", no_args_is_help=True)
agents_app = typer.Typer(help="Agent registry records", no_args_is_help=True)
credits_app = typer.Typer(help="Credit balance and ledger", no_args_is_help=True)
cache_app = typer.Typer(help="Replay cache maintenance", no_args_is_help=True)
app.add_typer(did_app, name="did")
app.add_typer(agents_app, name="agents")
app.add_typer(credits_app, name="credits")
app.add_typer(cache_app, name="cache")

console = Console()


def fail(message: str) -> None:
    console.print(f"[red]{message}[/]")
    raise typer.Exit(1)


def open_storage(db: Optional[Path]) -> SQLiteStorage:
    db_path = get_db_path(db)
    try:
        return SQLiteStorage(db_path)
    except AgentIDError as e:
        console.print(f"[red]Failed to open database: {e}[/]")
        console.print("[yellow]The file may be corrupted or not a valid SQLite DB.[/]")
        raise typer.Exit(1)


def load_signing_keys() -> tuple:
    try:
        config = load_config()
    except ValueError as e:
        fail(str(e))
    if not config.private_key_path or not config.did:
        fail('No identity configured. Run "agentid keygen" and "agentid init" first.')
    try:
        encoded = Path(config.private_key_path).expanduser().read_text(encoding="utf-8").strip()
        return AgentKeyPair.from_private_b64url(encoded), config.did
    except (OSError, ValueError) as e:
        fail(f"Failed to load private key: {e}")


def read_public_key(path: Path) -> str:
    """Base64url public key from a file, validated to be 32 bytes."""
    try:
        encoded = path.expanduser().read_text(encoding="utf-8").strip()
        AgentKeyPair.from_public_b64url(encoded)
    except (OSError, ValueError) as e:
        fail(f"Failed to read public key {path}: {e}")
    return encoded


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Manage agent identities, signatures and credits."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


# ---------------------------------------------------------------------------
# Keys & identity
# ---------------------------------------------------------------------------

@app.command()
def keygen(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory for keys"),
):
    """Generate a new Ed25519 keypair."""
    out_dir = output or keys_dir()
    out_dir.mkdir(parents=True, exist_ok=True)

    keys = AgentKeyPair.generate()
    public_path = out_dir / "public.key"
    private_path = out_dir / "private.key"
    public_path.write_text(keys.public_key_b64url(), encoding="utf-8")
    private_path.write_text(keys.private_key_b64url(), encoding="utf-8")
    private_path.chmod(0o600)

    update_config(private_key_path=str(private_path.resolve()), public_key_path=str(public_path.resolve()))

    console.print("[green]✓ Keypair generated[/]")
    console.print(f"  Public key:  {public_path}")
    console.print(f"  Private key: {private_path}")
    console.print("[yellow]Keep your private key secure and never share it![/]")


@app.command()
def init(
    domain: str = typer.Option(..., "--domain", help="Domain hosting the DID document"),
    path: Optional[str] = typer.Option(None, "--path", help="Optional path, e.g. agents/claude-001"),
    registry_url: Optional[str] = typer.Option(None, "--registry-url", help="Registry service endpoint"),
):
    """Record this agent's did:web identifier in the config."""
    did = generate_did(domain, path)
    update_config(did=did, registry_url=registry_url)
    console.print(f"[green]✓ Configured {did}[/]")
    console.print(f"  Publish the DID document at: {get_well_known_url(did)}")


# ---------------------------------------------------------------------------
# DID
# ---------------------------------------------------------------------------

@did_app.command("create")
def did_create(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write did.json here"),
    controller: Optional[str] = typer.Option(None, "--controller", help="Guardian DID"),
):
    """Create the DID document for the configured identity."""
    config = load_config()
    if not config.did or not config.public_key_path:
        fail('No identity configured. Run "agentid keygen" and "agentid init" first.')

    public_key = read_public_key(Path(config.public_key_path))
    domain, *segments = config.did[len("did:web:"):].split(":")
    services = None
    if config.registry_url:
        services = [ServiceEndpoint(f"{config.did}#registry", "AgentRegistry", config.registry_url)]

    document = create_did_document(
        domain=domain,
        public_key=public_key,
        path="/".join(segments),
        controller=controller,
        service_endpoints=services,
    )
    if output:
        output.write_text(document.to_json(), encoding="utf-8")
        console.print(f"[green]DID document written to {output}[/]")
        console.print(f"  Publish it at: {get_well_known_url(document.id)}")
    else:
        typer.echo(json.dumps(document.to_dict(), indent=2))


@did_app.command("url")
def did_url(did: str = typer.Argument(..., help="did:web identifier")):
    """Show where a did:web document must be published."""
    try:
        typer.echo(get_well_known_url(did))
    except AgentIDError as e:
        fail(e.message)


@did_app.command("resolve")
def did_resolve(did: str = typer.Argument(..., help="DID to resolve")):
    """Fetch and validate a DID document."""
    result = resolve_did(did)
    if not result.ok:
        fail(f"✗ Could not resolve {did}: {result.error.value}")
    console.print_json(json.dumps(result.did_document.to_dict()))
    if result.updated:
        console.print(f"  Last modified: {result.updated}")


# ---------------------------------------------------------------------------
# Request signing
# ---------------------------------------------------------------------------

@app.command()
def sign(
    method: str = typer.Argument(..., help="HTTP method"),
    url: str = typer.Argument(..., help="Request URL or path"),
    body: Optional[str] = typer.Option(None, "--body", "-b", help="Request body"),
    body_file: Optional[Path] = typer.Option(None, "--body-file", help="Read body from file"),
):
    """Sign a request and print the X-Agent-* headers as JSON."""
    if body is not None and body_file is not None:
        fail("Cannot specify both --body and --body-file")
    if body_file is not None:
        body = body_file.read_text(encoding="utf-8")

    keys, did = load_signing_keys()
    signed = sign_request(SignableRequest(method=method, url=url, body=body), keys.private_key, did)

    headers = signed.to_headers()
    headers["X-Agent-Method"] = method.upper()
    headers["X-Agent-URL"] = url
    typer.echo(json.dumps(headers, indent=2))


def parse_headers(raw: List[str]) -> dict:
    headers = {}
    for item in raw:
        name, sep, value = item.partition(":")
        if not sep:
            fail(f"Malformed header {item!r}, expected Name:Value")
        headers[name.strip()] = value.strip()
    return headers


@app.command()
def verify(
    header: Optional[List[str]] = typer.Option(None, "--header", "-H", help="Header as Name:Value (repeatable)"),
    body: Optional[str] = typer.Option(None, "--body", "-b", help="Request body"),
    did: Optional[str] = typer.Option(None, "--did", "-d", help="Signer DID to resolve (default: X-Agent-DID)"),
    public_key: Optional[Path] = typer.Option(None, "--public-key", help="Public key file instead of resolving"),
    tolerance_ms: int = typer.Option(300_000, "--tolerance-ms", help="Allowed clock skew"),
):
    """Verify a signed request."""
    headers = parse_headers(header or [])

    if public_key is not None:
        key_bytes = b64url_decode(read_public_key(public_key))
    else:
        did = did or next((v for k, v in headers.items() if k.lower() == "x-agent-did"), None)
        if not did:
            fail("Specify --did or --public-key (or pass an X-Agent-DID header)")
        resolved = resolve_did(did)
        if not resolved.ok:
            fail(f"✗ Could not resolve {did}: {resolved.error.value}")
        try:
            key_bytes = extract_public_key(resolved.did_document)
        except AgentIDError as e:
            fail(e.message)

    result = verify_request(headers, key_bytes, body, tolerance_ms)
    if result.valid:
        console.print("[green]✓ Signature is valid[/]")
    else:
        console.print(f"[red]✗ {result.error}[/]")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

@agents_app.command("register")
def agents_register(
    did: str = typer.Argument(..., help="Agent DID"),
    public_key: Path = typer.Option(..., "--public-key", help="Public key file (base64url)"),
    name: str = typer.Option(..., "--name", help="Display name"),
    description: Optional[str] = typer.Option(None, "--description"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Register an agent with its starting credit balance."""
    encoded = read_public_key(public_key)
    with open_storage(db) as storage:
        try:
            agent = storage.register_agent(did, encoded, name, description)
        except (ValueError, AgentIDError) as e:
            fail(str(e))
    console.print(f"[green]✓ Registered {agent.did}[/] with {agent.credits} credits")


@agents_app.command("show")
def agents_show(
    did: str = typer.Argument(..., help="Agent DID"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Show an agent's status and balance."""
    with open_storage(db) as storage:
        agent = storage.get_agent(did)
    if agent is None:
        fail(f"Agent not found: {did}")

    table = Table(title=agent.name, show_header=False)
    table.add_row("DID", agent.did)
    table.add_row("Status", agent.status.value)
    table.add_row("Credits", str(agent.credits))
    table.add_row("Registered", agent.created_at)
    if agent.revocation_reason:
        table.add_row("Reason", agent.revocation_reason)
    console.print(table)


@agents_app.command("list")
def agents_list(
    status: Optional[AgentStatus] = typer.Option(None, "--status", help="Filter by status"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """List registered agents."""
    with open_storage(db) as storage:
        agents = storage.list_agents(status)
    if not agents:
        console.print("[yellow]No agents registered.[/]")
        return

    table = Table(title="Registered Agents")
    table.add_column("DID")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Credits")
    for agent in agents:
        table.add_row(agent.did, agent.name, agent.status.value, str(agent.credits))
    console.print(table)


def _set_status(did: str, status: AgentStatus, reason: str, db: Optional[Path]) -> None:
    with open_storage(db) as storage:
        try:
            storage.set_agent_status(did, status, reason)
        except AgentNotFound as e:
            fail(e.message)
    console.print(f"[yellow]Agent {did} is now {status.value}[/]")


@agents_app.command("suspend")
def agents_suspend(
    did: str = typer.Argument(..., help="Agent DID"),
    reason: str = typer.Option(..., "--reason"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Suspend an agent."""
    _set_status(did, AgentStatus.SUSPENDED, reason, db)


@agents_app.command("revoke")
def agents_revoke(
    did: str = typer.Argument(..., help="Agent DID"),
    reason: str = typer.Option(..., "--reason"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Revoke an agent permanently."""
    _set_status(did, AgentStatus.REVOKED, reason, db)


# ---------------------------------------------------------------------------
# Credits
# ---------------------------------------------------------------------------

@credits_app.command("balance")
def credits_balance(
    did: str = typer.Argument(..., help="Agent DID"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Show the current credit balance."""
    with open_storage(db) as storage:
        try:
            balance = CreditLedger(storage).balance(did)
        except AgentNotFound as e:
            fail(e.message)
    console.print(f"{did}: [bold]{balance}[/] credits")


@credits_app.command("history")
def credits_history(
    did: str = typer.Argument(..., help="Agent DID"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of recent events to show"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Show the most recent credit events, newest first."""
    with open_storage(db) as storage:
        try:
            entries = CreditLedger(storage).history(did, limit)
        except AgentNotFound as e:
            fail(e.message)

    if not entries:
        console.print(f"[yellow]No credit events for {did}[/]")
        return

    table = Table(title=f"Credit history: {did}")
    table.add_column("When")
    table.add_column("Type")
    table.add_column("Amount", justify="right")
    table.add_column("Balance", justify="right")
    table.add_column("Reason")
    for entry in entries:
        table.add_row(entry.created_at, entry.type.value, f"{entry.amount:+d}", str(entry.balance_after), entry.reason)
    console.print(table)


@credits_app.command("record")
def credits_record(
    did: str = typer.Argument(..., help="Agent DID"),
    event_type: CreditEventType = typer.Argument(..., help="Event type"),
    amount: int = typer.Option(..., "--amount", "-a", help="Signed credit delta"),
    reason: str = typer.Option(..., "--reason", "-r"),
    url: Optional[str] = typer.Option(None, "--url", help="Related URL (e.g. a pull request)"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Record a credit event atomically."""
    with open_storage(db) as storage:
        try:
            entry = CreditLedger(storage).record(did, event_type, amount, reason, url)
        except AgentIDError as e:
            fail(e.message)
    console.print(f"[green]✓ {entry.type.value} {entry.amount:+d}[/] -> balance {entry.balance_after}")


# ---------------------------------------------------------------------------
# Replay cache
# ---------------------------------------------------------------------------

@cache_app.command("sweep")
def cache_sweep(
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Delete replay-cache entries older than one hour."""
    with open_storage(db) as storage:
        removed = ReplayCache(storage).sweep()
    console.print(f"[green]Removed {removed} expired signature(s)[/]")


if __name__ == "__main__":
    app()

"""Ghost Hunter HQ CLI - Main entry point."""

import asyncio
import logging
import os
from typing import List, Tuple

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import settings

app = typer.Typer(
    name="hq",
    help="Ghost Hunter HQ - run the command-center server or join a squad from the terminal",
    no_args_is_help=True,
)
console = Console()

LOG_STYLES = {"system": "cyan", "event": "yellow", "command": "magenta", "hunt": "bold red"}


# ============================================================================
# Server
# ============================================================================


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(8000, help="Bind port"),
    reload: bool = typer.Option(False, help="Auto-reload on code changes"),
):
    """Run the HTTP + WebSocket server."""
    import uvicorn

    uvicorn.run("main:app", host=host, port=port, reload=reload, log_level=settings.log_level.lower())


# ============================================================================
# Terminal client
# ============================================================================


def _print_log(entry) -> None:
    style = LOG_STYLES.get(entry.type, "white")
    stamp = entry.timestamp.strftime("%H:%M:%S")
    console.print(f"[dim]{stamp}[/dim] [{style}]{entry.message}[/{style}]")


def _squad_table(center) -> Table:
    table = Table(title="Squad Status")
    table.add_column("Agent", style="cyan")
    table.add_column("Status")
    table.add_column("Map")
    table.add_column("Location")
    for row in center.squad:
        status = "[red]DEAD[/red]" if row.is_dead else "[green]ALIVE[/green]"
        table.add_row(row.display_name or "Unknown", status, row.map or "Unknown", row.location or "Unknown")
    return table


def _evidence_table(center) -> Table:
    table = Table(title="Evidence Board")
    table.add_column("Evidence", style="magenta")
    table.add_column("Logged by")
    for item in center.evidence:
        table.add_row(item.evidence, item.display_name or "Unknown")
    return table


async def _terminal(name: str, photo: str) -> None:
    from client.session import CommandCenter
    from client.sync import create_backend

    center = CommandCenter(create_backend(), display_name=name, photo_url=photo, on_log=_print_log)
    for entry in center.logs:
        _print_log(entry)
    await center.start()
    console.print(
        Panel(
            "Type a message, or a command: !hunt !flicker !manifest !curse !slam "
            "!evidence:X !dead:X !revive:X !location:X\n"
            "Local: /squad /evidence /chat /map NAME /profile NAME /quit",
            title=f"Agent {center.display_name}",
        )
    )
    try:
        while True:
            line = (await asyncio.to_thread(input)).strip()
            if not line:
                continue
            if line == "/quit":
                break
            if line == "/squad":
                console.print(_squad_table(center))
            elif line == "/evidence":
                console.print(_evidence_table(center))
            elif line == "/chat":
                for msg in center.chat[-20:]:
                    console.print(f"[cyan]{msg.display_name or 'Unknown'}[/cyan]: {msg.text}")
            elif line.startswith("/map "):
                await center.set_map(line[5:].strip())
            elif line.startswith("/profile "):
                await center.save_profile(line[9:].strip(), center.photo_url)
            else:
                await center.send(line)
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        await center.stop()


@app.command("terminal")
def terminal(
    name: str = typer.Option("Ghost Hunter", "--name", "-n", help="Display name"),
    photo: str = typer.Option(settings.default_photo_url, help="Avatar URL"),
):
    """Join the squad from the terminal: live chat, events and commands."""
    logging.basicConfig(level=settings.log_level)
    asyncio.run(_terminal(name, photo))


# ============================================================================
# Firestore diagnostics
# ============================================================================


def _check_config() -> List[Tuple[str, str, str]]:
    results = []
    if settings.firebase_project_id:
        results.append(("Project ID", "PASS", settings.firebase_project_id))
    else:
        results.append(("Project ID", "FAIL", "FIREBASE_PROJECT_ID is not set"))

    if settings.firestore_emulator_host:
        results.append(("Emulator", "PASS", settings.firestore_emulator_host))
        results.append(("Credentials", "SKIP", "Emulator does not need credentials"))
    elif settings.google_application_credentials:
        path = settings.google_application_credentials
        if os.path.isfile(path):
            results.append(("Credentials", "PASS", path))
        else:
            results.append(("Credentials", "FAIL", f"File not found: {path}"))
    else:
        results.append(("Credentials", "WARN", "Falling back to application default credentials"))
    return results


async def _check_connectivity(service) -> List[Tuple[str, str, str]]:
    from models.hq import Evidence

    results = []
    probe = Evidence(user_id="verify-firestore", evidence="PROBE", display_name="verify")
    try:
        await service.add_evidence(probe)
        results.append(("Write", "PASS", f"evidence/{probe.id}"))
    except Exception as exc:
        results.append(("Write", "FAIL", str(exc)))
        return results
    try:
        items = await service.get_evidence()
        found = any(item.id == probe.id for item in items)
        results.append(("Read", "PASS" if found else "WARN", f"{len(items)} evidence documents"))
    except Exception as exc:
        results.append(("Read", "FAIL", str(exc)))
    try:
        await service.delete_evidence(probe.id)
        results.append(("Cleanup", "PASS", "probe removed"))
    except Exception as exc:
        results.append(("Cleanup", "WARN", str(exc)))
    return results


@app.command("verify-firestore")
def verify_firestore():
    """Diagnose Firestore configuration and connectivity."""
    results = _check_config()
    service = None
    if settings.firestore_configured:
        try:
            from services.firestore_service import FirestoreService

            service = FirestoreService()
            results.append(("Client", "PASS", "Firestore client initialised"))
        except Exception as exc:
            results.append(("Client", "FAIL", str(exc)))
    else:
        results.append(("Client", "SKIP", "No project or emulator configured"))

    if service is not None:
        results.extend(asyncio.run(_check_connectivity(service)))

    styles = {"PASS": "green", "FAIL": "red", "WARN": "yellow", "SKIP": "dim"}
    table = Table(title="Firestore Verification")
    table.add_column("Check", style="cyan")
    table.add_column("Status")
    table.add_column("Details")
    for check, status, details in results:
        table.add_row(check, f"[{styles[status]}]{status}[/{styles[status]}]", details)
    console.print(table)

    if any(status == "FAIL" for _, status, _ in results):
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()

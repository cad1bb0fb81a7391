"""CartPilot CLI: talk to a running CartPilot API server, or start one."""

from __future__ import annotations

import json
import sys
from typing import Any

import click
import httpx
import yaml
from rich import box
from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

_STATUS_COLOR: dict[str, str] = {
    "completed": "green",
    "partial": "yellow",
    "failed": "red",
    "enabled": "green",
    "disabled": "dim",
}


# ── Internal helpers ──────────────────────────────────────────────────────────


def _color(status: str) -> str:
    return _STATUS_COLOR.get(status, "white")


def _client(url: str, timeout: float | None = 30) -> httpx.Client:
    return httpx.Client(base_url=url.rstrip("/"), timeout=timeout)


def _load_file(path: str) -> dict:
    with open(path) as f:
        return yaml.safe_load(f) if path.endswith((".yaml", ".yml")) else json.load(f)


def _die(msg: str, code: int = 1) -> None:
    err_console.print(f"[red]Error:[/] {msg}")
    sys.exit(code)


def _error_text(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


def _check(resp: httpx.Response) -> None:
    if resp.status_code == 404:
        _die(_error_text(resp) or "Not found")
    if resp.is_error:
        _die(f"HTTP {resp.status_code}: {_error_text(resp)}")


def _emit_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


# ── Root group ────────────────────────────────────────────────────────────────


@click.group()
@click.option(
    "--url", "-u",
    default="http://localhost:3001",
    envvar="CARTPILOT_URL",
    show_default=True,
    help="CartPilot API base URL.",
)
@click.option("--json", "json_output", is_flag=True, help="Output raw JSON.")
@click.pass_context
def cli(ctx: click.Context, url: str, json_output: bool) -> None:
    """CartPilot: scheduled storefront cart automation."""
    ctx.ensure_object(dict)
    ctx.obj["url"] = url
    ctx.obj["json_output"] = json_output


# ── cartpilot serve ───────────────────────────────────────────────────────────


@cli.command("serve")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=3001, show_default=True, type=int)
def serve(host: str, port: int) -> None:
    """Run the API server with the trigger poller."""
    import uvicorn

    from core.config import Settings
    from core.logging_config import setup_logging

    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_json)
    uvicorn.run("api.server:app", host=host, port=port, log_config=None)


# ── cartpilot health ──────────────────────────────────────────────────────────


@cli.command("health")
@click.pass_obj
def health(obj: dict) -> None:
    """Check that the server is up."""
    try:
        with _client(obj["url"]) as c:
            resp = c.get("/health")
    except httpx.ConnectError:
        _die(f"Cannot connect to {obj['url']}")
    _check(resp)
    data = resp.json()
    if obj["json_output"]:
        _emit_json(data)
        return
    console.print(f"[green]{data['status']}[/]  {data.get('timestamp', '')}")


# ── cartpilot order ───────────────────────────────────────────────────────────


@cli.command("order")
@click.argument("store_url")
@click.option("--store", "store_name", default="", help="Store display name.")
@click.option("--item", "items", multiple=True, help="Item to add (repeatable).")
@click.option("--instructions", default="", help="Special instructions.")
@click.option("--headless/--visible", default=None, help="Browser mode (default: server setting).")
@click.option("--profile", "profile_ref", default=None, help="Saved browser session profile.")
@click.pass_obj
def order(obj: dict, store_url: str, store_name: str, items: tuple[str, ...],
          instructions: str, headless: bool | None, profile_ref: str | None) -> None:
    """Open STORE_URL and add the given items to the cart. Waits for the run."""
    payload = {
        "storeUrl": store_url,
        "storeName": store_name,
        "items": list(items),
        "specialInstructions": instructions,
        "options": {"headless": headless, "profileRef": profile_ref},
    }
    with _client(obj["url"], timeout=None) as c:
        resp = c.post("/order", json=payload)
    _check(resp)
    data = resp.json()

    if obj["json_output"]:
        _emit_json(data)
        return
    status = data.get("status", "?")
    console.print(f"[{_color(status)}]{status}[/]  {data['message']}")
    console.print("Review the cart and check out in the browser window.")


# ── cartpilot template ────────────────────────────────────────────────────────


@cli.group("template")
def template() -> None:
    """Manage order templates."""


@template.command("list")
@click.pass_obj
def template_list(obj: dict) -> None:
    """List order templates."""
    with _client(obj["url"]) as c:
        resp = c.get("/templates")
    _check(resp)
    data = resp.json()

    if obj["json_output"]:
        _emit_json(data)
        return
    if not data:
        click.echo("No templates found.")
        return

    table = Table(box=box.SIMPLE)
    table.add_column("Template ID", style="cyan")
    table.add_column("Name")
    table.add_column("Store")
    table.add_column("Items", justify="right")
    table.add_column("Orders", justify="right")
    for row in data:
        table.add_row(
            row["template_id"],
            row.get("name", ""),
            row.get("store_name", ""),
            str(len(row.get("items", []))),
            str(row.get("order_count", 0)),
        )
    console.print(table)


@template.command("create")
@click.option("--name", required=True)
@click.option("--url", "store_url", required=True, help="Store page URL.")
@click.option("--store", "store_name", default="")
@click.option("--item", "items", multiple=True, help="Item name (repeatable).")
@click.option("--instructions", default="")
@click.pass_obj
def template_create(obj: dict, name: str, store_url: str, store_name: str,
                    items: tuple[str, ...], instructions: str) -> None:
    """Create an order template."""
    payload = {
        "name": name,
        "store_url": store_url,
        "store_name": store_name,
        "items": list(items),
        "special_instructions": instructions,
    }
    with _client(obj["url"]) as c:
        resp = c.post("/templates", json=payload)
    _check(resp)
    data = resp.json()
    if obj["json_output"]:
        _emit_json(data)
        return
    click.echo(f"Created  {data['template_id']}  {data['name']}")


@template.command("delete")
@click.argument("template_id")
@click.pass_obj
def template_delete(obj: dict, template_id: str) -> None:
    """Delete a template and its schedules."""
    with _client(obj["url"]) as c:
        resp = c.delete(f"/templates/{template_id}")
    _check(resp)
    click.echo(f"Deleted  {template_id}")


@template.command("order")
@click.argument("template_id")
@click.pass_obj
def template_order(obj: dict, template_id: str) -> None:
    """Start an automation run for a template."""
    with _client(obj["url"]) as c:
        resp = c.post(f"/templates/{template_id}/order")
    _check(resp)
    click.echo(f"Started  {template_id}")


# ── cartpilot schedule ────────────────────────────────────────────────────────


@cli.group("schedule")
def schedule() -> None:
    """Manage order schedules."""


def _print_schedules(data: list[dict]) -> None:
    table = Table(box=box.SIMPLE)
    table.add_column("Schedule ID", style="cyan")
    table.add_column("Name")
    table.add_column("Timing")
    table.add_column("Status")
    table.add_column("Next Trigger")
    for row in data:
        state = "enabled" if row.get("enabled") else "disabled"
        if row.get("snoozed_until"):
            state += " (snoozed)"
        timing = row.get("timing", {})
        table.add_row(
            row["schedule_id"],
            row.get("name", ""),
            timing.get("kind", "?"),
            f"[{_color(state.split()[0])}]{state}[/]",
            row.get("next_trigger_at") or "-",
        )
    console.print(table)


@schedule.command("list")
@click.pass_obj
def schedule_list(obj: dict) -> None:
    """List all schedules."""
    with _client(obj["url"]) as c:
        resp = c.get("/schedules")
    _check(resp)
    data = resp.json()

    if obj["json_output"]:
        _emit_json(data)
        return
    if not data:
        click.echo("No schedules found.")
        return
    _print_schedules(data)


@schedule.command("due")
@click.pass_obj
def schedule_due(obj: dict) -> None:
    """List schedules that are due right now."""
    with _client(obj["url"]) as c:
        resp = c.get("/schedules/due")
    _check(resp)
    data = resp.json()

    if obj["json_output"]:
        _emit_json(data)
        return
    if not data:
        click.echo("Nothing due.")
        return
    _print_schedules(data)


@schedule.command("create")
@click.argument("file", type=click.Path(exists=True))
@click.pass_obj
def schedule_create(obj: dict, file: str) -> None:
    """Create a schedule from a YAML or JSON file.

    \b
    File format (YAML example):
      name: weekday-lunch
      template_id: 7d0c...
      reminder_minutes: 15
      auto_open: true
      timing:
        kind: recurring
        days_of_week: [0, 2, 4]   # Mon, Wed, Fri
        time_of_day: "12:00"
    """
    payload = _load_file(file)
    with _client(obj["url"]) as c:
        resp = c.post("/schedules", json=payload)
    _check(resp)
    data = resp.json()

    if obj["json_output"]:
        _emit_json(data)
        return
    click.echo(f"Created  {data['schedule_id']}  next: {data.get('next_trigger_at') or '-'}")


@schedule.command("delete")
@click.argument("schedule_id")
@click.pass_obj
def schedule_delete(obj: dict, schedule_id: str) -> None:
    """Delete a schedule."""
    with _client(obj["url"]) as c:
        resp = c.delete(f"/schedules/{schedule_id}")
    _check(resp)
    click.echo(f"Deleted  {schedule_id}")


@schedule.command("toggle")
@click.argument("schedule_id")
@click.pass_obj
def schedule_toggle(obj: dict, schedule_id: str) -> None:
    """Enable a disabled schedule, or disable an enabled one."""
    with _client(obj["url"]) as c:
        resp = c.post(f"/schedules/{schedule_id}/toggle")
    _check(resp)
    data = resp.json()
    click.echo(f"{'Enabled' if data['enabled'] else 'Disabled'}  {schedule_id}")


@schedule.command("trigger")
@click.argument("schedule_id")
@click.pass_obj
def schedule_trigger(obj: dict, schedule_id: str) -> None:
    """Run a schedule's order now."""
    with _client(obj["url"]) as c:
        resp = c.post(f"/schedules/{schedule_id}/trigger")
    _check(resp)
    click.echo(f"Triggered  {schedule_id}")


@schedule.command("snooze")
@click.argument("schedule_id")
@click.option("--minutes", "-m", type=float, default=None, help="Defaults to the server setting.")
@click.pass_obj
def schedule_snooze(obj: dict, schedule_id: str, minutes: float | None) -> None:
    """Hold off a due schedule for a few minutes."""
    with _client(obj["url"]) as c:
        resp = c.post(f"/schedules/{schedule_id}/snooze", json={"minutes": minutes})
    _check(resp)
    data = resp.json()
    click.echo(f"Snoozed  {schedule_id}  until {data['resume_at']}")


# ── cartpilot history ─────────────────────────────────────────────────────────


@cli.command("history")
@click.option("--period", type=click.Choice(["today", "week", "month", "all"]), default="all", show_default=True)
@click.option("--clear", is_flag=True, help="Delete all history instead of listing it.")
@click.pass_obj
def history(obj: dict, period: str, clear: bool) -> None:
    """Show past automation runs."""
    with _client(obj["url"]) as c:
        resp = c.delete("/history") if clear else c.get("/history", params={"period": period})
    _check(resp)
    if clear:
        click.echo("History cleared.")
        return
    data = resp.json()

    if obj["json_output"]:
        _emit_json(data)
        return
    if not data:
        click.echo("No history.")
        return

    table = Table(box=box.SIMPLE)
    table.add_column("When")
    table.add_column("Template")
    table.add_column("Store")
    table.add_column("Status")
    table.add_column("Items", justify="right")
    table.add_column("Trigger")
    for row in data:
        status = row.get("status", "?")
        trigger = f"via {row.get('schedule_name') or 'schedule'}" if row.get("triggered_by") == "schedule" else "Manual"
        table.add_row(
            row.get("timestamp", ""),
            row.get("template_name", ""),
            row.get("store_name", ""),
            f"[{_color(status)}]{status}[/]",
            f"{row.get('items_fulfilled', 0)}/{row.get('items_requested', 0)}",
            trigger,
        )
    console.print(table)


# ── cartpilot export / import ─────────────────────────────────────────────────


@cli.command("export")
@click.argument("file", type=click.Path(dir_okay=False, writable=True))
@click.pass_obj
def export_cmd(obj: dict, file: str) -> None:
    """Write templates, schedules and history to FILE (JSON)."""
    with _client(obj["url"]) as c:
        resp = c.get("/export")
    _check(resp)
    with open(file, "w") as f:
        json.dump(resp.json(), f, indent=2)
    click.echo(f"Exported  {file}")


@cli.command("import")
@click.argument("file", type=click.Path(exists=True))
@click.pass_obj
def import_cmd(obj: dict, file: str) -> None:
    """Replace server data with the contents of FILE (JSON or YAML)."""
    payload = _load_file(file)
    with _client(obj["url"]) as c:
        resp = c.post("/import", json=payload)
    _check(resp)
    data = resp.json()
    if obj["json_output"]:
        _emit_json(data)
        return
    click.echo(data.get("message", "Imported"))


if __name__ == "__main__":
    cli()

"""
Escrow Client -- CLI Interface
===============================
Command line front end for the escrow lifecycle engine and backend.

Commands:
  status-info    -- Show display metadata for a status
  next-action    -- Show the action offered to a role for a status
  transitions    -- Print the escrow state machine
  timeline       -- Show the progress stepper for a status
  fees           -- Buyer fee and total for an amount (payment page)
  fee-schedule   -- Full tier-based fee breakdown
  settings       -- Display the active client settings
  login          -- Sign in and store the session
  logout         -- Sign out and clear the session
  list           -- List my escrows
  show           -- Show one escrow with its next action
  act            -- Perform an escrow action (accept, fund, deliver, ...)
  pay            -- Start a gateway payment and print the redirect URL
  notifications  -- List notifications
  chat           -- Show or send chat messages for an escrow
  watch          -- Poll notifications until interrupted
"""

from __future__ import annotations

import logging
import sys
import time
from decimal import Decimal

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from escrow._icons import ICON_CHECK, ICON_CROSS, ICON_WARN
from escrow.api_client import ApiClient
from escrow.audit_logger import AuditLogger
from escrow.errors import EscrowClientError, ValidationError
from escrow.fees import PAYMENT_METHODS, FeeSchedule, buyer_fee, buyer_pays, payment_summary
from escrow.formatting import (
    SUPPORTED_CURRENCIES,
    format_currency,
    format_date,
    format_percentage,
    format_relative_time,
)
from escrow.lifecycle import (
    TRANSITIONS,
    ActionKind,
    EscrowStatus,
    Role,
    allowed_actions,
    can_cancel,
    can_dispute,
    get_next_action,
    get_progress_percentage,
    get_status_info,
    get_timeline_steps,
    timeline_index,
)
from escrow.models import Escrow
from escrow.poller import Poller
from escrow.services import (
    AuthService,
    ChatService,
    EscrowService,
    NotificationService,
    PaymentService,
)
from escrow.session import Session
from escrow.settings import Settings

console = Console()

STATUS_COLORS = {
    "pending": "yellow", "accepted": "blue", "funded": "magenta",
    "delivered": "cyan", "completed": "green", "paid_out": "green",
    "cancelled": "dim", "disputed": "red",
}

STATUS_CHOICES = [s.value for s in EscrowStatus]
ROLE_CHOICES = [r.value for r in Role]
ACTION_CHOICES = [a.value for a in ActionKind if a.mutates and a != ActionKind.PAYOUT]


def _client(ctx: click.Context) -> ApiClient:
    settings: Settings = ctx.obj["settings"]
    session = Session.load(settings.session_path)
    return ApiClient(session, settings, http=ctx.obj.get("http"))


def _fail(error: Exception) -> None:
    console.print(f"[red]{ICON_CROSS} {error}[/red]")
    if isinstance(error, ValidationError):
        for field_name, message in error.fields.items():
            console.print(f"  [red]{field_name}[/red]: {message}")
    if isinstance(error, EscrowClientError) and not error.recoverable:
        console.print("[dim]Sign in again or return to your dashboard.[/dim]")
    sys.exit(1)


def _escrow_panel(escrow: Escrow, user_id: str) -> Panel:
    info = get_status_info(escrow.status)
    role = escrow.role_of(user_id)
    fee, total = payment_summary(escrow)

    lines = [
        f"Title:      {escrow.title}",
        f"Status:     {info.icon} {info.text}",
        f"Progress:   {get_progress_percentage(escrow.status)}%",
        f"Amount:     {format_currency(escrow.amount, escrow.currency)}",
        f"Buyer Fee:  {format_currency(fee, escrow.currency)}",
        f"Buyer Pays: {format_currency(total, escrow.currency)}",
        f"Buyer:      {escrow.buyer.name or escrow.buyer.id}",
        f"Seller:     {escrow.seller.name or escrow.seller.id}",
    ]
    if escrow.payment.seller_receives is not None:
        lines.append(
            f"Seller Receives: {format_currency(escrow.payment.seller_receives, escrow.currency)}"
        )
    if escrow.created_at:
        lines.append(f"Created:    {format_date(escrow.created_at)}")
    if role is not None:
        action = get_next_action(escrow, role)
        marker = ICON_CHECK if action.is_invokable else ICON_WARN
        lines.append(f"You are:    {role.value}")
        lines.append(f"Next:       {marker} {action.text}")
        extras = [a.value for a in allowed_actions(escrow.status, role)]
        lines.append(f"Available:  {', '.join(extras) or 'NONE'}")
    if escrow.dispute.is_disputed:
        lines.append(f"Dispute:    {escrow.dispute.reason}")
    if escrow.timeline:
        lines.append("")
        lines.append("TIMELINE:")
        for entry in escrow.timeline:
            note = f" -- {entry.note}" if entry.note else ""
            lines.append(f"  {entry.timestamp}: {entry.status}{note}")
    for issue in escrow.validate():
        lines.append(f"{ICON_WARN} {issue}")

    return Panel(
        "\n".join(lines),
        title=f"ESCROW {escrow.id} -- {escrow.status}",
        border_style=STATUS_COLORS.get(escrow.status, "white"),
    )


# ---------------------------------------------------------------------------
# CLI Group
# ---------------------------------------------------------------------------

@click.group()
@click.version_option("1.0.0", prog_name="Escrow Client")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """Escrow lifecycle engine and backend client."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj.setdefault("settings", Settings())


# ---------------------------------------------------------------------------
# Lifecycle lookups
# ---------------------------------------------------------------------------

@main.command("status-info")
@click.argument("status")
def status_info_cmd(status: str):
    """Show display metadata for a status (unknown statuses fall back to pending)."""
    info = get_status_info(status)
    console.print(Panel(
        f"Text:     {info.text}\nIcon:     {info.icon}\nColor:    {info.color}\n"
        f"Cancel:   {can_cancel(status)}\nDispute:  {can_dispute(status)}",
        title=f"STATUS -- {status}",
        border_style=STATUS_COLORS.get(status, "white"),
    ))


@main.command("next-action")
@click.argument("status")
@click.option("--role", "-r", required=True, type=click.Choice(ROLE_CHOICES))
def next_action_cmd(status: str, role: str):
    """Show the action offered to a role for a status."""
    action = get_next_action(status, role)
    marker = ICON_CHECK if action.is_invokable else ICON_WARN
    console.print(
        f"{marker} {action.text}  "
        f"[dim](action={action.action.value if action.action else None}, "
        f"disabled={action.disabled}, primary={action.primary})[/dim]"
    )


@main.command("transitions")
def transitions_cmd():
    """Print the escrow state machine."""
    table = Table(title="Escrow Transitions")
    table.add_column("From", style="cyan")
    table.add_column("Action", style="yellow")
    table.add_column("By", style="green")
    table.add_column("To", style="magenta")

    for status, options in TRANSITIONS.items():
        if not options:
            table.add_row(status.value, "-", "-", "[dim]terminal[/dim]")
        for action, (roles, target) in options.items():
            who = ", ".join(sorted(r.value for r in roles)) or "system"
            table.add_row(status.value, action.value, who, target.value)

    console.print(table)


@main.command("timeline")
@click.argument("status", type=click.Choice(STATUS_CHOICES))
def timeline_cmd(status: str):
    """Show the progress stepper for a status."""
    index = timeline_index(status)
    if index < 0:
        info = get_status_info(status)
        console.print(Panel(
            f"{info.icon} {info.text}",
            title="ESCROW STOPPED",
            border_style=STATUS_COLORS.get(status, "white"),
        ))
        return

    for i, step in enumerate(get_timeline_steps()):
        if i < index:
            console.print(f"  [green]{ICON_CHECK}[/green] {step.icon} {step.label}")
        elif i == index:
            console.print(f"  [bold yellow]>[/bold yellow] {step.icon} [bold]{step.label}[/bold]")
        else:
            console.print(f"  [dim].  {step.icon} {step.label}[/dim]")
    console.print(f"\nProgress: {get_progress_percentage(status)}%")


# ---------------------------------------------------------------------------
# Fees
# ---------------------------------------------------------------------------

@main.command("fees")
@click.argument("amount")
@click.option("--currency", "-c", default="USD", type=click.Choice(SUPPORTED_CURRENCIES))
@click.pass_context
def fees_cmd(ctx: click.Context, amount: str, currency: str):
    """Buyer fee and total for an amount, as on the payment page."""
    rate: Decimal = ctx.obj["settings"].buyer_fee_rate
    try:
        fee = buyer_fee(amount, currency, rate)
        total = buyer_pays(amount, currency, rate)
    except ValueError as e:
        _fail(e)
    console.print(f"Amount:           {format_currency(amount, currency)}")
    console.print(f"Buyer Fee ({format_percentage(rate)}): {format_currency(fee, currency)}")
    console.print(f"[bold]Total:            {format_currency(total, currency)}[/bold]")


@main.command("fee-schedule")
@click.argument("amount")
@click.option("--currency", "-c", default="USD", type=click.Choice(SUPPORTED_CURRENCIES))
@click.option("--tier", "-t", default=None, help="Fee tier (free, starter, growth, enterprise, api).")
@click.option("--method", "-m", default="flutterwave", type=click.Choice(PAYMENT_METHODS))
@click.pass_context
def fee_schedule_cmd(ctx: click.Context, amount: str, currency: str, tier: str | None, method: str):
    """Full tier-based fee breakdown including gateway costs."""
    schedule = FeeSchedule(ctx.obj["settings"])
    try:
        breakdown = schedule.calculate(amount, currency, tier, method)
    except ValueError as e:
        _fail(e)

    within = schedule.is_amount_within_limit(amount, currency, breakdown.tier)
    console.print(Panel(
        breakdown.summary() + f"\nWithin Limit:     {within}",
        title=f"FEES -- {breakdown.tier}",
        border_style="blue" if within else "red",
    ))


@main.command("settings")
@click.pass_context
def settings_cmd(ctx: click.Context):
    """Display the active client settings."""
    console.print(Panel(ctx.obj["settings"].summary(), title="Client Settings", border_style="blue"))


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

@main.command("login")
@click.option("--email", "-e", required=True)
@click.password_option("--password", "-p", confirmation_prompt=False)
@click.pass_context
def login_cmd(ctx: click.Context, email: str, password: str):
    """Sign in and store the session."""
    client = _client(ctx)
    try:
        data = AuthService(client).login(email, password)
    except EscrowClientError as e:
        _fail(e)
    user = data.get("user") or {}
    console.print(f"[green]{ICON_CHECK} Welcome back, {user.get('firstName') or email}![/green]")


@main.command("logout")
@click.pass_context
def logout_cmd(ctx: click.Context):
    """Sign out and clear the session."""
    AuthService(_client(ctx)).logout()
    console.print(f"{ICON_CHECK} Signed out.")


# ---------------------------------------------------------------------------
# Escrows
# ---------------------------------------------------------------------------

@main.command("list")
@click.option("--status", "-s", default="all", type=click.Choice(["all", *STATUS_CHOICES]))
@click.option("--page", default=1, type=int)
@click.pass_context
def list_cmd(ctx: click.Context, status: str, page: int):
    """List my escrows."""
    client = _client(ctx)
    try:
        escrows = EscrowService(client).my_escrows(status=status, page=page)
    except (EscrowClientError, ValueError) as e:
        _fail(e)

    if not escrows:
        console.print(f"\n{ICON_WARN} No escrows found.")
        return

    table = Table(title="My Escrows")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Amount", justify="right")
    table.add_column("Status", style="yellow")
    table.add_column("Role", style="dim")
    table.add_column("Next", style="green")

    for e in escrows:
        role = e.role_of(client.session.user_id)
        action = get_next_action(e, role) if role else None
        table.add_row(
            e.id, e.title, format_currency(e.amount, e.currency),
            get_status_info(e.status).text,
            role.value if role else "-",
            action.text if action else "-",
        )

    console.print()
    console.print(table)


@main.command("show")
@click.argument("escrow_id")
@click.pass_context
def show_cmd(ctx: click.Context, escrow_id: str):
    """Show one escrow with its next action."""
    client = _client(ctx)
    try:
        escrow = EscrowService(client).get(escrow_id)
    except (EscrowClientError, ValueError) as e:
        _fail(e)
    console.print()
    console.print(_escrow_panel(escrow, client.session.user_id))


@main.command("act")
@click.argument("escrow_id")
@click.argument("action", type=click.Choice(ACTION_CHOICES))
@click.option("--reason", "-r", default="", help="Reason for cancel, reject or dispute.")
@click.option("--description", "-d", default="", help="Dispute description.")
@click.option("--tracking-number", default=None, help="Tracking number when delivering.")
@click.pass_context
def act_cmd(
    ctx: click.Context, escrow_id: str, action: str, reason: str,
    description: str, tracking_number: str | None,
):
    """Perform an escrow action as the signed-in user."""
    settings: Settings = ctx.obj["settings"]
    client = _client(ctx)
    audit = AuditLogger(settings.audit_dir) if settings.should_audit() else None
    service = EscrowService(client, audit=audit)

    payload: dict = {}
    if reason:
        payload["reason"] = reason
    if description:
        payload["description"] = description
    if tracking_number:
        payload["trackingNumber"] = tracking_number

    try:
        escrow = service.get(escrow_id)
        updated = service.perform(escrow, action, **payload)
    except (EscrowClientError, ValueError) as e:
        _fail(e)

    console.print()
    console.print(_escrow_panel(updated, client.session.user_id))


@main.command("pay")
@click.argument("escrow_id")
@click.option("--method", "-m", required=True, type=click.Choice(PAYMENT_METHODS))
@click.option("--crypto", default=None, help="Cryptocurrency code for crypto payments.")
@click.pass_context
def pay_cmd(ctx: click.Context, escrow_id: str, method: str, crypto: str | None):
    """Start a gateway payment and print the redirect URL."""
    client = _client(ctx)
    try:
        escrow = EscrowService(client).get(escrow_id)
        role = escrow.role_of(client.session.user_id)
        if get_next_action(escrow, role).action != ActionKind.FUND:
            raise EscrowClientError(f"Escrow {escrow.id} is not awaiting your payment ({escrow.status}).")
        url = PaymentService(client).initialize(escrow.id, method, crypto)
    except (EscrowClientError, ValueError) as e:
        _fail(e)

    fee, total = payment_summary(escrow, ctx.obj["settings"].buyer_fee_rate)
    console.print(f"Buyer Fee: {format_currency(fee, escrow.currency)}")
    console.print(f"Total:     {format_currency(total, escrow.currency)}")
    console.print(f"[green]{ICON_CHECK} Continue payment at:[/green] {url}")


# ---------------------------------------------------------------------------
# Notifications & chat
# ---------------------------------------------------------------------------

def _notification_table(items: list[dict]) -> Table:
    table = Table(title="Notifications")
    table.add_column("", style="yellow")
    table.add_column("Title", style="cyan")
    table.add_column("Message")
    table.add_column("When", style="dim")
    for n in items:
        when = format_relative_time(n["createdAt"]) if n.get("createdAt") else ""
        table.add_row("*" if not n.get("isRead") else "", n.get("title", ""), n.get("message", ""), when)
    return table


@main.command("notifications")
@click.option("--unread", is_flag=True, help="Only unread notifications.")
@click.option("--mark-all-read", is_flag=True, help="Mark everything as read.")
@click.pass_context
def notifications_cmd(ctx: click.Context, unread: bool, mark_all_read: bool):
    """List notifications."""
    service = NotificationService(_client(ctx))
    try:
        if mark_all_read:
            service.mark_all_read()
        items = service.list(unread_only=unread)
    except EscrowClientError as e:
        _fail(e)
    if not items:
        console.print(f"\n{ICON_CHECK} No notifications.")
        return
    console.print(_notification_table(items))


@main.command("chat")
@click.argument("escrow_id")
@click.option("--send", "-s", "message", default=None, help="Send a message.")
@click.pass_context
def chat_cmd(ctx: click.Context, escrow_id: str, message: str | None):
    """Show or send chat messages for an escrow."""
    service = ChatService(_client(ctx))
    try:
        if message:
            service.send_message(escrow_id, message)
        messages = service.get_messages(escrow_id)
    except (EscrowClientError, ValueError) as e:
        _fail(e)

    for m in messages:
        sender = m.get("sender") or {}
        name = sender.get("name") if isinstance(sender, dict) else sender
        when = format_relative_time(m["createdAt"]) if m.get("createdAt") else ""
        console.print(f"[cyan]{name or 'unknown'}[/cyan] [dim]{when}[/dim]: {m.get('message', '')}")


@main.command("watch")
@click.option("--interval", "-i", default=None, type=float, help="Seconds between refreshes.")
@click.pass_context
def watch_cmd(ctx: click.Context, interval: float | None):
    """Poll unread notifications until interrupted."""
    settings: Settings = ctx.obj["settings"]
    service = NotificationService(_client(ctx))
    seen: set[str] = set()

    def show(items: list[dict]) -> None:
        fresh = [n for n in items if n.get("_id") not in seen]
        seen.update(n.get("_id") for n in fresh)
        if fresh:
            console.print(_notification_table(fresh))

    poller = Poller(
        lambda: service.list(unread_only=True),
        show,
        interval=interval or settings.poll_interval,
        name="notifications",
    )
    try:
        poller.start()
    except EscrowClientError as e:
        _fail(e)

    console.print(f"[dim]Watching notifications every {poller.interval:g}s (Ctrl+C to stop)[/dim]")
    try:
        while poller.running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        poller.stop()


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()

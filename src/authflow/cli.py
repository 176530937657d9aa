"""CLI entry point for authflow — drives the onboarding flow in a terminal."""

from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from authflow.config import BACKEND_KEY_ENV, BACKEND_URL_ENV, BackendSettings
from authflow.errors import AuthError
from authflow.models.flow import CheckStatus, FlowSnapshot, Step
from authflow.models.options import AuthMode, AuthOptions, EmailOptions

app = typer.Typer(
    name="authflow",
    help="authflow — email-first sign in and sign up against an identity backend.",
    no_args_is_help=True,
)
console = Console()

DEMO_EMAIL = "demo@example.com"
DEMO_PASSWORD = "password123"

_STEP_TITLES = {
    Step.EMAIL: "What's your email?",
    Step.CODE: "Enter the code we emailed you",
    Step.NAME: "What should we call you?",
    Step.PASSWORD: "Password",
}


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _options(password: bool | None, otp: bool | None, default: AuthMode | None) -> AuthOptions:
    return AuthOptions(email=EmailOptions(password=password, otp=otp, default=default))


def _build_backend(url: str | None, key: str | None, demo: bool):
    if demo:
        from authflow.identity.memory import InMemoryIdentityBackend

        backend = InMemoryIdentityBackend()
        backend.add_user(DEMO_EMAIL, password=DEMO_PASSWORD, name="Demo")
        return backend

    from authflow.identity.http import HttpIdentityBackend

    if not url or not key:
        console.print(
            f"[red]Set {BACKEND_URL_ENV} and {BACKEND_KEY_ENV} (or --url/--key), "
            "or pass --demo[/red]"
        )
        raise typer.Exit(1)
    return HttpIdentityBackend(BackendSettings(url=url, anon_key=key))


def _render(snap: FlowSnapshot) -> None:
    title = _STEP_TITLES.get(snap.step)
    if title:
        if snap.step is Step.PASSWORD:
            title = "Create a password" if snap.is_new_user else "Enter your password"
        console.print(f"\n[bold]{title}[/bold]")
    if snap.step is Step.EMAIL and snap.email_is_valid:
        if snap.check_status is CheckStatus.READY:
            state = "returning user" if snap.email_exists else "new user"
            console.print(f"[green]✓ {snap.email}[/green] [dim]({state})[/dim]")
        elif snap.check_status is CheckStatus.CHECKING:
            console.print("[dim]Checking email…[/dim]")
    if snap.step is Step.CODE:
        if snap.can_resend_code:
            console.print("[dim]Type 'r' to resend the code[/dim]")
        else:
            console.print(f"[dim]Resend available in {snap.resend_seconds}s[/dim]")
    if snap.error_message:
        console.print(f"[red]{snap.error_message}[/red]")


async def _ask(prompt: str, secret: bool = False) -> str:
    # Prompt in a worker thread so timers keep running on the loop.
    return await asyncio.to_thread(console.input, prompt, password=secret)


async def _run_login(backend, options: AuthOptions, start_at: Step) -> bool:
    from authflow.flow.controller import FlowController
    from authflow.identity.memory import InMemoryIdentityBackend

    def _on_session(event) -> None:
        if event.event == "SIGNED_IN":
            console.print("[bold green]Logged in ✅[/bold green]")

    async with FlowController.from_backend(backend, options, start_at=start_at) as flow:
        console.print(f"[dim]Sign-in method: {flow.mode.value}[/dim]")
        with flow.adapter.password.subscribe_to_session_changes(_on_session):
            sent_codes = 0
            while not flow.state.completed:
                snap = flow.snapshot()
                _render(snap)
                hints = "[dim](< back, q quit)[/dim] "

                if snap.step is Step.START:
                    answer = await _ask(f"[bold]{snap.primary_button_label}[/bold] [dim](enter)[/dim] ")
                    if answer.strip().lower() == "q":
                        return False
                    await flow.go_next()
                    continue

                secret = snap.step is Step.PASSWORD
                extra = ""
                if snap.step is Step.PASSWORD and snap.is_existing_user:
                    extra = "[dim](e edit email)[/dim] "
                answer = await _ask(f"{hints}{extra}> ", secret=secret)
                command = answer.strip().lower()

                if command == "q":
                    flow.close()
                    return False
                if command == "<":
                    flow.go_back()
                    continue
                if command == "e" and snap.step is Step.PASSWORD:
                    flow.begin_edit_email()
                    await flow.wait_for_pending()
                    continue
                if command == "r" and snap.step is Step.CODE:
                    if not await flow.resend_code():
                        console.print("[yellow]Please wait before resending.[/yellow]")
                elif snap.step is Step.EMAIL:
                    flow.set_email(answer)
                    await flow.wait_for_pending()
                    await flow.go_next()
                elif snap.step is Step.CODE:
                    flow.set_code(answer)
                    await flow.go_next()
                elif snap.step is Step.NAME:
                    flow.set_name(answer)
                    await flow.go_next()
                elif snap.step is Step.PASSWORD:
                    flow.set_password(answer)
                    await flow.go_next()

                if isinstance(backend, InMemoryIdentityBackend) and len(backend.outbox) > sent_codes:
                    sent_codes = len(backend.outbox)
                    console.print(f"[dim]Demo code sent: {backend.outbox[-1][1]}[/dim]")

            outcome = flow.state.outcome
            console.print(f"[green]Done: {outcome.value if outcome else 'complete'}[/green]")
            return True


@app.command()
def login(
    url: str | None = typer.Option(None, envvar=BACKEND_URL_ENV, help="Identity backend URL"),
    key: str | None = typer.Option(None, envvar=BACKEND_KEY_ENV, help="Public (anon) key"),
    demo: bool = typer.Option(False, help="Use an in-memory backend instead of the network"),
    password: bool | None = typer.Option(None, "--password/--no-password", help="Password method"),
    otp: bool | None = typer.Option(None, "--otp/--no-otp", help="One-time code method"),
    default: AuthMode | None = typer.Option(None, help="Method when both are enabled"),
    start_at: Step = typer.Option(Step.START, help="Opening step: start or email"),
) -> None:
    """Run the sign-in / sign-up flow interactively."""
    if start_at not in (Step.START, Step.EMAIL):
        console.print("[red]--start-at must be 'start' or 'email'[/red]")
        raise typer.Exit(1)
    backend = _build_backend(url, key, demo)
    if demo:
        console.print(f"[dim]Demo account: {DEMO_EMAIL} / {DEMO_PASSWORD}[/dim]")

    async def _login() -> bool:
        try:
            return await _run_login(backend, _options(password, otp, default), start_at)
        finally:
            aclose = getattr(backend, "aclose", None)
            if aclose is not None:
                await aclose()

    try:
        finished = asyncio.run(_login())
    except (EOFError, KeyboardInterrupt):
        console.print("\n[dim]Cancelled.[/dim]")
        raise typer.Exit(1)
    if not finished:
        console.print("[dim]Closed without signing in.[/dim]")
        raise typer.Exit(1)


@app.command(name="check-email")
def check_email(
    email: str = typer.Argument(help="Email address to look up"),
    url: str | None = typer.Option(None, envvar=BACKEND_URL_ENV, help="Identity backend URL"),
    key: str | None = typer.Option(None, envvar=BACKEND_KEY_ENV, help="Public (anon) key"),
    demo: bool = typer.Option(False, help="Use an in-memory backend instead of the network"),
) -> None:
    """Ask the backend whether an account exists for EMAIL."""
    from authflow.identity.adapter import create_identity_providers
    from authflow.validators import is_valid_email, normalize_email

    if not is_valid_email(email):
        console.print("[red]Input email correctly[/red]")
        raise typer.Exit(1)
    backend = _build_backend(url, key, demo)

    async def _check() -> bool:
        try:
            providers = create_identity_providers(backend)
            return await providers.password.check_identity_exists(normalize_email(email))
        finally:
            aclose = getattr(backend, "aclose", None)
            if aclose is not None:
                await aclose()

    try:
        exists = asyncio.run(_check())
    except AuthError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(1)
    if exists:
        console.print(f"[green]{normalize_email(email)} is registered[/green]")
    else:
        console.print(f"[yellow]{normalize_email(email)} is not registered[/yellow]")


@app.command()
def mode(
    password: bool | None = typer.Option(None, "--password/--no-password", help="Password method"),
    otp: bool | None = typer.Option(None, "--otp/--no-otp", help="One-time code method"),
    default: AuthMode | None = typer.Option(None, help="Method when both are enabled"),
) -> None:
    """Show which sign-in method a configuration resolves to."""
    from authflow.mode import resolve_mode

    console.print(resolve_mode(_options(password, otp, default)).value)


if __name__ == "__main__":
    app()

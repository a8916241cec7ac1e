"""Typer CLI: run, prefs, config, version commands."""

from __future__ import annotations

import asyncio
import json
import signal
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import FloatPrompt, Prompt
from rich.table import Table

from nodoze import __version__
from nodoze.adapters.clock import LoopClock
from nodoze.adapters.display import IORegDisplayObserver
from nodoze.adapters.power import CaffeinateAssertion
from nodoze.adapters.store import JsonFileStore
from nodoze.config import load_config
from nodoze.coordinator import KeepAwakeCoordinator
from nodoze.log import setup_logging
from nodoze.models import LOG_LEVELS, NodozeConfig, UserSelected
from nodoze.preferences import (
    ACTIVATE_ON_LAUNCH,
    ALL_PREFS,
    DEFAULT_ACTIVATION_DURATION,
    DURATION_OPTIONS,
    END_OF_DAY,
    SMART_MODE,
    describe_duration,
    mode_for_duration,
    resolve_launch_duration,
)
from nodoze.status import render_status

app = typer.Typer(
    name="nodoze",
    help="Keep this machine awake on demand.",
    no_args_is_help=True,
)
console = Console()


def _load_config_or_exit(**overrides: object) -> NodozeConfig:
    try:
        return load_config(**overrides)  # type: ignore[arg-type]
    except ValueError as exc:
        console.print(f"[red]Invalid configuration: {escape(str(exc))}[/]")
        raise typer.Exit(1)


def _config_to_toml(cfg: NodozeConfig) -> str:
    """Serialize a NodozeConfig to TOML string.

    Strings go through ``json.dumps``; its escapes are valid in TOML basic strings.
    """
    lines = [
        "[nodoze]",
        f"poll_interval = {cfg.poll_interval}",
        f"store_path = {json.dumps(str(cfg.store_path))}",
        f"reason = {json.dumps(cfg.reason)}",
        f'log_level = "{cfg.log_level}"',
        f"prevent_display_sleep = {str(cfg.prevent_display_sleep).lower()}",
    ]
    return "\n".join(lines) + "\n"


async def _run_session(config: NodozeConfig, store: JsonFileStore, duration: int) -> None:
    """Run one keep-awake session until it turns itself off."""
    screens = IORegDisplayObserver(poll_interval=config.poll_interval)
    clock = LoopClock()
    coordinator = KeepAwakeCoordinator(
        assertion=CaffeinateAssertion(prevent_display_sleep=config.prevent_display_sleep),
        screens=screens,
        clock=clock,
        store=store,
        reason=config.reason,
    )
    finished = asyncio.Event()

    def _on_change(c: KeepAwakeCoordinator) -> None:
        if c.mode.is_off:
            finished.set()

    coordinator.subscribe(_on_change)
    coordinator.start()
    loop = asyncio.get_running_loop()
    if hasattr(signal, "SIGUSR1"):
        # kill -USR1 <pid> toggles intelligent mode
        loop.add_signal_handler(
            signal.SIGUSR1,
            lambda: coordinator.set_smart_mode(not coordinator.is_smart_mode_enabled),
        )
    try:
        coordinator.send(UserSelected(mode=mode_for_duration(duration, clock.now())))
        await coordinator.join()
        if not coordinator.snapshot().is_active:
            console.print(
                "[yellow]Could not acquire a power assertion; "
                "this machine may still go to sleep.[/]"
            )

        with Live(render_status(coordinator.snapshot(), clock.now()), console=console) as live:
            while not finished.is_set():
                try:
                    await asyncio.wait_for(finished.wait(), timeout=1.0)
                except TimeoutError:
                    pass
                live.update(render_status(coordinator.snapshot(), clock.now()))
    finally:
        if hasattr(signal, "SIGUSR1"):
            loop.remove_signal_handler(signal.SIGUSR1)
        await coordinator.stop()
        screens.close()

    console.print("[bold]Session ended.[/]")


@app.command()
def run(
    minutes: Annotated[Optional[int], typer.Option("--for", "-f", help="Stay awake for this many minutes")] = None,
    until_eod: Annotated[bool, typer.Option("--until-eod", help="Stay awake until 23:59 today")] = False,
    indefinitely: Annotated[bool, typer.Option("--indefinitely", "-i", help="Stay awake until stopped")] = False,
    smart: Annotated[Optional[bool], typer.Option("--smart/--no-smart", help="Release the assertion while all displays sleep (saved)")] = None,
    allow_display_sleep: Annotated[bool, typer.Option("--allow-display-sleep", help="Only prevent system sleep")] = False,
    poll_interval: Annotated[Optional[float], typer.Option("--poll-interval", help="Seconds between display checks")] = None,
    log_level: Annotated[Optional[str], typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR")] = None,
) -> None:
    """Keep the machine awake until the chosen duration elapses or Ctrl-C."""
    if sum([minutes is not None, until_eod, indefinitely]) > 1:
        console.print("[red]Choose at most one of --for, --until-eod and --indefinitely.[/]")
        raise typer.Exit(1)
    if minutes is not None and minutes < END_OF_DAY:
        console.print(f"[red]Invalid duration: {minutes}[/]")
        raise typer.Exit(1)

    config = _load_config_or_exit(
        poll_interval=poll_interval,
        log_level=log_level,
        allow_display_sleep=allow_display_sleep,
    )
    setup_logging(config.log_level)

    store = JsonFileStore(config.store_path)
    if smart is not None:
        store.set(SMART_MODE, smart)

    duration = resolve_launch_duration(
        default_duration=store.get(DEFAULT_ACTIVATION_DURATION),
        activate_on_launch=store.get(ACTIVATE_ON_LAUNCH),
        minutes=minutes,
        until_eod=until_eod,
        indefinitely=indefinitely,
    )
    console.print(f"[bold]Keeping awake {describe_duration(duration)}[/] [dim](Ctrl-C to stop)[/]")

    try:
        asyncio.run(_run_session(config, store, duration))
    except KeyboardInterrupt:
        console.print("\n[bold red]Stopped by user.[/]")
        raise typer.Exit(130)


@app.command()
def prefs(
    smart: Annotated[Optional[bool], typer.Option("--smart/--no-smart", help="Intelligent mode")] = None,
    default_duration: Annotated[Optional[int], typer.Option("--default-duration", help="Minutes; 0 = indefinitely, -1 = until end of day")] = None,
    activate_on_launch: Annotated[Optional[bool], typer.Option("--activate-on-launch/--no-activate-on-launch", help="Start indefinitely when no duration is given")] = None,
    store_path: Annotated[Optional[Path], typer.Option("--store-path", help="Preferences file")] = None,
) -> None:
    """Show or change saved preferences."""
    config = _load_config_or_exit(store_path=store_path)
    setup_logging(config.log_level)
    store = JsonFileStore(config.store_path)

    if default_duration is not None and default_duration < END_OF_DAY:
        console.print(f"[red]Invalid default duration: {default_duration}[/]")
        raise typer.Exit(1)

    if smart is not None:
        store.set(SMART_MODE, smart)
    if default_duration is not None:
        store.set(DEFAULT_ACTIVATION_DURATION, default_duration)
    if activate_on_launch is not None:
        store.set(ACTIVATE_ON_LAUNCH, activate_on_launch)

    table = Table(title=f"Preferences ({config.store_path})")
    table.add_column("Preference", style="bold")
    table.add_column("Value")
    table.add_column("Default", style="dim")
    for pref in ALL_PREFS:
        value = store.get(pref)
        if pref is DEFAULT_ACTIVATION_DURATION:
            table.add_row(pref.key, describe_duration(value), describe_duration(pref.default))  # type: ignore[arg-type]
        else:
            table.add_row(pref.key, str(value).lower(), str(pref.default).lower())
    console.print(table)
    console.print(
        "[dim]Durations: "
        + ", ".join(f"{o.label} ({o.minutes})" for o in DURATION_OPTIONS)
        + "[/]"
    )


@app.command()
def config() -> None:
    """Interactively configure NoDoze for this directory."""
    config_path = Path.cwd() / ".nodoze.toml"

    console.print(Panel(
        "Configure NoDoze.\n"
        f"Settings will be saved to [bold]{config_path}[/]",
        title="[bold]NoDoze Config[/]",
        border_style="blue",
    ))

    existing = _load_config_or_exit()

    console.print()

    poll_interval = FloatPrompt.ask(
        "[bold]Poll interval[/] (seconds between display sleep checks)",
        default=existing.poll_interval,
    )

    store_path = Prompt.ask(
        "[bold]Preferences file[/]",
        default=str(existing.store_path),
    )

    reason = Prompt.ask(
        "[bold]Assertion reason[/]",
        default=existing.reason,
    )

    log_level = Prompt.ask(
        "[bold]Log level[/]",
        choices=list(LOG_LEVELS),
        default=existing.log_level,
    )

    display_str = Prompt.ask(
        "[bold]Also prevent display sleep?[/]",
        choices=["y", "n"],
        default="y" if existing.prevent_display_sleep else "n",
    )

    try:
        cfg = NodozeConfig(
            poll_interval=poll_interval,
            store_path=Path(store_path).expanduser(),
            reason=reason,
            log_level=log_level,
            prevent_display_sleep=(display_str == "y"),
        )
    except ValueError as exc:
        console.print(f"[red]Invalid configuration: {escape(str(exc))}[/]")
        raise typer.Exit(1)

    toml_content = _config_to_toml(cfg)
    console.print()
    console.print(Panel(toml_content, title=".nodoze.toml", border_style="green"))

    save = Prompt.ask("Save this configuration?", choices=["y", "n"], default="y")
    if save == "y":
        config_path.write_text(toml_content)
        console.print(f"\n[green]Config saved to {config_path}[/]")
    else:
        console.print("\n[yellow]Configuration not saved.[/]")


@app.command()
def version() -> None:
    """Show NoDoze version."""
    console.print(f"nodoze {__version__}")


if __name__ == "__main__":
    app()

"""Click-based CLI for offline replay and configuration checks."""

import json
import logging
from collections import Counter
from pathlib import Path
from typing import Any, Optional

import click

from transport_core.config import ConfigurationError, CoreConfig, configure_logging
from transport_core.monitors.stability import CorrectiveActions
from transport_core.runtime import AnalyticsRuntime
from transport_core.sync.hub import InMemoryRealtimeHub

logger = logging.getLogger(__name__)

TELEMETRY_KEYS = ("t", "memory_bytes", "characteristic", "fps")


class SimulatedClock:
    """Monotonic clock advanced explicitly by the replay loop."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_to(self, t: float) -> None:
        if t < self.now:
            raise ValueError(f"Tick time {t} is earlier than {self.now}")
        self.now = t


def _load_config() -> CoreConfig:
    try:
        return CoreConfig.from_env()
    except ConfigurationError as e:
        raise click.ClickException(f"Invalid configuration: {e}")


def _read_ticks(path: Path) -> tuple[list[dict[str, Any]], int]:
    """Parse a JSONL tick file. Blank lines are ignored; bad lines are counted."""
    ticks = []
    bad_lines = 0
    with path.open() as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                tick = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping line {line_no}: {e}")
                bad_lines += 1
                continue
            if not isinstance(tick, dict):
                logger.warning(f"Skipping line {line_no}: expected an object")
                bad_lines += 1
                continue
            ticks.append(tick)
    return ticks, bad_lines


def replay_ticks(
    ticks: list[dict[str, Any]],
    config: CoreConfig,
    session_id: Optional[str] = None,
) -> dict[str, Any]:
    """Feed recorded ticks through the monitors on a simulated clock.

    Each tick may carry ``t`` (seconds since the start of the recording);
    without it the clock advances by one simulation interval per tick.
    Windowed stability checks and predictor recomputes run whenever the
    simulated clock crosses their cadence, plus a final recompute.

    Returns:
        The analytics report with the count of each corrective action.
    """
    clock = SimulatedClock()
    wall_start = 0.0
    actions_fired: Counter = Counter()

    def counter(name: str):
        return lambda: actions_fired.update([name])

    actions = CorrectiveActions(
        on_memory_cleanup=counter("memory_cleanup"),
        on_regenerate_cycle=counter("regenerate_cycle"),
        on_reduce_quality=counter("reduce_quality"),
    )
    overrides: Counter = Counter()
    runtime = AnalyticsRuntime(
        config=config,
        actions=actions,
        on_safety_override=lambda kind: overrides.update([kind.value]),
        transport=InMemoryRealtimeHub() if session_id else None,
        session_id=session_id,
        clock=clock,
        wall_clock=lambda: wall_start + clock.now,
    )
    if runtime.sync is not None and runtime.sync.connect():
        runtime.sync.track_presence({"role": "replay"})

    step = config.predictor.update_interval_ms / 1000.0
    check_interval = config.stability.check_interval_seconds
    recompute_interval = config.predictor.recompute_interval_seconds
    next_check = check_interval
    next_recompute = recompute_interval

    for index, tick in enumerate(ticks):
        t = tick.get("t")
        target_time = float(t) if t is not None else (clock.now + step if index else 0.0)
        clock.advance_to(target_time)

        while clock.now >= next_check:
            runtime.stability.check_memory_leak()
            runtime.stability.check_stuck_value()
            next_check += check_interval
        while clock.now >= next_recompute:
            runtime.recompute()
            next_recompute += recompute_interval

        state_fields = {k: v for k, v in tick.items() if k not in TELEMETRY_KEYS}
        if state_fields:
            runtime.ingest(state_fields)
        runtime.ingest_telemetry(
            memory_bytes=tick.get("memory_bytes"),
            characteristic_value=tick.get("characteristic"),
            fps=tick.get("fps"),
        )

    runtime.recompute()
    report = runtime.report().to_dict()
    report["ticks"] = len(ticks)
    report["elapsed_sec"] = clock.now
    report["corrective_actions"] = dict(actions_fired)
    report["safety_overrides"] = dict(overrides)
    if runtime.sync is not None:
        runtime.sync.close()
    return report


@click.group()
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging",
)
def cli(verbose: bool) -> None:
    """Transport analytics core CLI.

    Replays recorded simulation ticks through the safety, stability,
    prediction and advisor monitors, and validates environment configuration.
    """
    configure_logging("DEBUG" if verbose else "WARNING")
    logger.debug("CLI initialized")


@cli.command()
@click.argument("ticks_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--session-id",
    "-s",
    default=None,
    help="Broadcast derived snapshots on an in-memory sync channel for this session",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the JSON report to a file instead of stdout",
)
def replay(ticks_file: Path, session_id: Optional[str], output: Optional[Path]) -> None:
    """Replay a JSONL file of simulation ticks and print a report."""
    config = _load_config()
    try:
        ticks, bad_lines = _read_ticks(ticks_file)
    except OSError as e:
        raise click.ClickException(f"Cannot read {ticks_file}: {e}")

    try:
        report = replay_ticks(ticks, config, session_id=session_id)
    except ValueError as e:
        raise click.ClickException(f"Replay failed: {e}")
    report["bad_lines"] = bad_lines

    report_json = json.dumps(report, indent=2)
    if output:
        output.write_text(report_json)
        click.echo(f"Report written to {output}")
    else:
        click.echo(report_json)


@cli.command(name="check-config")
def check_config() -> None:
    """Validate TRANSPORT_CORE_* variables and print the effective config."""
    config = _load_config()
    click.echo(json.dumps(config.to_dict(), indent=2))


if __name__ == "__main__":
    cli()

"""CLI for hrvwatch."""

import asyncio
import json
import logging
from datetime import date

import click

from hrvwatch.errors import HRVWatchError


def _load_config(path: str | None):
    from hrvwatch.config import MonitorConfig

    if path is None:
        return MonitorConfig()
    return MonitorConfig.load(path)


def _waking_baseline(hr: float | None, rmssd: float | None) -> tuple[float, float] | None:
    if hr is None and rmssd is None:
        return None
    if hr is None or rmssd is None:
        raise click.UsageError("--waking-hr and --waking-rmssd must be given together.")
    return hr, rmssd


def _fmt(value: float | None, spec: str = ".1f", unit: str = "") -> str:
    if value is None:
        return "n/a"
    return f"{value:{spec}}{unit}"


@click.group()
@click.option("--verbose", "-v", count=True, help="Increase log verbosity (-v info, -vv debug).")
def main(verbose: int) -> None:
    """hrvwatch - continuous HRV monitoring from BLE heart rate sensors."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@main.command()
@click.option("--timeout", "-t", default=10.0, help="Scan timeout in seconds.")
@click.option("--name", "-n", default=None, help="Only show devices whose name starts with this.")
def scan(timeout: float, name: str | None) -> None:
    """Scan for nearby BLE heart rate sensors."""
    from hrvwatch.scanner import scan as do_scan

    asyncio.run(do_scan(timeout, name))


@main.command()
@click.argument("hex_payload")
def decode(hex_payload: str) -> None:
    """Decode a single Heart Rate Measurement payload given as hex."""
    from hrvwatch.decoders.hr import HeartRateDecoder

    try:
        data = bytes.fromhex(hex_payload.replace(" ", ""))
    except ValueError:
        raise click.BadParameter("not a hex string", param_hint="HEX_PAYLOAD")

    sample = HeartRateDecoder().decode(data)
    if sample is None:
        click.echo("Malformed payload.")
        raise SystemExit(1)

    click.echo(f"HR:       {sample.heart_rate_bpm} bpm")
    click.echo(f"RR:       {', '.join(f'{v:.1f}' for v in sample.rr_intervals_ms) or 'none'}")
    contact = {None: "not supported", True: "detected", False: "not detected"}[sample.sensor_contact]
    click.echo(f"Contact:  {contact}")
    if sample.energy_expended_kj is not None:
        click.echo(f"Energy:   {sample.energy_expended_kj} kJ")


@main.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--output", "-o", default=None, help="Write the session report as JSON.")
@click.option("--config", "-c", "config_path", default=None, type=click.Path(exists=True),
              help="TOML config file.")
@click.option("--store", "-s", "store_dir", default=None, help="Summary store directory.")
@click.option("--waking-hr", default=None, type=float, help="Waking baseline heart rate.")
@click.option("--waking-rmssd", default=None, type=float, help="Waking baseline RMSSD (ms).")
def replay(
    file: str,
    output: str | None,
    config_path: str | None,
    store_dir: str | None,
    waking_hr: float | None,
    waking_rmssd: float | None,
) -> None:
    """Replay a captured log through a full monitoring session."""
    from hrvwatch.replay import replay_capture
    from hrvwatch.storage import JsonDirectoryStore

    baseline = _waking_baseline(waking_hr, waking_rmssd)
    try:
        config = _load_config(config_path)
        store = JsonDirectoryStore(store_dir) if store_dir else None
        report = replay_capture(file, config=config, store=store, waking_baseline=baseline)
    except HRVWatchError as e:
        raise click.ClickException(str(e))

    click.echo(f"\n{'=' * 60}")
    click.echo(f"  Session: {report.duration_minutes:.0f} min, {report.sample_count} samples")
    click.echo(f"{'=' * 60}")
    cov = report.coverage
    click.echo(f"  Coverage:    {cov.coverage_percent:.1f}% ({cov.data_quality.value}), "
               f"{cov.gap_count} gap(s), longest {cov.longest_gap_seconds:.0f}s")
    conf = report.confidence
    click.echo(f"  Confidence:  {conf.score}/100 ({conf.level.value})")
    for warning in conf.warnings:
        click.echo(f"    ! {warning}")
    if report.overnight is not None:
        o = report.overnight
        click.echo(f"  Windows:     {o.total_timeslices} "
                   f"(deep {o.deep_sleep_window_count}, parasympathetic {o.parasympathetic_dominant_count})")
        click.echo(f"  RMSSD:       {o.average_rmssd:.1f} ms (min {o.min_rmssd:.1f}, max {o.max_rmssd:.1f})")
        click.echo(f"  HR:          {o.average_hr:.0f} bpm (min {o.min_hr:.0f})")
    else:
        click.echo("  Windows:     none (not enough data)")
    click.echo(f"  Stress:      {len(report.stress_events)} event(s)")
    for event in report.stress_events:
        click.echo(f"    {event.severity.value:8s} {event.duration / 60:.1f} min, "
                   f"rmssd {event.average_rmssd:.1f} ms")
    if report.daily_summary is not None:
        d = report.daily_summary
        click.echo(f"  Sleep:       {d.sleep_total_min:.0f} min "
                   f"(deep {d.deep_min:.0f}, light {d.light_min:.0f}, rem {d.rem_min:.0f})")
        if d.recovery_score is not None:
            click.echo(f"  Recovery:    {d.recovery_score}")
    click.echo(f"{'=' * 60}")

    if output:
        with open(output, "w") as f:
            json.dump(report.to_dict(), f, indent=2)
        click.echo(f"\nReport written to {output}")


@main.command("analyze")
@click.argument("file", type=click.Path(exists=True))
@click.option("--output", "-o", default=None, help="Write metrics JSON to file.")
def analyze_cmd(file: str, output: str | None) -> None:
    """Compute HRV metrics over every beat interval in a capture."""
    from hrvwatch.analytics import compute_metrics, condition_intervals
    from hrvwatch.analytics.dfa import dfa_alpha1
    from hrvwatch.analytics.spectral import analyze_frequency_domain
    from hrvwatch.replay import decode_capture

    try:
        samples = decode_capture(file)
    except HRVWatchError as e:
        raise click.ClickException(str(e))

    raw = [rr for s in samples for rr in s.rr_intervals_ms]
    window = condition_intervals(raw)
    click.echo(f"Decoded {len(samples)} samples, {len(raw)} RR intervals")
    click.echo(f"Conditioning: {window!r} ({window.quality.value})")

    metrics = compute_metrics(window.clean_intervals)
    if metrics is None:
        click.echo("Not enough clean intervals for HRV metrics.")
        raise SystemExit(1)

    freq = analyze_frequency_domain(window.clean_intervals)
    dfa = dfa_alpha1(window.clean_intervals)

    click.echo(f"  RMSSD:   {metrics.rmssd:.1f} ms")
    click.echo(f"  SDNN:    {metrics.sdnn:.1f} ms")
    click.echo(f"  pNN50:   {metrics.pnn50:.1%}")
    click.echo(f"  LF/HF:   {_fmt(metrics.lf_hf_ratio, '.2f')}"
               + (f" ({freq.balance.value})" if freq and freq.balance else ""))
    click.echo(f"  DFA a1:  {_fmt(metrics.dfa_alpha1, '.2f')}"
               + (f" ({dfa.interpretation.value})" if dfa else ""))

    if output:
        result = {
            "samples": len(samples),
            "conditioning": {
                "original": window.original_count,
                "rejected": window.rejected_count,
                "corrected": window.corrected_count,
                "quality_score": window.quality_score,
                "is_valid": window.is_valid,
            },
            "metrics": metrics.to_dict(),
        }
        with open(output, "w") as f:
            json.dump(result, f, indent=2)
        click.echo(f"\nMetrics written to {output}")


@main.command()
@click.option("--store", "-s", "store_dir", required=True, help="Summary store directory.")
@click.option("--day", "-d", default=None, help="Day to evaluate (YYYY-MM-DD, default latest).")
def baseline(store_dir: str, day: str | None) -> None:
    """Show baselines, z-score and trend from stored daily summaries."""
    from hrvwatch.analytics.baseline import (
        baseline_7d,
        baseline_30d,
        interpret_z_score,
        recovery_score,
        trend_slope,
        z_score,
    )
    from hrvwatch.storage import JsonDirectoryStore

    summaries = JsonDirectoryStore(store_dir).daily_summaries()
    if not summaries:
        click.echo("No daily summaries stored.")
        return

    if day is None:
        today = summaries[-1]
    else:
        try:
            wanted = date.fromisoformat(day)
        except ValueError:
            raise click.BadParameter("expected YYYY-MM-DD", param_hint="--day")
        matches = [s for s in summaries if s.date == wanted]
        if not matches:
            raise click.ClickException(f"No summary stored for {day}")
        today = matches[0]

    history = [s for s in summaries if s.date < today.date]
    b7 = baseline_7d(history)
    b30 = baseline_30d(history)
    z = z_score(today.rmssd, history)

    click.echo(f"Day:          {today.date.isoformat()} ({len(history)} earlier day(s))")
    click.echo(f"RMSSD:        {today.rmssd:.1f} ms")
    click.echo(f"Baseline 7d:  {_fmt(b7, '.1f', ' ms')}")
    click.echo(f"Baseline 30d: {_fmt(b30, '.1f', ' ms')}")
    if z is None:
        click.echo("Z-score:      n/a (need 7 days of history)")
    else:
        click.echo(f"Z-score:      {z:+.2f} ({interpret_z_score(z).value})")
    click.echo(f"Recovery:     {recovery_score(today.rmssd, b7)}")
    click.echo(f"Trend (7d):   {trend_slope(history + [today]):+.2f} ms/day")


@main.command()
@click.option("--address", "-a", default=None, help="BLE address to connect to.")
@click.option("--duration", "-d", default=None, type=float, help="Monitoring duration in seconds.")
@click.option("--config", "-c", "config_path", default=None, type=click.Path(exists=True),
              help="TOML config file.")
@click.option("--store", "-s", "store_dir", default=None, help="Summary store directory.")
@click.option("--record", "-r", default=None, help="Append raw notifications to a capture file.")
@click.option("--waking-hr", default=None, type=float, help="Waking baseline heart rate.")
@click.option("--waking-rmssd", default=None, type=float, help="Waking baseline RMSSD (ms).")
def stream(
    address: str | None,
    duration: float | None,
    config_path: str | None,
    store_dir: str | None,
    record: str | None,
    waking_hr: float | None,
    waking_rmssd: float | None,
) -> None:
    """Monitor a live heart rate sensor."""
    from hrvwatch.storage import JsonDirectoryStore
    from hrvwatch.stream import stream_session

    baseline = _waking_baseline(waking_hr, waking_rmssd)
    try:
        config = _load_config(config_path)
    except HRVWatchError as e:
        raise click.ClickException(str(e))
    store = JsonDirectoryStore(store_dir) if store_dir else None

    try:
        report = asyncio.run(stream_session(address, duration, config, store, record, baseline))
    except KeyboardInterrupt:
        click.echo("\nStopped.")
        return
    if report is not None:
        click.echo(f"Confidence: {report.confidence.score}/100 ({report.confidence.level.value})")


if __name__ == "__main__":
    main()

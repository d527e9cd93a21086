#!/usr/bin/env python3
"""Run a dashboard analysis from the command line.

Reads a JSON list of datasets (as returned by the dataset search), or
searches the backend for a location and date range, then runs the night-lights or agriculture analysis against the backend, and
prints the dashboard summary. Optionally requests the full report and
writes it as JSON.

Usage:
    python run_analysis.py night-lights datasets.json --report report.json
    python run_analysis.py agri datasets.json --location Giza --from 2024-01-01 --to 2024-06-30
    python run_analysis.py agri --location Giza --from 2024-05-01 --to 2024-06-30

Example:
    python run_analysis.py night-lights cairo_viirs.json --api http://localhost:5000
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

import satdash as sd
from satdash.models import AgriParams, DateRange

_SEARCH_CATEGORIES = {
    "night-lights": "Night Time Light Data",
    "agri": "Agriculture Hotspot",
}


def load_datasets(path: Path) -> list[sd.Dataset]:
    """Parse the dataset list in *path*."""
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)
    return TypeAdapter(list[sd.Dataset]).validate_python(raw)


def _fmt_change(value: float | None, unit: str = "%") -> str:
    return "n/a" if value is None else f"{value:+.2f}{unit}"


def run_night_lights(
    store: sd.DashboardStore,
    cache: sd.ResultCache,
    client: sd.AnalysisClient,
    view: str,
) -> sd.NightLightsDashboard:
    """Analyse the stored datasets and print the night-lights overview."""
    dashboard = sd.NightLightsDashboard(store, cache, client)
    print("  Running night-lights analysis...")
    results = dashboard.ensure_results()
    print(f"  Cached results: {len(results)}")

    overview = dashboard.overview(view=view)
    if overview is None:
        print("  No results to show.")
        return dashboard

    print(f"  Dataset: {overview.dataset_id}")
    print(f"  Time-steps: {len(overview.dates)}")
    print(f"  Avg radiance change: {_fmt_change(overview.kpis.avg_radiance_change)}")
    print(f"  Lit area change:     {_fmt_change(overview.kpis.lit_area_change)}")
    print(
        "  Bright share change: "
        f"{_fmt_change(overview.kpis.pct_bright_change, ' pts')}"
    )
    for anomaly in overview.anomalies:
        print(f"  Anomaly {anomaly.date}: residual {anomaly.residual:+.3f}")
    print(f"  Hex cells ({view}): {len(overview.hex_cells)}")
    return dashboard


def run_agri(
    store: sd.DashboardStore,
    cache: sd.ResultCache,
    client: sd.AnalysisClient,
    datasets: list[sd.Dataset],
) -> sd.AgricultureDashboard:
    """Run the agriculture series batch and print the NDVI summary."""
    print("  Running agriculture analysis...")
    payload = sd.run_agri_series(client, store, cache, datasets)
    print(f"  Images analysed: {len(payload.results)}")

    dashboard = sd.AgricultureDashboard(store, cache, client)
    summary = dashboard.summary()
    if summary is None:
        print("  No NDVI statistics available.")
        return dashboard

    print(f"  Current NDVI: {summary.current_ndvi:.3f} ({summary.health})")
    print(f"  NDVI change:  {_fmt_change(summary.ndvi_change)}")
    anomalies = sum(1 for row in dashboard.series_chart() if row.is_anomaly)
    print(f"  Series anomalies: {anomalies}")
    return dashboard


def main() -> None:
    """Parse arguments and run the requested dashboard."""
    parser = argparse.ArgumentParser(
        description="Run a satellite dashboard analysis and print its summary"
    )
    parser.add_argument("dashboard", choices=["night-lights", "agri"])
    parser.add_argument(
        "datasets",
        type=Path,
        nargs="?",
        help="JSON file with the dataset list; searched for when omitted",
    )
    parser.add_argument("--api", help="Analysis backend base URL")
    parser.add_argument("--store", type=Path, help="Local store file")
    parser.add_argument("--view", default="all", choices=list(sd.geo.HEX_VIEWS))
    parser.add_argument("--location", default="", help="Location name")
    parser.add_argument("--from", dest="date_from", default="")
    parser.add_argument("--to", dest="date_to", default="")
    parser.add_argument("--report", type=Path, help="Write the full report here")
    parser.add_argument("-v", "--verbose", action="store_true")

    args = parser.parse_args()
    if args.datasets is None and not (args.location and args.date_from and args.date_to):
        parser.error("a dataset file, or --location with --from and --to, is required")
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    overrides: dict[str, object] = {}
    if args.api:
        overrides["api_base_url"] = args.api
    if args.store:
        overrides["store_path"] = args.store
    sd.configure(**overrides)

    store = sd.DashboardStore.from_config()
    cache = sd.ResultCache(store)
    client = sd.AnalysisClient()

    if args.datasets is None:
        try:
            datasets = sd.explore(
                client,
                store,
                args.location,
                _SEARCH_CATEGORIES[args.dashboard],
                args.date_from,
                args.date_to,
            )
        except sd.SatDashError as exc:
            print(f"Error: {exc}")
            client.close()
            sys.exit(1)
    else:
        try:
            datasets = load_datasets(args.datasets)
        except (OSError, ValueError, ValidationError) as exc:
            print(f"Error: could not read datasets from {args.datasets}: {exc}")
            client.close()
            sys.exit(1)
        sd.start_exploration(store)
        store.set_datasets(datasets)
        store.set_agri_params(
            AgriParams(
                location=args.location,
                date_range=DateRange(from_=args.date_from, to=args.date_to),
            )
        )

    print(f"Running {args.dashboard} dashboard for {len(datasets)} datasets...")
    try:
        if args.dashboard == "night-lights":
            dashboard: sd.NightLightsDashboard | sd.AgricultureDashboard = (
                run_night_lights(store, cache, client, args.view)
            )
        else:
            dashboard = run_agri(store, cache, client, datasets)

        if args.report:
            report = dashboard.generate_report()
            args.report.write_text(json.dumps(report, indent=2), encoding="utf-8")
            print(f"Report written to {args.report}")
    except (sd.SatDashError, ValueError) as exc:
        print(f"Error: {exc}")
        sys.exit(1)
    finally:
        client.close()


if __name__ == "__main__":
    main()

"""Command line entry point for MedScan."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from . import ScanImage, ScanSession, SettingsStore
from .errors import MedScanError
from .overlay import draw_regions
from .providers.registry import ProviderRegistry
from .report import write_report


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="MedScan medical image triage")
    parser.add_argument(
        "--input",
        "-i",
        type=Path,
        help="Scan image to analyse in headless mode.",
    )
    parser.add_argument(
        "--provider",
        help="Override the configured analysis provider identifier.",
    )
    parser.add_argument(
        "--report",
        type=Path,
        help="Write a text report to this file or directory after a headless analysis.",
    )
    parser.add_argument(
        "--overlay",
        type=Path,
        help="Save the scan with highlighted regions drawn on it to this path.",
    )
    parser.add_argument(
        "--list-providers",
        action="store_true",
        help="Print available analysis providers and exit.",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run the analyze-scan HTTP endpoint.",
    )
    parser.add_argument("--host", help="Interface for --serve.")
    parser.add_argument("--port", type=int, help="Port for --serve.")
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run without launching the GUI.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list_providers:
        payload = [asdict(info) for info in ProviderRegistry.list_provider_infos()]
        for item in payload:
            item["tags"] = list(item["tags"])
        json.dump(payload, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 0

    store = SettingsStore()
    config = store.load()
    if args.provider:
        if args.provider not in ProviderRegistry.names():
            parser.error(
                f"unknown provider '{args.provider}'; choose from "
                + ", ".join(ProviderRegistry.names())
            )
        config.provider_name = args.provider

    if args.serve:
        from .server import serve

        if args.host:
            config.server_host = args.host
        if args.port:
            config.server_port = args.port
        serve(config)
        return 0

    if not args.headless and args.input is None:
        from .gui import run_app

        run_app()
        return 0

    if args.input is None:
        parser.error("--input is required when running in headless mode.")

    session = ScanSession(config)
    try:
        image = ScanImage.from_path(args.input)
        session.select(image)
        result = session.analyze()
    except MedScanError as exc:
        json.dump({"path": str(args.input), "error": str(exc)}, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 1

    output = {"path": str(args.input), "result": result.to_payload()}
    if args.report:
        report_path = write_report(result, args.report)
        output["report"] = str(report_path) if report_path else None
    if args.overlay:
        args.overlay.parent.mkdir(parents=True, exist_ok=True)
        draw_regions(image.open(), result.highlighted_regions).save(args.overlay)
        output["overlay"] = str(args.overlay)

    json.dump(output, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())

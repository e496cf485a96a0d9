"""Run the optical-path predictor and OBM detector on a market snapshot.

Input is a JSON file ``{"candlesticks": [...], "heatmap": {...}}`` in the
dashboard's fetch-layer shape. Results are written as JSON to stdout or
``--output``; ``--csv-dir`` additionally writes the OBM series, volume
profile and density bands as CSV. ``--serve`` starts the HTTP API instead.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

backend_root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(backend_root))


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Optical-path price prediction and order-book momentum",
    )
    parser.add_argument("--snapshot", type=Path, default=None, help="Market snapshot JSON")
    parser.add_argument("--path-count", type=int, default=10, help="Number of predicted paths")
    parser.add_argument(
        "--backend",
        choices=["numpy", "torch"],
        default=None,
        help="Numeric backend (overrides the config file)",
    )
    parser.add_argument("--device", default=None, help="Torch device: cpu, cuda, mps or auto")
    parser.add_argument("--config", type=Path, default=None, help="Engine config YAML")
    parser.add_argument("--obm", action="store_true", help="Also run the OBM detector")
    parser.add_argument(
        "--compare-backends",
        action="store_true",
        help="Time numpy against torch and report the largest differences",
    )
    parser.add_argument(
        "--no-fields",
        action="store_true",
        help="Omit refractiveIndices and resistanceMap from the output",
    )
    parser.add_argument("--output", type=Path, default=None, help="Output JSON path")
    parser.add_argument("--csv-dir", type=Path, default=None, help="Directory for CSV tables")
    parser.add_argument("--serve", action="store_true", help="Start the HTTP API")
    parser.add_argument("--host", default=None, help="Server bind host (with --serve)")
    parser.add_argument("--port", type=int, default=None, help="Server port (with --serve)")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    args = parser.parse_args()

    if args.path_count < 1:
        parser.error("--path-count must be >= 1")
    if not args.serve and args.snapshot is None:
        parser.error("--snapshot is required unless --serve is given")

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    from src.market_data import MarketSnapshot, density_bands, volume_profile
    from src.optical_path import EngineConfig, compare_backends, predict_snapshot
    from src.order_book_momentum import detect_obm

    config = EngineConfig.from_yaml(args.config) if args.config else EngineConfig()
    backend_update = {}
    if args.backend is not None:
        backend_update["name"] = args.backend
    if args.device is not None:
        backend_update["device"] = args.device
    if backend_update:
        config = config.model_copy(
            update={"backend": config.backend.model_copy(update=backend_update)}
        )

    if args.serve:
        import uvicorn

        from src.serving.config import settings
        from src.serving.main import create_app

        app = create_app(settings=settings, engine_config=config)
        uvicorn.run(app, host=args.host or settings.host, port=args.port or settings.port)
        return

    snapshot = MarketSnapshot.from_json_file(args.snapshot)

    print(file=sys.stderr)
    print("=" * 64, file=sys.stderr)
    print("  OPTICAL PATH PREDICTION", file=sys.stderr)
    print("=" * 64, file=sys.stderr)
    print(
        json.dumps(
            {
                "snapshot": str(args.snapshot),
                "candles": len(snapshot.candlesticks),
                "heatmap_rows": snapshot.heatmap.n_times,
                "price_levels": snapshot.heatmap.n_levels,
                "path_count": args.path_count,
                "backend": config.backend.name,
                "device": config.backend.device,
                "config_version": config.config_version,
            },
            indent=2,
        ),
        file=sys.stderr,
    )
    print("=" * 64, file=sys.stderr)
    print(file=sys.stderr)

    output: dict = {}
    result = predict_snapshot(snapshot, args.path_count, config)
    output["prediction"] = result.to_dict(include_fields=not args.no_fields)

    obm = None
    if args.obm:
        obm = detect_obm(snapshot.heatmap, config.obm)
        output["obm"] = obm.to_dict()

    if args.compare_backends:
        comparison = compare_backends(
            snapshot.heatmap,
            snapshot.candlesticks,
            args.path_count,
            config,
            device=config.backend.device,
        )
        output["comparison"] = comparison.to_dict()

    if args.csv_dir is not None:
        args.csv_dir.mkdir(parents=True, exist_ok=True)
        volume_profile(snapshot.heatmap).to_csv(args.csv_dir / "volume_profile.csv", index=False)
        density_bands(snapshot.heatmap).to_csv(args.csv_dir / "density_bands.csv", index=False)
        if obm is not None:
            obm.to_frame().to_csv(args.csv_dir / "obm.csv", index=False)
        logging.getLogger(__name__).info("Wrote CSV tables to %s", args.csv_dir)

    text = json.dumps(output, indent=2)
    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(text)
        logging.getLogger(__name__).info("Wrote results to %s", args.output)
    else:
        print(text)


if __name__ == "__main__":
    main()

"""Entry point for ``python -m osmia``.

Loads the YAML config, builds a simulation engine, seeds the
overwintering cocoons and runs the population for a number of days,
logging a yearly summary and the final stage counts.
"""

from __future__ import annotations

import argparse
import logging
import pathlib
from dataclasses import replace

from osmia.simulation.config import SimulationConfig
from osmia.simulation.engine import SimulationEngine

_DEFAULT_CONFIG = (
    pathlib.Path(__file__).resolve().parent.parent / "config" / "default.yaml"
)

logger = logging.getLogger("osmia")


def build_parser() -> argparse.ArgumentParser:
    """Return the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="osmia",
        description="Osmia - solitary bee population simulator",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=pathlib.Path,
        default=_DEFAULT_CONFIG,
        help="Path to YAML config file (default: config/default.yaml)",
    )
    parser.add_argument(
        "-d",
        "--days",
        type=int,
        default=None,
        help="Days to simulate (default: value in the config)",
    )
    parser.add_argument(
        "-w",
        "--workers",
        type=int,
        default=None,
        help="Worker threads (default: value in the config)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse CLI args, build the engine and run it."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = SimulationConfig.from_yaml(args.config)
    if args.workers is not None:
        config = replace(config, workers=args.workers)
    days = args.days if args.days is not None else config.days

    engine = SimulationEngine(config=config)
    engine.seed_cocoons()
    engine.run(days)

    counts = engine.stage_counts()
    logger.info(
        "Finished %d days: %s; %d active females, %d nests",
        days,
        ", ".join(f"{stage.name.lower()}={n}" for stage, n in counts.items()),
        len(engine.active_females()),
        len(engine.nests.all_nests()),
    )


if __name__ == "__main__":
    main()

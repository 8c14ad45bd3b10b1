"""Command-line interface for running the ttbar reconstruction on event inputs."""

from __future__ import annotations

import argparse
import importlib.util
import logging
import math
from pathlib import Path
from typing import Any

from .io import load_chi2_terms_json, load_events_json, write_results_table
from .likelihood import DEFAULT_MASS_HIST, DEFAULT_NEUTRINO_HIST, load_likelihood
from .models import JetSelection, ReconstructionStatus
from .reconstructor import ReconstructionResult, TTSemilepReconstructor
from .strategies import Chi2RankStrategy, LikelihoodRankStrategy, RankStrategy

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Define and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="ttreco",
        description="Assign jets to semileptonic ttbar decay partons and reconstruct the neutrino.",
    )
    parser.add_argument("--events", required=True, help="Input JSON with key 'events'.")
    parser.add_argument(
        "--strategy",
        choices=["chi2", "likelihood"],
        default="likelihood",
        help="Rank strategy used to score jet assignments.",
    )
    parser.add_argument(
        "--chi2-terms",
        default=None,
        help="Input JSON with key 'chi2_terms' (required for --strategy chi2).",
    )
    parser.add_argument(
        "--likelihood",
        default=None,
        help="ROOT or JSON file with the likelihood tables (required for --strategy likelihood).",
    )
    parser.add_argument(
        "--neutrino-hist",
        default=DEFAULT_NEUTRINO_HIST,
        help="Name of the 1-D table of the neutrino-solver distance.",
    )
    parser.add_argument(
        "--mass-hist",
        default=DEFAULT_MASS_HIST,
        help="Name of the 2-D table of (m_W, m_top) of the hadronic side.",
    )
    parser.add_argument(
        "--use-met-covariance",
        action="store_true",
        help="Use the per-event MET covariance in the neutrino solver.",
    )
    parser.add_argument("--min-jet-pt", type=float, default=0.0, help="Jet selection: minimum pT.")
    parser.add_argument(
        "--max-jet-abs-eta",
        type=float,
        default=math.inf,
        help="Jet selection: maximum |eta|.",
    )
    parser.add_argument(
        "--out",
        required=True,
        help="Output table file for per-event results (.parquet, .csv, .pkl).",
    )
    parser.add_argument(
        "--custom-script",
        default=None,
        help="Path to Python file with process(results, context) function.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser


def build_strategy(args: argparse.Namespace) -> RankStrategy:
    """Instantiate the rank strategy requested on the command line."""
    if args.strategy == "chi2":
        if not args.chi2_terms:
            raise ValueError("--chi2-terms is required with --strategy chi2.")
        return Chi2RankStrategy(load_chi2_terms_json(args.chi2_terms))
    if not args.likelihood:
        raise ValueError("--likelihood is required with --strategy likelihood.")
    likelihood = load_likelihood(args.likelihood, args.neutrino_hist, args.mass_hist)
    return LikelihoodRankStrategy(likelihood, use_met_covariance=args.use_met_covariance)


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint: load inputs, run the reconstruction, write table, optional custom hook."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )
    events = load_events_json(args.events)
    selection = JetSelection(min_pt=args.min_jet_pt, max_abs_eta=args.max_jet_abs_eta)
    reco = TTSemilepReconstructor(build_strategy(args), selection)
    results = reco.reconstruct_events(events)
    write_results_table(args.out, results)
    _log_summary(results)

    if args.custom_script:
        run_custom_script(
            script_path=args.custom_script,
            results=results,
            context={
                "events_path": args.events,
                "strategy": args.strategy,
                "chi2_terms_path": args.chi2_terms,
                "likelihood_path": args.likelihood,
                "selection": selection,
                "output_path": args.out,
            },
        )
    return 0


def _log_summary(results: list[ReconstructionResult]) -> None:
    counts: dict[ReconstructionStatus, int] = {}
    for res in results:
        counts[res.status] = counts.get(res.status, 0) + 1
    logger.info("Processed %d events", len(results))
    for status in ReconstructionStatus:
        if status in counts:
            logger.info("  %-32s %d", status.name, counts[status])


def run_custom_script(
    script_path: str, results: list[ReconstructionResult], context: dict[str, Any]
) -> None:
    """Execute user-supplied post-processing callback `process(results, context)`."""
    module = _load_module(script_path)
    process = getattr(module, "process", None)
    if process is None or not callable(process):
        raise ValueError(
            f"Custom script {script_path} must define callable process(results, context)."
        )
    process(results, context)


def _load_module(script_path: str):
    """Import a Python module from an arbitrary file path."""
    path = Path(script_path)
    spec = importlib.util.spec_from_file_location(path.stem, path)
    if spec is None or spec.loader is None:
        raise ValueError(f"Cannot import custom script: {script_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


if __name__ == "__main__":
    raise SystemExit(main())

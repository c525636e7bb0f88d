"""
Command line entry point for point set registration.

Reads a fixed and a moving points file, registers the moving set onto the
fixed set and prints the solution parameters.

    pointset-register fixed.txt moving.txt --transform translation --initial 10 10
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np

from .alignment.registration import PointSetRegistration
from .alignment.results import TerminationState
from .alignment.transforms import create_transform
from .preprocessing.loader import load_point_set
from .utils.config import AppConfig, load_config
from .utils.logging import setup_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pointset-register",
        description="Iterative Closest Point registration of two point sets",
    )
    parser.add_argument("fixed", type=str, help="Fixed points file (whitespace separated text or .npy)")
    parser.add_argument("moving", type=str, help="Moving points file (whitespace separated text or .npy)")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file (defaults to config/default.yaml)",
    )
    parser.add_argument("--dimension", type=int, default=None, help="Point dimension (overrides config)")
    parser.add_argument(
        "--transform",
        choices=["translation", "rigid2d", "affine"],
        default=None,
        help="Transform family to estimate (overrides config)",
    )
    parser.add_argument(
        "--initial",
        type=float,
        nargs="+",
        default=None,
        help="Initial transform parameters (default: identity)",
    )
    parser.add_argument("--max-iterations", type=int, default=None, help="Override optimizer max_iterations")
    parser.add_argument(
        "--nn-backend",
        choices=["brute", "kd_tree"],
        default=None,
        help="Nearest neighbour search backend (overrides config)",
    )
    parser.add_argument("--workers", type=int, default=None, help="Threads for the correspondence scan")
    parser.add_argument("--plot", type=str, default=None, help="Write an HTML alignment/convergence plot here")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (overrides config)",
    )
    return parser


def _apply_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    if args.dimension is not None:
        cfg.transform.dimension = args.dimension
    if args.transform is not None:
        cfg.transform.type = args.transform
    if args.initial is not None:
        cfg.transform.initial_parameters = list(args.initial)
    if args.max_iterations is not None:
        cfg.registration.optimizer.max_iterations = args.max_iterations
    if args.nn_backend is not None:
        cfg.registration.metric.nn_backend = args.nn_backend
    if args.workers is not None:
        cfg.registration.metric.n_workers = args.workers
    if args.log_level is not None:
        cfg.logging.level = args.log_level
    # Re-validate the edited tree so CLI values obey the same constraints as YAML
    return AppConfig.model_validate(cfg.model_dump())


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run a registration from the command line.

    Returns:
        0 when the run converged or reached the iteration limit, 1 when it
        failed, 2 when the inputs or configuration could not be read.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        cfg = _apply_overrides(load_config(args.config), args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    logger = setup_logger("pointset_registration", level=cfg.logging.level, log_file=cfg.logging.file)

    dimension = cfg.transform.dimension
    try:
        fixed = load_point_set(args.fixed, dimension)
        moving = load_point_set(args.moving, dimension)
        transform = create_transform(cfg.transform.type, dimension, center=cfg.transform.center)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error reading inputs: {e}", file=sys.stderr)
        return 2

    print(f"Number of fixed Points = {fixed.count()}")
    print(f"Number of moving Points = {moving.count()}")

    registration = PointSetRegistration(fixed, moving, transform, config=cfg.registration)
    if cfg.transform.initial_parameters is not None:
        registration.set_initial_parameters(cfg.transform.initial_parameters)

    result = registration.run()

    if result.failed:
        print(f"Registration failed ({result.error.value if result.error else 'error'}): {result.message}",
              file=sys.stderr)
        return 1

    print(f"Solution = {np.array2string(result.parameters, precision=6)}")
    if result.state is TerminationState.MAX_ITERATIONS_REACHED:
        logger.warning("Maximum number of iterations reached before convergence.")

    if args.plot:
        from .visualization.convergence import plot_alignment

        aligned = transform.transform_points(moving.as_array())
        fig = plot_alignment(
            fixed.as_array(),
            moving.as_array(),
            aligned,
            result=result,
            sample_size=cfg.visualization.sample_size,
        )
        plot_path = Path(args.plot)
        plot_path.parent.mkdir(parents=True, exist_ok=True)
        fig.write_html(str(plot_path))
        logger.info(f"Wrote alignment plot to {plot_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Entry point for the HiGHS solver.

This script provides a command-line interface for solving a model file
(`.lp`, `.mps`, ...) and printing its solution.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .data_models import SolutionStyle, SolveProgress
from .errors import SolverError
from .monitor import SolveMonitor
from .solver import Solver, solution_text


def setup_logging(verbose: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        verbose: If True, set logging level to DEBUG
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def parse_option_value(raw: str) -> Any:
    """Coerce a command-line option value to bool, int, float or str."""
    lowered = raw.lower()
    if lowered in ('true', 'false'):
        return lowered == 'true'
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            pass
    return raw


def parse_options(pairs: List[str]) -> Dict[str, Any]:
    options = {}
    for pair in pairs:
        name, sep, value = pair.partition('=')
        if not sep or not name:
            raise argparse.ArgumentTypeError(f"Expected NAME=VALUE, got '{pair}'")
        options[name.strip()] = parse_option_value(value.strip())
    return options


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description='Solve an LP/MIP/QP model file with HiGHS',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument(
        'model',
        type=str,
        help='Model file in any format HiGHS reads (e.g. model.lp, model.mps)'
    )

    parser.add_argument(
        '-t', '--time-limit',
        type=float,
        default=None,
        help='Time limit in seconds'
    )

    parser.add_argument(
        '--threads',
        type=int,
        default=None,
        help='Number of threads used by the engine'
    )

    parser.add_argument(
        '-O', '--option',
        action='append',
        default=[],
        metavar='NAME=VALUE',
        help='Raw HiGHS option, may be repeated'
    )

    parser.add_argument(
        '-s', '--style',
        type=str,
        choices=[s.name.lower() for s in SolutionStyle],
        default=None,
        help='Print the solution in this HiGHS format instead of a summary'
    )

    parser.add_argument(
        '--monitor',
        action='store_true',
        help='Log branch-and-bound progress while solving'
    )

    parser.add_argument(
        '--allow-non-optimal',
        action='store_true',
        help='Do not fail on infeasible, unbounded or limit statuses'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose (debug) logging'
    )

    return parser.parse_args(argv)


def build_options(args: argparse.Namespace) -> Dict[str, Any]:
    options = parse_options(args.option)
    if args.time_limit is not None:
        options['time_limit'] = args.time_limit
    if args.threads is not None:
        options['threads'] = args.threads
    return options


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the solver.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = parse_arguments(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        model_path = Path(args.model)
        if not model_path.exists():
            logger.error(f"Model file not found: {model_path}")
            return 1

        solver = Solver.create(options=build_options(args))
        logger.info(f"Loading model from: {model_path}")
        solver.set_model_from_file(model_path)

        monitor = None
        if args.monitor:
            def log_progress(progress: SolveProgress) -> None:
                logger.info(
                    f"Gap {progress.relative_gap:.2%} | primal {progress.primal_bound:.6g} | "
                    f"dual {progress.dual_bound:.6g} | LP iterations {progress.lp_iteration_count}"
                )
            monitor = SolveMonitor().on('progress', log_progress)

        solver.solve(monitor=monitor, allow_non_optimal=args.allow_non_optimal)

        if args.style is not None:
            print(solution_text(solver, SolutionStyle[args.style.upper()]))
            return 0

        status = solver.get_status()
        solution = solver.get_solution()

        print("\n" + "="*60)
        print("SOLUTION SUMMARY")
        print("="*60)
        print(f"Status:              {status.name}")
        if solution is not None:
            print(f"Objective value:     {solution.objective_value:.6g}")
            if solution.relative_gap is not None:
                print(f"Relative gap:        {solution.relative_gap:.4%}")
            print(f"Columns:             {len(solution.primal.columns)}")
            print(f"Rows:                {len(solution.primal.rows)}")
        print(f"Solve time:          {solver.get_run_time():.2f} seconds")
        print("="*60)

        return 0

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 1

    except SolverError as e:
        logger.error(f"[{e.code}] {e}")
        return 1

    except Exception as e:
        logger.exception(f"Error occurred: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())

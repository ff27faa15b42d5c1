import logging
from pathlib import Path

import click

import settings
from distance_matrix import load_distance_file
from tsp_solver import HeldKarpSolver, SolveError
from visualizer import (OutputCounter, OutputError, format_route, format_summary,
                        render_tour_png, unique_output_path)

logger = logging.getLogger(__name__)


def resolve_input(name: str, input_dir) -> Path:
    path = Path(name)
    if path.is_file():
        return path
    candidate = Path(input_dir) / name
    if not candidate.is_file():
        raise click.ClickException(f"File not found: {candidate}")
    return candidate


@click.command(help="Solve a TSP instance exactly with dynamic programming (Held-Karp).")
@click.option("-i", "--input", "input_name", required=True,
              help="Input file name, looked up in the input directory unless it is an existing path.")
@click.option("-o", "--output", "output_name", default="tsp_solution", show_default=True,
              help="Base name of the PNG written to the output directory.")
@click.option("-v", "--verbose", is_flag=True, help="Show the input matrix and DP steps.")
@click.option("--timeout", type=float, default=None, help="Give up after this many seconds of DP work.")
@click.option("--input-dir", default=settings.INPUT_DIR, show_default=True, type=click.Path(file_okay=False))
@click.option("--output-dir", default=settings.OUTPUT_DIR, show_default=True, type=click.Path(file_okay=False))
def main(input_name, output_name, verbose, timeout, input_dir, output_dir):
    settings.configure_logging(logging.DEBUG if verbose else None)

    click.echo("TSP Solver with Dynamic Programming")
    click.echo("=====================================")

    input_path = resolve_input(input_name, input_dir)
    click.echo(f"Reading input file: {input_path}")

    try:
        matrix = load_distance_file(input_path)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Invalid input format: {e}")
    click.echo(f"Successfully parsed {matrix.n} cities")

    try:
        matrix.validate()
    except SolveError as e:
        raise click.ClickException(f"Graph validation error: {e}")
    click.echo("Input validation passed")

    if verbose:
        click.echo(format_summary(matrix.labels, matrix.distances))

    click.echo("Solving TSP using Dynamic Programming...")
    try:
        result = HeldKarpSolver(deadline=timeout).solve(matrix)
    except SolveError as e:
        logger.debug("Solve failed", exc_info=True)
        raise click.ClickException(f"{type(e).__name__}: {e}")

    click.echo("\nSolution Found!")
    click.echo("==================")
    click.echo(f"Minimum cost: {result.cost}")
    click.echo(f"Optimal path: {format_route(matrix.labels, result.tour)}")

    click.echo("\nGenerating visualization...")
    try:
        output_path = unique_output_path(output_dir, output_name, OutputCounter())
        render_tour_png(matrix.labels, result.tour, result.cost, output_path, matrix.positions)
    except OutputError as e:
        raise click.ClickException(str(e))

    click.echo(f"Visualization saved to: {output_path}")
    click.echo("\nTSP solving completed successfully!")


if __name__ == "__main__":
    main()

"""Command-line interface for dashformula."""

from __future__ import annotations

import json
from pathlib import Path

import click

from dashformula import __version__


@click.group()
@click.version_option(version=__version__, prog_name="dashformula")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True),
    help="Config file, or a directory containing dashformula.yaml.",
)
@click.option("--log-dir", default=None, type=click.Path(), help="Write structured events under this directory.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, log_dir: str | None) -> None:
    """dashformula -- validate and compute dataset formulas.

    Formulas reference CSV columns by name (``[Total Sales]`` for names
    with spaces) and may aggregate with SUM, AVG, COUNT, MIN and MAX.
    """
    from dashformula.config import load_config
    from dashformula.logging.events import set_log_dir

    try:
        config = load_config(Path(config_path) if config_path else None)
    except ValueError as e:
        raise click.ClickException(str(e))
    if log_dir is not None:
        config["log_dir"] = log_dir
    if config.get("log_dir"):
        set_log_dir(config["log_dir"], fsync=bool(config.get("logging_fsync")))
    ctx.obj = config


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _read_rows(csv_path: str) -> list[dict]:
    import polars as pl

    try:
        df = pl.read_csv(csv_path, infer_schema_length=None)
    except (OSError, pl.exceptions.PolarsError) as e:
        raise click.ClickException(f"Cannot read {csv_path}: {e}")
    return df.to_dicts()


def _parse_columns(columns: str) -> list[str]:
    return [c.strip() for c in columns.split(",") if c.strip()]


# ---------------------------------------------------------------------------
# check / validate
# ---------------------------------------------------------------------------


@main.command()
@click.argument("formula")
@click.pass_obj
def check(config: dict, formula: str) -> None:
    """Check the syntax of FORMULA (no data needed)."""
    from dashformula.formulas.validator import quick_validate_formula

    result = quick_validate_formula(formula, config["max_formula_length"])
    if not result.valid:
        raise click.ClickException(result.error or "Invalid formula")
    click.echo("OK")


@main.command()
@click.argument("formula")
@click.argument("csv_path", type=click.Path(exists=True))
@click.option(
    "--chart-type",
    type=click.Choice(["scorecard", "bar", "line", "pie", "scatter"]),
    default=None,
    help="Add advisories for this chart type.",
)
@click.option("--max-complexity", type=int, default=None, help="Override the complexity limit.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_obj
def validate(
    config: dict,
    formula: str,
    csv_path: str,
    chart_type: str | None,
    max_complexity: int | None,
    as_json: bool,
) -> None:
    """Validate FORMULA against the rows of CSV_PATH."""
    from dashformula.config import validation_options_from_config
    from dashformula.formulas.validator import (
        ValidationOptions,
        validate_formula_comprehensive,
        validate_formula_for_chart_type,
    )

    options = ValidationOptions(**validation_options_from_config(config))
    if max_complexity is not None:
        options = options.model_copy(update={"max_complexity": max_complexity})

    rows = _read_rows(csv_path)
    if chart_type:
        result = validate_formula_for_chart_type(formula, rows, chart_type, options)
    else:
        result = validate_formula_comprehensive(formula, rows, options)

    if as_json:
        click.echo(json.dumps(result.model_dump(), indent=2))
    else:
        click.echo(f"Status: {'VALID' if result.valid else 'INVALID'}")
        for err in result.errors:
            click.echo(f"  ERROR: {err}")
        for warn in result.warnings:
            click.echo(f"  WARNING: {warn}")
        meta = result.metadata
        if meta.used_columns:
            click.echo(f"Columns: {', '.join(meta.used_columns)}")
        if meta.aggregation_functions:
            click.echo(f"Aggregations: {', '.join(meta.aggregation_functions)}")
        click.echo(f"Complexity: {meta.complexity}")

    if not result.valid:
        raise SystemExit(2)


# ---------------------------------------------------------------------------
# calc
# ---------------------------------------------------------------------------


@main.command()
@click.argument("formula")
@click.argument("csv_path", type=click.Path(exists=True))
@click.option("--output-column", "-o", required=True, help="Name of the computed column.")
@click.option("--aggregate-first", is_flag=True, help="Evaluate once over the whole dataset.")
@click.option("--round", "round_to", type=int, default=None, help="Round results to N decimal places.")
@click.option("--out", "out_path", type=click.Path(), default=None, help="Write CSV here instead of stdout.")
@click.pass_obj
def calc(
    config: dict,
    formula: str,
    csv_path: str,
    output_column: str,
    aggregate_first: bool,
    round_to: int | None,
    out_path: str | None,
) -> None:
    """Add a column computed from FORMULA to CSV_PATH."""
    from dashformula.formulas.calculations import calculate_formula
    from dashformula.formulas.errors import FormulaError

    rows = _read_rows(csv_path)
    try:
        result = calculate_formula(
            rows,
            formula,
            output_column,
            aggregate_first=aggregate_first,
            round=round_to,
            max_formula_length=config["max_formula_length"],
        )
    except FormulaError as e:
        raise click.ClickException(str(e))

    df = result.to_frame()
    if out_path:
        df.write_csv(out_path)
        click.echo(
            f"Wrote {result.metadata.result_row_count} rows to {out_path} "
            f"({result.metadata.null_count} null)"
        )
    else:
        click.echo(df.write_csv(), nl=False)


# ---------------------------------------------------------------------------
# suggest / catalog
# ---------------------------------------------------------------------------


@main.command()
@click.argument("csv_path", required=False, type=click.Path(exists=True))
@click.option("--columns", default=None, help="Comma-separated column names instead of a CSV file.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def suggest(csv_path: str | None, columns: str | None, as_json: bool) -> None:
    """Suggest catalog formulas for the columns of CSV_PATH."""
    from dashformula.formulas.catalog import suggest_formulas_for_data

    if columns:
        available = _parse_columns(columns)
    elif csv_path:
        import polars as pl

        available = list(pl.read_csv(csv_path, n_rows=1).columns)
    else:
        raise click.ClickException("Provide CSV_PATH or --columns.")

    suggestions = suggest_formulas_for_data(available)
    if as_json:
        click.echo(json.dumps([s.model_dump(mode="json") for s in suggestions], indent=2))
        return

    if not suggestions:
        click.echo("No matching formulas.")
        return
    for s in suggestions:
        click.echo(f"  [{s.confidence:6s}] {s.formula.name:40s} {s.generated_formula}")


@main.command()
@click.option("--category", default=None, help="Only list formulas in this category.")
def catalog(category: str | None) -> None:
    """List the built-in formula catalog."""
    from dashformula.formulas.catalog import (
        COMMON_FORMULAS,
        get_all_categories,
        get_formulas_by_category,
    )

    if category:
        known = {c.id for c in get_all_categories()}
        if category not in known:
            raise click.ClickException(
                f"Unknown category: {category!r}. Known: {', '.join(sorted(known))}"
            )
        definitions = get_formulas_by_category(category)
    else:
        definitions = list(COMMON_FORMULAS.values())

    for d in definitions:
        click.echo(f"  {d.id:24s} {d.formula}")
        click.echo(f"  {'':24s} {d.description} ({d.output_type})")

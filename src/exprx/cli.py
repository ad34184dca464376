from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

import click

from exprx.annotation.biomart import BioMartClient
from exprx.annotation.species import list_species, resolve_species, species_frame
from exprx.config import (
    NORMALIZATION_METHODS,
    P_ADJUST_METHODS,
    TEST_METHODS,
    AnalysisConfig,
    BioMartConfig,
)
from exprx.errors import ExprxError
from exprx.orthologs.filters import OrthologFilter
from exprx.orthologs.model import save_orthologs
from exprx.orthologs.resolver import resolve_pairs, summarize_by
from exprx.pipeline import run_pipeline


def _optional(values: Iterable[str]) -> Optional[list]:
    values = list(values)
    return values or None


@click.group()
@click.option("--verbose", is_flag=True, help="Enable verbose logging.")
def cli(verbose: bool) -> None:
    """Interspecies differential expression on 1-to-1 orthologs."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)


@cli.command("species")
@click.option(
    "--pattern",
    default="",
    help="Case-insensitive substring of the dataset id or common name.",
)
@click.option(
    "--updated",
    is_flag=True,
    help="Fetch the live species list from BioMart instead of the packaged list.",
)
def species_command(pattern: str, updated: bool) -> None:
    """List supported species."""
    try:
        source = BioMartClient(BioMartConfig.from_env()) if updated else None
        records = list_species(pattern=pattern, updated=updated, source=source)
    except ExprxError as exc:
        raise click.ClickException(str(exc)) from exc

    if not records:
        click.echo(f"No species match {pattern!r}", err=True)
        return
    click.echo(species_frame(records).to_csv(sep="\t", index=False), nl=False)


@cli.command("orthologs")
@click.argument("species_a")
@click.argument("species_b")
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="File to write the ortholog cache to.",
)
@click.option(
    "--gene-type",
    "gene_types",
    multiple=True,
    help="Keep only pairs of this gene type (repeat for multiple).",
)
@click.option(
    "--exclude-chromosome",
    "exclude_chromosomes",
    multiple=True,
    help="Drop pairs on this chromosome (repeat for multiple).",
)
def orthologs_command(
    species_a: str,
    species_b: str,
    output: Path,
    gene_types: Iterable[str],
    exclude_chromosomes: Iterable[str],
) -> None:
    """Resolve 1-to-1 orthologs between SPECIES_A and SPECIES_B and save them."""
    try:
        id_a = resolve_species(species_a).dataset_id
        id_b = resolve_species(species_b).dataset_id
        click.echo(f"Resolving orthologs between {id_a} and {id_b}...")
        table = resolve_pairs(id_a, id_b, BioMartClient(BioMartConfig.from_env()))

        filters = OrthologFilter(
            gene_type_include=_optional(gene_types),
            chromosome_exclude=_optional(exclude_chromosomes),
        )
        if not filters.is_empty:
            table = filters.apply(table)

        save_orthologs(table, output)
    except ExprxError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"Saved {len(table)} ortholog pairs to {output}")
    summary = summarize_by(table, "genetype")
    for row in summary.itertuples(index=False):
        click.echo(f"  {row.value}: {row.count}")


@cli.command("run")
@click.option(
    "--meta",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="Sample metadata table (sample_id, species, file_path[, group_label]).",
)
@click.option(
    "--data-dir",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Directory that relative expression file paths resolve against.",
)
@click.option(
    "--orthologs",
    "orthologs_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Ortholog cache written by 'exprx orthologs'. Resolved from BioMart if omitted.",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="File to write the result table (TSV) to.",
)
@click.option(
    "--normalization",
    type=click.Choice(NORMALIZATION_METHODS),
    default="TMM",
    show_default=True,
)
@click.option(
    "--method",
    type=click.Choice(TEST_METHODS),
    default="RankProd",
    show_default=True,
)
@click.option(
    "--p-adjust",
    type=click.Choice(list(P_ADJUST_METHODS)),
    default="BH",
    show_default=True,
)
def run_command(
    meta: Path,
    data_dir: Path,
    orthologs_path: Optional[Path],
    output: Path,
    normalization: str,
    method: str,
    p_adjust: str,
) -> None:
    """Run the full comparison and write one result row per ortholog pair."""
    try:
        analysis = AnalysisConfig(normalization=normalization, test_method=method, p_adjust=p_adjust)
        outcome = run_pipeline(meta, data_dir, orthologs=orthologs_path, analysis=analysis)
        outcome.result.to_tsv(output)
    except ExprxError as exc:
        raise click.ClickException(str(exc)) from exc

    stats = outcome.get_stats()
    click.echo("=" * 60)
    click.echo(f"{stats['species_a']} ({stats['replicates_a']} replicates) vs "
               f"{stats['species_b']} ({stats['replicates_b']} replicates)")
    click.echo(f"Ortholog pairs tested: {stats['ortholog_pairs']}")
    click.echo(f"Pairs dropped during merge: {stats['dropped_pairs']}")
    click.echo(f"Normalization: {stats['normalization']}, test: {stats['test_method']} ({stats['p_adjust']})")
    click.echo(f"Results written to {output}")
    click.echo("=" * 60)


def main() -> None:  # pragma: no cover
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()

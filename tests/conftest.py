"""Shared fakes for the annotation service and the numerical backends."""

import numpy as np
import pandas as pd
import pytest

from exprx.annotation.biomart import HOMOLOG_COLUMNS, species_id


class FakeAnnotationSource:
    """In-memory annotation source keyed by (source, target) species id."""

    def __init__(self, tables=None, datasets=None):
        self.tables = tables or {}
        self.datasets = datasets
        self.calls = []

    def list_datasets(self) -> pd.DataFrame:
        if self.datasets is None:
            raise RuntimeError("no dataset list configured")
        return self.datasets

    def get_homolog_annotation(self, source_species, target_species) -> pd.DataFrame:
        key = (species_id(source_species), species_id(target_species))
        self.calls.append(key)
        return self.tables[key].copy()


class FakeNormalizer:
    """Scales each column to a total of 1e6 (counts-per-million)."""

    def __init__(self):
        self.calls = []

    def normalize(self, matrix, groups, method):
        self.calls.append((matrix.shape, list(groups), method))
        return matrix / matrix.sum(axis=0) * 1e6


class FakeTester:
    """Returns deterministic p-values: 0.01, 0.02, ... in row order."""

    def __init__(self):
        self.calls = []

    def test(self, matrix, groups, method, p_adjust):
        self.calls.append((matrix.shape, list(groups), method, p_adjust))
        p = np.arange(1, len(matrix) + 1) / 100.0
        return pd.DataFrame(
            {"pvalue": p, "pvalue_adjusted": np.minimum(p * 2, 1.0)},
            index=matrix.index,
        )


def make_annotation(rows):
    """Homolog annotation frame from (gene_id, homolog_id[, gene_type, chromosome]) tuples."""
    records = []
    for row in rows:
        gene_id, homolog_id = row[0], row[1]
        gene_type = row[2] if len(row) > 2 else "protein_coding"
        chromosome = row[3] if len(row) > 3 else "1"
        records.append(
            {
                "gene_id": gene_id,
                "gene_name": f"name_{gene_id}" if gene_id else pd.NA,
                "chromosome": chromosome,
                "gene_type": gene_type,
                "homolog_id": homolog_id if homolog_id else pd.NA,
                "homology_type": "ortholog_one2one" if homolog_id else pd.NA,
            }
        )
    return pd.DataFrame(records, columns=HOMOLOG_COLUMNS)


# Human genes g1..g5 and mouse genes m1..m5; g2 has two mouse homologs.
HUMAN_ROWS = [
    ("ENSG00000000001", "ENSMUSG00000000001", "protein_coding", "1"),
    ("ENSG00000000002", "ENSMUSG00000000002", "protein_coding", "2"),
    ("ENSG00000000002", "ENSMUSG00000000009", "protein_coding", "2"),
    ("ENSG00000000003", "ENSMUSG00000000003", "lncRNA", "X"),
    ("ENSG00000000004", "ENSMUSG00000000004", "protein_coding", "MT"),
    ("ENSG00000000005", "", "protein_coding", "3"),
]

MOUSE_ROWS = [
    ("ENSMUSG00000000001", "ENSG00000000001", "protein_coding", "4"),
    ("ENSMUSG00000000002", "ENSG00000000002", "protein_coding", "5"),
    ("ENSMUSG00000000003", "ENSG00000000003", "lncRNA", "X"),
    ("ENSMUSG00000000004", "ENSG00000000004", "protein_coding", "MT"),
    ("ENSMUSG00000000005", "", "protein_coding", "6"),
]


@pytest.fixture
def fake_source():
    datasets = pd.DataFrame(
        {
            "dataset": ["hsapiens_gene_ensembl", "mmusculus_gene_ensembl"],
            "description": ["Human genes (GRCh38.p14)", "Mouse genes (GRCm39)"],
            "version": ["GRCh38.p14", "GRCm39"],
        }
    )
    return FakeAnnotationSource(
        tables={
            ("hsapiens", "mmusculus"): make_annotation(HUMAN_ROWS),
            ("mmusculus", "hsapiens"): make_annotation(MOUSE_ROWS),
        },
        datasets=datasets,
    )


@pytest.fixture
def fake_normalizer():
    return FakeNormalizer()


@pytest.fixture
def fake_tester():
    return FakeTester()


HUMAN_GENES = ["ENSG00000000001", "ENSG00000000002", "ENSG00000000003", "ENSG00000000004", "ENSG00000000005"]
MOUSE_GENES = ["ENSMUSG00000000001", "ENSMUSG00000000002", "ENSMUSG00000000003", "ENSMUSG00000000004"]


def write_study(directory, n_reps=3, seed=3):
    """Write human and mouse replicate TSV files plus ``samples.csv``; returns its path."""
    rng = np.random.RandomState(seed)
    rows = []
    for species, genes, prefix in (("human", HUMAN_GENES, "H"), ("mouse", MOUSE_GENES, "M")):
        for i in range(n_reps):
            name = f"{prefix}{i}.tsv"
            pd.DataFrame(
                {"gene_id": genes, "TPM": rng.uniform(5, 50, size=len(genes)).round(3)}
            ).to_csv(directory / name, sep="\t", index=False)
            rows.append({"sample_id": f"{prefix}{i}", "species": species, "file_path": name})
    meta_path = directory / "samples.csv"
    pd.DataFrame(rows).to_csv(meta_path, index=False)
    return meta_path

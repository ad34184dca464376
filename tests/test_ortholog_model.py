"""Unit tests for the ortholog table and its on-disk cache."""

import gzip
import pickle

import pandas as pd
import pytest

from conftest import make_annotation
from exprx.errors import DataIOError, ValidationError
from exprx.orthologs.model import (
    GENE_COLUMNS,
    OrthologTable,
    empty_gene_table,
    load_orthologs,
    save_orthologs,
)
from exprx.orthologs.resolver import pairs_from_annotation


def _make_genes(ids):
    return pd.DataFrame(
        {
            "gene_id": ids,
            "gene_name": [f"name_{i}" for i in ids],
            "chromosome": ["1"] * len(ids),
            "gene_type": ["protein_coding"] * len(ids),
        }
    )


def _make_table():
    return OrthologTable(
        species_a="hsapiens",
        species_b="mmusculus",
        genes_a=_make_genes(["ENSG1", "ENSG2", "ENSG3"]),
        genes_b=_make_genes(["ENSMUSG1", "ENSMUSG2", "ENSMUSG3"]),
    )


class TestOrthologTable:

    def test_pairs_and_ids(self):
        table = _make_table()
        assert len(table) == 3
        assert table.pairs[0] == ("ENSG1", "ENSMUSG1")
        assert table.pair_ids[2] == "ENSG3|ENSMUSG3"

    def test_rows_must_align(self):
        with pytest.raises(ValidationError, match="row-aligned"):
            OrthologTable("a", "b", _make_genes(["g1", "g2"]), _make_genes(["h1"]))

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValidationError, match="duplicated"):
            OrthologTable("a", "b", _make_genes(["g1", "g1"]), _make_genes(["h1", "h2"]))

    def test_missing_columns_rejected(self):
        genes = _make_genes(["g1"]).drop(columns=["gene_type"])
        with pytest.raises(ValidationError, match="gene_type"):
            OrthologTable("a", "b", genes, _make_genes(["h1"]))

    def test_subset(self):
        table = _make_table().subset([True, False, True])
        assert table.pairs == [("ENSG1", "ENSMUSG1"), ("ENSG3", "ENSMUSG3")]
        assert list(table.genes_a.index) == [0, 1]

    def test_subset_mask_length(self):
        with pytest.raises(ValidationError):
            _make_table().subset([True])

    def test_swapped(self):
        swapped = _make_table().swapped()
        assert swapped.species_a == "mmusculus"
        assert swapped.pairs[0] == ("ENSMUSG1", "ENSG1")
        assert swapped.swapped().equals(_make_table())

    def test_to_frame(self):
        frame = _make_table().to_frame()
        assert list(frame.columns) == [c + "_a" for c in GENE_COLUMNS] + [c + "_b" for c in GENE_COLUMNS]
        assert len(frame) == 3

    def test_empty_table(self):
        table = OrthologTable("a", "b", empty_gene_table(), empty_gene_table())
        assert len(table) == 0
        assert table.pair_ids == []


class TestOrthologCache:

    def test_round_trip(self, tmp_path):
        ann_a = make_annotation([("g1", "h1", "lncRNA", "X"), ("g2", ""), ("g3", "h3")])
        ann_b = make_annotation([("h1", "g1"), ("h3", "g3")])
        table = pairs_from_annotation(ann_a, ann_b, "hsapiens", "mmusculus")

        path = save_orthologs(table, tmp_path / "cache" / "orthologs.pkl.gz")
        loaded = load_orthologs(path)

        assert loaded.equals(table)

    def test_missing_file(self, tmp_path):
        with pytest.raises(DataIOError, match="not found"):
            load_orthologs(tmp_path / "nope.pkl.gz")

    def test_not_gzip(self, tmp_path):
        path = tmp_path / "bad.pkl.gz"
        path.write_text("hello")
        with pytest.raises(DataIOError):
            load_orthologs(path)

    def test_wrong_payload(self, tmp_path):
        path = tmp_path / "other.pkl.gz"
        with gzip.open(path, "wb") as fh:
            pickle.dump({"format": "something-else"}, fh)
        with pytest.raises(DataIOError, match="not an exprx ortholog cache"):
            load_orthologs(path)

    def test_wrong_version(self, tmp_path):
        path = save_orthologs(_make_table(), tmp_path / "o.pkl.gz")
        with gzip.open(path, "rb") as fh:
            payload = pickle.load(fh)
        payload["version"] = 99
        with gzip.open(path, "wb") as fh:
            pickle.dump(payload, fh)
        with pytest.raises(DataIOError, match="version"):
            load_orthologs(path)

"""Unit tests for the dataset loader."""

import gzip

import numpy as np
import pandas as pd
import pytest

from exprx.config import LoaderConfig
from exprx.errors import ConfigurationError, DataIOError, ValidationError
from exprx.expression.loader import load_dataset, read_expression_file, read_metadata


def _write_expression(path, genes, values, sep="\t", value_name="TPM", extra=None):
    df = pd.DataFrame({"gene_id": genes, value_name: values})
    if extra:
        for name, col in extra.items():
            df[name] = col
    if str(path).endswith(".gz"):
        with gzip.open(path, "wt") as fh:
            df.to_csv(fh, sep=sep, index=False)
    else:
        df.to_csv(path, sep=sep, index=False)
    return path


def _make_study(tmp_path, n_a=2, n_b=3, genes_a=None, genes_b=None):
    """Write expression files plus a metadata frame for two species."""
    genes_a = genes_a or ["ENSG1", "ENSG2", "ENSG3"]
    genes_b = genes_b or ["ENSMUSG1", "ENSMUSG2", "ENSMUSG3"]
    rows = []
    for i in range(n_a):
        name = f"human_{i}.tsv"
        _write_expression(tmp_path / name, genes_a, [float(10 * (i + 1) + j) for j in range(len(genes_a))])
        rows.append({"sample_id": f"H{i}", "species": "human", "file_path": name})
    for i in range(n_b):
        name = f"mouse_{i}.tsv"
        _write_expression(tmp_path / name, genes_b, [float(100 * (i + 1) + j) for j in range(len(genes_b))])
        rows.append({"sample_id": f"M{i}", "species": "mouse", "file_path": name})
    return pd.DataFrame(rows)


class TestLoadDataset:

    def test_two_species(self, tmp_path):
        meta = _make_study(tmp_path)
        dataset = load_dataset(meta, tmp_path)

        assert dataset.species_a.species == "human"
        assert dataset.species_b.species == "mouse"
        assert dataset.species_a.sample_ids == ["H0", "H1"]
        assert dataset.species_b.sample_ids == ["M0", "M1", "M2"]
        raw = dataset.species_a.raw_expression
        assert raw.index.name == "gene_id"
        assert raw.loc["ENSG2", "H1"] == 21.0

    def test_group_label_defaults_to_species(self, tmp_path):
        dataset = load_dataset(_make_study(tmp_path), tmp_path)
        assert dataset.group_labels() == ["human", "human", "mouse", "mouse", "mouse"]

    def test_explicit_group_label(self, tmp_path):
        meta = _make_study(tmp_path)
        meta["group_label"] = ["case", "case", "ctrl", "", "ctrl"]
        dataset = load_dataset(meta, tmp_path)
        assert dataset.group_labels() == ["case", "case", "ctrl", "mouse", "ctrl"]

    def test_metadata_file(self, tmp_path):
        meta = _make_study(tmp_path)
        meta_path = tmp_path / "samples.tsv"
        meta.to_csv(meta_path, sep="\t", index=False)
        dataset = load_dataset(meta_path, tmp_path)
        assert dataset.species_b.n_replicates == 3

    def test_absolute_paths(self, tmp_path):
        meta = _make_study(tmp_path)
        meta["file_path"] = [str(tmp_path / p) for p in meta["file_path"]]
        dataset = load_dataset(meta, "/nonexistent")
        assert dataset.species_a.n_replicates == 2

    def test_union_of_genes(self, tmp_path):
        """Replicates with different gene sets leave NaN where a gene is absent."""
        meta = _make_study(tmp_path)
        _write_expression(tmp_path / "human_1.tsv", ["ENSG1", "ENSG4"], [1.0, 2.0])
        dataset = load_dataset(meta, tmp_path)
        raw = dataset.species_a.raw_expression
        assert set(raw.index) == {"ENSG1", "ENSG2", "ENSG3", "ENSG4"}
        assert np.isnan(raw.loc["ENSG4", "H0"])

    def test_species_order(self, tmp_path):
        meta = _make_study(tmp_path)
        dataset = load_dataset(meta, tmp_path, LoaderConfig(species_order=["mouse", "human"]))
        assert dataset.species_a.species == "mouse"
        assert dataset.group_labels()[:3] == ["mouse"] * 3

    def test_species_order_mismatch(self, tmp_path):
        meta = _make_study(tmp_path)
        with pytest.raises(ValidationError):
            load_dataset(meta, tmp_path, LoaderConfig(species_order=["mouse", "rat"]))

    def test_three_species(self, tmp_path):
        meta = _make_study(tmp_path)
        meta.loc[0, "species"] = "rat"
        with pytest.raises(ValidationError, match="exactly 2 species"):
            load_dataset(meta, tmp_path)

    def test_missing_file(self, tmp_path):
        meta = _make_study(tmp_path)
        (tmp_path / "mouse_2.tsv").unlink()
        with pytest.raises(DataIOError, match="M2"):
            load_dataset(meta, tmp_path)


class TestReadMetadata:

    def test_missing_column(self):
        with pytest.raises(ValidationError, match="file_path"):
            read_metadata(pd.DataFrame({"sample_id": ["a"], "species": ["human"]}))

    def test_duplicate_sample_id(self):
        meta = pd.DataFrame(
            {"sample_id": ["a", "a"], "species": ["human", "mouse"], "file_path": ["x", "y"]}
        )
        with pytest.raises(ValidationError, match="duplicated"):
            read_metadata(meta)

    def test_blank_value(self):
        meta = pd.DataFrame({"sample_id": ["a"], "species": [" "], "file_path": ["x"]})
        with pytest.raises(ValidationError, match="blank"):
            read_metadata(meta)

    def test_missing_file(self, tmp_path):
        with pytest.raises(DataIOError):
            read_metadata(tmp_path / "samples.csv")

    def test_extra_columns_kept(self):
        meta = pd.DataFrame(
            {"tissue": ["liver"], "sample_id": ["a"], "species": ["human"], "file_path": ["x"]}
        )
        df = read_metadata(meta)
        assert list(df.columns) == ["sample_id", "species", "file_path", "group_label", "tissue"]


class TestReadExpressionFile:

    def test_tab_separated(self, tmp_path):
        path = _write_expression(tmp_path / "s.tsv", ["g1", "g2"], [1.5, 2.5])
        series = read_expression_file(path, "S1")
        assert series.name == "S1"
        assert series.to_dict() == {"g1": 1.5, "g2": 2.5}

    def test_csv_gz(self, tmp_path):
        path = _write_expression(tmp_path / "s.csv.gz", ["g1", "g2"], [3.0, 4.0], sep=",")
        assert read_expression_file(path, "S1").to_dict() == {"g1": 3.0, "g2": 4.0}

    def test_value_column(self, tmp_path):
        path = _write_expression(
            tmp_path / "s.tsv", ["g1", "g2"], [1.0, 2.0], extra={"FPKM": [7.0, 8.0]}
        )
        assert read_expression_file(path, "S1", value_column="FPKM").tolist() == [7.0, 8.0]
        with pytest.raises(DataIOError, match="RPKM"):
            read_expression_file(path, "S1", value_column="RPKM")

    def test_missing_value_tokens(self, tmp_path):
        path = tmp_path / "s.tsv"
        path.write_text("gene_id\tTPM\ng1\tNA\ng2\t\ng3\t1\n")
        series = read_expression_file(path, "S1")
        assert series.isna().tolist() == [True, True, False]

    def test_non_numeric(self, tmp_path):
        path = tmp_path / "s.tsv"
        path.write_text("gene_id\tTPM\ng1\t1\ng2\thigh\n")
        with pytest.raises(DataIOError, match="'high'"):
            read_expression_file(path, "S1")

    def test_duplicate_gene(self, tmp_path):
        path = _write_expression(tmp_path / "s.tsv", ["g1", "g1"], [1.0, 2.0])
        with pytest.raises(DataIOError, match="duplicated"):
            read_expression_file(path, "S1")

    def test_single_column(self, tmp_path):
        path = tmp_path / "s.tsv"
        path.write_text("gene_id\ng1\n")
        with pytest.raises(DataIOError):
            read_expression_file(path, "S1")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "s.tsv"
        path.write_text("")
        with pytest.raises(DataIOError):
            read_expression_file(path, "S1")


class TestLoaderConfig:

    def test_bad_workers(self):
        with pytest.raises(ConfigurationError):
            LoaderConfig(max_workers=0)

    def test_bad_species_order(self):
        with pytest.raises(ConfigurationError):
            LoaderConfig(species_order=["human"])

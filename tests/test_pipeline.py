"""End-to-end tests for the pipeline orchestrator with fake backends."""

import dataclasses

import pandas as pd
import pytest

from conftest import write_study
from exprx.config import AnalysisConfig
from exprx.errors import ValidationError
from exprx.orthologs.filters import OrthologFilter
from exprx.orthologs.model import save_orthologs
from exprx.orthologs.resolver import resolve_pairs
from exprx.pipeline import run_pipeline


class TestRunPipeline:

    def test_resolves_orthologs_through_source(self, tmp_path, fake_source, fake_normalizer, fake_tester):
        meta = write_study(tmp_path)

        outcome = run_pipeline(
            meta,
            tmp_path,
            source=fake_source,
            normalizer=fake_normalizer,
            tester=fake_tester,
        )

        table = outcome.result.table
        assert list(table["gene_id_a"]) == ["ENSG00000000001", "ENSG00000000003", "ENSG00000000004"]
        assert list(table["gene_id_b"]) == ["ENSMUSG00000000001", "ENSMUSG00000000003", "ENSMUSG00000000004"]
        assert outcome.dataset.orthologs.species_a == "human"
        assert outcome.dataset.normalization_method == "TMM"
        assert fake_source.calls == [("hsapiens", "mmusculus"), ("mmusculus", "hsapiens")]

        stats = outcome.get_stats()
        assert stats["ortholog_pairs"] == 3
        assert stats["dropped_pairs"] == 0
        assert stats["replicates_a"] == 3
        assert stats["test_method"] == "RankProd"

    def test_cached_orthologs(self, tmp_path, fake_source, fake_normalizer, fake_tester):
        meta = write_study(tmp_path)
        table = resolve_pairs("hsapiens", "mmusculus", fake_source)
        cache = save_orthologs(table, tmp_path / "orthologs.pkl.gz")

        outcome = run_pipeline(
            meta,
            tmp_path,
            orthologs=cache,
            analysis=AnalysisConfig(normalization="RLE", test_method="welch_t", p_adjust="holm"),
            normalizer=fake_normalizer,
            tester=fake_tester,
        )

        assert len(outcome.result) == 3
        assert outcome.result.method == "welch_t"
        assert fake_normalizer.calls[0][2] == "RLE"
        assert fake_tester.calls[0][3] == "holm"

    def test_filters_applied(self, tmp_path, fake_source, fake_normalizer, fake_tester):
        meta = write_study(tmp_path)

        outcome = run_pipeline(
            meta,
            tmp_path,
            source=fake_source,
            filters=OrthologFilter(chromosome_exclude=["MT"]),
            normalizer=fake_normalizer,
            tester=fake_tester,
        )

        assert list(outcome.result.table["gene_id_a"]) == ["ENSG00000000001", "ENSG00000000003"]

    def test_scipy_backend_end_to_end(self, tmp_path, fake_source, fake_normalizer):
        meta = write_study(tmp_path)

        outcome = run_pipeline(
            meta,
            tmp_path,
            source=fake_source,
            analysis=AnalysisConfig(test_method="mann_whitney_u"),
            normalizer=fake_normalizer,
        )

        p = outcome.result.table["pvalue_adjusted"]
        assert p.between(0, 1).all()

    def test_too_few_pairs(self, tmp_path, fake_source, fake_normalizer, fake_tester):
        meta = write_study(tmp_path)

        with pytest.raises(ValidationError, match="rows"):
            run_pipeline(
                meta,
                tmp_path,
                source=fake_source,
                filters=OrthologFilter(gene_type_include=["lncRNA"]),
                normalizer=fake_normalizer,
                tester=fake_tester,
            )
        assert fake_normalizer.calls == []

    def test_cached_orthologs_with_other_species_first(
        self, tmp_path, fake_source, fake_normalizer, fake_tester
    ):
        meta = write_study(tmp_path)
        samples = pd.read_csv(meta)
        samples = pd.concat([samples[samples["species"] == "mouse"], samples[samples["species"] == "human"]])
        samples.to_csv(meta, index=False)
        cache = save_orthologs(
            resolve_pairs("hsapiens", "mmusculus", fake_source), tmp_path / "orthologs.pkl.gz"
        )

        outcome = run_pipeline(
            meta,
            tmp_path,
            orthologs=cache,
            normalizer=fake_normalizer,
            tester=fake_tester,
        )

        table = outcome.result.table
        assert list(table["gene_id_a"]) == ["ENSMUSG00000000001", "ENSMUSG00000000003", "ENSMUSG00000000004"]
        assert list(table["gene_id_b"]) == ["ENSG00000000001", "ENSG00000000003", "ENSG00000000004"]
        assert outcome.dataset.orthologs.species_a == "mouse"
        assert outcome.dataset.orthologs.species_b == "human"

    def test_ortholog_table_for_other_species(self, tmp_path, fake_source, fake_normalizer, fake_tester):
        meta = write_study(tmp_path)
        table = resolve_pairs("hsapiens", "mmusculus", fake_source)
        table = dataclasses.replace(table, species_b="rnorvegicus")

        with pytest.raises(ValidationError, match="rnorvegicus"):
            run_pipeline(
                meta,
                tmp_path,
                orthologs=table,
                normalizer=fake_normalizer,
                tester=fake_tester,
            )
        assert fake_normalizer.calls == []

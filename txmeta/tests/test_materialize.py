# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Tests for the fetch-and-parse pipeline."""

import pytest

from txmeta.core.cache import GENE_DATABASE, PARSED_DATABASE, SEQUENCE_NAMES
from txmeta.errors import CacheCorruptError, FetchError
from txmeta.pipeline.materialize import gene_database, materialize, read_sequence_names, sequence_names
from txmeta.registry import TranscriptomeDescriptor

from .conftest import FLY_FASTA, FLY_GFF3, FLY_TX

SIG = 'f1e2d3'


def test_read_sequence_names():
    assert read_sequence_names([FLY_FASTA]) == FLY_TX


class TestMaterialize:
    def test_names_from_fasta(self, cache, fly_descriptor):
        result = materialize(fly_descriptor, SIG, cache)
        assert list(result.ranges.index) == FLY_TX
        assert result.gap.dropped == 0
        assert cache.get(SIG, SEQUENCE_NAMES) == FLY_TX
        assert cache.entry(SIG, PARSED_DATABASE) is not None

    def test_explicit_ids(self, cache, fly_descriptor):
        result = materialize(fly_descriptor, SIG, cache, transcript_ids=FLY_TX[:2])
        assert list(result.ranges.index) == FLY_TX[:2]
        assert cache.entry(SIG, SEQUENCE_NAMES) is None

    def test_seqinfo_limited_to_used_sequences(self, cache, fly_descriptor):
        result = materialize(fly_descriptor, SIG, cache, transcript_ids=['FBtr0000004'])
        assert list(result.seqinfo.index) == ['3R']
        assert result.seqinfo.loc['3R', 'genome'] == 'BDGP6'

    def test_gff3_descriptor(self, cache, fly_descriptor):
        desc = TranscriptomeDescriptor('Ensembl', 'Drosophila melanogaster', '92', 'BDGP6',
                                       fasta=fly_descriptor.fasta, gtf=FLY_GFF3)
        result = materialize(desc, SIG, cache)
        assert result.seqinfo.loc['2L', 'seqlengths'] == 23513712
        assert result.txdb.source_file == FLY_GFF3

    def test_missing_annotation(self, cache, tmp_path, fly_descriptor):
        desc = TranscriptomeDescriptor('linked', 'Drosophila melanogaster', '92', 'BDGP6',
                                       fasta=fly_descriptor.fasta, gtf=str(tmp_path / 'gone.gtf'))
        with pytest.raises(FetchError):
            materialize(desc, SIG, cache)
        assert cache.entry(SIG, PARSED_DATABASE) is None

    def test_no_fasta_and_no_ids(self, cache, fly_descriptor):
        desc = TranscriptomeDescriptor('linked', 'Drosophila melanogaster', '92', 'BDGP6', gtf=fly_descriptor.gtf)
        with pytest.raises(ValueError):
            sequence_names(desc, SIG, cache)


class TestGeneDatabase:
    def test_cached(self, cache, fly_descriptor):
        txdb = materialize(fly_descriptor, SIG, cache).txdb
        genedb = gene_database(txdb, SIG, cache)
        assert cache.entry(SIG, GENE_DATABASE) is not None
        assert list(gene_database(txdb, SIG, cache).genes.index) == list(genedb.genes.index)

    def test_wrong_payload(self, cache, fly_descriptor):
        txdb = materialize(fly_descriptor, SIG, cache).txdb
        cache.put(SIG, GENE_DATABASE, {'not': 'a gene database'})
        with pytest.raises(CacheCorruptError):
            gene_database(txdb, SIG, cache)

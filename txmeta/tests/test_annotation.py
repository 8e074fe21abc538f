# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Tests for GTF/GFF3 parsing and the derived range tables."""

import gzip
import pickle
import shutil

import pandas as pd
import pytest

from txmeta.annotation import CoverageGap, get_reader, read_annotation
from txmeta.annotation.gtf import detect_format, parse_gff3_attributes, parse_gtf_attributes
from txmeta.errors import ParseError

from .conftest import FLY_FASTA, FLY_GFF3, FLY_GTF, FLY_TX


@pytest.fixture(scope='module')
def gtf_db():
    return read_annotation(FLY_GTF)


@pytest.fixture(scope='module')
def gff3_db():
    return read_annotation(FLY_GFF3)


def _write_gtf(path, rows):
    with open(path, 'w') as outh:
        for r in rows:
            print('\t'.join(r), file=outh)
    return str(path)


# =========================================================================
# Attribute parsing and format detection
# =========================================================================

def test_parse_gtf_attributes():
    attrs = parse_gtf_attributes('gene_id "G1"; transcript_id "T1"; exon_number 2;')
    assert attrs == {'gene_id': 'G1', 'transcript_id': 'T1', 'exon_number': '2'}


def test_parse_gff3_attributes():
    attrs = parse_gff3_attributes('ID=transcript:T1;Parent=gene:G1;Name=a-RA')
    assert attrs['Parent'] == 'gene:G1'
    assert attrs['Name'] == 'a-RA'


class TestDetectFormat:
    def test_gtf(self):
        assert detect_format(FLY_GTF) == 'gtf'

    def test_gff3(self):
        assert detect_format(FLY_GFF3) == 'gff3'

    def test_gff3_without_pragma(self, tmp_path):
        with open(FLY_GFF3) as fh:
            body = [l for l in fh if not l.startswith('#')]
        p = tmp_path / 'nopragma.gff'
        p.write_text(''.join(body))
        assert detect_format(str(p)) == 'gff3'

    def test_fasta_is_not_annotation(self):
        with pytest.raises(ParseError) as exc:
            read_annotation(FLY_FASTA)
        assert exc.value.path == FLY_FASTA
        assert 'transcripts.fa' in str(exc.value)

    def test_empty_file(self, tmp_path):
        p = tmp_path / 'empty.gtf'
        p.write_text('')
        with pytest.raises(ParseError):
            read_annotation(str(p))

    def test_unknown_reader(self):
        with pytest.raises(ParseError) as exc:
            get_reader('bed', 'peaks.bed')
        assert exc.value.path == 'peaks.bed'

    def test_explicit_unknown_format(self):
        with pytest.raises(ParseError) as exc:
            read_annotation(FLY_GTF, 'bed')
        assert exc.value.path == FLY_GTF
        assert 'bed' in str(exc.value)


# =========================================================================
# GTF
# =========================================================================

class TestReadGTF:
    def test_counts(self, gtf_db):
        assert len(gtf_db) == 5
        assert list(gtf_db.genes) == ['FBgn0000001', 'FBgn0000002', 'FBgn0000003']
        assert sum(len(v) for v in gtf_db.exons.values()) == 8
        assert gtf_db.file_format == 'gtf'

    def test_transcript_fields(self, gtf_db):
        tx = gtf_db.transcripts['FBtr0000003']
        assert (tx.seqnames, tx.start, tx.end, tx.strand) == ('2L', 1000, 1300, '-')
        assert tx.gene_id == 'FBgn0000002'
        assert tx.tx_name == 'beta-RA'
        assert tx.tx_biotype == 'ncRNA'

    def test_exon_ranks(self, gtf_db):
        exons = gtf_db.exons['FBtr0000003']
        assert [e.exon_rank for e in exons] == [1, 2]
        assert exons[0].start == 1200

    def test_gzip(self, tmp_path, gtf_db):
        gz = tmp_path / 'annotation.gtf.gz'
        with open(FLY_GTF, 'rb') as src, gzip.open(gz, 'wb') as dst:
            shutil.copyfileobj(src, dst)
        db = read_annotation(str(gz))
        assert list(db.transcripts) == list(gtf_db.transcripts)

    def test_exon_only_file(self, tmp_path):
        path = _write_gtf(tmp_path / 'exons.gtf', [
            ['chr1', 'src', 'exon', '300', '400', '.', '-', '.', 'gene_id "G1"; transcript_id "T1";'],
            ['chr1', 'src', 'exon', '100', '200', '.', '-', '.', 'gene_id "G1"; transcript_id "T1";'],
        ])
        db = read_annotation(path)
        tx = db.transcripts['T1']
        assert (tx.start, tx.end) == (100, 400)
        # Minus strand: the downstream exon comes first
        assert [e.start for e in db.exons['T1']] == [300, 100]
        assert db.genes['G1'].start == 100

    def test_bad_coordinates(self, tmp_path):
        path = _write_gtf(tmp_path / 'bad.gtf', [
            ['chr1', 'src', 'exon', 'one', '200', '.', '+', '.', 'gene_id "G1"; transcript_id "T1";'],
        ])
        with pytest.raises(ParseError):
            read_annotation(path)

    def test_pickles(self, gtf_db):
        back = pickle.loads(pickle.dumps(gtf_db))
        assert back.resolve_id('FBtr0000001') == 'FBtr0000001'
        assert list(back.transcripts) == list(gtf_db.transcripts)


# =========================================================================
# GFF3
# =========================================================================

class TestReadGFF3:
    def test_same_transcripts_as_gtf(self, gff3_db, gtf_db):
        assert list(gff3_db.transcripts) == list(gtf_db.transcripts)
        assert gff3_db.file_format == 'gff3'

    def test_prefixes_stripped(self, gff3_db):
        tx = gff3_db.transcripts['FBtr0000001']
        assert tx.gene_id == 'FBgn0000001'
        assert tx.tx_name == 'alpha-RA'
        assert gff3_db.genes['FBgn0000002'].gene_name == 'beta'

    def test_sequence_region_lengths(self, gff3_db):
        assert gff3_db.seqlengths == {'2L': 23513712, '3R': 32079331}
        si = gff3_db.seqinfo('BDGP6')
        assert si.loc['2L', 'seqlengths'] == 23513712
        assert (si['genome'] == 'BDGP6').all()

    def test_exon_ranks(self, gff3_db):
        assert [e.exon_id for e in gff3_db.exons['FBtr0000005']] == ['FBtr0000005-E1', 'FBtr0000005-E2']


# =========================================================================
# Derived tables
# =========================================================================

class TestRanges:
    def test_all_transcripts(self, gtf_db):
        ranges, gap = gtf_db.ranges(FLY_TX)
        assert list(ranges.index) == FLY_TX
        assert ranges.index.name == 'transcript'
        assert ranges.loc['FBtr0000001', 'width'] == 301
        assert ranges.loc['FBtr0000004', 'seqnames'] == '3R'
        assert gap == CoverageGap(dropped=0, total=5, examples=())

    def test_coverage_gap(self, tmp_path, caplog):
        # Annotation without FBtr0000001 and FBtr0000003
        with open(FLY_GTF) as fh:
            lines = [l for l in fh if 'FBtr0000001' not in l and 'FBtr0000003' not in l]
        p = tmp_path / 'partial.gtf'
        p.write_text(''.join(lines))
        db = read_annotation(str(p))
        ranges, gap = db.ranges(FLY_TX)
        assert len(ranges) == 3
        assert gap.dropped == 2
        assert gap.total == 5
        assert set(gap.examples) == {'FBtr0000001', 'FBtr0000003'}
        assert any('2 of 5' in r.message for r in caplog.records)

    def test_seqinfo_without_lengths(self, gtf_db):
        si = gtf_db.seqinfo('BDGP6')
        assert list(si.index) == ['2L', '3R']
        assert si['seqlengths'].isna().all()

    def test_exon_table(self, gtf_db):
        exons = gtf_db.exon_table(['FBtr0000001', 'FBtr0000004'])
        assert list(exons['transcript']) == ['FBtr0000001', 'FBtr0000001', 'FBtr0000004']
        assert list(exons['exon_rank']) == [1, 2, 1]


class TestIdentifierMatching:
    @pytest.fixture
    def versioned_db(self, tmp_path):
        attrs = 'gene_id "ENSG1"; gene_version "3"; transcript_id "ENST0001"; transcript_version "2";'
        other = 'gene_id "ENSG2"; transcript_id "ENST0002.4";'
        path = _write_gtf(tmp_path / 'versioned.gtf', [
            ['1', 'ensembl', 'transcript', '10', '50', '.', '+', '.', attrs],
            ['1', 'ensembl', 'exon', '10', '50', '.', '+', '.', attrs + ' exon_number "1";'],
            ['1', 'ensembl', 'exon', '70', '90', '.', '+', '.', other],
        ])
        return read_annotation(path)

    def test_exact(self, versioned_db):
        assert versioned_db.resolve_id('ENST0001') == 'ENST0001'

    def test_versioned_query(self, versioned_db):
        assert versioned_db.resolve_id('ENST0001.2') == 'ENST0001'

    def test_version_mismatch_tolerated(self, versioned_db):
        assert versioned_db.resolve_id('ENST0001.7') == 'ENST0001'

    def test_versioned_annotation_unversioned_query(self, versioned_db):
        assert versioned_db.resolve_id('ENST0002') == 'ENST0002.4'

    def test_gencode_header(self, versioned_db):
        header = 'ENST0001.2|ENSG1.3|OTTHUMG00000000961.2|-|DDX11L1-202|DDX11L1|1657|processed_transcript|'
        assert versioned_db.resolve_id(header) == 'ENST0001'

    def test_unknown(self, versioned_db):
        assert versioned_db.resolve_id('ENST9999') is None


class TestGeneLevel:
    def test_exonic_length_merges_overlaps(self, gtf_db):
        genedb = gtf_db.gene_level()
        assert genedb.genes.loc['FBgn0000001', 'exonic_length'] == 252
        assert genedb.genes.loc['FBgn0000002', 'exonic_length'] == 202
        assert genedb.genes.loc['FBgn0000003', 'exonic_length'] == 302
        assert genedb.genes.loc['FBgn0000001', 'n_transcripts'] == 2
        assert genedb.genes.loc['FBgn0000001', 'gene_name'] == 'alpha'

    def test_tx2gene(self, gtf_db):
        tx2gene = gtf_db.gene_level().tx2gene
        assert isinstance(tx2gene, pd.Series)
        assert tx2gene['FBtr0000005'] == 'FBgn0000003'
        assert len(tx2gene) == 5

    def test_provenance(self, gtf_db):
        prov = gtf_db.provenance()
        assert prov['n_transcripts'] == 5
        assert prov['n_genes'] == 3
        assert prov['n_exons'] == 8
        assert prov['format'] == 'gtf'

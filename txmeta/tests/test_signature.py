# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Tests for txmeta.core.signature."""

import json
import os

import pytest

from txmeta.core.signature import (compute_signature, normalize_digest, parse_version, read_index_metadata,
                                   signature_from_path)
from txmeta.errors import MalformedIndexMetadata, TxmetaError

from .conftest import FLY_SIG, QUANT_DIRS


class TestComputeSignature:
    def test_reads_index_seq_hash(self):
        meta = {'salmon_version': '1.10.1', 'index_seq_hash': 'ABCDEF0123'}
        assert compute_signature(meta) == 'abcdef0123'

    def test_legacy_seq_hash(self):
        assert compute_signature({'salmon_version': '0.9.1', 'seq_hash': 'abc'}) == 'abc'

    def test_deterministic(self):
        meta = {'salmon_version': '1.4.0', 'index_seq_hash': ' sha256:00FF '}
        assert compute_signature(meta) == compute_signature(dict(meta)) == '00ff'

    def test_same_digest_same_signature(self):
        a = {'salmon_version': '1.0.0', 'index_seq_hash': 'SHA256:abc1', 'num_processed': 10}
        b = {'salmon_version': '1.9.0', 'index_seq_hash': 'abc1', 'num_processed': 99}
        assert compute_signature(a) == compute_signature(b)

    def test_missing_digest(self):
        with pytest.raises(MalformedIndexMetadata):
            compute_signature({'salmon_version': '1.10.1'})

    def test_empty_digest(self):
        with pytest.raises(MalformedIndexMetadata):
            compute_signature({'salmon_version': '1.10.1', 'index_seq_hash': ''})

    def test_non_hex_digest(self):
        with pytest.raises(MalformedIndexMetadata):
            compute_signature({'salmon_version': '1.10.1', 'index_seq_hash': 'not-a-digest'})

    def test_missing_version_tag(self):
        with pytest.raises(MalformedIndexMetadata):
            compute_signature({'index_seq_hash': 'abc'})

    def test_unrecognized_version_tag(self):
        with pytest.raises(MalformedIndexMetadata):
            compute_signature({'salmon_version': 'unknown', 'index_seq_hash': 'abc'})

    def test_too_old_for_digest(self):
        with pytest.raises(MalformedIndexMetadata):
            compute_signature({'salmon_version': '0.7.2', 'index_seq_hash': 'abc'})

    def test_not_a_mapping(self):
        with pytest.raises(MalformedIndexMetadata):
            compute_signature(['abc'])

    def test_error_is_txmeta_error(self):
        assert issubclass(MalformedIndexMetadata, TxmetaError)


def test_normalize_digest():
    assert normalize_digest('  MD5:A1B2 ') == 'a1b2'
    with pytest.raises(MalformedIndexMetadata):
        normalize_digest(1234)


def test_parse_version():
    assert parse_version('1.10.1') == (1, 10, 1)
    assert parse_version('v0.8') == (0, 8, 0)
    assert parse_version('salmon') is None


class TestReadIndexMetadata:
    def test_bundled_quant_dir(self):
        meta = read_index_metadata(QUANT_DIRS[0])
        assert meta['salmon_version'] == '1.10.1'
        assert compute_signature(meta) == FLY_SIG

    def test_quant_file_path(self):
        meta = read_index_metadata(os.path.join(QUANT_DIRS[0], 'quant.sf'))
        assert compute_signature(meta) == FLY_SIG

    def test_missing(self, tmp_path):
        with pytest.raises(MalformedIndexMetadata):
            read_index_metadata(str(tmp_path))

    def test_bad_json(self, tmp_path):
        os.makedirs(tmp_path / 'aux_info')
        (tmp_path / 'aux_info' / 'meta_info.json').write_text('{not json')
        with pytest.raises(MalformedIndexMetadata):
            read_index_metadata(str(tmp_path))


class TestSignatureFromPath:
    def test_quant_dir(self):
        assert signature_from_path(QUANT_DIRS[1]) == FLY_SIG

    def test_index_dir(self, tmp_path):
        with open(tmp_path / 'info.json', 'w') as outh:
            json.dump({'SeqHash': 'DEADBEEF'}, outh)
        assert signature_from_path(str(tmp_path)) == 'deadbeef'

    def test_nothing_found(self, tmp_path):
        with pytest.raises(MalformedIndexMetadata):
            signature_from_path(str(tmp_path))

# This file is part of TxMeta.
#
# Licensed under MIT License.

import json
import os

import pytest

from txmeta.core.cache import MetadataCache
from txmeta.registry import RegistryStore, make_descriptor

from . import TEST_DATA_DIR

FLY_GTF = os.path.join(TEST_DATA_DIR, 'annotation.gtf')
FLY_GFF3 = os.path.join(TEST_DATA_DIR, 'annotation.gff3')
FLY_FASTA = os.path.join(TEST_DATA_DIR, 'transcripts.fa')
COLDATA = os.path.join(TEST_DATA_DIR, 'coldata.tsv')
QUANT_DIRS = [os.path.join(TEST_DATA_DIR, 'quants', s) for s in ('sample1', 'sample2')]
FLY_SIG = '3e7b9c1ad0f2e4856b7a9c3d1e0f2a4b6c8d0e2f4a6b8c0d2e4f6a8b0c2d4e6f'
FLY_TX = ['FBtr0000001', 'FBtr0000002', 'FBtr0000003', 'FBtr0000004', 'FBtr0000005']


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep every test away from the user's cache and registry."""
    monkeypatch.setenv('TXMETA_CACHE', str(tmp_path / 'default-cache'))
    monkeypatch.delenv('TXMETA_HASHTABLE', raising=False)


@pytest.fixture
def cache(tmp_path):
    with MetadataCache(tmp_path / 'cache') as c:
        yield c


@pytest.fixture
def registry(cache):
    return RegistryStore(cache.root, baseline={})


@pytest.fixture
def fly_descriptor():
    """Ensembl 92 fly transcriptome, pointed at the bundled files."""
    return make_descriptor('Ensembl', 'Drosophila melanogaster', 92, fasta=[FLY_FASTA], gtf=FLY_GTF)


def write_quant(outdir, digest, names=FLY_TX, salmon_version='1.10.1'):
    """Write a minimal salmon quant directory."""
    os.makedirs(os.path.join(outdir, 'aux_info'), exist_ok=True)
    with open(os.path.join(outdir, 'quant.sf'), 'w') as outh:
        print('Name\tLength\tEffectiveLength\tTPM\tNumReads', file=outh)
        for i, n in enumerate(names):
            print(f'{n}\t200\t50.0\t{(i + 1) * 1000.0}\t{float(i + 1)}', file=outh)
    meta = {'salmon_version': salmon_version, 'num_processed': 1000, 'percent_mapped': 80.0}
    if digest is not None:
        meta['index_seq_hash'] = digest
    with open(os.path.join(outdir, 'aux_info', 'meta_info.json'), 'w') as outh:
        json.dump(meta, outh)
    return str(outdir)


@pytest.fixture
def make_quant(tmp_path):
    def _make(name, digest, **kwargs):
        return write_quant(tmp_path / 'quants' / name, digest, **kwargs)
    return _make

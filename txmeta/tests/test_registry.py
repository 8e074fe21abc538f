# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Tests for txmeta.registry: descriptors, curated sources and the store."""

import json
import logging
import os

import pytest

from txmeta.errors import CacheCorruptError
from txmeta.registry import RegistryStore, TranscriptomeDescriptor, make_descriptor
from txmeta.registry.sources import genome_for
from txmeta.registry.store import OVERLAY_NAME, load_baseline


def _desc(release='92', genome='BDGP6', **kw):
    return TranscriptomeDescriptor(source='Ensembl', organism='Drosophila melanogaster', release=release,
                                   genome=genome, fasta=kw.pop('fasta', ('tx.fa',)), gtf=kw.pop('gtf', 'a.gtf'))


# =========================================================================
# Descriptor
# =========================================================================

class TestDescriptor:
    def test_frozen(self):
        d = _desc()
        with pytest.raises(AttributeError):
            d.release = '93'

    def test_normalizes_release_and_fasta(self):
        d = TranscriptomeDescriptor('Ensembl', 'Danio rerio', 92, 'GRCz11', fasta='z.fa', gtf='z.gtf')
        assert d.release == '92'
        assert d.fasta == ('z.fa',)

    def test_registered_not_compared(self):
        assert _desc().stamped() == _desc()

    def test_dict_round_trip(self):
        d = _desc().stamped()
        back = TranscriptomeDescriptor.from_dict(json.loads(json.dumps(d.to_dict())))
        assert back == d
        assert back.registered == d.registered

    def test_from_dict_missing(self):
        with pytest.raises(KeyError):
            TranscriptomeDescriptor.from_dict({'source': 'Ensembl'})


# =========================================================================
# Curated sources
# =========================================================================

class TestSources:
    def test_fly_ensembl_92_is_bdgp6(self):
        assert genome_for('Ensembl', 'Drosophila melanogaster', 92) == 'BDGP6'

    def test_fly_later_builds(self):
        assert genome_for('ensembl', 'Drosophila melanogaster', '99') == 'BDGP6.28'
        assert genome_for('Ensembl', 'Drosophila melanogaster', 104) == 'BDGP6.32'

    def test_gencode_mouse_release(self):
        assert genome_for('GENCODE', 'Mus musculus', 'M25') == 'GRCm38'
        assert genome_for('GENCODE', 'Mus musculus', 'M27') == 'GRCm39'

    def test_unknown(self):
        assert genome_for('Ensembl', 'Homo erectus', 100) is None
        assert genome_for('RefSeq', 'Homo sapiens', 100) is None

    def test_make_descriptor_fills_locations(self):
        d = make_descriptor('Ensembl', 'Drosophila melanogaster', 92)
        assert d.genome == 'BDGP6'
        assert d.gtf == ('https://ftp.ensembl.org/pub/release-92/gtf/drosophila_melanogaster/'
                         'Drosophila_melanogaster.BDGP6.92.gtf.gz')
        assert d.fasta[0].endswith('Drosophila_melanogaster.BDGP6.cdna.all.fa.gz')

    def test_make_descriptor_keeps_explicit_fields(self):
        d = make_descriptor('Ensembl', 'Drosophila melanogaster', 92, fasta=['local.fa'], gtf='local.gtf')
        assert d.fasta == ('local.fa',)
        assert d.gtf == 'local.gtf'

    def test_make_descriptor_underivable(self):
        with pytest.raises(ValueError):
            make_descriptor('linked', 'Drosophila melanogaster', 92)
        with pytest.raises(ValueError):
            make_descriptor('linked', 'Drosophila melanogaster', 92, genome='BDGP6')


# =========================================================================
# Store
# =========================================================================

class TestRegistryStore:
    def test_lookup_miss(self, registry):
        assert registry.lookup('abc') is None
        assert 'abc' not in registry

    def test_register_and_lookup(self, registry):
        registry.register('abc', _desc())
        assert registry.lookup('abc') == _desc()
        assert registry.lookup('abc').registered
        assert registry.is_linked('abc')

    def test_register_is_idempotent(self, registry):
        registry.register('abc', _desc())
        first = registry.lookup('abc')
        registry.register('abc', _desc())
        assert registry.lookup('abc').registered == first.registered
        assert len(registry) == 1
        assert registry.notices == []

    def test_overwrite_warns_and_records_notice(self, registry, caplog):
        registry.register('abc', _desc(release='92'))
        with caplog.at_level(logging.WARNING):
            registry.register('abc', _desc(release='93', genome='BDGP6'))
        assert registry.lookup('abc').release == '93'
        assert len(registry.notices) == 1
        assert 'abc' in registry.notices[0]
        assert any('Replacing' in r.message for r in caplog.records)

    def test_persists_across_instances(self, cache):
        RegistryStore(cache.root, baseline={}).register('abc', _desc())
        again = RegistryStore(cache.root, baseline={})
        assert again.lookup('abc') == _desc()

    def test_overlay_shadows_baseline(self, cache):
        store = RegistryStore(cache.root, baseline={'abc': _desc(release='90')})
        assert store.lookup('abc').release == '90'
        assert not store.is_linked('abc')
        store.register('abc', _desc(release='92'))
        assert store.lookup('abc').release == '92'
        assert [s for s, _ in store.list_all()] == ['abc']

    def test_list_all_order(self, cache):
        store = RegistryStore(cache.root, baseline={'base1': _desc(), 'base2': _desc()})
        store.register('linked2', _desc())
        store.register('linked1', _desc())
        assert [s for s, _ in store.list_all()] == ['base1', 'base2', 'linked2', 'linked1']

    def test_remove(self, cache):
        store = RegistryStore(cache.root, baseline={'base': _desc()})
        store.register('abc', _desc())
        assert store.remove('abc') is True
        assert store.lookup('abc') is None
        assert store.remove('abc') is False
        assert store.remove('base') is False
        assert store.lookup('base') is not None

    def test_no_partial_overlay_left_behind(self, registry, cache):
        registry.register('abc', _desc())
        leftovers = [n for n in os.listdir(cache.root) if n.startswith('.tmp-')]
        assert leftovers == []

    def test_corrupt_overlay(self, cache):
        with open(f'{cache.root}/{OVERLAY_NAME}', 'w') as outh:
            outh.write('{broken')
        with pytest.raises(CacheCorruptError):
            RegistryStore(cache.root, baseline={})

    def test_unknown_overlay_format(self, cache):
        with open(f'{cache.root}/{OVERLAY_NAME}', 'w') as outh:
            json.dump({'format': 99, 'entries': []}, outh)
        with pytest.raises(CacheCorruptError):
            RegistryStore(cache.root, baseline={})


class TestBaseline:
    def test_bundled_table_loads(self):
        assert isinstance(load_baseline(), dict)

    def test_bundled_table_is_empty(self, tmp_path):
        assert len(load_baseline()) == 0
        store = RegistryStore(tmp_path / 'root')
        assert store.list_all() == []
        assert store.lookup('abc123') is None

    def test_custom_table(self, tmp_path, monkeypatch):
        table = tmp_path / 'hashtable.csv'
        table.write_text(
            '# curated\n'
            'signature,source,organism,release,genome,fasta,gtf\n'
            'ABC123,Ensembl,Drosophila melanogaster,92,BDGP6,a.fa;b.fa,a.gtf\n'
        )
        monkeypatch.setenv('TXMETA_HASHTABLE', str(table))
        store = RegistryStore(tmp_path / 'root')
        d = store.lookup('abc123')
        assert d.genome == 'BDGP6'
        assert d.fasta == ('a.fa', 'b.fa')
        assert d.release == '92'

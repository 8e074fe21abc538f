# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Curated provider knowledge: genome builds and download locations."""

import functools
import logging as lg
import re

import yaml

from .. import config
from .descriptor import TranscriptomeDescriptor

LINKED = 'linked'


@functools.lru_cache(maxsize=None)
def load_sources(path=None):
    """Load the curated source table (bundled ``sources.yaml`` by default)."""
    with open(path or config.BUNDLED_SOURCES) as fh:
        return yaml.safe_load(fh)


def _release_number(release):
    # GENCODE mouse releases are "M25"
    m = re.search(r'(\d+)', str(release))
    return int(m.group(1)) if m else None


def _lookup_source(source, sources):
    for name, info in sources.items():
        if name.lower() == str(source).lower():
            return name, info
    return None, None


def genome_for(source, organism, release, sources=None):
    """Genome build for a curated (source, organism, release), or None."""
    sources = sources if sources is not None else load_sources()
    _name, info = _lookup_source(source, sources)
    if info is None:
        return None
    rules = info.get('genomes', {}).get(organism)
    relnum = _release_number(release)
    if not rules or relnum is None:
        return None
    genome = None
    for rule in sorted(rules, key=lambda r: r['from']):
        if rule['from'] <= relnum:
            genome = rule['genome']
    return genome


def default_locations(source, organism, release, genome, sources=None):
    """Fill the provider URL templates.

    Returns:
        (tuple of FASTA locations, GTF location), or ``((), None)`` when the
        source is not curated.
    """
    sources = sources if sources is not None else load_sources()
    _name, info = _lookup_source(source, sources)
    if info is None or 'gtf' not in info:
        return (), None
    species = organism.strip().replace(' ', '_')
    values = {
        'release': str(release),
        'species': species.lower(),
        'Species': species[:1].upper() + species[1:].lower(),
        'genome': genome,
        'gencode_species': info.get('gencode_species', {}).get(organism, ''),
    }
    fasta = tuple(t.format(**values) for t in info.get('fasta', []))
    return fasta, info['gtf'].format(**values)


def make_descriptor(source, organism, release, fasta=None, gtf=None, genome=None):
    """Build a descriptor, completing missing fields from curated knowledge.

    Args:
        source (str): Provider name (e.g. ``Ensembl``, ``GENCODE``) or
            ``linked`` for a user-supplied transcriptome.
        organism (str): Binomial name, e.g. ``Drosophila melanogaster``.
        release: Provider release.
        fasta: Sequence file location(s). Derived for curated sources.
        gtf (str): Annotation location. Derived for curated sources.
        genome (str): Genome build. Derived for curated sources.

    Raises:
        ValueError: A required field is missing and cannot be derived.
    """
    if genome is None:
        genome = genome_for(source, organism, release)
        if genome is None:
            raise ValueError(f'Cannot determine genome build for {source} {organism} release {release}')
        lg.debug(f'Derived genome {genome} for {source} {organism} release {release}')
    if gtf is None or fasta is None:
        _fasta, _gtf = default_locations(source, organism, release, genome)
        if gtf is None:
            gtf = _gtf
        if fasta is None:
            fasta = _fasta
    if not gtf:
        raise ValueError(f'No annotation location given for {source} {organism} release {release}')
    return TranscriptomeDescriptor(
        source=source,
        organism=organism,
        release=release,
        genome=genome,
        fasta=fasta or (),
        gtf=gtf,
    )

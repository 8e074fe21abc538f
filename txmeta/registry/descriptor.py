# -*- coding: utf-8 -*-

# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Frozen transcriptome descriptor."""

from dataclasses import asdict, dataclass, field, replace

from ..utils.helpers import utc_now

FIELDS = ('source', 'organism', 'release', 'genome', 'fasta', 'gtf')


@dataclass(frozen=True)
class TranscriptomeDescriptor:
    """Provenance of a reference transcriptome.

    Descriptors are never mutated; re-registration replaces the mapping with
    a new instance.
    """
    source: str                   # curated provider name, or "linked"
    organism: str
    release: str
    genome: str
    fasta: tuple = ()             # sequence file locations
    gtf: str = ''                 # annotation file location (GTF or GFF3)
    registered: str = field(default='', compare=False)

    def __post_init__(self):
        # Normalize so descriptors built from CSV, JSON or code compare equal
        object.__setattr__(self, 'release', str(self.release))
        fasta = self.fasta
        if isinstance(fasta, str):
            fasta = (fasta,) if fasta else ()
        object.__setattr__(self, 'fasta', tuple(str(f) for f in fasta))

    def stamped(self):
        """Return a copy carrying the current registration time."""
        return replace(self, registered=utc_now())

    def to_dict(self):
        d = asdict(self)
        d['fasta'] = list(self.fasta)
        return d

    @classmethod
    def from_dict(cls, d):
        missing = [f for f in FIELDS if f not in d]
        if missing:
            raise KeyError(', '.join(missing))
        return cls(
            source=d['source'],
            organism=d['organism'],
            release=d['release'],
            genome=d['genome'],
            fasta=d['fasta'],
            gtf=d['gtf'],
            registered=d.get('registered', '') or '',
        )

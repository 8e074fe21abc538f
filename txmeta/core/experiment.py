# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Annotated quantification container."""

import json
import logging as lg
import os
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from ..utils.helpers import atomic_write

ASSAYS = ('counts', 'abundance', 'length')


def _json_default(obj):
    # numpy scalars and timestamps found in run metadata
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, (set, tuple)):
        return list(obj)
    return str(obj)


@dataclass
class QuantExperiment:
    """Quantification matrices with their transcriptome metadata attached.

    Attributes:
        col_data: Sample table, one row per sample.
        assays: {'counts' | 'abundance' | 'length': DataFrame}, transcripts x
            samples, copied verbatim from the quantifier.
        row_ranges: Per-transcript genomic ranges, or None when unresolved.
        seqinfo: Sequence names, lengths and genome, or None.
        metadata: Resolution record and provenance (see ``to_dir``).
        exons: Exon-level ranges, filled by ``add_exons``.
        level: ``'transcript'`` or ``'gene'``.
    """
    col_data: pd.DataFrame
    assays: dict
    row_ranges: pd.DataFrame = None
    seqinfo: pd.DataFrame = None
    metadata: dict = field(default_factory=dict)
    exons: pd.DataFrame = None
    level: str = 'transcript'

    @property
    def resolved(self):
        return self.row_ranges is not None

    @property
    def signatures(self):
        """Distinct signatures of the resolved samples, in sample order."""
        ret = []
        for rec in self.metadata.get('resolution', {}).values():
            sig = rec.get('signature')
            if sig and rec.get('state') == 'attached' and sig not in ret:
                ret.append(sig)
        return ret

    @property
    def shape(self):
        return self.assays['counts'].shape

    def __repr__(self):
        n_tx, n_samp = self.shape
        state = 'resolved' if self.resolved else 'unresolved'
        return f'<QuantExperiment {self.level}s={n_tx} samples={n_samp} {state}>'

    def to_dir(self, path, exp_tag='txmeta'):
        """Write the container to *path*.

        Files: ``<tag>-<assay>.tsv`` per assay, ``<tag>-coldata.tsv``,
        ``<tag>-ranges.tsv`` and ``<tag>-seqinfo.tsv`` when resolved,
        ``<tag>-exons.tsv`` when present, and ``<tag>-metadata.json``.

        Returns:
            list of written file paths
        """
        os.makedirs(path, exist_ok=True)
        written = []

        def _tsv(df, name, index=True):
            fn = os.path.join(path, f'{exp_tag}-{name}.tsv')
            with atomic_write(fn) as outh:
                df.to_csv(outh, sep='\t', index=index)
            written.append(fn)

        for name in ASSAYS:
            if name in self.assays:
                _tsv(self.assays[name], name)
        _tsv(self.col_data, 'coldata', index=False)
        if self.row_ranges is not None:
            _tsv(self.row_ranges, 'ranges')
        if self.seqinfo is not None:
            _tsv(self.seqinfo, 'seqinfo')
        if self.exons is not None:
            _tsv(self.exons, 'exons', index=False)

        fn = os.path.join(path, f'{exp_tag}-metadata.json')
        with atomic_write(fn) as outh:
            json.dump(self.metadata, outh, indent=2, default=_json_default)
        written.append(fn)
        lg.info(f'Wrote {len(written)} files to {path}')
        return written

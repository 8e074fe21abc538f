# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Parsed transcript database and the range tables derived from it."""

import logging as lg
import re
from collections import OrderedDict, namedtuple
from dataclasses import dataclass

import numpy as np
import pandas as pd
from intervaltree import Interval, IntervalTree

from ..utils.helpers import utc_now

Transcript = namedtuple('Transcript', ['tx_id', 'tx_name', 'gene_id', 'seqnames', 'start', 'end', 'strand',
                                       'tx_biotype', 'version'])
Gene = namedtuple('Gene', ['gene_id', 'gene_name', 'seqnames', 'start', 'end', 'strand', 'gene_biotype'])
Exon = namedtuple('Exon', ['start', 'end', 'exon_id', 'exon_rank'])

RANGE_COLUMNS = ['seqnames', 'start', 'end', 'width', 'strand', 'tx_id', 'tx_name', 'gene_id', 'tx_biotype']
EXON_COLUMNS = ['transcript', 'seqnames', 'start', 'end', 'width', 'strand', 'exon_id', 'exon_rank']

_VERSION_SUFFIX = re.compile(r'^(.+)\.(\d+)$')


def strip_version(tx_id):
    m = _VERSION_SUFFIX.match(tx_id)
    return m.group(1) if m else tx_id


@dataclass(frozen=True)
class CoverageGap:
    """Sequence-set transcripts missing from the annotation (a warning)."""
    dropped: int
    total: int
    examples: tuple = ()


class TranscriptDB:
    """Transcript -> exon -> gene hierarchy parsed from one annotation file.

    Attributes:
        transcripts: OrderedDict {tx_id: Transcript}
        exons: dict {tx_id: [Exon, ...]} sorted by rank
        genes: OrderedDict {gene_id: Gene}
        seqlengths: dict {seqname: length} when the file declares them
    """

    def __init__(self, transcripts, exons, genes, seqlengths=None, source_file='', file_format=''):
        self.transcripts = transcripts
        self.exons = exons
        self.genes = genes
        self.seqlengths = dict(seqlengths or {})
        self.source_file = source_file
        self.file_format = file_format
        self.created = utc_now()
        self._build_index()

    def _build_index(self):
        self._index = {}
        unversioned = {}
        for tx_id, tx in self.transcripts.items():
            self._index[tx_id] = tx_id
            if tx.version:
                self._index.setdefault(f'{tx_id}.{tx.version}', tx_id)
            unversioned.setdefault(strip_version(tx_id), []).append(tx_id)
        for key, ids in unversioned.items():
            if len(ids) == 1:
                self._index.setdefault(key, ids[0])

    def __getstate__(self):
        state = dict(self.__dict__)
        state.pop('_index', None)
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self._build_index()

    def __len__(self):
        return len(self.transcripts)

    # -- Identifier matching -------------------------------------------------

    def resolve_id(self, query):
        """Map a sequence-set identifier onto a database transcript id.

        Tries an exact match, the first field of a pipe-delimited GENCODE
        header, then the identifier without its version suffix.
        """
        for key in (query, query.split('|')[0]):
            if key in self._index:
                return self._index[key]
            base = strip_version(key)
            if base in self._index:
                return self._index[base]
        return None

    def match(self, tx_ids):
        """Split *tx_ids* into matched ({query: tx_id}) and unmatched ids."""
        matched = OrderedDict()
        unmatched = []
        for q in tx_ids:
            hit = self.resolve_id(q)
            if hit is None:
                unmatched.append(q)
            else:
                matched[q] = hit
        return matched, unmatched

    # -- Derived tables ------------------------------------------------------

    def ranges(self, tx_ids=None):
        """Per-transcript genomic ranges.

        Args:
            tx_ids: Sequence-set identifiers to report, in order. Defaults to
                every transcript in the database.

        Returns:
            (DataFrame indexed by identifier, CoverageGap)
        """
        if tx_ids is None:
            tx_ids = list(self.transcripts)
        matched, unmatched = self.match(tx_ids)
        rows = []
        for q, tx_id in matched.items():
            tx = self.transcripts[tx_id]
            rows.append((tx.seqnames, tx.start, tx.end, tx.end - tx.start + 1, tx.strand,
                         tx.tx_id, tx.tx_name, tx.gene_id, tx.tx_biotype))
        df = pd.DataFrame(rows, columns=RANGE_COLUMNS, index=pd.Index(list(matched), name='transcript'))
        df = df.astype({'start': np.int64, 'end': np.int64, 'width': np.int64})
        gap = CoverageGap(dropped=len(unmatched), total=len(tx_ids), examples=tuple(unmatched[:5]))
        if gap.dropped:
            lg.warning(
                f'{gap.dropped} of {gap.total} transcripts are missing from the annotation and were '
                f'dropped from the ranges (e.g. {", ".join(gap.examples)})'
            )
        return df, gap

    def seqinfo(self, genome=None):
        """Sequence names, lengths (NA when unknown) and genome build."""
        names = []
        for tx in self.transcripts.values():
            if tx.seqnames not in names:
                names.append(tx.seqnames)
        for name in self.seqlengths:
            if name not in names:
                names.append(name)
        df = pd.DataFrame({
            'seqnames': names,
            'seqlengths': pd.array([self.seqlengths.get(n) for n in names], dtype='Int64'),
            'genome': genome if genome else pd.NA,
        })
        return df.set_index('seqnames')

    def exon_table(self, tx_ids=None):
        """Exon ranges for each matched sequence-set identifier."""
        if tx_ids is None:
            tx_ids = list(self.transcripts)
        matched, _unmatched = self.match(tx_ids)
        rows = []
        for q, tx_id in matched.items():
            tx = self.transcripts[tx_id]
            for ex in self.exons.get(tx_id, []):
                rows.append((q, tx.seqnames, ex.start, ex.end, ex.end - ex.start + 1, tx.strand,
                             ex.exon_id, ex.exon_rank))
        return pd.DataFrame(rows, columns=EXON_COLUMNS)

    def gene_level(self):
        """Build the gene-level database.

        Exons of all transcripts in a gene are merged with an interval tree
        so ``exonic_length`` counts every base once.
        """
        rows = []
        tx_by_gene = OrderedDict()
        for tx in self.transcripts.values():
            tx_by_gene.setdefault(tx.gene_id, []).append(tx.tx_id)
        for gene_id, tx_list in tx_by_gene.items():
            itree = IntervalTree()
            for tx_id in tx_list:
                for ex in self.exons.get(tx_id, []):
                    itree.add(Interval(ex.start, ex.end + 1))
            itree.merge_overlaps()
            exonic = sum(iv.length() for iv in itree)
            g = self.genes.get(gene_id)
            if g is None:
                txs = [self.transcripts[t] for t in tx_list]
                g = Gene(gene_id, '', txs[0].seqnames, min(t.start for t in txs), max(t.end for t in txs),
                         txs[0].strand, '')
            rows.append((gene_id, g.gene_name, g.seqnames, g.start, g.end, g.end - g.start + 1, g.strand,
                         g.gene_biotype, len(tx_list), exonic))
        genes = pd.DataFrame(rows, columns=['gene_id', 'gene_name', 'seqnames', 'start', 'end', 'width', 'strand',
                                            'gene_biotype', 'n_transcripts', 'exonic_length']).set_index('gene_id')
        tx2gene = pd.Series({tx.tx_id: tx.gene_id for tx in self.transcripts.values()}, name='gene_id', dtype=object)
        tx2gene.index.name = 'tx_id'
        return GeneDB(genes=genes, tx2gene=tx2gene, source_file=self.source_file)

    def provenance(self):
        return {
            'source_file': self.source_file,
            'format': self.file_format,
            'created': self.created,
            'n_transcripts': len(self.transcripts),
            'n_genes': len(self.genes),
            'n_exons': sum(len(v) for v in self.exons.values()),
        }


@dataclass
class GeneDB:
    """Gene ranges plus the transcript -> gene map."""
    genes: pd.DataFrame
    tx2gene: pd.Series
    source_file: str = ''

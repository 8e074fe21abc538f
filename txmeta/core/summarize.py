# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Operations on a resolved experiment that reuse the cached databases."""

import logging as lg
from dataclasses import replace

import pandas as pd

from ..pipeline.materialize import gene_database, parse_annotation
from ..registry.descriptor import TranscriptomeDescriptor
from .cache import PARSED_DATABASE


def _signature(experiment, signature=None):
    sigs = experiment.signatures
    if signature is not None:
        if signature not in sigs:
            raise ValueError(f'Signature {signature} is not resolved in this experiment')
        return signature
    if not sigs:
        raise ValueError('Experiment has no resolved transcriptome')
    if len(sigs) > 1:
        raise ValueError('Experiment has {} resolved transcriptomes; pass signature= to choose one'.format(len(sigs)))
    return sigs[0]


def retrieve_db(experiment, cache, signature=None, **fetch_kwargs):
    """Parsed transcript database behind a resolved experiment.

    Served from the cache; rebuilt from the descriptor recorded in the
    experiment metadata if the entry has been cleared since import.
    """
    signature = _signature(experiment, signature)
    txdb = cache.get(signature, PARSED_DATABASE)
    if txdb is None:
        lg.info(f'Transcript database for {signature} not cached, rebuilding')
        descriptor = TranscriptomeDescriptor.from_dict(experiment.metadata['txomeInfo'][signature])
        txdb = parse_annotation(descriptor, signature, cache, **fetch_kwargs)
    return txdb


def add_exons(experiment, cache, signature=None):
    """Return a copy of *experiment* with exon ranges for each resolved row."""
    if experiment.level != 'transcript':
        raise ValueError('Exons can only be added to a transcript-level experiment')
    txdb = retrieve_db(experiment, cache, signature)
    exons = txdb.exon_table(list(experiment.row_ranges.index))
    lg.info(f'Added {len(exons)} exons for {exons["transcript"].nunique()} transcripts')
    return replace(experiment, exons=exons)


def summarize_to_gene(experiment, cache, signature=None):
    """Aggregate a transcript-level experiment to genes.

    Counts and abundance are summed per gene. Length is the
    abundance-weighted mean of transcript lengths, falling back to the plain
    mean for genes with no abundance in a sample. Rows that do not map to a
    gene are dropped and reported.

    Returns:
        QuantExperiment at gene level, ranged by the cached gene-level
        database.
    """
    if experiment.level != 'transcript':
        raise ValueError('Experiment is already summarized to genes')
    signature = _signature(experiment, signature)
    txdb = retrieve_db(experiment, cache, signature)
    genedb = gene_database(txdb, signature, cache)

    counts = experiment.assays['counts']
    genes = []
    for q in counts.index:
        tx_id = txdb.resolve_id(q)
        genes.append(genedb.tx2gene.get(tx_id) if tx_id is not None else None)
    genes = pd.Series(genes, index=counts.index, dtype=object)
    keep = genes.notna() & (genes != '')
    unmatched = int((~keep).sum())
    notices = list(experiment.metadata.get('notices', []))
    if unmatched:
        notice = f'{unmatched} of {len(genes)} transcripts have no gene and were left out of the gene summary'
        lg.warning(notice)
        notices.append(notice)

    by = genes[keep].values
    abund = experiment.assays['abundance'][keep]
    length = experiment.assays['length'][keep]
    g_counts = counts[keep].groupby(by, sort=False).sum()
    g_abund = abund.groupby(by, sort=False).sum()
    weighted = (abund * length).groupby(by, sort=False).sum()
    g_length = (weighted / g_abund.where(g_abund > 0)).fillna(length.groupby(by, sort=False).mean())
    for df in (g_counts, g_abund, g_length):
        df.index.name = 'gene_id'

    metadata = dict(experiment.metadata)
    metadata['notices'] = notices
    metadata['level'] = 'gene'
    metadata['geneSummary'] = {'signature': signature, 'genes': len(g_counts), 'unmatched': unmatched}
    lg.info(f'Summarized {int(keep.sum())} transcripts to {len(g_counts)} genes')
    return replace(
        experiment,
        assays={'counts': g_counts, 'abundance': g_abund, 'length': g_length},
        row_ranges=genedb.genes.reindex(g_counts.index),
        metadata=metadata,
        exons=None,
        level='gene',
    )

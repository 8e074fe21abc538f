# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Fetch-and-parse pipeline: descriptor -> parsed database and ranges."""

import logging as lg
import tempfile
from dataclasses import dataclass
from time import time

import pandas as pd
import pysam

from ..annotation import CoverageGap, GeneDB, TranscriptDB, read_annotation
from ..core.cache import GENE_DATABASE, PARSED_DATABASE, RAW_ANNOTATION, SEQUENCE_NAMES
from ..errors import CacheCorruptError
from ..utils.helpers import format_minutes as fmtmins
from .fetch import fetch, fetch_temporary


@dataclass
class MaterializeResult:
    txdb: TranscriptDB
    ranges: pd.DataFrame
    seqinfo: pd.DataFrame
    gap: CoverageGap


def read_sequence_names(fasta_paths):
    """Transcript identifiers, in file order, from one or more FASTA files."""
    names = []
    for path in fasta_paths:
        with pysam.FastxFile(path) as fh:
            for rec in fh:
                names.append(rec.name)
    return names


def sequence_names(descriptor, signature, cache, **fetch_kwargs):
    """Identifiers of the descriptor's sequence set, cached per signature.

    Remote FASTA files are downloaded to a scratch directory and discarded
    once their names are read; only the names are kept.
    """
    names = cache.get(signature, SEQUENCE_NAMES)
    if names is not None:
        return names
    if not descriptor.fasta:
        raise ValueError(f'Descriptor for {signature} has no sequence files and no transcript ids were given')
    with tempfile.TemporaryDirectory(prefix='txmeta-') as workdir:
        paths = [fetch_temporary(loc, workdir, **fetch_kwargs) for loc in descriptor.fasta]
        names = read_sequence_names(paths)
    lg.info(f'Read {len(names)} sequence names for {signature}')
    cache.put(signature, SEQUENCE_NAMES, names)
    return names


def parse_annotation(descriptor, signature, cache, **fetch_kwargs):
    """Fetch (or reuse) the raw annotation, parse it, and cache the result.

    The raw file is cached before parsing starts, so a parse failure never
    forces a second download.

    Raises:
        FetchError: The annotation could not be retrieved.
        ParseError: The annotation is not a GTF or GFF3 file.
    """
    stime = time()
    path = fetch(descriptor.gtf, cache, signature, RAW_ANNOTATION, **fetch_kwargs)
    txdb = read_annotation(path)
    # Record the descriptor location rather than the cache path
    txdb.source_file = descriptor.gtf
    cache.put(signature, PARSED_DATABASE, txdb)
    lg.info(f'Built transcript database for {signature} in {fmtmins(time() - stime)}')
    return txdb


def derive(txdb, descriptor, transcript_ids):
    """Range and sequence-info tables for *transcript_ids*."""
    ranges, gap = txdb.ranges(transcript_ids)
    seqinfo = txdb.seqinfo(descriptor.genome)
    used = set(ranges['seqnames'])
    seqinfo = seqinfo[[s in used or s in txdb.seqlengths for s in seqinfo.index]]
    return MaterializeResult(txdb=txdb, ranges=ranges, seqinfo=seqinfo, gap=gap)


def materialize(descriptor, signature, cache, transcript_ids=None, **fetch_kwargs):
    """Run the pipeline for one descriptor.

    Args:
        descriptor (TranscriptomeDescriptor): What to fetch.
        signature (str): Cache key.
        cache (MetadataCache): Cache handle.
        transcript_ids: Sequence-set identifiers. Read from the descriptor's
            FASTA files when omitted.
        **fetch_kwargs: Passed to :func:`txmeta.pipeline.fetch.download`.

    Returns:
        MaterializeResult
    """
    txdb = parse_annotation(descriptor, signature, cache, **fetch_kwargs)
    if transcript_ids is None:
        transcript_ids = sequence_names(descriptor, signature, cache, **fetch_kwargs)
    return derive(txdb, descriptor, transcript_ids)


def gene_database(txdb, signature, cache):
    """Cached gene-level database for *signature*, built on first use."""
    genedb = cache.get(signature, GENE_DATABASE)
    if genedb is None:
        genedb = txdb.gene_level()
        cache.put(signature, GENE_DATABASE, genedb)
    if not isinstance(genedb, GeneDB):
        raise CacheCorruptError(f'Unexpected gene-level payload for {signature}: {type(genedb).__name__}')
    return genedb

# -*- coding: utf-8 -*-

# This file is part of TxMeta.
#
# Licensed under MIT License.

""" Registry and cache maintenance commands

"""
import json

from . import REPORTING_OPTS, SubcommandOptions, configure_logging, report_errors
from ..core.cache import MetadataCache
from ..core.signature import signature_from_path
from ..registry import export_linked, import_linked, make_descriptor, make_linked_txome, RegistryStore

CACHE_OPTS = """
    - Cache Options:
        - cache:
            help: Cache root. Defaults to $TXMETA_CACHE or ~/.cache/txmeta.
"""


class SignatureOptions(SubcommandOptions):
    OPTS = """
    - Input Options:
        - path:
            positional: True
            help: Salmon quant directory, quant.sf file or index directory.
    """ + REPORTING_OPTS


class LinkOptions(SubcommandOptions):
    OPTS = """
    - Input Options:
        - index:
            positional: True
            help: >
                  Salmon index directory (or a quant directory made with
                  it). Names the written document.
        - signature:
            help: Use this signature instead of reading it from the index.
    - Transcriptome Options:
        - source:
            default: linked
            help: >
                  Annotation provider. "Ensembl" and "GENCODE" fill the genome
                  and download locations from curated source knowledge.
        - organism:
            required: True
            help: Organism, e.g. "Drosophila melanogaster".
        - release:
            required: True
            help: Annotation release.
        - genome:
            help: Genome build; derived from the source when omitted.
        - fasta:
            action: append
            help: Transcript sequence file location (repeatable).
        - gtf:
            help: Annotation (GTF/GFF3) location.
    - Output Options:
        - json_file:
            help: Document path. Defaults to <index basename>.json.
        - no_write:
            action: store_true
            help: Register only; do not write the document.
    """ + CACHE_OPTS + REPORTING_OPTS


class LoadLinkOptions(SubcommandOptions):
    OPTS = """
    - Input Options:
        - document:
            positional: True
            help: Linked transcriptome JSON document.
    """ + CACHE_OPTS + REPORTING_OPTS


class ExportLinkOptions(SubcommandOptions):
    OPTS = """
    - Input Options:
        - signature:
            positional: True
            help: Registered signature.
    - Output Options:
        - outfile:
            help: Document path. Printed to stdout when omitted.
    """ + CACHE_OPTS + REPORTING_OPTS


class ListOptions(SubcommandOptions):
    OPTS = """
    - Output Options:
        - entries:
            action: store_true
            help: Also list cache entries for each signature.
    """ + CACHE_OPTS + REPORTING_OPTS


class ClearOptions(SubcommandOptions):
    OPTS = """
    - Input Options:
        - signature:
            positional: True
            help: Signature whose cache entries are removed.
        - kind:
            choices:
                - raw-annotation
                - parsed-database
                - gene-level-database
                - sequence-names
            help: Remove only this entry kind.
        - unlink:
            action: store_true
            help: Also remove the signature from the linked registry.
    """ + CACHE_OPTS + REPORTING_OPTS


class ClearAllOptions(SubcommandOptions):
    OPTS = """
    - Input Options:
        - registry:
            action: store_true
            help: Also remove every linked registry entry.
    """ + CACHE_OPTS + REPORTING_OPTS


@report_errors
def signature(args):
    """Print the transcriptome signature of a quant or index directory."""
    opts = SignatureOptions(args)
    console = configure_logging(opts)
    console.result(signature_from_path(opts.path))


@report_errors
def link(args):
    """Register a transcriptome and write its linked document."""
    opts = LinkOptions(args)
    console = configure_logging(opts)
    sig = opts.signature.strip().lower() if opts.signature else signature_from_path(opts.index)
    registry = RegistryStore(opts.cache)
    if opts.source.lower() in ('ensembl', 'gencode'):
        desc = make_descriptor(opts.source, opts.organism, opts.release, fasta=opts.fasta, gtf=opts.gtf,
                               genome=opts.genome)
        source, genome, fasta, gtf = desc.source, desc.genome, desc.fasta, desc.gtf
    else:
        if not opts.genome or not opts.gtf or not opts.fasta:
            raise ValueError('--genome, --gtf and --fasta are required for source "{}"'.format(opts.source))
        source, genome, fasta, gtf = opts.source, opts.genome, opts.fasta, opts.gtf
    sig, desc, path = make_linked_txome(
        registry, opts.index, sig, opts.organism, opts.release, genome, fasta, gtf,
        source=source, write=not opts.no_write, json_file=opts.json_file,
    )
    console.status(f'Registered {sig}')
    console.item('Source', desc.source)
    console.item('Organism', desc.organism)
    console.item('Release', desc.release)
    console.item('Genome', desc.genome)
    if path:
        console.item('Document', path)


@report_errors
def load_link(args):
    """Register the transcriptome described by a linked document."""
    opts = LoadLinkOptions(args)
    console = configure_logging(opts)
    registry = RegistryStore(opts.cache)
    sig, desc = import_linked(registry, opts.document)
    console.status(f'Registered {sig}: {desc.source} {desc.organism} release {desc.release} ({desc.genome})')


@report_errors
def export_link(args):
    """Write (or print) the linked document for a registered signature."""
    opts = ExportLinkOptions(args)
    console = configure_logging(opts)
    registry = RegistryStore(opts.cache)
    doc = export_linked(registry, opts.signature.strip().lower(), path=opts.outfile)
    if opts.outfile:
        console.status(f'Wrote {opts.outfile}')
    else:
        console.result(json.dumps(doc, indent=2))


@report_errors
def list_registry(args):
    """List registered transcriptomes."""
    opts = ListOptions(args)
    console = configure_logging(opts)
    registry = RegistryStore(opts.cache)
    cache = MetadataCache(opts.cache) if opts.entries else None
    rows = registry.list_all()
    for sig, desc in rows:
        tier = 'linked' if registry.is_linked(sig) else 'curated'
        console.result('\t'.join([sig, tier, desc.source, desc.organism, desc.release, desc.genome]))
        if cache is not None:
            for e in cache.entries(sig):
                console.result(f'\t{e.kind}\t{e.created}\t{e.path}')
    if not rows:
        console.status('No transcriptomes registered')


@report_errors
def clear(args):
    """Remove cache entries for one signature."""
    opts = ClearOptions(args)
    console = configure_logging(opts)
    sig = opts.signature.strip().lower()
    with MetadataCache(opts.cache) as cache:
        n = cache.clear(sig, opts.kind)
    console.status(f'Removed {n} cache entries for {sig}')
    if opts.unlink:
        if RegistryStore(opts.cache).remove(sig):
            console.status(f'Removed {sig} from the linked registry')


@report_errors
def clear_all(args):
    """Remove every cache entry."""
    opts = ClearAllOptions(args)
    console = configure_logging(opts)
    with MetadataCache(opts.cache) as cache:
        n = cache.clear_all()
    console.status(f'Removed {n} cache entries')
    if opts.registry:
        registry = RegistryStore(opts.cache)
        removed = [sig for sig, _ in registry.list_all() if registry.is_linked(sig) and registry.remove(sig)]
        console.status(f'Removed {len(removed)} linked registry entries')

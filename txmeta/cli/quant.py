# -*- coding: utf-8 -*-

# This file is part of TxMeta.
#
# Licensed under MIT License.

""" txmeta import

"""
import logging as lg
import os
from time import time

from . import REPORTING_OPTS, SubcommandOptions, configure_logging, report_errors
from .console import Stopwatch
from .. import __version__, config
from ..core.cache import MetadataCache
from ..core.resolve import import_quants
from ..core.summarize import add_exons, summarize_to_gene
from ..utils.helpers import format_minutes as fmtmins


class ImportOptions(SubcommandOptions):
    OPTS = """
    - Input Options:
        - coldata:
            positional: True
            help: >
                  Sample table (TSV, or CSV by extension) with "files" and
                  "names" columns. Other columns are carried into the output.
    - Output Options:
        - outdir:
            default: .
            help: Output directory.
        - exp_tag:
            default: txmeta
            help: Prefix for output files.
        - gene:
            action: store_true
            help: Also write gene-level summaries.
        - exons:
            action: store_true
            help: Also write exon ranges for each transcript.
        - signature:
            help: >
                  Transcriptome used for --gene and --exons when the samples
                  resolve to more than one.
    - Resolution Options:
        - cache:
            help: Cache root. Defaults to $TXMETA_CACHE or ~/.cache/txmeta.
        - skip_meta:
            action: store_true
            help: Read quantities only; do not resolve the transcriptome.
        - ncpu:
            type: int
            default: 1
            help: Distinct transcriptomes fetched in parallel.
        - max_retries:
            type: int
            default: 4
            help: Retries for transient download failures.
        - timeout:
            type: float
            default: 120
            help: Network timeout in seconds.
    """ + REPORTING_OPTS

    def __init__(self, args):
        super().__init__(args)
        self.version = __version__


@report_errors
def run(args):
    """Import a set of quantifications and write the annotated output.

    Args:
        args: Parsed argparse namespace.
    """
    opts = ImportOptions(args)
    console = configure_logging(opts)
    lg.info('\n{}\n'.format(opts))
    total_time = time()
    sw = Stopwatch()

    console.banner(opts.version)
    console.section('Input')
    console.item('Samples', os.path.basename(opts.coldata))
    console.item('Cache', config.cache_root(opts.cache))
    console.blank()

    with MetadataCache(opts.cache) as cache:
        sw.start('Import')
        exp = import_quants(opts.coldata, cache=cache, skip_meta=opts.skip_meta, ncpu=opts.ncpu,
                            max_retries=opts.max_retries, timeout=opts.timeout)
        console.status('Imported {} transcripts x {} samples'.format(*exp.shape))
        for name, rec in exp.metadata['resolution'].items():
            console.verbose('{:<20}{:<12}{}'.format(name, rec['state'], rec.get('signature') or '-'))
        for sig, info in exp.metadata['txomeInfo'].items():
            console.detail('{} {} release {} ({})'.format(info['source'], info['organism'], info['release'],
                                                         info['genome']))
        for notice in exp.metadata['notices']:
            console.detail(notice)

        derived = exp.resolved
        if (opts.gene or opts.exons) and not exp.resolved:
            console.status('Transcriptome unresolved; gene summary and exons skipped')
        elif (opts.gene or opts.exons) and opts.signature is None and len(exp.signatures) > 1:
            console.status('Samples resolve to {} transcriptomes; pass --signature to choose one. '
                           'Gene summary and exons skipped'.format(len(exp.signatures)))
            derived = False

        if opts.exons and derived:
            sw.start('Exons')
            exp = add_exons(exp, cache, opts.signature)
        sw.start('Write')
        written = exp.to_dir(opts.outdir, opts.exp_tag)
        if opts.gene and derived:
            sw.start('Gene summary')
            gexp = summarize_to_gene(exp, cache, opts.signature)
            written += gexp.to_dir(opts.outdir, f'{opts.exp_tag}-gene')
        sw.stop()

    console.blank()
    console.section('Output')
    for f in written:
        console.output_file(os.path.relpath(f, opts.outdir))
    console.blank()
    console.timing_table(sw)
    lg.info('txmeta import complete (%s)' % fmtmins(time() - total_time))

# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Resolution of quantification samples to their reference transcriptome.

Every sample walks the same path::

    signature-computed -> registry-{hit,miss} -> cache-{hit,miss}
        -> pipeline -> cache-populate -> attached

Any exhausted path ends in ``unresolved`` (or ``error`` when the registered
annotation cannot be parsed): the sample keeps its quantities, gets no
ranges, and a notice naming the signature is recorded. Outcomes are
memoized per signature for the batch, so a signature that failed to fetch
is not retried by later samples. A cached database built from another
annotation than the one the registry now names is rebuilt.
"""

import logging as lg
import os
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from time import time

import pandas as pd

from .. import __version__
from ..errors import FetchCancelled, FetchError, MalformedIndexMetadata, ParseError, RegistryMiss
from ..pipeline.materialize import MaterializeResult, derive, materialize
from ..registry.store import RegistryStore
from ..utils.helpers import format_minutes as fmtmins
from ..utils.helpers import utc_now
from .cache import PARSED_DATABASE, MetadataCache
from .experiment import QuantExperiment
from .quant import quant_info, read_coldata, read_quant
from .signature import compute_signature, read_index_metadata

SIGNATURE_COMPUTED = 'signature-computed'
REGISTRY_HIT = 'registry-hit'
REGISTRY_MISS = 'registry-miss'
CACHE_HIT = 'cache-hit'
CACHE_MISS = 'cache-miss'
PIPELINE = 'pipeline'
CACHE_POPULATE = 'cache-populate'
ATTACHED = 'attached'
UNRESOLVED = 'unresolved'
ERROR = 'error'
SKIPPED = 'skipped'


@dataclass
class SignatureOutcome:
    """Result of resolving one signature."""
    signature: str
    state: str
    path: tuple
    descriptor: object = None
    result: MaterializeResult = None
    notice: str = ''
    error: dict = None


class Resolver:
    """Resolve signatures against a registry and cache.

    Args:
        cache (MetadataCache): Cache handle.
        registry (RegistryStore): Registry to consult.
        ncpu (int): Distinct signatures materialized in parallel.
        **fetch_kwargs: Passed to the fetch layer (``max_retries``,
            ``backoff``, ``timeout``, ``should_abort``).
    """

    def __init__(self, cache, registry, ncpu=1, **fetch_kwargs):
        self.cache = cache
        self.registry = registry
        self.ncpu = max(1, int(ncpu))
        self.fetch_kwargs = fetch_kwargs
        self.outcomes = OrderedDict()

    def _resolve(self, signature, transcript_ids):
        path = [SIGNATURE_COMPUTED]
        descriptor = self.registry.lookup(signature)
        if descriptor is None:
            path += [REGISTRY_MISS, UNRESOLVED]
            notice = f'{RegistryMiss(signature)}; quantities returned without ranges'
            lg.info(notice)
            return SignatureOutcome(signature, UNRESOLVED, tuple(path), notice=notice)

        path.append(REGISTRY_HIT)
        txdb = self.cache.get(signature, PARSED_DATABASE)
        if txdb is not None and txdb.source_file != descriptor.gtf:
            # Descriptor was re-registered with another annotation
            lg.warning(f'Cached transcript database for {signature} was built from {txdb.source_file}, '
                       f'registry now names {descriptor.gtf}; rebuilding')
            self.cache.clear(signature)
            txdb = None
        if txdb is not None:
            path.append(CACHE_HIT)
            lg.info(f'Using cached transcript database for {signature}')
            result = derive(txdb, descriptor, transcript_ids)
        else:
            path += [CACHE_MISS, PIPELINE]
            try:
                result = materialize(descriptor, signature, self.cache, transcript_ids, **self.fetch_kwargs)
            except FetchCancelled:
                raise
            except FetchError as exc:
                path.append(UNRESOLVED)
                notice = f'{exc}; signature {signature} is unresolved'
                lg.warning(notice)
                return SignatureOutcome(signature, UNRESOLVED, tuple(path), descriptor, notice=notice)
            except ParseError as exc:
                path.append(ERROR)
                notice = f'{exc}; signature {signature} is unresolved'
                lg.error(notice)
                error = {'type': type(exc).__name__, 'path': exc.path, 'message': str(exc)}
                return SignatureOutcome(signature, ERROR, tuple(path), descriptor, notice=notice, error=error)
            path.append(CACHE_POPULATE)
        path.append(ATTACHED)
        return SignatureOutcome(signature, ATTACHED, tuple(path), descriptor, result)

    def resolve(self, signature, transcript_ids):
        """Resolve one signature, at most once per batch."""
        if signature not in self.outcomes:
            self.outcomes[signature] = self._resolve(signature, transcript_ids)
        return self.outcomes[signature]

    def resolve_all(self, requests):
        """Resolve several signatures.

        Args:
            requests: OrderedDict {signature: transcript ids}

        Returns:
            list of SignatureOutcome, in request order
        """
        todo = [(s, ids) for s, ids in requests.items() if s not in self.outcomes]
        if self.ncpu > 1 and len(todo) > 1:
            with ThreadPoolExecutor(max_workers=min(self.ncpu, len(todo))) as pool:
                done = dict(pool.map(lambda t: (t[0], self._resolve(*t)), todo))
        else:
            done = dict((s, self._resolve(s, ids)) for s, ids in todo)
        for s, _ in todo:
            self.outcomes[s] = done[s]
        return [self.outcomes[s] for s in requests]

    def sample_path(self, outcome, first):
        """State path for one sample sharing *outcome*.

        The first sample carries the outcome's own path. Later samples with
        an attached signature find the entry the first one populated.
        """
        if first or outcome.state != ATTACHED:
            return outcome.path
        if self.cache.entry(outcome.signature, PARSED_DATABASE) is None:
            return outcome.path
        return (SIGNATURE_COMPUTED, REGISTRY_HIT, CACHE_HIT, ATTACHED)


def build_assays(quants):
    """Counts, abundance and length matrices (transcripts x samples).

    Samples indexed against different transcript sets are outer-joined in
    order of first appearance.
    """
    ret = {}
    for assay, column in (('counts', 'NumReads'), ('abundance', 'TPM'), ('length', 'EffectiveLength')):
        df = pd.concat(OrderedDict((n, q[column]) for n, q in quants.items()), axis=1, sort=False)
        df.index.name = 'transcript'
        ret[assay] = df
    return ret


def _merge_tables(frames):
    frames = [f for f in frames if f is not None]
    if not frames:
        return None
    df = pd.concat(frames)
    return df[~df.index.duplicated(keep='first')]


def import_quants(coldata, cache=None, registry=None, skip_meta=False, ncpu=1, **fetch_kwargs):
    """Import salmon quantifications and attach transcriptome metadata.

    Args:
        coldata: Sample table (DataFrame or TSV/CSV path) with ``files`` and
            ``names`` columns.
        cache: MetadataCache, a cache root path, or None for the default
            location.
        registry (RegistryStore): Defaults to the registry under the cache
            root.
        skip_meta (bool): Only read quantities; do not resolve anything.
        ncpu (int): Distinct signatures materialized in parallel.
        **fetch_kwargs: Passed to the fetch layer.

    Returns:
        QuantExperiment

    Raises:
        SampleTableError: The sample table or a quant file is unreadable.
        FetchCancelled: The caller aborted a download.
        CacheCorruptError: A cache payload is unreadable.
    """
    stime = time()
    coldata = read_coldata(coldata)
    names = list(coldata['names'])
    lg.info(f'Importing {len(names)} samples')

    quants = OrderedDict()
    index_meta = OrderedDict()
    signatures = OrderedDict()
    resolution = OrderedDict()
    notices = []
    for name, path in zip(names, coldata['files']):
        quants[name] = read_quant(path)
        try:
            index_meta[name] = read_index_metadata(path)
        except MalformedIndexMetadata as exc:
            index_meta[name] = {}
            if not skip_meta:
                notice = f'Sample {name}: {exc}'
                lg.warning(notice)
                notices.append(notice)
                resolution[name] = {'signature': None, 'state': UNRESOLVED, 'path': [UNRESOLVED],
                                    'descriptor': None, 'timestamp': utc_now(), 'notice': str(exc)}
            continue
        if skip_meta:
            continue
        try:
            signatures[name] = compute_signature(index_meta[name])
        except MalformedIndexMetadata as exc:
            notice = f'Sample {name}: {exc}'
            lg.warning(notice)
            notices.append(notice)
            resolution[name] = {'signature': None, 'state': UNRESOLVED, 'path': [UNRESOLVED],
                                'descriptor': None, 'timestamp': utc_now(), 'notice': str(exc)}

    assays = build_assays(quants)
    metadata = OrderedDict()
    metadata['version'] = __version__
    metadata['importTime'] = utc_now()
    metadata['quantInfo'] = OrderedDict((n, quant_info(m)) for n, m in index_meta.items())

    if skip_meta:
        lg.info('Skipping transcriptome resolution')
        metadata.update([('resolution', {n: {'signature': None, 'state': SKIPPED} for n in names}),
                         ('txomeInfo', {}), ('txdbInfo', {}), ('coverage', {}),
                         ('errors', {}), ('notices', notices),
                         ('unresolved', False), ('skipMeta', True)])
        return QuantExperiment(col_data=coldata, assays=assays, metadata=dict(metadata))

    distinct = list(OrderedDict.fromkeys(signatures.values()))
    if len(distinct) > 1:
        notice = 'Samples were quantified against {} different transcriptomes: {}'.format(
            len(distinct), ', '.join(distinct))
        lg.warning(notice)
        notices.append(notice)

    if isinstance(cache, (str, os.PathLike)):
        cache = MetadataCache(cache)
    elif cache is None:
        cache = MetadataCache()
    if registry is None:
        registry = RegistryStore(cache.root)

    # Transcript ids of the first sample carrying each signature
    requests = OrderedDict()
    for name, sig in signatures.items():
        requests.setdefault(sig, list(quants[name].index))

    resolver = Resolver(cache, registry, ncpu=ncpu, **fetch_kwargs)
    outcomes = dict(zip(requests, resolver.resolve_all(requests)))

    seen = set()
    for name in names:
        if name not in signatures:
            continue
        sig = signatures[name]
        outcome = outcomes[sig]
        path = resolver.sample_path(outcome, sig not in seen)
        if outcome.notice and sig not in seen:
            notices.append(outcome.notice)
        seen.add(sig)
        resolution[name] = {
            'signature': sig,
            'state': outcome.state,
            'path': list(path),
            'descriptor': outcome.descriptor.to_dict() if outcome.descriptor is not None else None,
            'timestamp': utc_now(),
            'notice': outcome.notice,
            'error': outcome.error,
        }

    attached = [o for o in outcomes.values() if o.state == ATTACHED]
    txome_info = OrderedDict()
    txdb_info = OrderedDict()
    coverage = OrderedDict()
    errors = OrderedDict((o.signature, o.error) for o in outcomes.values() if o.error)
    for o in attached:
        info = {'signature': o.signature}
        info.update(o.descriptor.to_dict())
        txome_info[o.signature] = info
        txdb_info[o.signature] = o.result.txdb.provenance()
        coverage[o.signature] = asdict(o.result.gap)
        if o.result.gap.dropped:
            notices.append(
                f'{o.result.gap.dropped} of {o.result.gap.total} transcripts of {o.signature} '
                f'are missing from the annotation'
            )

    metadata['resolution'] = dict((n, resolution[n]) for n in names)
    metadata['txomeInfo'] = dict(txome_info)
    metadata['txdbInfo'] = dict(txdb_info)
    metadata['coverage'] = dict(coverage)
    metadata['errors'] = dict(errors)
    metadata['notices'] = notices
    metadata['unresolved'] = any(r['state'] != ATTACHED for r in resolution.values())

    exp = QuantExperiment(
        col_data=coldata,
        assays=assays,
        row_ranges=_merge_tables([o.result.ranges for o in attached]),
        seqinfo=_merge_tables([o.result.seqinfo for o in attached]),
        metadata=dict(metadata),
    )
    lg.info(f'Imported {len(names)} samples ({len(attached)} of {len(outcomes)} signatures resolved) '
            f'in {fmtmins(time() - stime)}')
    return exp

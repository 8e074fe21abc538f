# This file is part of TxMeta.
#
# Licensed under MIT License.

"""On-disk metadata cache keyed by signature and entry kind.

Every entry is an immutable snapshot written through a temporary file and
``os.replace`` so concurrent processes sharing a cache root never observe a
partially written entry. Layout::

    <root>/entries/<signature>/<kind>.pkl        pickled payloads
    <root>/entries/<signature>/<kind>/<name>     file payloads
"""

import logging as lg
import os
import pickle
import re
import shutil
import tempfile
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone

from .. import config
from ..errors import CacheCorruptError
from ..utils.helpers import atomic_write, promote, utc_now

RAW_ANNOTATION = 'raw-annotation'
PARSED_DATABASE = 'parsed-database'
GENE_DATABASE = 'gene-level-database'
SEQUENCE_NAMES = 'sequence-names'

# Kinds whose payload is a file rather than a pickled object
FILE_KINDS = frozenset([RAW_ANNOTATION])

ENVELOPE_FORMAT = 'txmeta-cache/1'

_KEY_RE = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]*$')


@dataclass(frozen=True)
class CacheEntry:
    signature: str
    kind: str
    path: str
    created: str


def _check_key(value, what):
    if not isinstance(value, str) or not _KEY_RE.match(value):
        raise ValueError(f'Invalid cache {what}: {value!r}')


class MetadataCache:
    """Explicit handle on a cache root.

    Usable as a context manager; the root is created when the handle is
    opened. ``stats`` counts hits, misses and writes made through this
    handle.
    """

    def __init__(self, root=None):
        self.root = str(config.cache_root(root))
        self.entries_dir = os.path.join(self.root, 'entries')
        self.stats = Counter()
        self.closed = True
        self.open()

    def open(self):
        os.makedirs(self.entries_dir, exist_ok=True)
        self.closed = False
        return self

    def close(self):
        self.closed = True

    def __enter__(self):
        if self.closed:
            self.open()
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    def _check_open(self):
        if self.closed:
            raise ValueError('I/O operation on closed cache')

    # -- Paths ---------------------------------------------------------------

    def signature_dir(self, signature):
        _check_key(signature, 'signature')
        return os.path.join(self.entries_dir, signature)

    def _object_path(self, signature, kind):
        return os.path.join(self.signature_dir(signature), f'{kind}.pkl')

    def _file_dir(self, signature, kind):
        return os.path.join(self.signature_dir(signature), kind)

    def _locate(self, signature, kind):
        """Path of the stored payload, or None if absent."""
        _check_key(kind, 'kind')
        if kind in FILE_KINDS:
            d = self._file_dir(signature, kind)
            if not os.path.isdir(d):
                return None
            names = sorted(n for n in os.listdir(d) if not n.startswith('.tmp-'))
            return os.path.join(d, names[0]) if names else None
        p = self._object_path(signature, kind)
        return p if os.path.exists(p) else None

    def temp_file(self, signature, kind):
        """Create a temporary file next to where *kind* will be stored.

        Returns the path; the caller fills it and hands it to
        :meth:`put_file`, or removes it on failure.
        """
        self._check_open()
        d = self._file_dir(signature, kind)
        os.makedirs(d, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix='.tmp-', dir=d)
        os.close(fd)
        return tmp

    # -- Operations ----------------------------------------------------------

    def entry(self, signature, kind):
        """CacheEntry for (signature, kind), or None."""
        path = self._locate(signature, kind)
        if path is None:
            return None
        created = datetime.fromtimestamp(os.path.getmtime(path), timezone.utc)
        return CacheEntry(signature, kind, path, created.replace(microsecond=0).isoformat())

    def get(self, signature, kind):
        """Read an entry. A miss returns None and never computes anything.

        File kinds return the cached file path; other kinds return the
        unpickled payload.

        Raises:
            CacheCorruptError: The stored payload is not a valid envelope.
        """
        self._check_open()
        path = self._locate(signature, kind)
        if path is None:
            self.stats['miss'] += 1
            lg.debug(f'Cache miss: {signature}/{kind}')
            return None
        self.stats['hit'] += 1
        lg.debug(f'Cache hit: {signature}/{kind}')
        if kind in FILE_KINDS:
            return path
        try:
            with open(path, 'rb') as fh:
                envelope = pickle.load(fh)
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError, ValueError) as exc:
            raise CacheCorruptError(f'Cannot read cache entry {path}: {exc}') from exc
        if (not isinstance(envelope, dict)
                or envelope.get('format') != ENVELOPE_FORMAT
                or envelope.get('kind') != kind
                or envelope.get('signature') != signature):
            raise CacheCorruptError(f'Unrecognized cache payload format: {path}')
        return envelope['payload']

    def put(self, signature, kind, payload):
        """Store *payload* as a new immutable snapshot, replacing any entry."""
        self._check_open()
        _check_key(kind, 'kind')
        if kind in FILE_KINDS:
            return self.put_file(signature, kind, payload)
        path = self._object_path(signature, kind)
        envelope = {
            'format': ENVELOPE_FORMAT,
            'signature': signature,
            'kind': kind,
            'created': utc_now(),
            'payload': payload,
        }
        with atomic_write(path, 'wb') as outh:
            pickle.dump(envelope, outh, protocol=pickle.HIGHEST_PROTOCOL)
        self.stats['write'] += 1
        lg.info(f'Cached {kind} for {signature}')
        return path

    def put_file(self, signature, kind, src, name=None, move=False):
        """Store a file payload.

        Args:
            src (str): File to store.
            name (str): Stored file name; defaults to the basename of *src*.
            move (bool): Move *src* (which must be on the same filesystem,
                e.g. from :meth:`temp_file`) instead of copying it.
        """
        self._check_open()
        _check_key(kind, 'kind')
        name = os.path.basename(name or src)
        _check_key(name, 'file name')
        d = self._file_dir(signature, kind)
        os.makedirs(d, exist_ok=True)
        dest = os.path.join(d, name)
        if move:
            promote(src, dest)
        else:
            fd, tmp = tempfile.mkstemp(prefix='.tmp-', dir=d)
            os.close(fd)
            try:
                shutil.copyfile(src, tmp)
                promote(tmp, dest)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        # Drop snapshots stored under a different name
        for other in os.listdir(d):
            if other != name and not other.startswith('.tmp-'):
                os.unlink(os.path.join(d, other))
        self.stats['write'] += 1
        lg.info(f'Cached {kind} for {signature}: {name}')
        return dest

    def clear(self, signature, kind=None):
        """Remove one entry, or every entry of *signature* when kind is None.

        Returns:
            int: Number of entries removed.
        """
        self._check_open()
        if kind is None:
            d = self.signature_dir(signature)
            if not os.path.isdir(d):
                return 0
            n = len(self.entries(signature))
            shutil.rmtree(d)
            lg.info(f'Cleared {n} cache entries for {signature}')
            return n
        path = self._locate(signature, kind)
        if path is None:
            return 0
        if kind in FILE_KINDS:
            shutil.rmtree(self._file_dir(signature, kind))
        else:
            os.unlink(path)
        lg.info(f'Cleared {kind} for {signature}')
        return 1

    def clear_all(self):
        """Remove every cache entry. The registry overlay is untouched."""
        self._check_open()
        n = len(self.entries())
        shutil.rmtree(self.entries_dir, ignore_errors=True)
        os.makedirs(self.entries_dir, exist_ok=True)
        lg.info(f'Cleared {n} cache entries')
        return n

    def signatures(self):
        if not os.path.isdir(self.entries_dir):
            return []
        return sorted(n for n in os.listdir(self.entries_dir) if _KEY_RE.match(n))

    def entries(self, signature=None):
        """List CacheEntry objects, for one signature or all of them."""
        sigs = [signature] if signature is not None else self.signatures()
        ret = []
        for sig in sigs:
            d = self.signature_dir(sig)
            if not os.path.isdir(d):
                continue
            for name in sorted(os.listdir(d)):
                if name.startswith('.tmp-'):
                    continue
                kind = name[:-4] if name.endswith('.pkl') else name
                if not _KEY_RE.match(kind):
                    continue
                e = self.entry(sig, kind)
                if e is not None:
                    ret.append(e)
        return ret

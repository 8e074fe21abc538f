# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Locations and defaults shared across TxMeta."""

import os
from pathlib import Path

CACHE_ENV = 'TXMETA_CACHE'
HASHTABLE_ENV = 'TXMETA_HASHTABLE'

DEFAULT_CACHE_DIR = Path.home() / '.cache' / 'txmeta'

DATA_DIR = Path(__file__).resolve().parent / 'data'
BUNDLED_HASHTABLE = DATA_DIR / 'hashtable.csv'
BUNDLED_SOURCES = DATA_DIR / 'sources.yaml'

# Fetch tuning
MAX_RETRIES = 4
BACKOFF_BASE = 1.0
BACKOFF_CAP = 30.0
FETCH_TIMEOUT = 120
CHUNK_SIZE = 1 << 20

# Suffix of the linked transcriptome document written next to an index
LINKED_SUFFIX = '.json'


def cache_root(path=None):
    """Resolve the cache root.

    An explicit *path* wins, then the ``TXMETA_CACHE`` environment variable,
    then ``~/.cache/txmeta``.
    """
    if path is not None:
        return Path(path).expanduser()
    env = os.environ.get(CACHE_ENV)
    if env:
        return Path(env).expanduser()
    return DEFAULT_CACHE_DIR


def hashtable_path():
    env = os.environ.get(HASHTABLE_ENV)
    return Path(env).expanduser() if env else BUNDLED_HASHTABLE

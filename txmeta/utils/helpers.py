# This file is part of TxMeta.
#
# Licensed under MIT License.

import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone


def format_minutes(seconds):
    mins = seconds / 60
    secs = seconds % 60
    return '{:d} minutes and {:d} secs'.format(int(mins), int(round(secs)))


def utc_now():
    """Current UTC time as an ISO 8601 string (second precision)."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


@contextmanager
def atomic_write(path, mode='w'):
    """Write *path* through a temporary file in the same directory.

    The temporary file is renamed over *path* only when the block exits
    cleanly, so readers never observe a partially written file. On error the
    temporary file is removed and *path* is left untouched.
    """
    dirname = os.path.dirname(os.path.abspath(path))
    os.makedirs(dirname, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix='.tmp-', dir=dirname)
    try:
        with os.fdopen(fd, mode) as fh:
            yield fh
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def promote(tmp, path):
    """Atomically move a finished temporary file onto *path*."""
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    os.replace(tmp, path)

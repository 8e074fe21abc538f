# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Retrieval of annotation and sequence files.

Local locations are validated in place. Remote locations are streamed into a
temporary file with bounded retries and exponential backoff; only a complete
download is promoted into the cache.
"""

import logging as lg
import os
import random
import re
from time import sleep
from urllib.parse import urlparse

import requests

from .. import __version__, config
from ..errors import FetchCancelled, FetchError

REMOTE_SCHEMES = ('http', 'https', 'ftp')

# HTTP statuses worth retrying
TRANSIENT_STATUS = frozenset([408, 429, 500, 502, 503, 504])

USER_AGENT = f'txmeta/{__version__}'


class _TransientStatus(Exception):
    pass


def is_remote(location):
    return urlparse(str(location)).scheme.lower() in REMOTE_SCHEMES


def local_path(location):
    """Filesystem path for a local location (plain path or file:// URL)."""
    parsed = urlparse(str(location))
    if parsed.scheme == 'file':
        return parsed.path
    return os.path.expanduser(str(location))


def to_http(url):
    # Ensembl and GENCODE serve their FTP trees over HTTPS as well
    if url.lower().startswith('ftp://'):
        return 'https://' + url[len('ftp://'):]
    return url


def remote_name(url):
    """File name for a downloaded URL, safe for use as a cache file name."""
    name = os.path.basename(urlparse(url).path) or 'download'
    return re.sub(r'[^A-Za-z0-9._-]', '_', name).lstrip('.-_') or 'download'


def backoff_delay(attempt, base=config.BACKOFF_BASE, cap=config.BACKOFF_CAP):
    """Exponential backoff with jitter."""
    delay = min(cap, base * (2 ** attempt))
    return delay * (0.7 + random.random() * 0.6)


def download(url, dest, max_retries=config.MAX_RETRIES, backoff=config.BACKOFF_BASE,
             timeout=config.FETCH_TIMEOUT, should_abort=None):
    """Stream *url* into *dest*.

    Connection errors, timeouts and HTTP 408/429/5xx are retried up to
    *max_retries* times. Other HTTP errors fail immediately.

    Args:
        url (str): Remote location (ftp:// is rewritten to https://).
        dest (str): Output file; overwritten on every attempt.
        should_abort: Optional callable checked before every attempt; when
            it returns True the fetch stops with :class:`FetchCancelled`.

    Raises:
        FetchError: Retries exhausted or a non-transient failure.
    """
    url = to_http(url)
    last_err = None
    for attempt in range(max_retries + 1):
        if should_abort is not None and should_abort():
            raise FetchCancelled(url, attempt)
        if attempt:
            lg.info(f'Retrying {url} (attempt {attempt + 1}/{max_retries + 1})')
        resp = None
        try:
            resp = requests.get(url, stream=True, timeout=timeout, headers={'User-Agent': USER_AGENT})
            if resp.status_code in TRANSIENT_STATUS:
                raise _TransientStatus(f'HTTP {resp.status_code}')
            resp.raise_for_status()
            with open(dest, 'wb') as outh:
                for chunk in resp.iter_content(chunk_size=config.CHUNK_SIZE):
                    if chunk:
                        outh.write(chunk)
            lg.info(f'Downloaded {url}')
            return dest
        except (requests.ConnectionError, requests.Timeout, requests.exceptions.ChunkedEncodingError,
                _TransientStatus) as exc:
            last_err = exc
            lg.warning(f'Transient failure fetching {url}: {exc}')
            if attempt < max_retries:
                sleep(backoff_delay(attempt, backoff))
        except requests.RequestException as exc:
            raise FetchError(url, str(exc), attempt + 1) from exc
        finally:
            if resp is not None:
                resp.close()
    raise FetchError(url, str(last_err), max_retries + 1)


def fetch(location, cache, signature, kind, **kwargs):
    """Resolve *location* to a local file.

    Local files are validated and returned as is. Remote files are served
    from the cache entry (signature, kind) when present; otherwise they are
    downloaded and stored there first.

    Raises:
        FetchError: The file does not exist or could not be downloaded.
    """
    if not is_remote(location):
        path = local_path(location)
        if not os.path.isfile(path):
            raise FetchError(location, 'file not found')
        return path

    cached = cache.get(signature, kind)
    if cached is not None:
        lg.info(f'Using cached {kind} for {signature}')
        return cached

    tmp = cache.temp_file(signature, kind)
    try:
        download(location, tmp, **kwargs)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
    return cache.put_file(signature, kind, tmp, name=remote_name(location), move=True)


def fetch_temporary(location, workdir, **kwargs):
    """Resolve *location* to a local file without caching it.

    Remote files are downloaded into *workdir*, which the caller owns.
    """
    if not is_remote(location):
        path = local_path(location)
        if not os.path.isfile(path):
            raise FetchError(location, 'file not found')
        return path
    dest = os.path.join(workdir, remote_name(location))
    return download(location, dest, **kwargs)

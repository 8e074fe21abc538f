# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Transcriptome signatures from quantifier index metadata.

Salmon embeds a digest of the indexed transcript sequences in the
``aux_info/meta_info.json`` file of every quantification. The digest is read
back here, never recomputed from sequences.
"""

import json
import logging as lg
import os
import re
from collections.abc import Mapping

from ..errors import MalformedIndexMetadata

# Digest fields, newest first
DIGEST_FIELDS = ('index_seq_hash', 'seq_hash')

# {version tag field: minimum version that embeds a sequence digest}
VERSION_TAGS = {
    'salmon_version': (0, 8, 0),
}

META_INFO = os.path.join('aux_info', 'meta_info.json')

_HEX_RE = re.compile(r'^[0-9a-f]+$')
_VERSION_RE = re.compile(r'^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?')


def parse_version(tag):
    """Parse a dotted version tag into a 3-tuple of ints, or None."""
    m = _VERSION_RE.match(str(tag).strip())
    if m is None:
        return None
    return tuple(int(g) if g is not None else 0 for g in m.groups())


def _check_version(index_metadata):
    for field, minimum in VERSION_TAGS.items():
        if field not in index_metadata:
            continue
        version = parse_version(index_metadata[field])
        if version is None:
            raise MalformedIndexMetadata(f'Unrecognized {field}: {index_metadata[field]!r}')
        if version < minimum:
            raise MalformedIndexMetadata(
                '{} {} does not embed a transcript digest (requires >= {})'.format(
                    field, index_metadata[field], '.'.join(map(str, minimum)))
            )
        return field, version
    raise MalformedIndexMetadata(
        'Index metadata has no recognized version tag (expected one of: {})'.format(
            ', '.join(VERSION_TAGS))
    )


def normalize_digest(digest):
    """Normalize a raw digest string into signature form.

    Strips whitespace and an optional ``<algorithm>:`` prefix and lowercases
    the remainder.
    """
    if not isinstance(digest, str):
        raise MalformedIndexMetadata(f'Digest must be a string, got {type(digest).__name__}')
    value = digest.strip().lower()
    if ':' in value:
        value = value.split(':', 1)[1].strip()
    if not value or not _HEX_RE.match(value):
        raise MalformedIndexMetadata(f'Digest is not hexadecimal: {digest!r}')
    return value


def compute_signature(index_metadata):
    """Derive the transcriptome signature from index metadata.

    Args:
        index_metadata (dict): Parsed quantifier side-channel metadata.

    Returns:
        str: Lowercase hexadecimal signature.

    Raises:
        MalformedIndexMetadata: The digest field is absent or invalid, or the
            version tag is missing or unrecognized.
    """
    if not isinstance(index_metadata, Mapping):
        raise MalformedIndexMetadata('Index metadata must be a mapping')
    _check_version(index_metadata)
    for field in DIGEST_FIELDS:
        digest = index_metadata.get(field)
        if digest:
            return normalize_digest(digest)
    raise MalformedIndexMetadata(
        'Index metadata has no digest field (expected one of: {})'.format(', '.join(DIGEST_FIELDS))
    )


def meta_info_path(quant_path):
    """Locate ``meta_info.json`` for a quant file or quant directory."""
    quant_dir = quant_path if os.path.isdir(quant_path) else os.path.dirname(os.path.abspath(quant_path))
    return os.path.join(quant_dir, META_INFO)


def read_index_metadata(quant_path):
    """Load the index metadata for a quantification.

    Raises:
        MalformedIndexMetadata: The file is missing or not valid JSON.
    """
    path = meta_info_path(quant_path)
    if not os.path.exists(path):
        raise MalformedIndexMetadata(f'Index metadata not found: {path}')
    try:
        with open(path) as fh:
            meta = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        raise MalformedIndexMetadata(f'Cannot read index metadata {path}: {exc}') from exc
    lg.debug(f'Read index metadata from {path}')
    return meta


# Digest keys written to info.json in a salmon index directory
INDEX_INFO = 'info.json'
INDEX_DIGEST_FIELDS = ('index_seq_hash', 'seq_hash', 'SeqHash')


def signature_from_path(path):
    """Signature for a quant directory, quant file or index directory.

    Quantifications are read through ``aux_info/meta_info.json``; an index
    directory through the digest in its ``info.json``.

    Raises:
        MalformedIndexMetadata: No usable digest was found.
    """
    if os.path.exists(meta_info_path(path)):
        return compute_signature(read_index_metadata(path))
    info = os.path.join(path, INDEX_INFO)
    if not os.path.isfile(info):
        raise MalformedIndexMetadata(f'No quantification or index metadata found under {path}')
    try:
        with open(info) as fh:
            meta = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        raise MalformedIndexMetadata(f'Cannot read index metadata {info}: {exc}') from exc
    for field in INDEX_DIGEST_FIELDS:
        if meta.get(field):
            return normalize_digest(meta[field])
    raise MalformedIndexMetadata(f'{info} has no sequence digest')

# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Linked transcriptome documents.

A linked transcriptome document is a small JSON file describing one registry
entry. Sharing it alongside quantification output lets a collaborator
register the same transcriptome without access to the index.
"""

import json
import logging as lg
import os

from .. import config
from ..errors import IncompatibleDocumentVersion, MalformedLinkedDocument, RegistryMiss
from ..utils.helpers import atomic_write
from .descriptor import FIELDS, TranscriptomeDescriptor
from .sources import LINKED

SCHEMA_VERSION = 1


def default_document_path(index_dir, outdir='.'):
    """``<outdir>/<basename of index_dir>.json``"""
    name = os.path.basename(os.path.normpath(str(index_dir)))
    return os.path.join(outdir, name + config.LINKED_SUFFIX)


def to_document(signature, descriptor, index=None):
    doc = {'schema_version': SCHEMA_VERSION, 'index': index or '', 'signature': signature}
    doc.update(descriptor.to_dict())
    return doc


def export_linked(registry, signature, path=None, index=None):
    """Serialize the registry entry for *signature*.

    Args:
        registry (RegistryStore): Source registry.
        signature (str): Entry to export.
        path (str): If given, the document is also written here.
        index (str): Optional index name recorded in the document.

    Returns:
        dict: The document.

    Raises:
        RegistryMiss: *signature* is not registered.
    """
    descriptor = registry.lookup(signature)
    if descriptor is None:
        raise RegistryMiss(signature)
    doc = to_document(signature, descriptor, index=index)
    if path is not None:
        with atomic_write(path) as outh:
            json.dump(doc, outh, indent=2)
        lg.info(f'Wrote linked transcriptome document {path}')
    return doc


def read_document(path):
    try:
        with open(path) as fh:
            return json.load(fh)
    except OSError as exc:
        raise MalformedLinkedDocument(f'Cannot read {path}: {exc}') from exc
    except json.JSONDecodeError as exc:
        raise MalformedLinkedDocument(f'{path} is not valid JSON: {exc}') from exc


def parse_document(doc):
    """Validate a document and return ``(signature, descriptor)``."""
    if not isinstance(doc, dict):
        raise MalformedLinkedDocument('Linked transcriptome document must be a JSON object')
    version = doc.get('schema_version')
    if not isinstance(version, int):
        raise MalformedLinkedDocument(f'Missing or invalid schema_version: {version!r}')
    if version > SCHEMA_VERSION:
        raise IncompatibleDocumentVersion(version, SCHEMA_VERSION)
    missing = [f for f in ('signature',) + FIELDS if f not in doc]
    if missing:
        raise MalformedLinkedDocument('Linked transcriptome document is missing: {}'.format(', '.join(missing)))
    signature = str(doc['signature']).strip().lower()
    return signature, TranscriptomeDescriptor.from_dict(doc)


def import_linked(registry, document):
    """Register the entry described by *document* (a dict or a path).

    Raises:
        IncompatibleDocumentVersion: The document schema is newer than
            supported.
        MalformedLinkedDocument: Required fields are missing.
    """
    if not isinstance(document, dict):
        document = read_document(document)
    signature, descriptor = parse_document(document)
    registry.register(signature, descriptor)
    return signature, registry.lookup(signature)


def make_linked_txome(registry, index_dir, signature, organism, release, genome,
                      fasta, gtf, source=LINKED, write=True, json_file=None):
    """Register a user-supplied transcriptome and write its document.

    Args:
        registry (RegistryStore): Registry to update.
        index_dir (str): Quantifier index directory (names the document).
        signature (str): Signature of the index.
        organism, release, genome: Provenance fields.
        fasta: Sequence file location(s).
        gtf (str): Annotation file location.
        source (str): Provider name; ``linked`` by default.
        write (bool): Write the JSON document.
        json_file (str): Document path; defaults to ``<index basename>.json``
            in the working directory.

    Returns:
        (signature, TranscriptomeDescriptor, document path or None)
    """
    descriptor = TranscriptomeDescriptor(
        source=source,
        organism=organism,
        release=release,
        genome=genome,
        fasta=fasta,
        gtf=gtf,
    )
    registry.register(signature, descriptor)
    path = None
    if write:
        path = json_file or default_document_path(index_dir)
        export_linked(registry, signature, path=path, index=os.path.basename(os.path.normpath(str(index_dir))))
    return signature, registry.lookup(signature), path

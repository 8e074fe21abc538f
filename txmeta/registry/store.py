# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Two-tier registry of known transcriptomes.

The baseline is a curated, read-only CSV table. The copy shipped with the
package has no rows; $TXMETA_HASHTABLE selects a populated one.
The overlay holds linked (user registered) transcriptomes in a JSON file
under the cache root. Lookups check the overlay first.
"""

import json
import logging as lg
import os
from collections import OrderedDict

import pandas as pd

from .. import config
from ..errors import CacheCorruptError
from ..utils.helpers import atomic_write
from .descriptor import TranscriptomeDescriptor

OVERLAY_NAME = 'registry.json'
OVERLAY_FORMAT = 1


def load_baseline(path=None):
    """Read the curated baseline table.

    Returns:
        OrderedDict of {signature: TranscriptomeDescriptor}
    """
    path = path if path is not None else config.hashtable_path()
    baseline = OrderedDict()
    if not os.path.exists(path):
        lg.warning(f'Curated transcriptome table not found: {path}')
        return baseline
    df = pd.read_csv(path, dtype=str, keep_default_na=False, comment='#')
    for row in df.itertuples(index=False):
        fasta = tuple(f.strip() for f in row.fasta.split(';') if f.strip())
        baseline[row.signature.strip().lower()] = TranscriptomeDescriptor(
            source=row.source,
            organism=row.organism,
            release=row.release,
            genome=row.genome,
            fasta=fasta,
            gtf=row.gtf,
        )
    lg.debug(f'Loaded {len(baseline)} curated transcriptomes from {path}')
    return baseline


class RegistryStore:
    """Signature to descriptor mapping with a writable overlay.

    Args:
        root: Directory holding the overlay file (normally the cache root).
        baseline: Path to the curated table, or a prebuilt mapping. Defaults
            to the bundled table (or ``TXMETA_HASHTABLE``).
    """

    def __init__(self, root=None, baseline=None):
        self.root = config.cache_root(root)
        self.overlay_path = os.path.join(self.root, OVERLAY_NAME)
        if isinstance(baseline, dict):
            self._baseline = OrderedDict(baseline)
        else:
            self._baseline = load_baseline(baseline)
        self._overlay = OrderedDict()
        self.notices = []
        self._reload()

    # -- Persistence ---------------------------------------------------------

    def _reload(self):
        """Re-read the overlay so writes from other processes are seen."""
        self._overlay = OrderedDict()
        if not os.path.exists(self.overlay_path):
            return
        try:
            with open(self.overlay_path) as fh:
                doc = json.load(fh)
        except json.JSONDecodeError as exc:
            raise CacheCorruptError(f'Registry overlay is not valid JSON: {self.overlay_path}') from exc
        if not isinstance(doc, dict) or doc.get('format') != OVERLAY_FORMAT:
            raise CacheCorruptError(f'Unrecognized registry overlay format: {self.overlay_path}')
        for rec in doc.get('entries', []):
            sig = rec['signature']
            self._overlay[sig] = TranscriptomeDescriptor.from_dict(rec)

    def _save(self):
        entries = []
        for sig, desc in self._overlay.items():
            rec = {'signature': sig}
            rec.update(desc.to_dict())
            entries.append(rec)
        with atomic_write(self.overlay_path) as outh:
            json.dump({'format': OVERLAY_FORMAT, 'entries': entries}, outh, indent=2)

    # -- Operations ----------------------------------------------------------

    def lookup(self, signature):
        """Descriptor registered for *signature*, or None. Never fetches."""
        if signature in self._overlay:
            return self._overlay[signature]
        return self._baseline.get(signature)

    def register(self, signature, descriptor):
        """Map *signature* to *descriptor*, replacing any previous mapping.

        Re-registering an equal descriptor is a no-op. Replacing a different
        descriptor logs a warning and records a notice.
        """
        self._reload()
        previous = self.lookup(signature)
        if previous is not None and previous == descriptor and signature in self._overlay:
            lg.debug(f'Signature {signature} already registered, nothing to do')
            return
        if previous is not None and previous != descriptor:
            notice = (
                f'Replacing registered transcriptome for {signature}: '
                f'{previous.source} {previous.organism} {previous.release} -> '
                f'{descriptor.source} {descriptor.organism} {descriptor.release}'
            )
            lg.warning(notice)
            self.notices.append(notice)
        if not descriptor.registered:
            descriptor = descriptor.stamped()
        # Re-insert so overlay order reflects the latest registration
        self._overlay.pop(signature, None)
        self._overlay[signature] = descriptor
        self._save()
        lg.info(f'Registered {descriptor.source} {descriptor.organism} release {descriptor.release} as {signature}')

    def remove(self, signature):
        """Delete a linked entry. Baseline entries cannot be removed.

        Returns:
            bool: True if an entry was removed.
        """
        self._reload()
        if signature not in self._overlay:
            if signature in self._baseline:
                lg.warning(f'{signature} is a curated entry and cannot be removed')
            return False
        del self._overlay[signature]
        self._save()
        lg.info(f'Removed linked transcriptome {signature}')
        return True

    def list_all(self):
        """All (signature, descriptor) pairs, baseline first then overlay.

        Overlay entries shadow baseline entries with the same signature.
        """
        ret = [(s, d) for s, d in self._baseline.items() if s not in self._overlay]
        ret.extend(self._overlay.items())
        return ret

    def is_linked(self, signature):
        return signature in self._overlay

    def __contains__(self, signature):
        return self.lookup(signature) is not None

    def __len__(self):
        return len(self.list_all())

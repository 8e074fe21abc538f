# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Exception hierarchy for TxMeta.

Errors scoped to one sample or one signature are caught by the resolver and
recorded as notices on the output container. Structural errors (unreadable
sample table, corrupt cache payload) and a caller-requested FetchCancelled
propagate to the caller.
"""


class TxmetaError(Exception):
    """Base class for all TxMeta errors."""


class MalformedIndexMetadata(TxmetaError):
    """Quantifier index metadata lacks a usable digest or version tag."""


class RegistryMiss(TxmetaError):
    """No descriptor is registered for a signature."""

    def __init__(self, signature):
        super().__init__(f'No transcriptome registered for signature {signature}')
        self.signature = signature


class FetchError(TxmetaError):
    """An annotation or sequence file could not be retrieved."""

    def __init__(self, location, reason, attempts=0):
        msg = f'Failed to fetch {location}: {reason}'
        if attempts:
            msg += f' (after {attempts} attempts)'
        super().__init__(msg)
        self.location = location
        self.reason = reason
        self.attempts = attempts


class FetchCancelled(FetchError):
    """The caller aborted a fetch at a retry boundary.

    Unlike other fetch failures this stops the whole import.
    """

    def __init__(self, location, attempts=0):
        super().__init__(location, 'cancelled by caller', attempts)


class ParseError(TxmetaError):
    """An annotation file is not in a recognised annotation format."""

    def __init__(self, path, reason):
        super().__init__(f'Cannot parse annotation file {path}: {reason}')
        self.path = path
        self.reason = reason


class IncompatibleDocumentVersion(TxmetaError):
    """A linked-transcriptome document uses a newer schema than supported."""

    def __init__(self, found, supported):
        super().__init__(
            f'Linked transcriptome document has schema_version {found}; '
            f'this version of txmeta supports up to {supported}'
        )
        self.found = found
        self.supported = supported


class MalformedLinkedDocument(TxmetaError):
    """A linked-transcriptome document is missing required fields."""


class CacheCorruptError(TxmetaError):
    """A cache payload does not have the expected envelope format."""


class SampleTableError(TxmetaError):
    """The sample table is unreadable or lacks required columns."""

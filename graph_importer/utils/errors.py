# -*- coding: utf-8 -*-
"""
Error taxonomy for the import pipeline.

Only ResolutionError and SinkWriteError abort a run. Compilation errors are
record-scoped and dispatch errors are batch-scoped: both end up in the failure
sink and the statistics, never as a crashed run.

Hierarchy:
    ImporterError
    ├── ResolutionError            malformed config or schema (startup)
    ├── CompilationError           a single record cannot be rendered
    │   └── OutOfRangeError        column index beyond the record length
    ├── DispatchError
    │   ├── TransientDispatchError connectivity hiccup, server busy (retried)
    │   └── FatalDispatchError     rejected statement, auth failure
    ├── SinkWriteError             failure log itself is unwritable
    └── ImportCancelled            producer released during shutdown
"""


class ImporterError(Exception):
    """Base class for all importer errors."""


class ResolutionError(ImporterError):
    """Configuration or schema description is malformed."""


class CompilationError(ImporterError):
    """A record cannot be rendered into a statement fragment."""


class OutOfRangeError(CompilationError):
    """A Prop/VID/Rank column index points past the end of the record."""

    def __init__(self, index: int, length: int):
        self.index = index
        self.length = length
        super().__init__(f"column index {index} out of range for record of length {length}")


class DispatchError(ImporterError):
    """Submitting a batch to the database failed."""


class TransientDispatchError(DispatchError):
    """Retryable submit failure."""


class FatalDispatchError(DispatchError):
    """Non-retryable submit failure."""


class SinkWriteError(ImporterError):
    """A failed row could not be written to the failure sink."""


class ImportCancelled(ImporterError):
    """The dispatch pool is shutting down and no longer accepts batches."""

"""Failure types raised inside the forge pipeline and the objective engine.

A blocked pre-validation is not an exception: ``generate()`` reports it as
``GenerateResult(success=False, reason="validation_failed")``.
"""

from __future__ import annotations


class ForgeError(Exception):
    """Base class. ``str(exc)`` is safe to show to the host."""


class GenerationFailed(ForgeError):
    """The generative service errored, timed out, or returned unusable JSON."""


class ScanFailed(ForgeError):
    pass


class CommitFailed(ForgeError):
    """The main entity could not be persisted."""


class PipelineStateError(ForgeError):
    """The operation is not accepted in the pipeline's current status."""


class ObjectiveNotFound(ForgeError):
    pass


class InvalidTransition(ForgeError):
    pass


class ObjectivePersistenceFailed(ForgeError):
    """Saving an objective change failed; local state was rolled back."""

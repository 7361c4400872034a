"""Run-level errors: each one stops the whole run."""

from __future__ import annotations


class PreconditionError(RuntimeError):
    """The run cannot start; nothing has been changed on the host."""


class NoMatchingSwitches(PreconditionError):
    pass


class RenameCountMismatch(PreconditionError):

    def __init__(self, names: int, switches: int):
        self.names = names
        self.switches = switches
        super().__init__(f"{names} new name(s) given for {switches} eligible switch(es)")


class ClusterDrainError(RuntimeError):
    """The node could not be drained; destructive steps must not run."""


class DrainInitiationError(ClusterDrainError):
    pass


class DrainFailedError(ClusterDrainError):
    pass


class DrainTimeoutError(ClusterDrainError):
    pass

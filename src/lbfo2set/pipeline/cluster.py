"""Failover cluster drain/resume around a migration run."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from lbfo2set.platform.base import ClusterMembership, DrainStatus
from lbfo2set.pipeline.errors import (
    DrainFailedError,
    DrainInitiationError,
    DrainTimeoutError,
    PreconditionError,
)
from lbfo2set.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DrainPolicy:
    """How long and how often to poll a node drain.

    ``timeout`` of None or 0 polls until a terminal status is reported.
    """
    interval: float = 1.0
    timeout: Optional[float] = 3600.0
    drain_type: str = "Drain"
    target_node: Optional[str] = None
    failback: str = "Immediate"


class ClusterCoordinator:
    """Drains the local node before a run and resumes it afterwards.

    Membership and the local node name are read once, at construction.
    A host that is not a cluster member makes both operations no-ops.
    """

    TERMINAL_STATES = (DrainStatus.COMPLETED, DrainStatus.FAILED, DrainStatus.NOT_STARTED)

    def __init__(
        self,
        cluster: Optional[ClusterMembership],
        policy: DrainPolicy = DrainPolicy(),
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cluster = cluster
        self.policy = policy
        self._sleep = sleep
        self._clock = clock
        self.is_member = bool(cluster and cluster.is_cluster_member())
        self.node = cluster.local_node_name() if self.is_member else ""
        self.drain_issued = False
        self.resumed = False

    def check_preconditions(self) -> None:
        if self.is_member and not self.cluster.drain_supported():
            raise PreconditionError(
                f"Host '{self.node}' is a cluster member but node drain is not available"
            )

    def drain_if_clustered(self) -> bool:
        """Drain the local node and wait for a terminal status.

        Returns:
            True if a drain was performed, False for a standalone host

        Raises:
            DrainInitiationError: The drain request was rejected or the node
                reports that no drain was initiated
            DrainFailedError: The cluster reported that roles could not be moved
            DrainTimeoutError: No terminal status within the policy timeout
        """
        if not self.is_member:
            return False

        logger.info(f"[bold]Draining cluster node '{self.node}'[/bold]")
        self.drain_issued = True
        try:
            self.cluster.suspend_node(
                self.node,
                drain_type=self.policy.drain_type,
                target_node=self.policy.target_node,
            )
        except Exception as e:
            raise DrainInitiationError(f"Failed to initiate drain of '{self.node}': {e}") from e

        started = self._clock()
        status = self.cluster.get_drain_status(self.node)
        while status not in self.TERMINAL_STATES:
            if self.policy.timeout and self._clock() - started >= self.policy.timeout:
                raise DrainTimeoutError(
                    f"Node '{self.node}' still {status.value} after {self.policy.timeout:.0f}s"
                )
            logger.debug(f"Drain status of '{self.node}': {status.value}")
            self._sleep(self.policy.interval)
            status = self.cluster.get_drain_status(self.node)

        if status == DrainStatus.FAILED:
            raise DrainFailedError(f"Node '{self.node}' failed to drain its roles")
        if status == DrainStatus.NOT_STARTED:
            raise DrainInitiationError(f"Drain of '{self.node}' was requested but never initiated")
        logger.info(f"[green]✓ Node '{self.node}' drained[/green]")
        return True

    def resume_if_clustered(self) -> bool:
        """Resume the node once per run, whatever happened to the switches."""
        if not self.is_member or not self.drain_issued or self.resumed:
            return False

        self.resumed = True
        logger.info(f"Resuming cluster node '{self.node}'")
        try:
            self.cluster.resume_node(self.node, failback=self.policy.failback)
        except Exception as e:
            logger.error(f"[red]✗ Failed to resume node '{self.node}': {e}. "
                         f"Resume it manually.[/red]")
            return False
        return True

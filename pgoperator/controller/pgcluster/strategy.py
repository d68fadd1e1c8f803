# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from abc import ABC, abstractmethod
from logging import Logger

from .cluster_api import PgCluster, PgReplica, PgTask, PgUpgrade


class Strategy(ABC):
    """
    A provisioning algorithm for the primary and replica workloads of a
    cluster.

    The orchestrators in cluster_base decide when an action runs and with
    which storage and secrets. The strategy owns the shape of the workloads
    (Deployments, Services, Jobs) it creates for that action. Every method
    raises on failure.

    Implementations must be stateless, a single instance serves all clusters.
    """

    @abstractmethod
    def add_cluster(self, cluster: PgCluster, namespace: str, pvc_name: str,
                    logger: Logger) -> None:
        ...

    @abstractmethod
    def delete_cluster(self, cluster: PgCluster, namespace: str, logger: Logger) -> None:
        ...

    @abstractmethod
    def scale(self, replica: PgReplica, namespace: str, pvc_name: str,
              cluster: PgCluster, logger: Logger) -> None:
        ...

    @abstractmethod
    def delete_replica(self, replica: PgReplica, namespace: str, logger: Logger) -> None:
        ...

    @abstractmethod
    def failover(self, cluster: PgCluster, task: PgTask, namespace: str,
                 logger: Logger) -> None:
        ...

    @abstractmethod
    def minor_upgrade(self, cluster: PgCluster, upgrade: PgUpgrade, namespace: str,
                      logger: Logger) -> None:
        ...

    @abstractmethod
    def major_upgrade(self, cluster: PgCluster, upgrade: PgUpgrade, namespace: str,
                      logger: Logger) -> None:
        ...

    @abstractmethod
    def major_upgrade_finalize(self, cluster: PgCluster, upgrade: PgUpgrade,
                               namespace: str, logger: Logger) -> None:
        ...

    @abstractmethod
    def update_policy_labels(self, cluster_name: str, namespace: str, labels: dict,
                             logger: Logger) -> None:
        ...

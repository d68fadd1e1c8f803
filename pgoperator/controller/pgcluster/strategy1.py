# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from logging import Logger
from typing import Callable, List

from .. import consts, kubeutils, utils
from ..errors import ConfigurationError, WorkloadNotFoundError
from ..kubeutils import ApiException
from ..storage_api import reuse_or_create_pvc
from .cluster_api import PgCluster, PgReplica, PgTask, PgUpgrade
from . import cluster_objects, pooler_objects
from .strategy import Strategy


def ignore_404(f: Callable[[], None]) -> bool:
    """Returns False if the object to delete was not there"""
    try:
        f()
    except ApiException as e:
        if e.status == 404:
            return False
        raise
    return True


def _cluster_deployments(cluster_name: str, namespace: str) -> List:
    # primary and replicas, not the poolers
    deployments = kubeutils.list_deployments(
        namespace, utils.label_selector({consts.LABEL_PG_CLUSTER: cluster_name}))
    ret = []
    for deploy in deployments:
        labels = deploy.metadata.labels or {}
        if labels.get(consts.LABEL_PRIMARY) == "true" or labels.get(consts.LABEL_REPLICA) == "true":
            ret.append(deploy)
    return ret


class Strategy1(Strategy):
    """
    One Deployment per database instance. The primary Deployment and Service
    are named after the cluster, each replica gets its own Deployment and all
    replicas share the <cluster>-replica Service.
    """

    def add_cluster(self, cluster: PgCluster, namespace: str, pvc_name: str,
                    logger: Logger) -> None:
        spec = cluster.parsed_spec

        if not kubeutils.get_service(spec.name, namespace):
            logger.info(f"Creating primary service {spec.name}")
            kubeutils.create_service(namespace, cluster_objects.prepare_primary_service(spec))

        if not kubeutils.get_deployment(spec.name, namespace):
            logger.info(f"Creating primary deployment {spec.name} pvc={pvc_name or '<emptydir>'}")
            kubeutils.create_deployment(namespace,
                                        cluster_objects.prepare_primary_deployment(spec, pvc_name))

    def delete_cluster(self, cluster: PgCluster, namespace: str, logger: Logger) -> None:
        spec = cluster.parsed_spec
        selector = utils.label_selector({consts.LABEL_PG_CLUSTER: spec.name})

        for deploy in kubeutils.list_deployments(namespace, selector):
            name = deploy.metadata.name
            if ignore_404(lambda: kubeutils.delete_deployment(name, namespace)):
                logger.info(f"Deleted deployment {name}")

        for name in (spec.name, spec.name + consts.REPLICA_SERVICE_SUFFIX):
            if ignore_404(lambda: kubeutils.delete_service(name, namespace)):
                logger.info(f"Deleted service {name}")

        for pooler in pooler_objects.POOLERS:
            pooler_objects.delete_pooler(spec, pooler, namespace, logger)

        for replica in kubeutils.list_custom_objects(consts.PGREPLICA_PLURAL, namespace, selector):
            name = replica["metadata"]["name"]
            if ignore_404(lambda: kubeutils.delete_custom_object(consts.PGREPLICA_PLURAL, name, namespace)):
                logger.info(f"Deleted pgreplica {name}")

    def scale(self, replica: PgReplica, namespace: str, pvc_name: str,
              cluster: PgCluster, logger: Logger) -> None:
        if kubeutils.get_deployment(replica.name, namespace):
            logger.info(f"Replica deployment {replica.name} already exists")
            return

        logger.info(f"Creating replica deployment {replica.name} pvc={pvc_name or '<emptydir>'}")
        deploy = cluster_objects.prepare_replica_deployment(replica.parsed_spec,
                                                            cluster.parsed_spec, pvc_name)
        kubeutils.create_deployment(namespace, deploy)

    def delete_replica(self, replica: PgReplica, namespace: str, logger: Logger) -> None:
        if ignore_404(lambda: kubeutils.delete_deployment(replica.name, namespace)):
            logger.info(f"Deleted replica deployment {replica.name}")
        else:
            logger.info(f"Replica deployment {replica.name} not found, nothing to delete")

    def failover(self, cluster: PgCluster, task: PgTask, namespace: str,
                 logger: Logger) -> None:
        spec = cluster.parsed_spec
        target = task.parsed_spec.parameters.get("target", "")
        if not target:
            raise ConfigurationError(f"pgtask {task.name} has no failover target")

        if not kubeutils.get_deployment(target, namespace):
            raise WorkloadNotFoundError(f"failover target deployment {target} not found")

        logger.info(f"Failing over {spec.name} to {target}")
        if ignore_404(lambda: kubeutils.delete_deployment(spec.name, namespace)):
            logger.info(f"Deleted primary deployment {spec.name}")

        # The primary Service selects on service-name, moving the label moves the traffic
        patch = {
            "metadata": {
                "labels": {
                    consts.LABEL_PRIMARY: "true",
                    consts.LABEL_REPLICA: None
                }
            },
            "spec": {
                "template": {
                    "metadata": {
                        "labels": {
                            consts.LABEL_SERVICE_NAME: spec.name
                        }
                    },
                    "spec": {
                        "containers": [
                            {
                                "name": "database",
                                "env": [{"name": "PG_MODE", "value": "primary"}]
                            }
                        ]
                    }
                }
            }
        }
        kubeutils.patch_deployment(target, namespace, patch)

        # no longer a replica
        ignore_404(lambda: kubeutils.delete_custom_object(consts.PGREPLICA_PLURAL, target, namespace))

    def minor_upgrade(self, cluster: PgCluster, upgrade: PgUpgrade, namespace: str,
                      logger: Logger) -> None:
        spec = cluster.parsed_spec
        image_tag = upgrade.parsed_spec.ccpImageTag

        deployments = _cluster_deployments(spec.name, namespace)
        if not deployments:
            raise WorkloadNotFoundError(f"No deployments found for cluster {spec.name}")

        # Each Deployment rolls its pod to the new image on its own
        for deploy in deployments:
            logger.info(f"Upgrading deployment {deploy.metadata.name} to {image_tag}")
            kubeutils.patch_deployment(deploy.metadata.name, namespace,
                                       cluster_objects.prepare_image_patch(spec, image_tag))

    def major_upgrade(self, cluster: PgCluster, upgrade: PgUpgrade, namespace: str,
                      logger: Logger) -> None:
        spec = cluster.parsed_spec
        up = upgrade.parsed_spec
        # the Job mounts the old and the new data claim
        if not spec.primaryStorage.provisioned:
            raise ConfigurationError(
                f"major upgrade of {spec.name} needs PrimaryStorage of storagetype create or dynamic, "
                f"got '{spec.primaryStorage.storageType or 'emptydir'}'")
        old_pvc_name = up.oldPvcName or spec.primaryStorage.name or spec.name

        # pg_upgrade needs the old data directory offline
        for deploy in _cluster_deployments(spec.name, namespace):
            name = deploy.metadata.name
            if ignore_404(lambda: kubeutils.delete_deployment(name, namespace)):
                logger.info(f"Deleted deployment {name} for major upgrade")

        selector = utils.label_selector({consts.LABEL_PG_CLUSTER: spec.name})
        for replica in kubeutils.list_custom_objects(consts.PGREPLICA_PLURAL, namespace, selector):
            name = replica["metadata"]["name"]
            ignore_404(lambda: kubeutils.delete_custom_object(consts.PGREPLICA_PLURAL, name, namespace))

        new_pvc_name = reuse_or_create_pvc(spec.primaryStorage, up.newPvcName, spec.name,
                                           namespace, logger)

        job = cluster_objects.prepare_upgrade_job(spec, up, old_pvc_name)
        if kubeutils.get_job(job["metadata"]["name"], namespace):
            logger.info(f"Upgrade job {job['metadata']['name']} already exists")
            return
        logger.info(f"Creating upgrade job {job['metadata']['name']} {old_pvc_name} -> {new_pvc_name}")
        kubeutils.create_job(namespace, job)

    def major_upgrade_finalize(self, cluster: PgCluster, upgrade: PgUpgrade,
                               namespace: str, logger: Logger) -> None:
        spec = cluster.parsed_spec
        up = upgrade.parsed_spec

        job_name = spec.name + consts.UPGRADE_SUFFIX
        if ignore_404(lambda: kubeutils.delete_job(job_name, namespace)):
            logger.info(f"Deleted upgrade job {job_name}")

        if not kubeutils.get_deployment(spec.name, namespace):
            logger.info(f"Creating primary deployment {spec.name} on {up.newPvcName}")
            deploy = cluster_objects.prepare_primary_deployment(spec, up.newPvcName,
                                                                image_tag=up.ccpImageTag or None)
            kubeutils.create_deployment(namespace, deploy)

        draft = cluster.draft(namespace)
        draft.stage("/spec/PrimaryStorage/name", up.newPvcName)
        failed = draft.commit(logger)
        if failed:
            raise failed[0][1]

    def update_policy_labels(self, cluster_name: str, namespace: str, labels: dict,
                             logger: Logger) -> None:
        # after a failover the primary Deployment is named after the promoted replica
        selector = utils.label_selector({consts.LABEL_PG_CLUSTER: cluster_name,
                                         consts.LABEL_PRIMARY: "true"})
        deployments = kubeutils.list_deployments(namespace, selector)
        if not deployments:
            raise WorkloadNotFoundError(f"No primary deployment found for cluster {cluster_name}")

        for deploy in deployments:
            logger.info(f"Applying policy labels {labels} to {deploy.metadata.name}")
            kubeutils.patch_deployment(deploy.metadata.name, namespace, {"metadata": {"labels": labels}})

# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from typing import Optional, Union
from logging import Logger
from kopf._cogs.structs.bodies import Body
from kubernetes.client.rest import ApiException
import kopf

from .. import consts
from ..api_utils import ApiSpecError
from ..errors import WorkloadNotFoundError
from ..k8sobject import K8sInterfaceObject
from ..pipeline import PipelineResult
from . import cluster_base
from .cluster_api import PgCluster, PgReplica, PgTask, PgUpgrade
from .strategies import default_strategy_id, get_strategy


def handle_result(result: PipelineResult, obj: K8sInterfaceObject, action: str,
                  logger: Logger) -> None:
    """
    Reports the outcome of an orchestrator run to kopf.

    Failed steps are posted as Warning events on the object. If the run was
    aborted, configuration errors and conflicts become a PermanentError and
    everything else a TemporaryError, which kopf retries.
    """
    if result.halted:
        logger.info(f"{result.name}: nothing to do")
        return

    if result.ok:
        obj.info(action=action, reason="Success", message=f"{result.name} done")
        return

    for step in result.steps:
        if not step.ok:
            reason = "".join(p.capitalize() for p in step.name.split("_")) + "Failed"
            obj.warn(action=action, reason=reason, message=str(step.error))

    if not result.aborted:
        # only non-fatal steps failed
        return

    error = result.error
    message = f"{result.name} failed at {result.failed_step.name}: {error}"
    if isinstance(error, kopf.PermanentError):
        raise kopf.PermanentError(message) from error
    if isinstance(error, ApiException) and error.status == 409:
        raise kopf.PermanentError(message) from error
    raise kopf.TemporaryError(message, delay=30) from error


def parse_spec(obj: Union[PgCluster, PgReplica, PgUpgrade, PgTask], action: str) -> None:
    try:
        obj.parse_spec()
    except ApiSpecError as e:
        obj.error(action=action, reason="InvalidArgument", message=str(e))
        raise kopf.TemporaryError(f"Error in {obj.self_ref()['kind']} {obj.name} spec: {e}")


def read_cluster(namespace: str, name: str) -> PgCluster:
    try:
        return PgCluster.read(namespace, name)
    except ApiException as e:
        if e.status == 404:
            raise kopf.PermanentError(f"pgcluster {namespace}/{name} not found")
        raise


def policy_labels(old: Optional[str], new: Optional[str]) -> dict:
    """
    Labels to merge onto the primary Deployment when the comma separated
    policy list changes. Removed policies are set to None, which deletes
    the label.
    """
    old_set = {p.strip() for p in (old or "").split(",") if p.strip()}
    new_set = {p.strip() for p in (new or "").split(",") if p.strip()}

    labels: dict = {p: consts.LABEL_PGPOLICY for p in sorted(new_set - old_set)}
    for p in sorted(old_set - new_set):
        labels[p] = None
    return labels


@kopf.on.create(consts.GROUP, consts.VERSION,
                consts.PGCLUSTER_PLURAL)  # type: ignore
def on_pgcluster_create(name: str, namespace: str, body: Body,
                        logger: Logger, **kwargs) -> None:
    cluster = PgCluster(dict(body))
    parse_spec(cluster, "CreateCluster")
    cluster.log_cluster_info(logger)

    result = cluster_base.add_cluster_base(cluster, namespace, logger)
    handle_result(result, cluster, "CreateCluster", logger)


@kopf.on.delete(consts.GROUP, consts.VERSION,
                consts.PGCLUSTER_PLURAL)  # type: ignore
def on_pgcluster_delete(name: str, namespace: str, body: Body,
                        logger: Logger, **kwargs) -> None:
    cluster = PgCluster(dict(body))
    try:
        cluster.parse_spec()
    except ApiSpecError as e:
        # workloads are only created from a parsable spec
        cluster.error(action="DeleteCluster", reason="InvalidArgument", message=str(e))
        logger.warning(f"pgcluster {name} has an invalid spec, nothing to delete: {e}")
        return
    logger.info(f"Deleting cluster {name}")

    result = cluster_base.delete_cluster_base(cluster, namespace, logger)
    handle_result(result, cluster, "DeleteCluster", logger)


@kopf.on.field(consts.GROUP, consts.VERSION, consts.PGCLUSTER_PLURAL,
               field="spec.policies")  # type: ignore
def on_pgcluster_field_policies(old: Optional[str], new: Optional[str], body: Body,
                                namespace: str, logger: Logger, **kwargs) -> None:
    if old == new:
        return

    cluster = PgCluster(dict(body))
    parse_spec(cluster, "UpdatePolicies")
    # policies given at creation are applied once the cluster exists
    if cluster.parsed_spec.status != consts.COMPLETED_STATUS:
        raise kopf.TemporaryError("The cluster is not ready. Will retry", delay=30)

    labels = policy_labels(old, new)
    if not labels:
        return

    strategy = get_strategy(default_strategy_id(cluster.parsed_spec.strategy))
    try:
        strategy.update_policy_labels(cluster.parsed_spec.name, namespace, labels, logger)
    except (ApiException, WorkloadNotFoundError) as exc:
        cluster.warn(action="UpdatePolicies", reason="PatchFailed", message=str(exc))
        raise kopf.TemporaryError(f"Could not update policy labels: {exc}", delay=30)


@kopf.on.create(consts.GROUP, consts.VERSION,
                consts.PGREPLICA_PLURAL)  # type: ignore
def on_pgreplica_create(name: str, namespace: str, body: Body,
                        logger: Logger, **kwargs) -> None:
    replica = PgReplica(dict(body))
    parse_spec(replica, "ScaleUp")
    logger.info(f"Adding replica {name} to cluster {replica.cluster_name}")

    result = cluster_base.scale_base(replica, namespace, logger)
    handle_result(result, replica, "ScaleUp", logger)


@kopf.on.delete(consts.GROUP, consts.VERSION,
                consts.PGREPLICA_PLURAL)  # type: ignore
def on_pgreplica_delete(name: str, namespace: str, body: Body,
                        logger: Logger, **kwargs) -> None:
    replica = PgReplica(dict(body))
    try:
        replica.parse_spec()
    except ApiSpecError as e:
        # without a cluster there is no workload to remove, let the object go
        replica.error(action="ScaleDown", reason="InvalidArgument", message=str(e))
        logger.warning(f"pgreplica {name} has an invalid spec, nothing to remove: {e}")
        return
    logger.info(f"Removing replica {name} from cluster {replica.cluster_name}")

    result = cluster_base.scale_down_base(replica, namespace, logger)
    load = result.step("load_cluster")
    if load and isinstance(load.error, ApiException) and load.error.status == 404:
        # cluster already gone, its delete removed the workloads
        logger.info(f"cluster {replica.cluster_name} of replica {name} not found")
        return
    handle_result(result, replica, "ScaleDown", logger)


@kopf.on.create(consts.GROUP, consts.VERSION,
                consts.PGUPGRADE_PLURAL)  # type: ignore
def on_pgupgrade_create(name: str, namespace: str, body: Body,
                        logger: Logger, **kwargs) -> None:
    upgrade = PgUpgrade(dict(body))
    parse_spec(upgrade, "Upgrade")
    uspec = upgrade.parsed_spec
    if uspec.upgradeStatus == consts.COMPLETED_STATUS:
        logger.info(f"pgupgrade {name} already completed")
        return

    cluster = read_cluster(namespace, uspec.clusterName)
    parse_spec(cluster, "Upgrade")
    logger.info(f"Upgrading cluster {cluster.name}: type={uspec.upgradeType} tag={uspec.ccpImageTag}")

    result = cluster_base.add_upgrade_base(upgrade, cluster, namespace, logger)
    handle_result(result, upgrade, "Upgrade", logger)


@kopf.on.field("batch", "v1", "jobs", field="status.succeeded",
               labels={consts.LABEL_PGUPGRADE: "true"})  # type: ignore
def on_upgrade_job_succeeded(old, new, body: Body, namespace: str,
                             logger: Logger, **kwargs) -> None:
    if not new or old == new:
        return

    labels = body.get("metadata", {}).get("labels", {})
    cluster_name = labels.get(consts.LABEL_PG_CLUSTER)
    if not cluster_name:
        logger.warning(f"upgrade job {body['metadata']['name']} has no {consts.LABEL_PG_CLUSTER} label")
        return

    cluster = read_cluster(namespace, cluster_name)
    try:
        upgrade = PgUpgrade.read(namespace, cluster_name)
    except ApiException as e:
        if e.status == 404:
            logger.info(f"pgupgrade {cluster_name} not found, upgrade job left alone")
            return
        raise

    parse_spec(upgrade, "Upgrade")
    parse_spec(cluster, "Upgrade")
    if upgrade.parsed_spec.upgradeStatus == consts.COMPLETED_STATUS:
        return

    result = cluster_base.finalize_major_upgrade_base(upgrade, cluster, namespace, logger)
    handle_result(result, upgrade, "Upgrade", logger)


@kopf.on.create(consts.GROUP, consts.VERSION,
                consts.PGTASK_PLURAL)  # type: ignore
def on_pgtask_create(name: str, namespace: str, body: Body,
                     logger: Logger, **kwargs) -> None:
    task = PgTask(dict(body))
    parse_spec(task, "Failover")
    if task.parsed_spec.taskType != consts.TASK_FAILOVER:
        logger.debug(f"ignoring pgtask {name} of type {task.parsed_spec.taskType}")
        return

    if not task.cluster_name:
        raise kopf.PermanentError(f"pgtask {name} has no {consts.LABEL_PG_CLUSTER} label")

    result = cluster_base.failover_base(task, namespace, logger)
    handle_result(result, task, "Failover", logger)

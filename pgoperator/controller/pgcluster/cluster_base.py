# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from logging import Logger
from typing import Optional

from .. import config, consts, kubeutils
from ..errors import InvalidUpgradeTypeError, ReplicaCountError
from ..k8sobject import ResourceDraft
from ..kubeutils import ApiException
from ..pipeline import Pipeline, PipelineHalt, PipelineResult
from ..storage_api import create_pvc, reuse_or_create_pvc
from . import cluster_objects, pooler_objects
from .cluster_api import PgCluster, PgReplica, PgTask, PgUpgrade, prepare_replica
from .failover import AutoFailoverTask
from .secrets import DatabaseCredentials, ROLES, provision_secrets
from .strategies import default_strategy_id, get_strategy
from .strategy import Strategy


def _commit(draft: ResourceDraft, logger: Logger) -> None:
    failed = draft.commit(logger, stop_on_error=False)
    if failed:
        raise failed[0][1]


def _strategy_for(cluster: PgCluster, logger: Logger) -> Strategy:
    strategy_id = default_strategy_id(cluster.parsed_spec.strategy)
    if not cluster.parsed_spec.strategy:
        logger.info(f"using default strategy {strategy_id} for {cluster.name}")
    return get_strategy(strategy_id)


class AddClusterRun:
    """
    State shared by the steps of add_cluster_base.
    """

    def __init__(self, cluster: PgCluster, namespace: str, logger: Logger) -> None:
        self.cluster = cluster
        self.spec = cluster.parsed_spec
        self.namespace = namespace
        self.logger = logger
        self.draft = cluster.draft(namespace)

        self.pvc_name = ""
        self.credentials: Optional[DatabaseCredentials] = None
        self.strategy: Optional[Strategy] = None

    def check_status(self) -> None:
        if self.spec.status == consts.COMPLETED_STATUS:
            raise PipelineHalt(f"pgcluster {self.spec.name} already has status {consts.COMPLETED_STATUS}, will not recreate")

    def primary_storage(self) -> str:
        self.pvc_name = reuse_or_create_pvc(self.spec.primaryStorage, self.spec.name,
                                            self.spec.name, self.namespace, self.logger)
        return self.pvc_name

    def archive_storage(self) -> str:
        return reuse_or_create_pvc(self.spec.primaryStorage,
                                   self.spec.name + consts.XLOG_PVC_SUFFIX,
                                   self.spec.name, self.namespace, self.logger)

    def backrest_storage(self) -> str:
        storage = config.get_storage_spec(config.BACKREST_STORAGE)
        return reuse_or_create_pvc(storage, self.spec.name + consts.BACKREST_PVC_SUFFIX,
                                   self.spec.name, self.namespace, self.logger)

    def password_override(self) -> None:
        self.logger.debug(f"using the password from the spec for all roles of {self.spec.name}")
        self.spec.rootPassword = self.spec.password
        self.spec.primaryPassword = self.spec.password

    def secret_from(self) -> None:
        # All three are read before anything is written, a failure here
        # leaves no secrets behind
        passwords = {}
        for role, (_, suffix, password_field, _) in ROLES.items():
            secret_name = self.spec.secretFrom + suffix
            _, passwords[password_field] = kubeutils.get_secret_credentials(secret_name, self.namespace)
            self.logger.debug(f"using password of secret {secret_name} for {role}")

        for field, password in passwords.items():
            setattr(self.spec, field, password)

    def secrets(self) -> DatabaseCredentials:
        self.credentials = provision_secrets(self.spec, self.draft, self.namespace, self.logger)
        return self.credentials

    def resolve_strategy(self) -> Strategy:
        self.strategy = _strategy_for(self.cluster, self.logger)
        return self.strategy

    def add_workloads(self) -> None:
        assert self.strategy
        self.strategy.add_cluster(self.cluster, self.namespace, self.pvc_name, self.logger)

    def record_status(self) -> None:
        self.draft.stage("/spec/status", consts.COMPLETED_STATUS)
        self.draft.stage("/spec/PrimaryStorage/name", self.pvc_name)
        _commit(self.draft, self.logger)

    def add_pooler(self, pooler: str) -> None:
        assert self.credentials
        pooler_objects.add_pooler(self.spec, pooler, self.namespace, consts.USER_USERNAME,
                                  self.credentials.user_password, self.logger)

    def create_replicas(self) -> int:
        try:
            count = int(str(self.spec.replicas).strip())
        except ValueError:
            raise ReplicaCountError(f"invalid replicas value '{self.spec.replicas}' for {self.spec.name}")

        if count <= 0:
            return 0

        storage = config.get_storage_spec(config.REPLICA_STORAGE)
        errors = []
        created = 0
        for i in range(count):
            body = prepare_replica(self.spec, storage)
            name = body["metadata"]["name"]
            try:
                kubeutils.create_custom_object(consts.PGREPLICA_PLURAL, self.namespace, body)
            except Exception as exc:
                self.logger.error(f"error creating pgreplica {name} ({i+1}/{count}): {exc}")
                errors.append(exc)
                continue
            self.logger.info(f"created pgreplica {name} ({i+1}/{count})")
            created += 1

        if errors:
            raise errors[0]
        return created


def add_cluster_base(cluster: PgCluster, namespace: str, logger: Logger) -> PipelineResult:
    """
    Creates everything a new pgcluster needs: storage claims, credential
    secrets, the primary workload (through the cluster's strategy), the pooler
    add-ons and the requested number of pgreplica objects.

    A cluster with status completed is left alone. Storage, credential and
    strategy failures stop the run, later failures are only logged.
    """
    run = AddClusterRun(cluster, namespace, logger)
    spec = run.spec

    pipeline = Pipeline(f"add cluster {spec.name}", logger)
    pipeline.add("check_status", run.check_status)
    pipeline.add("primary_storage", run.primary_storage)
    if spec.archive:
        pipeline.add("archive_storage", run.archive_storage)
    if spec.backrest:
        pipeline.add("backrest_storage", run.backrest_storage)
    if spec.password:
        pipeline.add("password_override", run.password_override)
    if spec.secretFrom:
        pipeline.add("secret_from", run.secret_from)
    pipeline.add("secrets", run.secrets)
    pipeline.add("resolve_strategy", run.resolve_strategy)
    pipeline.add("add_workloads", run.add_workloads)
    pipeline.add("record_status", run.record_status, fatal=False)
    if spec.pgpool:
        pipeline.add("pgpool", lambda: run.add_pooler(consts.LABEL_PGPOOL), fatal=False)
    if spec.pgbouncer:
        pipeline.add("pgbouncer", lambda: run.add_pooler(consts.LABEL_PGBOUNCER), fatal=False)
    if str(spec.replicas).strip():
        pipeline.add("replicas", run.create_replicas, fatal=False)

    return pipeline.run()


def delete_cluster_base(cluster: PgCluster, namespace: str, logger: Logger) -> PipelineResult:
    """
    Removes the workloads of a cluster and its pending autofail task and
    pgupgrade. Storage claims and secrets are kept.
    """
    name = cluster.parsed_spec.name
    state = {}

    def resolve_strategy():
        state["strategy"] = _strategy_for(cluster, logger)
        return state["strategy"]

    def delete_upgrade():
        try:
            kubeutils.delete_custom_object(consts.PGUPGRADE_PLURAL, name, namespace)
        except ApiException as e:
            if e.status == 404:
                logger.info(f"pgupgrade {name} not found, nothing to delete")
                return False
            raise
        logger.info(f"deleted pgupgrade {name}")
        return True

    pipeline = Pipeline(f"delete cluster {name}", logger)
    pipeline.add("clear_autofail", lambda: AutoFailoverTask.clear(name, namespace, logger), fatal=False)
    pipeline.add("resolve_strategy", resolve_strategy)
    pipeline.add("delete_workloads", lambda: state["strategy"].delete_cluster(cluster, namespace, logger))
    pipeline.add("delete_upgrade", delete_upgrade, fatal=False)

    return pipeline.run()


def scale_base(replica: PgReplica, namespace: str, logger: Logger) -> PipelineResult:
    """
    Provisions storage for a pgreplica and has the cluster's strategy create
    its workload.

    The replica's data claim is created on every run that gets that far, an
    existing claim of the same name fails the run.
    """
    rspec = replica.parsed_spec
    state = {}

    def check_status():
        if rspec.status == consts.COMPLETED_STATUS:
            raise PipelineHalt(f"pgreplica {rspec.name} already has status {consts.COMPLETED_STATUS}, will not recreate")

    def load_cluster():
        state["cluster"] = PgCluster.read(namespace, replica.cluster_name)
        return state["cluster"]

    def replica_storage():
        state["pvc_name"] = create_pvc(rspec.replicaStorage, rspec.name,
                                       replica.cluster_name, namespace, logger)
        return state["pvc_name"]

    def aux_storage(suffix: str, enabled: str):
        cspec = state["cluster"].parsed_spec
        if not getattr(cspec, enabled):
            return None
        return create_pvc(cspec.primaryStorage, rspec.name + suffix,
                          cspec.name, namespace, logger)

    def record_storage():
        draft = replica.draft(namespace)
        draft.stage("/spec/replicastorage/name", state["pvc_name"])
        _commit(draft, logger)

    def resolve_strategy():
        state["strategy"] = _strategy_for(state["cluster"], logger)
        return state["strategy"]

    def replica_service():
        cspec = state["cluster"].parsed_spec
        service_name = cspec.name + consts.REPLICA_SERVICE_SUFFIX
        if kubeutils.get_service(service_name, namespace):
            return False
        logger.info(f"Creating replica service {service_name}")
        kubeutils.create_service(namespace, cluster_objects.prepare_replica_service(cspec))
        return True

    def add_workload():
        state["strategy"].scale(replica, namespace, state["pvc_name"], state["cluster"], logger)

    def record_status():
        draft = replica.draft(namespace)
        draft.stage("/spec/status", consts.COMPLETED_STATUS)
        _commit(draft, logger)

    pipeline = Pipeline(f"scale {replica.cluster_name} replica {rspec.name}", logger)
    pipeline.add("check_status", check_status)
    pipeline.add("load_cluster", load_cluster)
    pipeline.add("replica_storage", replica_storage)
    pipeline.add("archive_storage", lambda: aux_storage(consts.XLOG_PVC_SUFFIX, "archive"))
    pipeline.add("backrest_storage", lambda: aux_storage(consts.BACKREST_PVC_SUFFIX, "backrest"))
    pipeline.add("record_storage", record_storage, fatal=False)
    pipeline.add("resolve_strategy", resolve_strategy)
    pipeline.add("replica_service", replica_service)
    pipeline.add("add_workload", add_workload)
    pipeline.add("record_status", record_status, fatal=False)

    return pipeline.run()


def scale_down_base(replica: PgReplica, namespace: str, logger: Logger) -> PipelineResult:
    state = {}

    def load_cluster():
        state["cluster"] = PgCluster.read(namespace, replica.cluster_name)
        return state["cluster"]

    def resolve_strategy():
        state["strategy"] = _strategy_for(state["cluster"], logger)
        return state["strategy"]

    pipeline = Pipeline(f"scale down {replica.cluster_name} replica {replica.name}", logger)
    pipeline.add("load_cluster", load_cluster)
    pipeline.add("resolve_strategy", resolve_strategy)
    pipeline.add("delete_workload", lambda: state["strategy"].delete_replica(replica, namespace, logger))

    return pipeline.run()


def add_upgrade_base(upgrade: PgUpgrade, cluster: PgCluster, namespace: str,
                     logger: Logger) -> PipelineResult:
    """
    Runs a minor (rolling image update) or major (pg_upgrade Job) upgrade of
    the cluster and records the new image tag on it.

    A minor upgrade is complete when this returns. A major upgrade is
    completed by finalize_major_upgrade_base once the upgrade Job succeeded.
    """
    uspec = upgrade.parsed_spec
    state = {}

    def resolve_strategy():
        state["strategy"] = _strategy_for(cluster, logger)
        return state["strategy"]

    def upgrade_workloads():
        strategy = state["strategy"]
        if uspec.upgradeType == consts.UPGRADE_MINOR:
            strategy.minor_upgrade(cluster, upgrade, namespace, logger)
            draft = upgrade.draft(namespace)
            draft.stage("/spec/upgradestatus", consts.COMPLETED_STATUS)
            _commit(draft, logger)
        elif uspec.upgradeType == consts.UPGRADE_MAJOR:
            strategy.major_upgrade(cluster, upgrade, namespace, logger)
        else:
            raise InvalidUpgradeTypeError(uspec.upgradeType)
        return uspec.upgradeType

    def record_image_tag():
        logger.info(f"updating the image tag of {cluster.parsed_spec.name} to {uspec.ccpImageTag}")
        draft = cluster.draft(namespace)
        draft.stage("/spec/ccpimagetag", uspec.ccpImageTag)
        _commit(draft, logger)

    pipeline = Pipeline(f"{uspec.upgradeType or 'unknown'} upgrade {uspec.name}", logger)
    pipeline.add("resolve_strategy", resolve_strategy)
    pipeline.add("upgrade", upgrade_workloads)
    pipeline.add("record_image_tag", record_image_tag)

    return pipeline.run()


def finalize_major_upgrade_base(upgrade: PgUpgrade, cluster: PgCluster, namespace: str,
                                logger: Logger) -> PipelineResult:
    state = {}

    def resolve_strategy():
        state["strategy"] = _strategy_for(cluster, logger)
        return state["strategy"]

    def record_status():
        draft = upgrade.draft(namespace)
        draft.stage("/spec/upgradestatus", consts.COMPLETED_STATUS)
        _commit(draft, logger)

    pipeline = Pipeline(f"finalize major upgrade {upgrade.name}", logger)
    pipeline.add("resolve_strategy", resolve_strategy)
    pipeline.add("finalize", lambda: state["strategy"].major_upgrade_finalize(cluster, upgrade, namespace, logger))
    pipeline.add("record_status", record_status)

    return pipeline.run()


def failover_base(task: PgTask, namespace: str, logger: Logger) -> PipelineResult:
    """
    Promotes the replica named in the task's target parameter to primary.
    """
    state = {}

    def check_status():
        if task.parsed_spec.status == consts.COMPLETED_STATUS:
            raise PipelineHalt(f"pgtask {task.name} already has status {consts.COMPLETED_STATUS}")

    def load_cluster():
        state["cluster"] = PgCluster.read(namespace, task.cluster_name)
        return state["cluster"]

    def resolve_strategy():
        state["strategy"] = _strategy_for(state["cluster"], logger)
        return state["strategy"]

    def record_status():
        draft = task.draft(namespace)
        draft.stage("/spec/status", consts.COMPLETED_STATUS)
        _commit(draft, logger)

    pipeline = Pipeline(f"failover {task.cluster_name}", logger)
    pipeline.add("check_status", check_status)
    pipeline.add("load_cluster", load_cluster)
    pipeline.add("resolve_strategy", resolve_strategy)
    pipeline.add("failover", lambda: state["strategy"].failover(state["cluster"], task, namespace, logger))
    pipeline.add("record_status", record_status, fatal=False)

    return pipeline.run()

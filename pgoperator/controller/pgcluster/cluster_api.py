# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from typing import Optional, cast
from logging import Logger

from ..k8sobject import K8sInterfaceObject, ResourceDraft
from .. import consts, config, kubeutils, utils
from ..api_utils import dget_dict, dget_str, dget_str_or_int
from ..storage_api import PgStorageSpec, parse_storage_spec


class PgClusterSpec:
    def __init__(self, namespace: str, name: str, spec: dict) -> None:
        self.namespace = namespace
        self.load(name, spec)

    def load(self, name: str, spec: dict) -> None:
        self.name = dget_str(spec, "name", "spec", default_value=name) or name
        self.clusterName = dget_str(spec, "clustername", "spec", default_value=self.name) or self.name

        self.ccpImage = dget_str(spec, "ccpimage", "spec", default_value=config.POSTGRES_IMAGE) or config.POSTGRES_IMAGE
        self.ccpImageTag = dget_str(spec, "ccpimagetag", "spec", default_value=config.CCP_IMAGE_TAG) or config.CCP_IMAGE_TAG
        self.port = dget_str_or_int(spec, "port", "spec", default_value=config.DEFAULT_PORT) or config.DEFAULT_PORT
        self.database = dget_str(spec, "database", "spec", default_value=config.DEFAULT_DATABASE)
        self.user = dget_str(spec, "user", "spec", default_value=consts.USER_USERNAME)

        self.strategy = dget_str(spec, "strategy", "spec", default_value="")
        self.status = dget_str(spec, "status", "spec", default_value="")
        self.replicas = dget_str_or_int(spec, "replicas", "spec", default_value="")
        self.policies = dget_str(spec, "policies", "spec", default_value="")

        self.userLabels = dget_dict(spec, "userlabels", "spec", {})

        self.primaryStorage: PgStorageSpec = parse_storage_spec(spec, "PrimaryStorage", "spec")
        self.replicaStorage: PgStorageSpec = parse_storage_spec(spec, "ReplicaStorage", "spec")
        self.containerResources = dget_dict(spec, "ContainerResources", "spec", {})

        self.rootSecretName = dget_str(spec, "rootsecretname", "spec", default_value="")
        self.primarySecretName = dget_str(spec, "primarysecretname", "spec", default_value="")
        self.userSecretName = dget_str(spec, "usersecretname", "spec", default_value="")

        self.rootPassword = dget_str(spec, "rootpassword", "spec", default_value="")
        self.primaryPassword = dget_str(spec, "primarypassword", "spec", default_value="")
        self.password = dget_str(spec, "password", "spec", default_value="")
        self.secretFrom = dget_str(spec, "secretfrom", "spec", default_value="")

    def label_enabled(self, label: str) -> bool:
        return utils.is_true(self.userLabels.get(label, ""))

    @property
    def archive(self) -> bool:
        return self.label_enabled(consts.LABEL_ARCHIVE)

    @property
    def backrest(self) -> bool:
        return self.label_enabled(consts.LABEL_BACKREST)

    @property
    def pgpool(self) -> bool:
        return self.label_enabled(consts.LABEL_PGPOOL)

    @property
    def pgbouncer(self) -> bool:
        return self.label_enabled(consts.LABEL_PGBOUNCER)

    @property
    def image(self) -> str:
        return f"{config.CCP_IMAGE_PREFIX}/{self.ccpImage}:{self.ccpImageTag}"


class PgCluster(K8sInterfaceObject):
    def __init__(self, cluster: dict) -> None:
        super().__init__()

        self.obj: dict = cluster
        self._parsed_spec: Optional[PgClusterSpec] = None

    def __str__(self):
        return f"{self.namespace}/{self.name}"

    def __repr__(self):
        return f"<PgCluster {self.name}>"

    @classmethod
    def read(cls, ns: str, name: str) -> 'PgCluster':
        return PgCluster(kubeutils.get_custom_object(consts.PGCLUSTER_PLURAL, name, ns))

    @property
    def metadata(self) -> dict:
        return self.obj["metadata"]

    @property
    def spec(self) -> dict:
        return self.obj.get("spec") or {}

    @property
    def name(self) -> str:
        return self.metadata["name"]

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace", "")

    def self_ref(self, field_path: Optional[str] = None) -> dict:
        ref = {
            "apiVersion": consts.API_VERSION,
            "kind": consts.PGCLUSTER_KIND,
            "name": self.name,
            "namespace": self.namespace,
            "resourceVersion": self.metadata.get("resourceVersion"),
            "uid": self.metadata.get("uid")
        }
        if field_path:
            ref["fieldPath"] = field_path
        return ref

    @property
    def parsed_spec(self) -> PgClusterSpec:
        if not self._parsed_spec:
            self.parse_spec()
            assert self._parsed_spec

        return self._parsed_spec

    def parse_spec(self) -> None:
        self._parsed_spec = PgClusterSpec(self.namespace, self.name, self.spec)

    def draft(self, namespace: str) -> ResourceDraft:
        return ResourceDraft(consts.PGCLUSTER_PLURAL, self.parsed_spec.name, namespace, self.spec)

    def log_cluster_info(self, logger: Logger) -> None:
        spec = self.parsed_spec
        logger.info(f"PgCluster {self.namespace}/{self.name}")
        logger.info(f"\tStrategy: {spec.strategy or consts.DEFAULT_STRATEGY}")
        logger.info(f"\tImage: {spec.image}")
        logger.info(f"\tReplicas: {spec.replicas or 0}")
        logger.info(f"\tStorage: {spec.primaryStorage}")
        logger.info(f"\tUser labels: {spec.userLabels}")


class PgReplicaSpec:
    def __init__(self, namespace: str, name: str, spec: dict) -> None:
        self.namespace = namespace
        self.name = dget_str(spec, "name", "spec", default_value=name) or name
        self.clusterName = dget_str(spec, "clustername", "spec")
        self.status = dget_str(spec, "status", "spec", default_value="")
        self.replicaStorage: PgStorageSpec = parse_storage_spec(spec, "replicastorage", "spec")
        self.containerResources = dget_dict(spec, "containerresources", "spec", {})
        self.userLabels = dget_dict(spec, "userlabels", "spec", {})


class PgReplica(K8sInterfaceObject):
    def __init__(self, replica: dict) -> None:
        super().__init__()

        self.obj: dict = replica
        self._parsed_spec: Optional[PgReplicaSpec] = None

    def __str__(self):
        return f"{self.namespace}/{self.name}"

    def __repr__(self):
        return f"<PgReplica {self.name}>"

    @property
    def metadata(self) -> dict:
        return self.obj["metadata"]

    @property
    def spec(self) -> dict:
        return self.obj.get("spec") or {}

    @property
    def name(self) -> str:
        return self.metadata["name"]

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace", "")

    @property
    def parsed_spec(self) -> PgReplicaSpec:
        if not self._parsed_spec:
            self.parse_spec()
            assert self._parsed_spec

        return self._parsed_spec

    def parse_spec(self) -> None:
        self._parsed_spec = PgReplicaSpec(self.namespace, self.name, self.spec)

    @property
    def cluster_name(self) -> str:
        return self.parsed_spec.clusterName

    def self_ref(self, field_path: Optional[str] = None) -> dict:
        ref = {
            "apiVersion": consts.API_VERSION,
            "kind": consts.PGREPLICA_KIND,
            "name": self.name,
            "namespace": self.namespace,
            "uid": self.metadata.get("uid")
        }
        if field_path:
            ref["fieldPath"] = field_path
        return ref

    def draft(self, namespace: str) -> ResourceDraft:
        return ResourceDraft(consts.PGREPLICA_PLURAL, self.parsed_spec.name, namespace, self.spec)


def prepare_replica(cluster_spec: PgClusterSpec, replica_storage: PgStorageSpec) -> dict:
    """
    A new pgreplica object for the cluster, with a generated unique name.
    """
    name = f"{cluster_spec.name}-{utils.random_suffix(4)}"
    storage = {
        "name": replica_storage.name,
        "storageclass": replica_storage.storageClass,
        "accessmode": replica_storage.accessMode,
        "size": replica_storage.size,
        "storagetype": replica_storage.storageType,
        "supplementalgroups": replica_storage.supplementalGroups,
        "fsgroup": replica_storage.fsGroup,
    }
    return {
        "apiVersion": consts.API_VERSION,
        "kind": consts.PGREPLICA_KIND,
        "metadata": {
            "name": name,
            "labels": {
                consts.LABEL_PG_CLUSTER: cluster_spec.name,
                consts.LABEL_NAME: name,
            }
        },
        "spec": {
            "name": name,
            "clustername": cluster_spec.name,
            "replicastorage": storage,
            "containerresources": dict(cluster_spec.containerResources),
            "userlabels": dict(cluster_spec.userLabels),
        },
        "status": {
            "state": consts.REPLICA_STATE_CREATED,
            "message": consts.REPLICA_STATE_CREATED_MESSAGE,
        }
    }


class PgUpgradeSpec:
    def __init__(self, namespace: str, name: str, spec: dict) -> None:
        self.namespace = namespace
        self.name = dget_str(spec, "name", "spec", default_value=name) or name
        self.clusterName = dget_str(spec, "clustername", "spec", default_value=self.name) or self.name
        self.upgradeType = dget_str(spec, "upgradetype", "spec", default_value="")
        self.upgradeStatus = dget_str(spec, "upgradestatus", "spec", default_value="")
        self.ccpImageTag = dget_str(spec, "ccpimagetag", "spec", default_value="")
        self.oldVersion = dget_str(spec, "oldversion", "spec", default_value="")
        self.newVersion = dget_str(spec, "newversion", "spec", default_value="")
        self.oldPvcName = dget_str(spec, "oldpvcname", "spec", default_value="")
        self.newPvcName = dget_str(spec, "newpvcname", "spec", default_value="") or self.name + consts.UPGRADE_SUFFIX


class PgUpgrade(K8sInterfaceObject):
    def __init__(self, upgrade: dict) -> None:
        super().__init__()

        self.obj: dict = upgrade
        self._parsed_spec: Optional[PgUpgradeSpec] = None

    def __str__(self):
        return f"{self.namespace}/{self.name}"

    def __repr__(self):
        return f"<PgUpgrade {self.name}>"

    @classmethod
    def read(cls, ns: str, name: str) -> 'PgUpgrade':
        return PgUpgrade(kubeutils.get_custom_object(consts.PGUPGRADE_PLURAL, name, ns))

    @property
    def metadata(self) -> dict:
        return self.obj["metadata"]

    @property
    def spec(self) -> dict:
        return self.obj.get("spec") or {}

    @property
    def name(self) -> str:
        return self.metadata["name"]

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace", "")

    @property
    def parsed_spec(self) -> PgUpgradeSpec:
        if not self._parsed_spec:
            self.parse_spec()
            assert self._parsed_spec

        return self._parsed_spec

    def parse_spec(self) -> None:
        self._parsed_spec = PgUpgradeSpec(self.namespace, self.name, self.spec)

    def self_ref(self, field_path: Optional[str] = None) -> dict:
        ref = {
            "apiVersion": consts.API_VERSION,
            "kind": consts.PGUPGRADE_KIND,
            "name": self.name,
            "namespace": self.namespace,
            "uid": self.metadata.get("uid")
        }
        if field_path:
            ref["fieldPath"] = field_path
        return ref

    def draft(self, namespace: str) -> ResourceDraft:
        return ResourceDraft(consts.PGUPGRADE_PLURAL, self.parsed_spec.name, namespace, self.spec)


class PgTaskSpec:
    def __init__(self, namespace: str, name: str, spec: dict) -> None:
        self.namespace = namespace
        self.name = dget_str(spec, "name", "spec", default_value=name) or name
        self.taskType = dget_str(spec, "tasktype", "spec", default_value="")
        self.status = dget_str(spec, "status", "spec", default_value="")
        self.parameters = dget_dict(spec, "parameters", "spec", {})


class PgTask(K8sInterfaceObject):
    def __init__(self, task: dict) -> None:
        super().__init__()

        self.obj: dict = task
        self._parsed_spec: Optional[PgTaskSpec] = None

    def __repr__(self):
        return f"<PgTask {self.name}>"

    @property
    def metadata(self) -> dict:
        return self.obj["metadata"]

    @property
    def spec(self) -> dict:
        return self.obj.get("spec") or {}

    @property
    def name(self) -> str:
        return self.metadata["name"]

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace", "")

    @property
    def parsed_spec(self) -> PgTaskSpec:
        if not self._parsed_spec:
            self.parse_spec()
            assert self._parsed_spec

        return self._parsed_spec

    def parse_spec(self) -> None:
        self._parsed_spec = PgTaskSpec(self.namespace, self.name, self.spec)

    @property
    def cluster_name(self) -> str:
        return cast(dict, self.metadata.get("labels") or {}).get(consts.LABEL_PG_CLUSTER, "")

    def self_ref(self, field_path: Optional[str] = None) -> dict:
        ref = {
            "apiVersion": consts.API_VERSION,
            "kind": consts.PGTASK_KIND,
            "name": self.name,
            "namespace": self.namespace,
            "uid": self.metadata.get("uid")
        }
        if field_path:
            ref["fieldPath"] = field_path
        return ref

    def draft(self, namespace: str) -> ResourceDraft:
        return ResourceDraft(consts.PGTASK_PLURAL, self.parsed_spec.name, namespace, self.spec)

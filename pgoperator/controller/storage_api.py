# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from logging import Logger
from .api_utils import dget_dict, dget_str, ApiSpecError
from . import consts, kubeutils
import yaml


STORAGE_TYPES = ["", "emptydir", "existing", "create", "dynamic"]


class PgStorageSpec:
    name: str = ""
    storageClass: str = ""
    accessMode: str = ""
    size: str = ""
    storageType: str = ""
    supplementalGroups: str = ""
    fsGroup: str = ""
    matchLabels: str = ""

    def parse(self, spec: dict, prefix: str) -> None:
        self.name = dget_str(spec, "name", prefix, default_value="")
        self.storageClass = dget_str(spec, "storageclass", prefix, default_value="")
        self.accessMode = dget_str(spec, "accessmode", prefix, default_value="ReadWriteOnce")
        self.size = dget_str(spec, "size", prefix, default_value="")
        self.storageType = dget_str(spec, "storagetype", prefix, default_value="")
        self.supplementalGroups = str(spec.get("supplementalgroups") or "")
        self.fsGroup = str(spec.get("fsgroup") or "")
        self.matchLabels = dget_str(spec, "matchLabels", prefix, default_value="")

        if self.storageType not in STORAGE_TYPES:
            raise ApiSpecError(
                f"{prefix}.storagetype has invalid value '{self.storageType}' but must be one of {','.join(STORAGE_TYPES[1:])}")

    @property
    def provisioned(self) -> bool:
        """Whether claims for this storage are created by the operator"""
        return self.storageType in ("create", "dynamic")

    def __str__(self) -> str:
        return f"Object PgStorageSpec name={self.name} storageType={self.storageType} storageClass={self.storageClass} size={self.size}"


def parse_storage_spec(spec: dict, key: str, prefix: str) -> PgStorageSpec:
    storage = PgStorageSpec()
    storage.parse(dget_dict(spec, key, prefix, {}), f"{prefix}.{key}")
    return storage


def prepare_pvc(storage: PgStorageSpec, pvc_name: str, cluster_name: str) -> dict:
    tmpl = f"""
apiVersion: v1
kind: PersistentVolumeClaim
metadata:
  name: {pvc_name}
  labels:
    {consts.LABEL_PG_CLUSTER}: {cluster_name}
spec:
  accessModes:
  - {storage.accessMode}
  resources:
    requests:
      storage: {storage.size}
"""
    pvc = yaml.safe_load(tmpl)

    if storage.storageType == "dynamic":
        pvc["spec"]["storageClassName"] = storage.storageClass
    elif storage.matchLabels:
        # static provisioning, bind to a PV carrying the label
        key, _, value = storage.matchLabels.partition("=")
        pvc["spec"]["selector"] = {"matchLabels": {key: value}}

    return pvc


def create_pvc(storage: PgStorageSpec, pvc_name: str, cluster_name: str,
               namespace: str, logger: Logger) -> str:
    """
    Provisions the storage for pvc_name according to the storage type and
    returns the name of the claim to mount.

    emptydir: nothing is created, returns ""
    existing: nothing is created, returns the name of the existing claim
    create/dynamic: creates the claim, returns pvc_name

    An existing claim with the same name is an error (ApiException 409).
    """
    if storage.storageType in ("", "emptydir"):
        logger.debug(f"storage type is emptydir, no pvc created for {pvc_name}")
        return ""

    if storage.storageType == "existing":
        logger.debug(f"using existing pvc {storage.name} for {pvc_name}")
        return storage.name

    pvc = prepare_pvc(storage, pvc_name, cluster_name)
    logger.info(f"Creating pvc {namespace}/{pvc_name} size={storage.size} type={storage.storageType}")
    kubeutils.create_pvc(namespace, pvc)
    return pvc_name


def reuse_or_create_pvc(storage: PgStorageSpec, pvc_name: str, cluster_name: str,
                        namespace: str, logger: Logger) -> str:
    if kubeutils.get_pvc(pvc_name, namespace):
        logger.debug(f"pvc {pvc_name} already present from previous cluster with this same name, will not recreate")
        return pvc_name

    return create_pvc(storage, pvc_name, cluster_name, namespace, logger)

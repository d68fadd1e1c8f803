# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from importlib import metadata
from typing import TYPE_CHECKING
import os
import yaml

from .api_utils import ImagePullPolicy

if TYPE_CHECKING:
    from .storage_api import PgStorageSpec

debug = 0

_pull_policy = os.getenv("PGO_IMAGE_PULL_POLICY")
if _pull_policy:
    default_image_pull_policy = ImagePullPolicy[_pull_policy]
else:
    default_image_pull_policy = ImagePullPolicy.IfNotPresent


# Constants
OPERATOR_VERSION = "3.1.0"

# Namespace to watch, empty means all
WATCH_NAMESPACE = os.getenv("PGO_NAMESPACE", "")

CCP_IMAGE_PREFIX = os.getenv("PGO_CCP_IMAGE_PREFIX", "crunchydata").rstrip('/')
CCP_IMAGE_TAG = os.getenv("PGO_CCP_IMAGE_TAG", "centos7-10.4-1.8.3")

POSTGRES_IMAGE = "crunchy-postgres"
PGPOOL_IMAGE = "crunchy-pgpool"
PGBOUNCER_IMAGE = "crunchy-pgbouncer"
UPGRADE_IMAGE = "crunchy-upgrade"

SERVICE_TYPE = os.getenv("PGO_SERVICE_TYPE", "ClusterIP")
DEFAULT_PORT = "5432"
PGPOOL_PORT = "5432"
PGBOUNCER_PORT = "6432"

DEFAULT_DATABASE = "userdb"

PASSWORD_LENGTH = 10

# Names of entries in STORAGE used as operator wide defaults
REPLICA_STORAGE = "default"
BACKREST_STORAGE = "default"

STORAGE = {
    "default": {
        "accessmode": "ReadWriteOnce",
        "size": "1G",
        "storagetype": "dynamic",
        "storageclass": "standard",
    }
}


def log_config_banner(logger) -> None:
    from .kubeutils import k8s_version

    logger.info(f"KUBERNETES_VERSION ={k8s_version()}")
    logger.info(f"OPERATOR_VERSION   ={OPERATOR_VERSION}")
    logger.info(f"WATCH_NAMESPACE    ={WATCH_NAMESPACE or '<all>'}")
    logger.info(f"CCP_IMAGE_PREFIX   ={CCP_IMAGE_PREFIX}")
    logger.info(f"CCP_IMAGE_TAG      ={CCP_IMAGE_TAG}")
    logger.info(f"SERVICE_TYPE       ={SERVICE_TYPE}")
    logger.info(f"REPLICA_STORAGE    ={REPLICA_STORAGE}")
    logger.info(f"BACKREST_STORAGE   ={BACKREST_STORAGE}")
    for dist in metadata.distributions():
        logger.info(f"{dist.metadata['Name']:20} = {dist.version:10}")


def get_storage_spec(name: str) -> 'PgStorageSpec':
    from .storage_api import PgStorageSpec
    from .errors import ConfigurationError

    if name not in STORAGE:
        raise ConfigurationError(f"Storage configuration '{name}' not found")

    storage = PgStorageSpec()
    storage.parse(STORAGE[name], f"Storage.{name}")
    return storage


def load_config_file(path: str) -> None:
    """
    Loads the operator configuration file (pgo.yaml). Only the settings present
    in the file are changed.
    """
    global SERVICE_TYPE, CCP_IMAGE_PREFIX, CCP_IMAGE_TAG, DEFAULT_PORT
    global REPLICA_STORAGE, BACKREST_STORAGE, PASSWORD_LENGTH

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    cluster = data.get("Cluster", {})
    SERVICE_TYPE = cluster.get("ServiceType", SERVICE_TYPE)
    CCP_IMAGE_PREFIX = cluster.get("CCPImagePrefix", CCP_IMAGE_PREFIX).rstrip('/')
    CCP_IMAGE_TAG = cluster.get("CCPImageTag", CCP_IMAGE_TAG)
    DEFAULT_PORT = str(cluster.get("Port", DEFAULT_PORT))
    REPLICA_STORAGE = cluster.get("ReplicaStorage", REPLICA_STORAGE)
    BACKREST_STORAGE = cluster.get("BackrestStorage", BACKREST_STORAGE)
    PASSWORD_LENGTH = int(cluster.get("PasswordLength", PASSWORD_LENGTH))

    for name, storage in data.get("Storage", {}).items():
        STORAGE[name] = {k.lower(): v for k, v in storage.items()}


def config_from_env() -> None:
    global debug

    level = os.getenv("PGO_OPERATOR_DEBUG")
    if level:
        debug = int(level)

    path = os.getenv("PGO_CONFIG")
    if path:
        load_config_file(path)

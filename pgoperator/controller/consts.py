# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

GROUP = "cr.client-go.k8s.io"
VERSION = "v1"
API_VERSION = GROUP+"/"+VERSION

PGCLUSTER_KIND = "Pgcluster"
PGCLUSTER_PLURAL = "pgclusters"

PGREPLICA_KIND = "Pgreplica"
PGREPLICA_PLURAL = "pgreplicas"

PGUPGRADE_KIND = "Pgupgrade"
PGUPGRADE_PLURAL = "pgupgrades"

PGTASK_KIND = "Pgtask"
PGTASK_PLURAL = "pgtasks"

# Terminal value of spec.status / spec.upgradestatus
COMPLETED_STATUS = "completed"

REPLICA_STATE_CREATED = "created"
REPLICA_STATE_CREATED_MESSAGE = "Created, not processed yet"

DEFAULT_STRATEGY = "1"

ROOT_SECRET_SUFFIX = "-postgres-secret"
PRIMARY_SECRET_SUFFIX = "-primaryuser-secret"
USER_SECRET_SUFFIX = "-testuser-secret"

ROOT_USERNAME = "postgres"
PRIMARY_USERNAME = "primaryuser"
USER_USERNAME = "testuser"

REPLICA_SERVICE_SUFFIX = "-replica"
XLOG_PVC_SUFFIX = "-xlog"
BACKREST_PVC_SUFFIX = "-backrestrepo"
UPGRADE_SUFFIX = "-upgrade"
PGPOOL_SUFFIX = "-pgpool"
PGBOUNCER_SUFFIX = "-pgbouncer"

# Labels
LABEL_PG_CLUSTER = "pg-cluster"
LABEL_NAME = "name"
LABEL_SERVICE_NAME = "service-name"
LABEL_REPLICA = "replica"
LABEL_PRIMARY = "primary"
LABEL_PGUPGRADE = "pgupgrade"
LABEL_PGPOLICY = "pgpolicy"
LABEL_ARCHIVE = "archive"
LABEL_BACKREST = "pgo-backrest"
LABEL_PGPOOL = "crunchy-pgpool"
LABEL_PGBOUNCER = "crunchy-pgbouncer"
LABEL_AUTOFAIL = "autofail"

TASK_FAILOVER = "failover"

UPGRADE_MINOR = "minor"
UPGRADE_MAJOR = "major"

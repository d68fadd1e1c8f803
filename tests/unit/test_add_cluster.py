# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import pytest

from pgoperator.controller import config, consts, kubeutils
from pgoperator.controller.errors import ReplicaCountError, StrategyNotFoundError
from pgoperator.controller.pgcluster.cluster_api import PgCluster
from pgoperator.controller.pgcluster.cluster_base import add_cluster_base
from pgoperator.controller.pgcluster.secrets import prepare_secret

from conftest import NAMESPACE


def make_cluster(kube, body: dict) -> PgCluster:
    kube.add(consts.PGCLUSTER_PLURAL, NAMESPACE, body)
    return PgCluster(dict(body))


def stored_spec(kube) -> dict:
    return kube.get(consts.PGCLUSTER_PLURAL, "mycluster")["spec"]


def password(name: str) -> str:
    return kubeutils.get_secret_credentials(name, NAMESPACE)[1]


def test_add_cluster(kube, cluster_body, logger) -> None:
    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert result.ok, result
    assert kube.names("pvc") == ["mycluster"]
    assert kube.names("secret") == ["mycluster-postgres-secret", "mycluster-primaryuser-secret",
                                    "mycluster-testuser-secret"]
    assert kube.names("service") == ["mycluster"]
    assert kube.names("deployment") == ["mycluster"]

    deploy = kube.get("deployment", "mycluster")
    assert deploy["metadata"]["labels"][consts.LABEL_PRIMARY] == "true"
    container = deploy["spec"]["template"]["spec"]["containers"][0]
    assert container["image"] == f"{config.CCP_IMAGE_PREFIX}/crunchy-postgres:centos7-10.4-1.8.3"
    assert container["resources"] == {"requests": {"memory": "256Mi"}}
    assert deploy["spec"]["template"]["spec"]["volumes"] == [
        {"name": "pgdata", "persistentVolumeClaim": {"claimName": "mycluster"}}]

    spec = stored_spec(kube)
    assert spec["status"] == consts.COMPLETED_STATUS
    assert spec["PrimaryStorage"]["name"] == "mycluster"
    assert kube.names(consts.PGREPLICA_PLURAL) == []

    # read back as complete objects
    deployment = kubeutils.get_deployment("mycluster", NAMESPACE)
    assert deployment.spec.template.spec.containers[0].name == "database"
    assert kubeutils.get_service("mycluster", NAMESPACE).spec.ports


def test_completed_cluster_is_not_touched(kube, cluster_body, logger) -> None:
    cluster_body["spec"]["status"] = consts.COMPLETED_STATUS
    cluster = PgCluster(cluster_body)

    result = add_cluster_base(cluster, NAMESPACE, logger)

    assert result.halted
    assert kube.calls == []


def test_rerun_is_idempotent(kube, cluster_body, logger) -> None:
    cluster_body["spec"]["replicas"] = ""
    add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)
    passwords = [password(n) for n in kube.names("secret")]
    # as if the status patch had been lost
    stored = kube.get(consts.PGCLUSTER_PLURAL, "mycluster")
    del stored["spec"]["status"]
    calls = len(kube.calls)

    result = add_cluster_base(PgCluster(dict(stored)), NAMESPACE, logger)

    assert result.ok, result
    new_calls = [c[0] for c in kube.calls[calls:]]
    assert not [c for c in new_calls if c.startswith("create_")]
    assert [password(n) for n in kube.names("secret")] == passwords
    assert stored_spec(kube)["status"] == consts.COMPLETED_STATUS


def test_replicas_are_created(kube, cluster_body, logger) -> None:
    cluster_body["spec"]["replicas"] = "3"
    cluster_body["spec"]["userlabels"] = {"archive": "false", "team": "a"}

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert result.ok, result
    assert result.step("replicas").value == 3
    names = kube.names(consts.PGREPLICA_PLURAL)
    assert len(set(names)) == 3
    replica_storage = config.get_storage_spec(config.REPLICA_STORAGE)
    for name in names:
        assert name.startswith("mycluster-")
        suffix = name[len("mycluster-"):]
        assert len(suffix) == 4 and suffix.isalpha() and suffix.islower()

        replica = kube.get(consts.PGREPLICA_PLURAL, name)
        assert replica["metadata"]["labels"] == {consts.LABEL_PG_CLUSTER: "mycluster", consts.LABEL_NAME: name}
        assert replica["spec"]["clustername"] == "mycluster"
        assert replica["spec"]["containerresources"] == {"requestsmemory": "256Mi"}
        assert replica["spec"]["userlabels"] == {"archive": "false", "team": "a"}
        assert replica["spec"]["replicastorage"]["storagetype"] == replica_storage.storageType
        assert replica["status"] == {"state": consts.REPLICA_STATE_CREATED,
                                     "message": "Created, not processed yet"}


def test_integer_replicas(kube, cluster_body, logger) -> None:
    cluster_body["spec"]["replicas"] = 2

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert result.ok, result
    assert len(kube.names(consts.PGREPLICA_PLURAL)) == 2


def test_one_replica_failure_does_not_stop_the_others(kube, cluster_body, logger) -> None:
    cluster_body["spec"]["replicas"] = "3"
    attempts = []

    def first_fails(plural, name):
        attempts.append(name)
        return plural == consts.PGREPLICA_PLURAL and len(attempts) == 1

    kube.fail("create_namespaced_custom_object", when=first_fails)

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert not result.aborted
    assert not result.step("replicas").ok
    assert len(attempts) == 3
    assert len(kube.names(consts.PGREPLICA_PLURAL)) == 2


def test_invalid_replica_count(kube, cluster_body, logger) -> None:
    cluster_body["spec"]["replicas"] = "three"

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert not result.aborted
    assert isinstance(result.step("replicas").error, ReplicaCountError)
    assert kube.names("deployment") == ["mycluster"]
    assert stored_spec(kube)["status"] == consts.COMPLETED_STATUS
    assert kube.names(consts.PGREPLICA_PLURAL) == []


def test_password_applies_to_all_roles(kube, cluster_body, logger) -> None:
    cluster_body["spec"]["password"] = "X"
    cluster_body["spec"]["rootpassword"] = "notused"

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert result.ok, result
    for name in kube.names("secret"):
        assert password(name) == "X"


def test_secret_from(kube, cluster_body, logger) -> None:
    for suffix, user, pw in ((consts.ROOT_SECRET_SUFFIX, "postgres", "r"),
                             (consts.PRIMARY_SECRET_SUFFIX, "primaryuser", "p"),
                             (consts.USER_SECRET_SUFFIX, "testuser", "u")):
        kube.add("secret", NAMESPACE, prepare_secret("other", "other" + suffix, user, pw))
    cluster_body["spec"]["secretfrom"] = "other"

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert result.ok, result
    assert password("mycluster-postgres-secret") == "r"
    assert password("mycluster-primaryuser-secret") == "p"
    assert password("mycluster-testuser-secret") == "u"


def test_secret_from_overrides_password(kube, cluster_body, logger) -> None:
    for suffix, user, pw in ((consts.ROOT_SECRET_SUFFIX, "postgres", "r"),
                             (consts.PRIMARY_SECRET_SUFFIX, "primaryuser", "p"),
                             (consts.USER_SECRET_SUFFIX, "testuser", "u")):
        kube.add("secret", NAMESPACE, prepare_secret("other", "other" + suffix, user, pw))
    cluster_body["spec"]["secretfrom"] = "other"
    cluster_body["spec"]["password"] = "X"

    add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert password("mycluster-testuser-secret") == "u"


def test_secret_from_missing(kube, cluster_body, logger) -> None:
    # only two of the three exist
    kube.add("secret", NAMESPACE, prepare_secret("other", "other-postgres-secret", "postgres", "r"))
    kube.add("secret", NAMESPACE, prepare_secret("other", "other-primaryuser-secret", "primaryuser", "p"))
    cluster_body["spec"]["secretfrom"] = "other"

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert result.aborted
    assert result.failed_step.name == "secret_from"
    assert kube.count("create_namespaced_secret") == 0
    assert kube.names("deployment") == []
    assert "status" not in stored_spec(kube)


def test_unknown_strategy(kube, cluster_body, logger) -> None:
    cluster_body["spec"]["strategy"] = "zz"

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert result.aborted
    assert isinstance(result.error, StrategyNotFoundError)
    # what ran before stays, nothing after
    assert kube.names("pvc") == ["mycluster"]
    assert len(kube.names("secret")) == 3
    assert kube.names("deployment") == []
    assert kube.names("service") == []
    assert "status" not in stored_spec(kube)


def test_empty_strategy_defaults(kube, cluster_body, logger) -> None:
    cluster_body["spec"]["strategy"] = ""

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert result.ok, result
    assert kube.names("deployment") == ["mycluster"]


def test_secret_failure_aborts(kube, cluster_body, logger) -> None:
    kube.fail("create_namespaced_secret", when=lambda name: name == "mycluster-testuser-secret")

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert result.aborted
    assert result.failed_step.name == "secrets"
    assert kube.names("deployment") == []


def test_storage_failure_aborts(kube, cluster_body, logger) -> None:
    kube.fail("create_namespaced_persistent_volume_claim")

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert result.aborted
    assert result.failed_step.name == "primary_storage"
    assert kube.count("create_namespaced_secret") == 0


def test_status_patch_failure_continues(kube, cluster_body, logger) -> None:
    cluster_body["spec"]["replicas"] = "1"
    kube.fail("patch_namespaced_custom_object",
              when=lambda plural, name, body: body[0]["path"] == "/spec/status")

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert not result.aborted
    assert not result.step("record_status").ok
    # the storage name patch is still sent
    assert stored_spec(kube)["PrimaryStorage"]["name"] == "mycluster"
    assert len(kube.names(consts.PGREPLICA_PLURAL)) == 1


def test_archive_and_backrest_storage(kube, cluster_body, logger) -> None:
    cluster_body["spec"]["userlabels"] = {consts.LABEL_ARCHIVE: "true", consts.LABEL_BACKREST: "true"}

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert result.ok, result
    assert kube.names("pvc") == ["mycluster", "mycluster-backrestrepo", "mycluster-xlog"]
    volumes = kube.get("deployment", "mycluster")["spec"]["template"]["spec"]["volumes"]
    assert [v["persistentVolumeClaim"]["claimName"] for v in volumes] == [
        "mycluster", "mycluster-xlog", "mycluster-backrestrepo"]


def test_existing_primary_pvc_is_reused(kube, cluster_body, logger) -> None:
    kube.add("pvc", NAMESPACE, {"metadata": {"name": "mycluster"}})

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert result.ok, result
    assert kube.count("create_namespaced_persistent_volume_claim") == 0


def test_emptydir_storage(kube, cluster_body, logger) -> None:
    cluster_body["spec"]["PrimaryStorage"] = {"storagetype": "emptydir"}

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert result.ok, result
    assert kube.names("pvc") == []
    volumes = kube.get("deployment", "mycluster")["spec"]["template"]["spec"]["volumes"]
    assert volumes == [{"name": "pgdata", "emptyDir": {}}]
    assert stored_spec(kube)["PrimaryStorage"]["name"] == ""


@pytest.mark.parametrize("label,suffix", [(consts.LABEL_PGPOOL, consts.PGPOOL_SUFFIX),
                                          (consts.LABEL_PGBOUNCER, consts.PGBOUNCER_SUFFIX)])
def test_pooler(kube, cluster_body, logger, label, suffix) -> None:
    cluster_body["spec"]["userlabels"] = {label: "true"}

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert result.ok, result
    assert "mycluster" + suffix in kube.names("deployment")
    assert "mycluster" + suffix in kube.names("service")


def test_pooler_failure_continues(kube, cluster_body, logger) -> None:
    cluster_body["spec"]["userlabels"] = {consts.LABEL_PGPOOL: "true"}
    cluster_body["spec"]["replicas"] = "1"
    kube.fail("create_namespaced_deployment", when=lambda name: name == "mycluster-pgpool")

    result = add_cluster_base(make_cluster(kube, cluster_body), NAMESPACE, logger)

    assert not result.aborted
    assert not result.step("pgpool").ok
    assert len(kube.names(consts.PGREPLICA_PLURAL)) == 1

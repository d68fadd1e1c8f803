# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import copy
import logging
from typing import Callable, Dict, List, Optional, Tuple

import kubernetes
import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

# kubeutils loads the kube config when imported, there is none here
kubernetes.config.load_kube_config = lambda *args, **kwargs: None

from pgoperator.controller import consts, kubeutils  # noqa: E402


NAMESPACE = "pgo"


def _matches(labels: Optional[dict], selector: str) -> bool:
    labels = labels or {}
    for term in filter(None, selector.split(",")):
        k, _, v = term.partition("=")
        if labels.get(k) != v:
            return False
    return True


def _merge(target: dict, patch: dict) -> None:
    for k, v in patch.items():
        if v is None:
            target.pop(k, None)
        elif isinstance(v, dict) and isinstance(target.get(k), dict):
            _merge(target[k], v)
        else:
            target[k] = copy.deepcopy(v)


_api_client = client.ApiClient()


def _model(body: dict, klass: str):
    # complete models the way the client builds them from a server response
    return _api_client._ApiClient__deserialize(copy.deepcopy(body), klass)


class FakeKubeApi:
    """
    In-memory stand-in for the CoreV1Api, AppsV1Api, BatchV1Api and
    CustomObjectsApi methods the operator uses. Objects are stored as the
    dicts they were created with, reads return kubernetes client models like
    the real API does.
    """

    def __init__(self) -> None:
        self.objects: Dict[Tuple[str, str, str], dict] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self.events: List[dict] = []
        self._failures: List[Tuple[str, Callable[..., bool], int]] = []

    # helpers for tests

    def fail(self, method: str, status: int = 500,
             when: Callable[..., bool] = lambda *args: True) -> None:
        self._failures.append((method, when, status))

    def add(self, kind: str, namespace: str, body: dict) -> dict:
        body = copy.deepcopy(body)
        body.setdefault("metadata", {})["namespace"] = namespace
        self.objects[(kind, namespace, body["metadata"]["name"])] = body
        return body

    def get(self, kind: str, name: str, namespace: str = NAMESPACE) -> Optional[dict]:
        return self.objects.get((kind, namespace, name))

    def names(self, kind: str, namespace: str = NAMESPACE) -> List[str]:
        return sorted(n for (k, ns, n) in self.objects if k == kind and ns == namespace)

    def count(self, method: str) -> int:
        return len([c for c in self.calls if c[0] == method])

    def writes(self) -> List[str]:
        return [c[0] for c in self.calls
                if c[0].split("_")[0] in ("create", "patch", "delete")]

    # internals

    def _call(self, method: str, *args) -> None:
        self.calls.append((method, args))
        for name, when, status in self._failures:
            if name == method and when(*args):
                raise ApiException(status=status, reason=f"injected {method} failure")

    def _read(self, kind: str, name: str, namespace: str) -> dict:
        obj = self.objects.get((kind, namespace, name))
        if obj is None:
            raise ApiException(status=404, reason="Not Found")
        return obj

    def _create(self, kind: str, namespace: str, body: dict) -> dict:
        if (kind, namespace, body["metadata"]["name"]) in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        return self.add(kind, namespace, body)

    def _delete(self, kind: str, name: str, namespace: str) -> None:
        self._read(kind, name, namespace)
        del self.objects[(kind, namespace, name)]

    # CustomObjectsApi

    def get_namespaced_custom_object(self, group, version, namespace, plural, name):
        self._call("get_namespaced_custom_object", plural, name)
        return copy.deepcopy(self._read(plural, name, namespace))

    def list_namespaced_custom_object(self, group, version, namespace, plural, label_selector=""):
        self._call("list_namespaced_custom_object", plural, label_selector)
        return {"items": [copy.deepcopy(o) for (k, ns, _), o in self.objects.items()
                          if k == plural and ns == namespace
                          and _matches(o["metadata"].get("labels"), label_selector)]}

    def create_namespaced_custom_object(self, group, version, namespace, plural, body):
        self._call("create_namespaced_custom_object", plural, body["metadata"]["name"])
        return copy.deepcopy(self._create(plural, namespace, body))

    def delete_namespaced_custom_object(self, group, version, namespace, plural, name):
        self._call("delete_namespaced_custom_object", plural, name)
        self._delete(plural, name, namespace)

    def patch_namespaced_custom_object(self, group, version, namespace, plural, name, body):
        self._call("patch_namespaced_custom_object", plural, name, body)
        obj = self._read(plural, name, namespace)
        for op in body:
            parts = op["path"].strip("/").split("/")
            node = obj
            for part in parts[:-1]:
                if not isinstance(node.get(part), dict):
                    # JSON patch add needs the parent to exist
                    raise ApiException(status=422, reason=f"missing parent of {op['path']}")
                node = node[part]
            node[parts[-1]] = copy.deepcopy(op["value"])
        return copy.deepcopy(obj)

    # CoreV1Api

    def read_namespaced_persistent_volume_claim(self, name, namespace):
        self._call("read_namespaced_persistent_volume_claim", name)
        return _model(self._read("pvc", name, namespace), "V1PersistentVolumeClaim")

    def create_namespaced_persistent_volume_claim(self, namespace, body):
        self._call("create_namespaced_persistent_volume_claim", body["metadata"]["name"])
        self._create("pvc", namespace, body)

    def read_namespaced_secret(self, name, namespace):
        self._call("read_namespaced_secret", name)
        return _model(self._read("secret", name, namespace), "V1Secret")

    def create_namespaced_secret(self, namespace, body):
        self._call("create_namespaced_secret", body["metadata"]["name"])
        self._create("secret", namespace, body)

    def delete_namespaced_secret(self, name, namespace):
        self._call("delete_namespaced_secret", name)
        self._delete("secret", name, namespace)

    def read_namespaced_service(self, name, namespace):
        self._call("read_namespaced_service", name)
        return _model(self._read("service", name, namespace), "V1Service")

    def create_namespaced_service(self, namespace, body):
        self._call("create_namespaced_service", body["metadata"]["name"])
        self._create("service", namespace, body)

    def delete_namespaced_service(self, name, namespace):
        self._call("delete_namespaced_service", name)
        self._delete("service", name, namespace)

    def create_namespaced_event(self, namespace, body):
        self.events.append(body)

    # AppsV1Api

    def read_namespaced_deployment(self, name, namespace):
        self._call("read_namespaced_deployment", name)
        return _model(self._read("deployment", name, namespace), "V1Deployment")

    def list_namespaced_deployment(self, namespace, label_selector=""):
        self._call("list_namespaced_deployment", label_selector)
        items = [o for (k, ns, _), o in sorted(self.objects.items())
                 if k == "deployment" and ns == namespace
                 and _matches(o["metadata"].get("labels"), label_selector)]
        return _model({"items": items}, "V1DeploymentList")

    def create_namespaced_deployment(self, namespace, body):
        self._call("create_namespaced_deployment", body["metadata"]["name"])
        self._create("deployment", namespace, body)

    def patch_namespaced_deployment(self, name, namespace, body):
        self._call("patch_namespaced_deployment", name, body)
        deploy = self._read("deployment", name, namespace)
        _merge(deploy, {"metadata": body.get("metadata", {})})
        # containers are merged by name
        containers = body.get("spec", {}).get("template", {}).get("spec", {}).get("containers", [])
        for c in containers:
            for existing in deploy["spec"]["template"]["spec"]["containers"]:
                if existing["name"] == c["name"] and "image" in c:
                    existing["image"] = c["image"]

    def delete_namespaced_deployment(self, name, namespace):
        self._call("delete_namespaced_deployment", name)
        self._delete("deployment", name, namespace)

    # BatchV1Api

    def read_namespaced_job(self, name, namespace):
        self._call("read_namespaced_job", name)
        return _model(self._read("job", name, namespace), "V1Job")

    def create_namespaced_job(self, namespace, body):
        self._call("create_namespaced_job", body["metadata"]["name"])
        self._create("job", namespace, body)

    def delete_namespaced_job(self, name, namespace, propagation_policy=None):
        self._call("delete_namespaced_job", name)
        self._delete("job", name, namespace)


@pytest.fixture
def kube(monkeypatch) -> FakeKubeApi:
    fake = FakeKubeApi()
    for api in ("api_core", "api_apps", "api_batch", "api_customobj"):
        monkeypatch.setattr(kubeutils, api, fake)
    return fake


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("pgoperator-test")


@pytest.fixture
def cluster_body() -> dict:
    return {
        "apiVersion": consts.API_VERSION,
        "kind": consts.PGCLUSTER_KIND,
        "metadata": {
            "name": "mycluster",
            "namespace": NAMESPACE,
            "labels": {consts.LABEL_PG_CLUSTER: "mycluster"},
        },
        "spec": {
            "name": "mycluster",
            "clustername": "mycluster",
            "ccpimage": "crunchy-postgres",
            "ccpimagetag": "centos7-10.4-1.8.3",
            "port": "5432",
            "database": "userdb",
            "user": "testuser",
            "strategy": "1",
            "replicas": "0",
            "userlabels": {},
            "PrimaryStorage": {
                "name": "mycluster",
                "accessmode": "ReadWriteOnce",
                "size": "1G",
                "storagetype": "create",
            },
            "ReplicaStorage": {
                "accessmode": "ReadWriteOnce",
                "size": "1G",
                "storagetype": "create",
            },
            "ContainerResources": {"requestsmemory": "256Mi"},
        },
    }


@pytest.fixture
def stored_cluster(kube, cluster_body):
    """Stores cluster_body in the fake API and returns a factory for the wrapper"""
    from pgoperator.controller.pgcluster.cluster_api import PgCluster

    kube.add(consts.PGCLUSTER_PLURAL, NAMESPACE, cluster_body)
    return lambda: PgCluster(copy.deepcopy(kube.get(consts.PGCLUSTER_PLURAL, "mycluster")))

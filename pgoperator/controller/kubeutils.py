# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from typing import Callable, Optional, Tuple, TypeVar, cast
from kubernetes.client.rest import ApiException
from kubernetes import client, config

from . import consts
from .utils import b64decode

try:
    # outside k8s
    config.load_kube_config()
except config.config_exception.ConfigException:
    try:
        # inside a k8s pod
        config.load_incluster_config()
    except config.config_exception.ConfigException:
        raise Exception(
            "Could not configure kubernetes python client")

api_core: client.CoreV1Api = client.CoreV1Api()
api_customobj: client.CustomObjectsApi = client.CustomObjectsApi()
api_apps: client.AppsV1Api = client.AppsV1Api()
api_batch: client.BatchV1Api = client.BatchV1Api()
api_client: client.ApiClient = client.ApiClient()

T = TypeVar("T")


def catch_404(f: Callable[..., T]) -> Optional[T]:
    try:
        return f()
    except ApiException as e:
        if e.status == 404:
            return None
        raise


def k8s_version() -> str:
    api_instance = client.VersionApi(api_client)

    api_response = api_instance.get_code()
    return f"{api_response.major}.{api_response.minor}"


# Custom resources of this operator. All of them live in consts.GROUP/VERSION


def get_custom_object(plural: str, name: str, namespace: str) -> dict:
    return cast(dict, api_customobj.get_namespaced_custom_object(
        consts.GROUP, consts.VERSION, namespace, plural, name))


def list_custom_objects(plural: str, namespace: str, label_selector: str = "") -> list:
    ret = cast(dict, api_customobj.list_namespaced_custom_object(
        consts.GROUP, consts.VERSION, namespace, plural,
        label_selector=label_selector))
    return ret.get("items", [])


def create_custom_object(plural: str, namespace: str, body: dict) -> dict:
    return cast(dict, api_customobj.create_namespaced_custom_object(
        consts.GROUP, consts.VERSION, namespace, plural, body))


def delete_custom_object(plural: str, name: str, namespace: str) -> None:
    api_customobj.delete_namespaced_custom_object(
        consts.GROUP, consts.VERSION, namespace, plural, name)


def patch_custom_object_field(plural: str, name: str, namespace: str,
                              path: str, value) -> dict:
    """
    Set a single field of a custom object. `path` is a JSON pointer like
    /spec/status. Sent as a one-operation JSON patch, so nothing else in the
    stored object is touched.
    """
    patch = [{"op": "add", "path": path, "value": value}]
    return cast(dict, api_customobj.patch_namespaced_custom_object(
        consts.GROUP, consts.VERSION, namespace, plural, name, body=patch))


# Core objects


def get_pvc(name: str, namespace: str) -> Optional[client.V1PersistentVolumeClaim]:
    return catch_404(lambda: api_core.read_namespaced_persistent_volume_claim(name, namespace))


def create_pvc(namespace: str, body: dict) -> None:
    api_core.create_namespaced_persistent_volume_claim(namespace=namespace, body=body)


def get_secret(name: str, namespace: str) -> Optional[client.V1Secret]:
    return catch_404(lambda: api_core.read_namespaced_secret(name, namespace))


def create_secret(namespace: str, body: dict) -> None:
    api_core.create_namespaced_secret(namespace=namespace, body=body)


def delete_secret(name: str, namespace: str) -> None:
    api_core.delete_namespaced_secret(name, namespace)


def get_secret_credentials(name: str, namespace: str) -> Tuple[str, str]:
    """
    Returns the (username, password) stored in a credentials secret. Raises
    ApiException if the secret does not exist, KeyError if it doesn't hold
    credentials.
    """
    secret = cast(client.V1Secret, api_core.read_namespaced_secret(name, namespace))
    data = secret.data or {}
    return b64decode(data["username"]), b64decode(data["password"])


def get_service(name: str, namespace: str) -> Optional[client.V1Service]:
    return catch_404(lambda: api_core.read_namespaced_service(name, namespace))


def create_service(namespace: str, body: dict) -> None:
    api_core.create_namespaced_service(namespace=namespace, body=body)


def delete_service(name: str, namespace: str) -> None:
    api_core.delete_namespaced_service(name, namespace)


# Workloads


def get_deployment(name: str, namespace: str) -> Optional[client.V1Deployment]:
    return catch_404(lambda: api_apps.read_namespaced_deployment(name, namespace))


def list_deployments(namespace: str, label_selector: str) -> list:
    ret = cast(client.V1DeploymentList, api_apps.list_namespaced_deployment(
        namespace, label_selector=label_selector))
    return ret.items


def create_deployment(namespace: str, body: dict) -> None:
    api_apps.create_namespaced_deployment(namespace=namespace, body=body)


def patch_deployment(name: str, namespace: str, patch: dict) -> None:
    api_apps.patch_namespaced_deployment(name=name, namespace=namespace, body=patch)


def delete_deployment(name: str, namespace: str) -> None:
    api_apps.delete_namespaced_deployment(name, namespace)


def get_job(name: str, namespace: str) -> Optional[client.V1Job]:
    return catch_404(lambda: api_batch.read_namespaced_job(name, namespace))


def create_job(namespace: str, body: dict) -> None:
    api_batch.create_namespaced_job(namespace=namespace, body=body)


def delete_job(name: str, namespace: str) -> None:
    # Foreground, so that the pods of the job go away too
    api_batch.delete_namespaced_job(name, namespace, propagation_policy="Foreground")

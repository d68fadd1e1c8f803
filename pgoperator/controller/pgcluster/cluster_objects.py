# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from typing import Optional
import yaml

from .. import config, consts
from .cluster_api import PgClusterSpec, PgReplicaSpec, PgUpgradeSpec


def _volume(name: str, pvc_name: str) -> dict:
    if pvc_name:
        return {"name": name, "persistentVolumeClaim": {"claimName": pvc_name}}
    return {"name": name, "emptyDir": {}}


def _secret_env(env_name: str, secret_name: str, key: str) -> dict:
    return {
        "name": env_name,
        "valueFrom": {"secretKeyRef": {"name": secret_name, "key": key}}
    }


def prepare_container_resources(resources: dict) -> dict:
    """
    ContainerResources of a pgcluster/pgreplica to a container resources spec.
    Unset values are left out.
    """
    ret = {}
    requests = {k: resources[f"requests{k}"] for k in ("memory", "cpu") if resources.get(f"requests{k}")}
    limits = {k: resources[f"limits{k}"] for k in ("memory", "cpu") if resources.get(f"limits{k}")}
    if requests:
        ret["requests"] = requests
    if limits:
        ret["limits"] = limits
    return ret


def _security_context(supplemental_groups: str, fs_group: str) -> dict:
    ret = {}
    if supplemental_groups:
        ret["supplementalGroups"] = [int(g) for g in supplemental_groups.split(",") if g.strip()]
    if fs_group:
        ret["fsGroup"] = int(fs_group)
    return ret


def prepare_service(name: str, cluster_name: str, port: str, service_type: str) -> dict:
    tmpl = f"""
apiVersion: v1
kind: Service
metadata:
  name: {name}
  labels:
    {consts.LABEL_PG_CLUSTER}: {cluster_name}
    {consts.LABEL_NAME}: {name}
spec:
  ports:
  - name: postgres
    port: {port}
    protocol: TCP
    targetPort: {port}
  selector:
    {consts.LABEL_SERVICE_NAME}: {name}
  type: {service_type}
"""
    return yaml.safe_load(tmpl)


def prepare_primary_service(spec: PgClusterSpec) -> dict:
    return prepare_service(spec.name, spec.name, spec.port, config.SERVICE_TYPE)


def prepare_replica_service(spec: PgClusterSpec) -> dict:
    name = spec.name + consts.REPLICA_SERVICE_SUFFIX
    return prepare_service(name, spec.name, spec.port, config.SERVICE_TYPE)


def _postgres_deployment(name: str, spec: PgClusterSpec, *, service_name: str,
                         pg_mode: str, image_tag: str, pvc_name: str,
                         resources: dict, supplemental_groups: str, fs_group: str,
                         extra_labels: dict, primary_host: str = "") -> dict:
    tmpl = f"""
apiVersion: apps/v1
kind: Deployment
metadata:
  name: {name}
  labels:
    {consts.LABEL_PG_CLUSTER}: {spec.name}
    {consts.LABEL_NAME}: {name}
spec:
  replicas: 1
  selector:
    matchLabels:
      {consts.LABEL_NAME}: {name}
  template:
    metadata:
      labels:
        {consts.LABEL_PG_CLUSTER}: {spec.name}
        {consts.LABEL_NAME}: {name}
        {consts.LABEL_SERVICE_NAME}: {service_name}
    spec:
      containers:
      - name: database
        image: {config.CCP_IMAGE_PREFIX}/{spec.ccpImage}:{image_tag}
        imagePullPolicy: {config.default_image_pull_policy.value}
        ports:
        - name: postgres
          containerPort: {spec.port}
          protocol: TCP
        env:
        - name: PG_MODE
          value: {pg_mode}
        - name: PG_PRIMARY_PORT
          value: "{spec.port}"
        - name: PG_PRIMARY_HOST
          value: "{primary_host}"
        - name: PG_DATABASE
          value: {spec.database}
        - name: ARCHIVE_MODE
          value: "{'on' if spec.archive else 'off'}"
        - name: ARCHIVE_TIMEOUT
          value: "60"
        volumeMounts:
        - name: pgdata
          mountPath: /pgdata
"""
    deploy = yaml.safe_load(tmpl)
    meta_labels = deploy["metadata"]["labels"]
    pod_labels = deploy["spec"]["template"]["metadata"]["labels"]
    for k, v in extra_labels.items():
        meta_labels[k] = v
        pod_labels[k] = v

    pod_spec = deploy["spec"]["template"]["spec"]
    container = pod_spec["containers"][0]

    root_secret = spec.rootSecretName or spec.name + consts.ROOT_SECRET_SUFFIX
    primary_secret = spec.primarySecretName or spec.name + consts.PRIMARY_SECRET_SUFFIX
    user_secret = spec.userSecretName or spec.name + consts.USER_SECRET_SUFFIX
    container["env"] += [
        _secret_env("PG_ROOT_PASSWORD", root_secret, "password"),
        _secret_env("PG_PRIMARY_USER", primary_secret, "username"),
        _secret_env("PG_PRIMARY_PASSWORD", primary_secret, "password"),
        _secret_env("PG_USER", user_secret, "username"),
        _secret_env("PG_PASSWORD", user_secret, "password"),
    ]

    container_resources = prepare_container_resources(resources)
    if container_resources:
        container["resources"] = container_resources

    volumes = [_volume("pgdata", pvc_name)]
    if spec.archive:
        volumes.append(_volume("pgwal", name + consts.XLOG_PVC_SUFFIX))
        container["volumeMounts"].append({"name": "pgwal", "mountPath": "/pgwal"})
    if spec.backrest:
        volumes.append(_volume("backrestrepo", name + consts.BACKREST_PVC_SUFFIX))
        container["volumeMounts"].append({"name": "backrestrepo", "mountPath": "/backrestrepo"})
    pod_spec["volumes"] = volumes

    security_context = _security_context(supplemental_groups, fs_group)
    if security_context:
        pod_spec["securityContext"] = security_context

    return deploy


def prepare_primary_deployment(spec: PgClusterSpec, pvc_name: str,
                               image_tag: Optional[str] = None) -> dict:
    return _postgres_deployment(spec.name, spec,
                                service_name=spec.name,
                                pg_mode="primary",
                                image_tag=image_tag or spec.ccpImageTag,
                                pvc_name=pvc_name,
                                resources=spec.containerResources,
                                supplemental_groups=spec.primaryStorage.supplementalGroups,
                                fs_group=spec.primaryStorage.fsGroup,
                                extra_labels={consts.LABEL_PRIMARY: "true"})


def prepare_replica_deployment(replica: PgReplicaSpec, spec: PgClusterSpec, pvc_name: str) -> dict:
    return _postgres_deployment(replica.name, spec,
                                service_name=spec.name + consts.REPLICA_SERVICE_SUFFIX,
                                pg_mode="replica",
                                image_tag=spec.ccpImageTag,
                                pvc_name=pvc_name,
                                resources=replica.containerResources or spec.containerResources,
                                supplemental_groups=replica.replicaStorage.supplementalGroups,
                                fs_group=replica.replicaStorage.fsGroup,
                                extra_labels={consts.LABEL_REPLICA: "true"},
                                primary_host=spec.name)


def prepare_image_patch(spec: PgClusterSpec, image_tag: str) -> dict:
    return {
        "spec": {
            "template": {
                "spec": {
                    "containers": [
                        {
                            "name": "database",
                            "image": f"{config.CCP_IMAGE_PREFIX}/{spec.ccpImage}:{image_tag}"
                        }
                    ]
                }
            }
        }
    }


def prepare_upgrade_job(spec: PgClusterSpec, upgrade: PgUpgradeSpec, old_pvc_name: str) -> dict:
    name = spec.name + consts.UPGRADE_SUFFIX
    tmpl = f"""
apiVersion: batch/v1
kind: Job
metadata:
  name: {name}
  labels:
    {consts.LABEL_PG_CLUSTER}: {spec.name}
    {consts.LABEL_PGUPGRADE}: "true"
spec:
  backoffLimit: 0
  template:
    metadata:
      labels:
        {consts.LABEL_PG_CLUSTER}: {spec.name}
        {consts.LABEL_PGUPGRADE}: "true"
    spec:
      restartPolicy: Never
      containers:
      - name: upgrade
        image: {config.CCP_IMAGE_PREFIX}/{config.UPGRADE_IMAGE}:{upgrade.ccpImageTag}
        imagePullPolicy: {config.default_image_pull_policy.value}
        env:
        - name: OLD_DATABASE_NAME
          value: {spec.name}
        - name: NEW_DATABASE_NAME
          value: {spec.name}
        - name: OLD_VERSION
          value: "{upgrade.oldVersion}"
        - name: NEW_VERSION
          value: "{upgrade.newVersion}"
        volumeMounts:
        - name: pgolddata
          mountPath: /pgolddata
        - name: pgnewdata
          mountPath: /pgnewdata
      volumes:
      - name: pgolddata
        persistentVolumeClaim:
          claimName: {old_pvc_name}
      - name: pgnewdata
        persistentVolumeClaim:
          claimName: {upgrade.newPvcName}
"""
    job = yaml.safe_load(tmpl)

    security_context = _security_context(spec.primaryStorage.supplementalGroups,
                                          spec.primaryStorage.fsGroup)
    if security_context:
        job["spec"]["template"]["spec"]["securityContext"] = security_context

    return job

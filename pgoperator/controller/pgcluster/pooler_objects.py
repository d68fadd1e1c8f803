# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from logging import Logger
import yaml

from .. import config, consts, kubeutils, utils
from ..kubeutils import ApiException
from .cluster_api import PgClusterSpec
from .cluster_objects import prepare_service


# name suffix, image, port
POOLERS = {
    consts.LABEL_PGPOOL: (consts.PGPOOL_SUFFIX, config.PGPOOL_IMAGE, config.PGPOOL_PORT),
    consts.LABEL_PGBOUNCER: (consts.PGBOUNCER_SUFFIX, config.PGBOUNCER_IMAGE, config.PGBOUNCER_PORT),
}


def pooler_name(spec: PgClusterSpec, pooler: str) -> str:
    return spec.name + POOLERS[pooler][0]


def pooler_secret_name(spec: PgClusterSpec, pooler: str) -> str:
    return pooler_name(spec, pooler) + "-secret"


def prepare_pooler_secret(spec: PgClusterSpec, pooler: str, username: str, password: str) -> dict:
    # The pooler authenticates against the backend with the application user
    name = pooler_secret_name(spec, pooler)
    tmpl = f"""
apiVersion: v1
kind: Secret
metadata:
  name: {name}
  labels:
    {consts.LABEL_PG_CLUSTER}: {spec.name}
data:
  username: {utils.b64encode(username)}
  password: {utils.b64encode(password)}
  users.txt: {utils.b64encode(f'"{username}" "{password}"')}
"""
    return yaml.safe_load(tmpl)


def prepare_pooler_deployment(spec: PgClusterSpec, pooler: str) -> dict:
    name = pooler_name(spec, pooler)
    _, image, port = POOLERS[pooler]
    tmpl = f"""
apiVersion: apps/v1
kind: Deployment
metadata:
  name: {name}
  labels:
    {consts.LABEL_PG_CLUSTER}: {spec.name}
    {consts.LABEL_NAME}: {name}
    {pooler}: "true"
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
        {consts.LABEL_SERVICE_NAME}: {name}
        {pooler}: "true"
    spec:
      containers:
      - name: {pooler}
        image: {config.CCP_IMAGE_PREFIX}/{image}:{spec.ccpImageTag}
        imagePullPolicy: {config.default_image_pull_policy.value}
        ports:
        - containerPort: {port}
          protocol: TCP
        env:
        - name: PG_PRIMARY_SERVICE_NAME
          value: {spec.name}
        - name: PG_REPLICA_SERVICE_NAME
          value: {spec.name}{consts.REPLICA_SERVICE_SUFFIX}
        - name: PG_PRIMARY_PORT
          value: "{spec.port}"
        volumeMounts:
        - name: pooler-conf
          mountPath: /pgconf
          readOnly: true
      volumes:
      - name: pooler-conf
        secret:
          secretName: {pooler_secret_name(spec, pooler)}
"""
    return yaml.safe_load(tmpl)


def add_pooler(spec: PgClusterSpec, pooler: str, namespace: str,
               username: str, password: str, logger: Logger,
               create_service: bool = True) -> None:
    """
    Creates the Secret, Deployment and (optionally) Service of a connection
    pooler add-on. Objects that already exist are left alone.
    """
    name = pooler_name(spec, pooler)

    secret_name = pooler_secret_name(spec, pooler)
    if not kubeutils.get_secret(secret_name, namespace):
        logger.info(f"Creating {pooler} secret {secret_name}")
        kubeutils.create_secret(namespace, prepare_pooler_secret(spec, pooler, username, password))

    if not kubeutils.get_deployment(name, namespace):
        logger.info(f"Creating {pooler} deployment {name}")
        kubeutils.create_deployment(namespace, prepare_pooler_deployment(spec, pooler))

    if create_service and not kubeutils.get_service(name, namespace):
        logger.info(f"Creating {pooler} service {name}")
        _, _, port = POOLERS[pooler]
        kubeutils.create_service(namespace, prepare_service(name, spec.name, port, config.SERVICE_TYPE))


def delete_pooler(spec: PgClusterSpec, pooler: str, namespace: str, logger: Logger) -> None:
    name = pooler_name(spec, pooler)
    secret_name = pooler_secret_name(spec, pooler)
    for what, obj_name, delete in (("deployment", name, kubeutils.delete_deployment),
                                   ("service", name, kubeutils.delete_service),
                                   ("secret", secret_name, kubeutils.delete_secret)):
        try:
            delete(obj_name, namespace)
            logger.info(f"Deleted {pooler} {what} {obj_name}")
        except ApiException as e:
            if e.status != 404:
                raise

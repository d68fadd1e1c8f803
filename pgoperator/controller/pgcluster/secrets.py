# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from logging import Logger
from typing import NamedTuple
import yaml

from .. import config, consts, kubeutils, utils
from ..errors import SecretProvisioningError
from ..k8sobject import ResourceDraft
from .cluster_api import PgClusterSpec


class DatabaseCredentials(NamedTuple):
    root_password: str
    primary_password: str
    user_password: str


# role: (username, secret name suffix, spec field with the user supplied password, spec field with the secret name)
ROLES = {
    "root": (consts.ROOT_USERNAME, consts.ROOT_SECRET_SUFFIX, "rootPassword", "rootsecretname"),
    "primary": (consts.PRIMARY_USERNAME, consts.PRIMARY_SECRET_SUFFIX, "primaryPassword", "primarysecretname"),
    "user": (consts.USER_USERNAME, consts.USER_SECRET_SUFFIX, "password", "usersecretname"),
}


def prepare_secret(cluster_name: str, secret_name: str, username: str, password: str) -> dict:
    tmpl = f"""
apiVersion: v1
kind: Secret
metadata:
  name: {secret_name}
  labels:
    {consts.LABEL_PG_CLUSTER}: {cluster_name}
data:
  username: {utils.b64encode(username)}
  password: {utils.b64encode(password)}
"""
    return yaml.safe_load(tmpl)


def _provision_role(spec: PgClusterSpec, role: str, namespace: str, logger: Logger) -> str:
    username, suffix, password_field, _ = ROLES[role]
    secret_name = spec.name + suffix

    if kubeutils.get_secret(secret_name, namespace):
        # Created by an earlier run for this cluster, keep what is stored
        logger.info(f"secret {secret_name} already exists, reusing it")
        _, password = kubeutils.get_secret_credentials(secret_name, namespace)
        return password

    password = getattr(spec, password_field)
    if password:
        logger.debug(f"using user specified password for secret {secret_name}")
    else:
        password = utils.generate_password(config.PASSWORD_LENGTH)

    kubeutils.create_secret(namespace, prepare_secret(spec.name, secret_name, username, password))
    logger.info(f"created secret {secret_name}")
    return password


def provision_secrets(spec: PgClusterSpec, draft: ResourceDraft, namespace: str,
                      logger: Logger) -> DatabaseCredentials:
    """
    Creates the root, primary and user credential secrets of a cluster and
    records their names on the cluster object.

    The password of each role is, in order of priority, the one already
    stored in an existing secret of the same name, the one supplied in the
    cluster spec, or a newly generated one.

    Roles are handled independently: a failure for one role is logged and the
    other roles are still processed. If anything failed a
    SecretProvisioningError is raised at the end, carrying the passwords that
    were resolved.
    """
    passwords = {}
    errors = []

    for role, (_, suffix, _, name_field) in ROLES.items():
        secret_name = spec.name + suffix
        passwords[role] = ""
        try:
            passwords[role] = _provision_role(spec, role, namespace, logger)
        except Exception as exc:
            logger.error(f"error creating secret {secret_name}: {exc}")
            errors.append(exc)
            continue

        draft.stage(f"/spec/{name_field}", secret_name)
        for _, exc in draft.commit(logger):
            logger.error(f"error recording secret name {secret_name} on {spec.name}: {exc}")
            errors.append(exc)

    credentials = DatabaseCredentials(passwords["root"], passwords["primary"], passwords["user"])

    if errors:
        raise SecretProvisioningError(errors, credentials)

    return credentials

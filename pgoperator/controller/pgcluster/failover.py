# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from logging import Logger

from .. import consts, kubeutils
from ..kubeutils import ApiException


class AutoFailoverTask:
    """
    The automatic failover pgtask of a cluster, named <cluster>-autofail.
    """

    @staticmethod
    def task_name(cluster_name: str) -> str:
        return f"{cluster_name}-{consts.LABEL_AUTOFAIL}"

    @classmethod
    def clear(cls, cluster_name: str, namespace: str, logger: Logger) -> bool:
        """
        Deletes the pending autofailover task of the cluster. Returns False if
        there was none.
        """
        name = cls.task_name(cluster_name)
        try:
            kubeutils.delete_custom_object(consts.PGTASK_PLURAL, name, namespace)
        except ApiException as e:
            if e.status == 404:
                logger.info(f"autofail task {name} not found, nothing to clear")
                return False
            raise

        logger.info(f"cleared autofail task {name}")
        return True

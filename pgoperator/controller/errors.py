# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from typing import List, Optional
import kopf


class ConfigurationError(kopf.PermanentError):
    """
    Errors caused by the resource or operator configuration. Retrying the same
    resource can't succeed, so these are never retried.
    """
    pass


class StrategyNotFoundError(ConfigurationError):
    def __init__(self, strategy_id: str):
        super().__init__(f"Invalid strategy '{strategy_id}' requested")
        self.strategy_id = strategy_id


class InvalidUpgradeTypeError(ConfigurationError):
    def __init__(self, upgrade_type: str):
        super().__init__(f"Invalid upgrade type '{upgrade_type}' requested, must be one of minor,major")
        self.upgrade_type = upgrade_type


class ReplicaCountError(ConfigurationError):
    pass


class WorkloadNotFoundError(Exception):
    pass


class SecretProvisioningError(Exception):
    """
    One or more of the cluster credential secrets could not be created or
    recorded. The passwords resolved so far are kept in `credentials`.
    """
    def __init__(self, errors: List[Exception], credentials: Optional[tuple] = None):
        super().__init__("; ".join(str(e) for e in errors))
        self.errors = errors
        self.credentials = credentials

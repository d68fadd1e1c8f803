# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/

from logging import Logger
from typing import Any, List, NamedTuple, Optional, Tuple

import copy
import datetime
from . import kubeutils

g_component = None
g_host = None


def post_event(namespace: str, object_ref: dict, type: str, action: str,
               reason: str, message: str) -> None:
    if len(message) > 1024:
        message = message[:1024]

    body = {
        # What action was taken/failed regarding to the regarding object.
        'action': action,

        'eventTime': datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None).isoformat()+"Z",

        'involvedObject': object_ref,

        'message': message,
        'metadata': {
            'namespace': namespace,
            'generateName': 'pgoperator-evt-',
        },

        # This should be a short, machine understandable string that gives the
        # reason for the transition into the object's current status.
        'reason': reason,

        'reportingComponent': f'crunchydata.com/pgoperator-{g_component}',
        'reportingInstance': f'{g_host}',

        'source': {
            'component': g_component,
            'host': g_host
        },

        'type': type
    }
    kubeutils.api_core.create_namespaced_event(namespace, body)


class PatchOp(NamedTuple):
    path: str
    value: Any


class ResourceDraft:
    """
    Local copy of a custom object's spec plus the ordered list of single field
    patches that bring the stored object in line with it.

    stage() only changes the local copy. Nothing is persisted until commit(),
    which sends the staged operations one by one, in the order they were
    staged. `persisted` lists what made it to the API server.
    """

    def __init__(self, plural: str, name: str, namespace: str, spec: dict) -> None:
        self.plural = plural
        self.name = name
        self.namespace = namespace
        self.spec = copy.deepcopy(spec)
        self.pending: List[PatchOp] = []
        self.persisted: List[PatchOp] = []

    def get(self, path: str, default=None):
        node: Any = {"spec": self.spec}
        for part in path.strip("/").split("/"):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def stage(self, path: str, value) -> None:
        """
        A JSON patch add fails if the parent of the target is missing, so in
        that case the first missing parent is staged as a whole object.
        """
        parts = path.strip("/").split("/")
        assert parts[0] == "spec", f"only spec fields can be staged, got {path}"
        node = self.spec
        missing = 0
        for i, part in enumerate(parts[1:-1], 1):
            if not isinstance(node.get(part), dict):
                node[part] = {}
                if not missing:
                    missing = i
            node = node[part]
        node[parts[-1]] = value

        if missing:
            op_path = "/" + "/".join(parts[:missing + 1])
            self.pending.append(PatchOp(op_path, copy.deepcopy(self.get(op_path))))
        else:
            self.pending.append(PatchOp(path, value))

    def commit(self, logger: Logger, stop_on_error: bool = True) -> List[Tuple[PatchOp, Exception]]:
        """
        Sends the pending patches. Returns the failed operations with their
        errors. With stop_on_error the operations after the first failure stay
        pending, otherwise all are attempted and every failure is returned.
        A failed operation is not retried by a later commit.
        """
        failed = []
        while self.pending:
            op = self.pending.pop(0)
            try:
                kubeutils.patch_custom_object_field(self.plural, self.name,
                                                    self.namespace, op.path, op.value)
            except Exception as exc:
                logger.error(f"error patching {self.plural}/{self.name} {op.path}: {exc}")
                failed.append((op, exc))
                if stop_on_error:
                    break
                continue
            self.persisted.append(op)
        return failed


class K8sInterfaceObject:
    """
    Base class for objects meant to interface with Kubernetes.
    """

    def __init__(self) -> None:
        pass

    @property
    def name(self) -> str:
        raise NotImplementedError()

    @property
    def namespace(self) -> str:
        raise NotImplementedError()

    def self_ref(self, field: Optional[str] = None) -> dict:
        raise NotImplementedError()

    # ## Event Posting ##
    # Explicit events should only be used for high-level messages. Debugging or
    # low-level messages should go through the logging system.
    def info(self, *, action: str, reason: str, message: str,
             field: Optional[str] = None) -> None:
        post_event(self.namespace, self.self_ref(field), type="Normal",
                   action=action, reason=reason, message=message)

    def warn(self, *, action: str, reason: str, message: str,
             field: Optional[str] = None) -> None:
        post_event(self.namespace, self.self_ref(field), type="Warning",
                   action=action, reason=reason, message=message)

    def error(self, *, action: str, reason: str, message: str,
              field: Optional[str] = None) -> None:
        post_event(self.namespace, self.self_ref(field), type="Error",
                   action=action, reason=reason, message=message)

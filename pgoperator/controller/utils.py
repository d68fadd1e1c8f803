# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import datetime
import os
import string
import random
import base64
from importlib import metadata

_random = random.SystemRandom()


def b64decode(s: str) -> str:
    return base64.b64decode(s).decode("utf8")


def b64encode(s: str) -> str:
    return base64.b64encode(bytes(s, "utf8")).decode("ascii")


def generate_password(length: int) -> str:
    return "".join(_random.choice(string.ascii_letters+string.digits) for i in range(length))


def random_suffix(length: int = 4) -> str:
    # used for generated object names, so lowercase only
    return "".join(_random.choice(string.ascii_lowercase) for i in range(length))


def is_true(value) -> bool:
    # user labels are strings, "true" enables a feature
    return str(value).lower() == "true"


def label_selector(labels: dict) -> str:
    return ",".join(f"{k}={v}" for k, v in labels.items())


def log_banner(path: str, logger) -> None:
    from . import config

    kopf_version = metadata.version('kopf')
    ts = datetime.datetime.fromtimestamp(os.stat(path).st_mtime).isoformat()

    path = os.path.basename(path)
    logger.info(
        f"PostgreSQL Operator/{path}={config.OPERATOR_VERSION} timestamp={ts} kopf={kopf_version} uid={os.getuid()}")

"""
Secret lookup for deployment-provided values.
"""

import os
from pathlib import Path

SECRETS_DIR = Path("/run/secrets")


def read_secret(name: str, default: str = "") -> str:
    """
    Read a secret by name.

    Lookup order:
    1. environment variable ``NAME``
    2. file pointed to by ``NAME_FILE``
    3. ``/run/secrets/name`` (lowercase, docker/k8s style)

    Returns the stripped value, or ``default`` when nothing is set.
    """
    value = os.environ.get(name)
    if value:
        return value.strip()

    file_path = os.environ.get(f"{name}_FILE")
    if file_path and os.path.isfile(file_path):
        with open(file_path, "r") as f:
            return f.read().strip()

    secret_file = SECRETS_DIR / name.lower()
    if secret_file.is_file():
        return secret_file.read_text().strip()

    return default

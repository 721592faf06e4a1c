"""Resolution of secret references used in connection settings.

A configured database secret may be a literal or a reference:

  - "aws-secret://name"          -> AWS Secrets Manager
  - "aws-secret://name#key"      -> AWS Secrets Manager, JSON key
  - "gcp-secret://name"          -> GCP Secret Manager, latest version
  - "gcp-secret://projects/..."  -> GCP Secret Manager, full resource name
  - "env://NAME"                 -> another environment variable
"""

from __future__ import annotations

import json
import logging
import os
from typing import Optional

from scripts.dbdirectory.errors import ConfigurationError

logger = logging.getLogger("dbdirectory.secrets")

_AWS_PREFIX = "aws-secret://"
_GCP_PREFIX = "gcp-secret://"
_ENV_PREFIX = "env://"


def resolve_secret(value: Optional[str]) -> Optional[str]:
    """Resolve ``value`` to plaintext; ``None`` and literals pass through."""
    if not value:
        return value
    if value.startswith(_AWS_PREFIX):
        return _resolve_aws_secret(value[len(_AWS_PREFIX):])
    if value.startswith(_GCP_PREFIX):
        return _resolve_gcp_secret(value[len(_GCP_PREFIX):])
    if value.startswith(_ENV_PREFIX):
        name = value[len(_ENV_PREFIX):]
        if name not in os.environ:
            raise ConfigurationError(f"Secret reference points to unset variable {name}")
        return os.environ[name]
    return value


def _resolve_aws_secret(ref: str) -> str:
    import boto3

    secret_name, _, json_key = ref.partition("#")
    client = boto3.client(
        "secretsmanager", region_name=os.environ.get("AWS_REGION", "us-east-1")
    )
    logger.debug("Fetching database secret %s from AWS Secrets Manager", secret_name)
    secret_string = client.get_secret_value(SecretId=secret_name)["SecretString"]

    if json_key:
        try:
            return str(json.loads(secret_string)[json_key])
        except (ValueError, KeyError) as exc:
            raise ConfigurationError(
                f"Secret {secret_name} has no JSON key {json_key!r}"
            ) from exc
    return secret_string


def _resolve_gcp_secret(ref: str) -> str:
    from google.cloud import secretmanager

    if ref.startswith("projects/"):
        name = ref
    else:
        project = os.environ.get("GCP_PROJECT_ID") or _gcp_project_from_metadata()
        name = f"projects/{project}/secrets/{ref}/versions/latest"

    logger.debug("Fetching database secret %s from GCP Secret Manager", name)
    client = secretmanager.SecretManagerServiceClient()
    response = client.access_secret_version(request={"name": name})
    return response.payload.data.decode("UTF-8")


def _gcp_project_from_metadata() -> str:
    import requests

    try:
        resp = requests.get(
            "http://metadata.google.internal/computeMetadata/v1/project/project-id",
            headers={"Metadata-Flavor": "Google"},
            timeout=2,
        )
        resp.raise_for_status()
        return resp.text
    except requests.RequestException as exc:
        raise ConfigurationError(
            "Cannot determine GCP project ID. Set GCP_PROJECT_ID env var."
        ) from exc

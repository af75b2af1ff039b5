"""Secret reference resolution for tokens and the database password.

Any configuration value may be written as a reference instead of a literal:

  - "aws-secret://name"          -> AWS Secrets Manager, whole SecretString
  - "aws-secret://name#key"      -> AWS Secrets Manager, one key of a JSON secret
  - "gcp-secret://name"          -> GCP Secret Manager, latest version
  - "gcp-secret://projects/..."  -> GCP Secret Manager, fully qualified name

Anything else is returned unchanged, which is the normal case for local runs.
"""

from __future__ import annotations

import json
import logging
import os

import requests

logger = logging.getLogger("portfolio_sync.secrets")

_AWS_PREFIX = "aws-secret://"
_GCP_PREFIX = "gcp-secret://"
_GCP_METADATA_PROJECT_URL = (
    "http://metadata.google.internal/computeMetadata/v1/project/project-id"
)


def resolve_secret(value: str) -> str:
    """Resolve a secret reference to its plaintext value."""
    if value.startswith(_AWS_PREFIX):
        return _resolve_aws_secret(value[len(_AWS_PREFIX):])
    if value.startswith(_GCP_PREFIX):
        return _resolve_gcp_secret(value[len(_GCP_PREFIX):])
    return value


def _resolve_aws_secret(ref: str) -> str:
    import boto3

    secret_name, _, json_key = ref.partition("#")
    client = boto3.client(
        "secretsmanager", region_name=os.environ.get("AWS_REGION", "us-east-1")
    )
    secret_string = client.get_secret_value(SecretId=secret_name)["SecretString"]
    logger.debug("Resolved AWS secret %s", secret_name)

    if json_key:
        return str(json.loads(secret_string)[json_key])
    return secret_string


def _resolve_gcp_secret(ref: str) -> str:
    from google.cloud import secretmanager

    if ref.startswith("projects/"):
        name = ref
    else:
        project = os.environ.get("GCP_PROJECT_ID", "") or _gcp_project_from_metadata()
        name = f"projects/{project}/secrets/{ref}/versions/latest"

    client = secretmanager.SecretManagerServiceClient()
    response = client.access_secret_version(request={"name": name})
    logger.debug("Resolved GCP secret %s", name)
    return response.payload.data.decode("UTF-8")


def _gcp_project_from_metadata() -> str:
    """Ask the metadata server for the project id (Cloud Run / GCE only)."""
    try:
        resp = requests.get(
            _GCP_METADATA_PROJECT_URL,
            headers={"Metadata-Flavor": "Google"},
            timeout=2,
        )
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise RuntimeError(
            "Cannot determine GCP project ID. Set GCP_PROJECT_ID env var."
        ) from exc
    return resp.text


def resolve_database_url() -> str:
    """Build the DSN from DATABASE_URL, or from the PG_* variables."""
    url = os.environ.get("DATABASE_URL", "")
    if url:
        return resolve_secret(url)

    host = os.environ.get("PG_HOST", "localhost")
    port = os.environ.get("PG_PORT", "5432")
    user = os.environ.get("PG_USER", "portfolio")
    password = resolve_secret(os.environ.get("PG_PASSWORD", "localdev-change-me"))
    database = os.environ.get("PG_DATABASE", "portfolio")

    return f"postgresql://{user}:{password}@{host}:{port}/{database}"

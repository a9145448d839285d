"""
config.py  –  Deployment constants

Every endpoint, environment variable name and tuning knob used by the
deployer lives here so the rest of the package never hard-codes them.
"""

import os
import pathlib

# ---------------------------------------------------------------------------
# Fabric REST API
# ---------------------------------------------------------------------------
FABRIC_BASE   = "https://api.fabric.microsoft.com/v1"
FABRIC_SCOPE  = "https://api.fabric.microsoft.com/.default"
AUTHORITY     = "login.microsoftonline.com"

# Azure CLI well-known public client.  Used for browser and device-code sign in
# when no application of our own is registered.
PUBLIC_CLIENT_ID = "04b07795-8ddb-461a-bbee-02f9e1bf7b46"

SEMANTIC_MODEL_TYPE = "SemanticModel"

LIST_TIMEOUT   = 60
UPDATE_TIMEOUT = 120
POLL_TIMEOUT   = 30

# ---------------------------------------------------------------------------
# Environment variables
# ---------------------------------------------------------------------------
ENV_WORKSPACE_URL  = "TMDL_WORKSPACE_URL"
ENV_CLIENT_ID      = "TMDL_CLIENT_ID"
ENV_CLIENT_SECRET  = "TMDL_CLIENT_SECRET"
ENV_TENANT_ID      = "TMDL_TENANT_ID"
ENV_LEGACY_CONFIG  = "TMDL_AUTH_CONFIG"   # single JSON blob, camelCase keys
ENV_HOME_OVERRIDE  = "TMDL_DEPLOY_HOME"

# Presence of any of these (non-empty) means we are running unattended.
CI_ENV_VARS = (
    "CI",
    "GITHUB_ACTIONS",
    "TF_BUILD",
    "GITLAB_CI",
    "JENKINS_URL",
    "BUILDKITE",
    "CIRCLECI",
    "TRAVIS",
    "TEAMCITY_VERSION",
    "BITBUCKET_BUILD_NUMBER",
    "CODEBUILD_BUILD_ID",
)

# ---------------------------------------------------------------------------
# Local caches
# ---------------------------------------------------------------------------
CACHE_DIR_NAME      = ".tmdl-deploy"
AUTH_CACHE_FILE     = "auth.json"
LOGICAL_MAP_FILE    = "logical-id-map.json"
MSAL_CACHE_NAME     = "tmdl-deploy"


def cache_root() -> pathlib.Path:
    """Directory holding the auth and identity-map caches."""
    override = os.environ.get(ENV_HOME_OVERRIDE, "").strip()
    if override:
        return pathlib.Path(override).expanduser()
    return pathlib.Path.home() / CACHE_DIR_NAME


# ---------------------------------------------------------------------------
# Token lifetimes
# ---------------------------------------------------------------------------
TOKEN_REFRESH_BUFFER_SECONDS = 5 * 60
CLI_TOKEN_LIFETIME_SECONDS   = 30 * 60   # used when az does not report expiry

# ---------------------------------------------------------------------------
# Long-running operation poll settings
# ---------------------------------------------------------------------------
POLL_MAX            = 60   # attempts before giving up
POLL_INTERVAL       = 2    # seconds between polls without a Retry-After hint
POLL_MAX_RETRY_WAIT = 10   # cap applied to server Retry-After values

# ---------------------------------------------------------------------------
# Definition payload
# ---------------------------------------------------------------------------
DEFINITION_EXTENSIONS = {".tmdl", ".pbism", ".json", ".xml", ".txt", ".md"}

# Git-integration metadata; read for identity, never uploaded.
EXCLUDED_FILES = {".platform"}

BINARY_SNIFF_BYTES = 8192

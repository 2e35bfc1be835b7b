import os
from pathlib import Path

# ==========================================
# 1. Instance layout
# ==========================================
SMOKELAB_HOME_ENV = "SMOKELAB_HOME"
DEFAULT_HOME = Path.home() / ".smokelab"
INSTANCES_DIR_NAME = "instances"

HOSTS_STATE_FILE = "hosts.json"
KIT_DIR_NAME = "kit"
KIT_BIN_DIR_NAME = "bin"
KIT_CFG_DIR_NAME = "cfg"
PKI_DIR_NAME = "pki"
PKI_COMPLETE_MARKER = ".complete"
SSH_KEY_FILE_NAME = "ssh_private_key.pem"
TERRAFORM_WORK_DIR_NAME = "terraform"
TFVARS_FILE_NAME = "generated.tfvars.json"

# Variable paths bound at run time
INSTANCE_DIR_VAR = "smokelab.instance_dir"
ZITI_VERSION_VAR = "ziti_version"
ZITI_ROOT_VAR = "ziti_root"
SSH_USERNAME_VAR = "credentials.ssh.username"
SSH_KEY_PATH_VAR = "credentials.ssh.key_path"
SSH_KEY_NAME_VAR = "credentials.ssh.key_name"
EDGE_USERNAME_VAR = "credentials.edge.username"
EDGE_PASSWORD_VAR = "credentials.edge.password"
AWS_ACCESS_KEY_VAR = "credentials.aws.access_key"
AWS_SECRET_KEY_VAR = "credentials.aws.secret_key"

# ==========================================
# 2. Execution defaults
# ==========================================
DEFAULT_CONCURRENCY = 15
DEFAULT_READY_TIMEOUT_SECONDS = 60
READY_POLL_INTERVAL_SECONDS = 5
TERRAFORM_PUBLIC_IPS_OUTPUT = "host_public_ips"
EDGE_API_PORT = 1280

SSH_OPTS = [
    "-o", "StrictHostKeyChecking=no",
    "-o", "UserKnownHostsFile=/dev/null",
    "-o", "ConnectTimeout=10",
    "-o", "LogLevel=ERROR",
]

# ==========================================
# 3. Environment inputs
# ==========================================
ENV_DEBUG = "SMOKELAB_DEBUG"
ENV_ZITI_VERSION = "ZITI_VERSION"
ENV_ZITI_ROOT = "ZITI_ROOT"
ENV_CONSUL_ENDPOINT = "CONSUL_ENDPOINT"
ENV_ELASTIC_ENDPOINT = "ELASTIC_ENDPOINT"
ENV_ELASTIC_USERNAME = "ELASTIC_USERNAME"
ENV_ELASTIC_PASSWORD = "ELASTIC_PASSWORD"
ENV_BUILD_NUMBER = "BUILD_NUMBER"
ENV_CONSUL_ENCRYPTION_KEY = "CONSUL_ENCRYPTION_KEY"
ENV_CONSUL_AGENT_CERT = "CONSUL_AGENT_CERT"


def smokelab_home() -> Path:
    """Root directory for instance state (``$SMOKELAB_HOME`` or ``~/.smokelab``)."""
    override = os.environ.get(SMOKELAB_HOME_ENV)
    return Path(override) if override else DEFAULT_HOME


def default_instance_dir(model_id: str) -> Path:
    return smokelab_home() / INSTANCES_DIR_NAME / model_id

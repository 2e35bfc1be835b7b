"""
AWS bootstrap extensions.

AwsCredentialsLoader binds the credentials boto3 resolves (environment,
shared profile, instance role) into the model so stages and Terraform use
the same identity. AwsKeyManager makes sure the instance has an SSH keypair
on local disk; the infrastructure stage imports its public half into EC2.

Usage:
    model.add_bootstrap_extension(AwsCredentialsLoader())
    model.add_bootstrap_extension(AwsKeyManager())
"""

import logging
from pathlib import Path
from typing import Any, Optional, TYPE_CHECKING

import boto3

from smokelab import constants as CONSTANTS
from smokelab.core.exceptions import ConfigurationError
from smokelab.core.state import InstanceState
from smokelab.remote import run_local

if TYPE_CHECKING:
    from smokelab.core.model import Model

logger = logging.getLogger(__name__)


def create_ec2_client(model: "Model", region: str) -> Any:
    """
    Create an EC2 client for ``region`` with the credentials bound at bootstrap.

    Falls back to boto3's default credential chain when nothing is bound.
    """
    config = {"region_name": region}
    access_key = model.get_variable(CONSTANTS.AWS_ACCESS_KEY_VAR)
    secret_key = model.get_variable(CONSTANTS.AWS_SECRET_KEY_VAR)
    if access_key and secret_key:
        config["aws_access_key_id"] = access_key
        config["aws_secret_access_key"] = secret_key
    return boto3.client("ec2", **config)


def key_pair_name(model: "Model") -> str:
    return model.get_variable(CONSTANTS.SSH_KEY_NAME_VAR) or f"smokelab-{model.id}"


class AwsCredentialsLoader:
    """Resolve AWS credentials through a boto3 session."""

    name = "aws_credentials"

    def __init__(self, profile_name: Optional[str] = None):
        self.profile_name = profile_name

    def bootstrap(self, model: "Model") -> None:
        session = boto3.Session(profile_name=self.profile_name)
        credentials = session.get_credentials()
        if credentials is None:
            raise ConfigurationError(
                "No AWS credentials found (set AWS_ACCESS_KEY_ID/AWS_SECRET_ACCESS_KEY "
                "or configure a profile)"
            )
        frozen = credentials.get_frozen_credentials()
        model.set_variable(CONSTANTS.AWS_ACCESS_KEY_VAR, frozen.access_key)
        model.set_variable(CONSTANTS.AWS_SECRET_KEY_VAR, frozen.secret_key)
        logger.info(f"✓ AWS credentials loaded (method: {credentials.method})")


class AwsKeyManager:
    """
    Ensure an SSH keypair exists for the instance.

    The private key lives at ``<instance_dir>/ssh_private_key.pem`` with the
    public key beside it. An existing key is reused, so repeated runs against
    the same instance never create a second key. Teardown only needs the key
    pair name, so disposal runs skip key generation.
    """

    name = "aws_key_manager"
    skip_on_disposal = True

    def __init__(self, key_type: str = "rsa", bits: int = 4096):
        self.key_type = key_type
        self.bits = bits

    def bootstrap(self, model: "Model") -> None:
        state = InstanceState.of(model)
        state.ensure()
        key_path = state.path(CONSTANTS.SSH_KEY_FILE_NAME)

        if key_path.exists():
            logger.debug(f"Reusing SSH key {key_path}")
        else:
            self.generate(key_path, comment=key_pair_name(model))
            logger.info(f"✓ Generated SSH key {key_path}")

        model.set_variable(CONSTANTS.SSH_KEY_PATH_VAR, str(key_path))
        model.set_variable(CONSTANTS.SSH_KEY_NAME_VAR, key_pair_name(model))

    def generate(self, key_path: Path, comment: str) -> None:
        run_local([
            "ssh-keygen",
            "-t", self.key_type,
            "-b", str(self.bits),
            "-m", "PEM",
            "-N", "",
            "-C", comment,
            "-f", str(key_path),
        ])
        key_path.chmod(0o600)


def public_key_path(model: "Model") -> Path:
    return Path(str(model.must_variable(CONSTANTS.SSH_KEY_PATH_VAR)) + ".pub")

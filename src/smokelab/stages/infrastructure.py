"""
Infrastructure stages: SSH key import, Terraform apply and host readiness.

TerraformExpress copies the model's Terraform bundle into the instance
directory, renders ``generated.tfvars.json`` from the topology, applies it
and reads the ``host_public_ips`` output back into ``Host.public_ip``. The
addresses are persisted so later runs (``exec stop``, ``dispose``) can reach
the hosts without re-applying.
"""

import json
import logging
import shutil
import time
from pathlib import Path
from typing import Any, Dict, TYPE_CHECKING

from botocore.exceptions import ClientError

from smokelab import constants as CONSTANTS
from smokelab.core.exceptions import ConfigurationError
from smokelab.core.resources import TERRAFORM
from smokelab.core.state import InstanceState
from smokelab.extensions.aws import create_ec2_client, key_pair_name, public_key_path
from smokelab.remote import SshClient
from smokelab.terraform_runner import TerraformRunner

if TYPE_CHECKING:
    from smokelab.core.model import Model

logger = logging.getLogger(__name__)

KEY_NOT_FOUND_CODE = "InvalidKeyPair.NotFound"


def terraform_work_dir(model: "Model") -> Path:
    return InstanceState.of(model).path(CONSTANTS.TERRAFORM_WORK_DIR_NAME)


def build_tfvars(model: "Model") -> Dict[str, Any]:
    """
    Terraform variables describing the model's hosts.

    Returns:
        Dictionary written to ``generated.tfvars.json``
    """
    tfvars: Dict[str, Any] = {
        "environment": model.get_variable("environment", model.id),
        "model_id": model.id,
        "key_name": key_pair_name(model),
        "hosts": {
            host.id: {
                "region": host.region.region,
                "site": host.region.site,
                "instance_type": host.instance_type,
            }
            for host in model.hosts()
        },
    }
    access_key = model.get_variable(CONSTANTS.AWS_ACCESS_KEY_VAR)
    if access_key:
        tfvars["aws_access_key"] = access_key
        tfvars["aws_secret_key"] = model.get_variable(CONSTANTS.AWS_SECRET_KEY_VAR, "")
    return tfvars


def write_tfvars(model: "Model", work_dir: Path) -> Path:
    tfvars_path = work_dir / CONSTANTS.TFVARS_FILE_NAME
    with open(tfvars_path, "w", encoding="utf-8") as f:
        json.dump(build_tfvars(model), f, indent=2, sort_keys=True)
    logger.debug(f"Wrote {tfvars_path}")
    return tfvars_path


def prepare_work_dir(model: "Model") -> Path:
    """Copy the Terraform bundle into the instance and render its variables."""
    work_dir = terraform_work_dir(model)
    bundle = model.resource(TERRAFORM)
    source = Path(bundle.path())
    if not source.is_dir():
        raise ConfigurationError(f"Terraform bundle is not a directory: {source}")
    shutil.copytree(source, work_dir, dirs_exist_ok=True)
    write_tfvars(model, work_dir)
    return work_dir


class AwsSshKeyExpress:
    """Import the instance's public key into EC2 in every region of the model."""

    name = "aws_ssh_key_express"

    def execute(self, model: "Model") -> None:
        name = key_pair_name(model)
        material = public_key_path(model).read_bytes()
        for region in model.regions.values():
            ec2 = create_ec2_client(model, region.region)
            try:
                ec2.describe_key_pairs(KeyNames=[name])
                logger.info(f"Key pair '{name}' already present in {region.region}")
                continue
            except ClientError as e:
                if e.response["Error"]["Code"] != KEY_NOT_FOUND_CODE:
                    raise
            ec2.import_key_pair(KeyName=name, PublicKeyMaterial=material)
            logger.info(f"✓ Imported key pair '{name}' into {region.region}")


class TerraformExpress:
    """Apply the Terraform bundle and record every host's public IP."""

    name = "terraform_express"

    def execute(self, model: "Model") -> None:
        work_dir = prepare_work_dir(model)
        runner = TerraformRunner(str(work_dir))
        runner.init()
        runner.apply(var_file=CONSTANTS.TFVARS_FILE_NAME)

        outputs = runner.output()
        addresses = outputs.get(CONSTANTS.TERRAFORM_PUBLIC_IPS_OUTPUT)
        if not isinstance(addresses, dict):
            raise ConfigurationError(
                f"Terraform output '{CONSTANTS.TERRAFORM_PUBLIC_IPS_OUTPUT}' is missing or not a map"
            )

        missing = [host.id for host in model.hosts() if not addresses.get(host.id)]
        if missing:
            raise ConfigurationError(f"Terraform returned no public IP for host(s): {', '.join(missing)}")

        for host in model.hosts():
            host.public_ip = addresses[host.id]
            logger.info(f"  {host.id}: {host.public_ip}")

        InstanceState.of(model).save_hosts(model)


class SemaphoreReady:
    """Wait until every host accepts SSH, failing after ``timeout`` seconds."""

    def __init__(
        self,
        timeout: float = CONSTANTS.DEFAULT_READY_TIMEOUT_SECONDS,
        interval: float = CONSTANTS.READY_POLL_INTERVAL_SECONDS
    ):
        self.timeout = timeout
        self.interval = interval
        self.name = f"semaphore_ready({timeout}s)"

    def execute(self, model: "Model") -> None:
        pending = list(model.hosts())
        deadline = time.monotonic() + self.timeout

        while True:
            pending = [host for host in pending if not SshClient.for_host(host).is_ready()]
            if not pending:
                logger.info("✓ All hosts accept SSH")
                return
            if time.monotonic() >= deadline:
                raise TimeoutError(
                    f"Hosts not ready after {self.timeout}s: {', '.join(h.id for h in pending)}"
                )
            logger.info(f"Waiting for {len(pending)} host(s)...")
            time.sleep(self.interval)

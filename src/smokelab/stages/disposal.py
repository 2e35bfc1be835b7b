"""
Disposal stages.

Both stages tolerate an instance that was never (or only partly)
provisioned, and running them twice is harmless.
"""

import logging
from typing import TYPE_CHECKING

from botocore.exceptions import ClientError

from smokelab import constants as CONSTANTS
from smokelab.extensions.aws import create_ec2_client, key_pair_name
from smokelab.terraform_runner import TerraformRunner
from .infrastructure import KEY_NOT_FOUND_CODE, prepare_work_dir, terraform_work_dir

if TYPE_CHECKING:
    from smokelab.core.model import Model

logger = logging.getLogger(__name__)


class TerraformDispose:
    """Destroy Terraform-managed resources; skipped when there is no state."""

    name = "terraform_dispose"

    def execute(self, model: "Model") -> None:
        work_dir = terraform_work_dir(model)
        if not work_dir.is_dir():
            logger.info("No Terraform working directory; nothing to destroy")
            return

        runner = TerraformRunner(str(work_dir))
        if not runner.has_state():
            logger.info("Terraform state is empty; nothing to destroy")
            return

        prepare_work_dir(model)
        runner.init()
        runner.destroy(var_file=CONSTANTS.TFVARS_FILE_NAME)


class AwsSshKeyDispose:
    """Delete the instance's key pair from every region."""

    name = "aws_ssh_key_dispose"

    def execute(self, model: "Model") -> None:
        name = key_pair_name(model)
        for region in model.regions.values():
            ec2 = create_ec2_client(model, region.region)
            try:
                ec2.delete_key_pair(KeyName=name)
                logger.info(f"✓ Deleted key pair '{name}' from {region.region}")
            except ClientError as e:
                if e.response["Error"]["Code"] != KEY_NOT_FOUND_CODE:
                    raise
                logger.info(f"Key pair '{name}' not present in {region.region}")

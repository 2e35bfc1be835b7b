"""
Unit tests for infrastructure stages.

Terraform is mocked; EC2 key pair calls run against moto.
"""

import json
from unittest.mock import MagicMock, patch

import boto3
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from moto import mock_aws

from smokelab import constants as CONSTANTS
from smokelab.core.exceptions import ConfigurationError
from smokelab.core.resources import TERRAFORM, DirectoryBundle
from smokelab.core.state import InstanceState
from smokelab.stages.infrastructure import (
    AwsSshKeyExpress,
    SemaphoreReady,
    TerraformExpress,
    build_tfvars,
    prepare_work_dir,
    terraform_work_dir,
)


def write_key_pair(directory):
    """Write an RSA private key placeholder and a valid OpenSSH public key."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    public = key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    )
    private_path = directory / CONSTANTS.SSH_KEY_FILE_NAME
    private_path.write_bytes(b"private")
    (directory / (CONSTANTS.SSH_KEY_FILE_NAME + ".pub")).write_bytes(public)
    return private_path


@pytest.fixture
def terraform_model(tmp_path, instance_dir, make_lab_model):
    bundle = tmp_path / "terraform"
    bundle.mkdir()
    (bundle / "main.tf").write_text("# main\n")
    model = make_lab_model(resources={TERRAFORM: DirectoryBundle(bundle)})
    model.set_variable(CONSTANTS.INSTANCE_DIR_VAR, str(instance_dir))
    for host in model.hosts():
        host.public_ip = None
    return model


class TestBuildTfvars:
    def test_hosts_and_keys(self, lab_model):
        lab_model.set_variable(CONSTANTS.AWS_ACCESS_KEY_VAR, "AKIA")
        lab_model.set_variable(CONSTANTS.AWS_SECRET_KEY_VAR, "secret")

        tfvars = build_tfvars(lab_model)

        assert tfvars["environment"] == "test"
        assert tfvars["model_id"] == "lab"
        assert tfvars["key_name"] == "smokelab-lab"
        assert tfvars["hosts"]["router"] == {
            "region": "us-west-2",
            "site": "us-west-2b",
            "instance_type": "t2.micro",
        }
        assert tfvars["aws_access_key"] == "AKIA"
        assert tfvars["aws_secret_key"] == "secret"

    def test_credentials_omitted_when_unbound(self, lab_model):
        assert "aws_access_key" not in build_tfvars(lab_model)

    def test_prepare_work_dir(self, terraform_model):
        work_dir = prepare_work_dir(terraform_model)

        assert work_dir == terraform_work_dir(terraform_model)
        assert (work_dir / "main.tf").exists()
        tfvars = json.loads((work_dir / CONSTANTS.TFVARS_FILE_NAME).read_text())
        assert sorted(tfvars["hosts"]) == ["ctrl1", "ctrl2", "ctrl3", "router"]


class TestTerraformExpress:
    """Apply and read back public IPs."""

    @patch("smokelab.stages.infrastructure.TerraformRunner")
    def test_apply_sets_and_persists_addresses(self, mock_runner_cls, terraform_model):
        runner = mock_runner_cls.return_value
        runner.output.return_value = {
            CONSTANTS.TERRAFORM_PUBLIC_IPS_OUTPUT: {
                "ctrl1": "3.1.1.1", "ctrl2": "3.1.1.2", "ctrl3": "3.1.1.3", "router": "3.1.1.4",
            },
        }

        TerraformExpress().execute(terraform_model)

        runner.init.assert_called_once()
        runner.apply.assert_called_once_with(var_file=CONSTANTS.TFVARS_FILE_NAME)
        assert terraform_model.get_host("ctrl3").public_ip == "3.1.1.3"
        saved = json.loads(InstanceState.of(terraform_model).hosts_file.read_text())
        assert saved["router"] == "3.1.1.4"

    @patch("smokelab.stages.infrastructure.TerraformRunner")
    def test_missing_host_address(self, mock_runner_cls, terraform_model):
        mock_runner_cls.return_value.output.return_value = {
            CONSTANTS.TERRAFORM_PUBLIC_IPS_OUTPUT: {"ctrl1": "3.1.1.1"},
        }

        with pytest.raises(ConfigurationError) as exc_info:
            TerraformExpress().execute(terraform_model)

        assert "ctrl2" in str(exc_info.value)
        assert terraform_model.get_host("ctrl1").public_ip is None

    @patch("smokelab.stages.infrastructure.TerraformRunner")
    def test_missing_output(self, mock_runner_cls, terraform_model):
        mock_runner_cls.return_value.output.return_value = {}

        with pytest.raises(ConfigurationError):
            TerraformExpress().execute(terraform_model)

    def test_missing_terraform_bundle(self, lab_model):
        with pytest.raises(ConfigurationError):
            TerraformExpress().execute(lab_model)


@pytest.mark.aws
class TestAwsSshKeyExpress:
    """Key pair import is idempotent per region."""

    @mock_aws
    def test_imports_into_every_region(self, lab_model, instance_dir):
        lab_model.set_variable(CONSTANTS.SSH_KEY_PATH_VAR, str(write_key_pair(instance_dir)))

        AwsSshKeyExpress().execute(lab_model)

        for region in ("us-east-1", "us-west-2"):
            ec2 = boto3.client("ec2", region_name=region)
            names = [k["KeyName"] for k in ec2.describe_key_pairs()["KeyPairs"]]
            assert names == ["smokelab-lab"]

    @mock_aws
    def test_second_run_does_not_duplicate(self, lab_model, instance_dir):
        lab_model.set_variable(CONSTANTS.SSH_KEY_PATH_VAR, str(write_key_pair(instance_dir)))

        AwsSshKeyExpress().execute(lab_model)
        AwsSshKeyExpress().execute(lab_model)

        ec2 = boto3.client("ec2", region_name="us-east-1")
        assert len(ec2.describe_key_pairs()["KeyPairs"]) == 1

    def test_other_client_errors_propagate(self, lab_model, instance_dir):
        from botocore.exceptions import ClientError

        lab_model.set_variable(CONSTANTS.SSH_KEY_PATH_VAR, str(write_key_pair(instance_dir)))
        ec2 = MagicMock()
        ec2.describe_key_pairs.side_effect = ClientError(
            {"Error": {"Code": "UnauthorizedOperation", "Message": "denied"}}, "DescribeKeyPairs"
        )

        with patch("smokelab.stages.infrastructure.create_ec2_client", return_value=ec2):
            with pytest.raises(ClientError):
                AwsSshKeyExpress().execute(lab_model)

        ec2.import_key_pair.assert_not_called()


class TestSemaphoreReady:
    def test_returns_when_all_ready(self, lab_model, fake_ssh):
        SemaphoreReady(timeout=0).execute(lab_model)

    def test_times_out_naming_pending_hosts(self, lab_model, fake_ssh):
        fake_ssh.failing.add("router")

        with pytest.raises(TimeoutError) as exc_info:
            SemaphoreReady(timeout=0).execute(lab_model)

        assert "router" in str(exc_info.value)
        assert "ctrl1" not in str(exc_info.value)

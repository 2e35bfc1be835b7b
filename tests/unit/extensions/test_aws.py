"""
Unit tests for AWS bootstrap extensions and client helpers.
"""

from unittest.mock import MagicMock, patch

import pytest

from smokelab import constants as CONSTANTS
from smokelab.core.bootstrap import BootstrapChain
from smokelab.core.exceptions import ConfigurationError, MissingVariableError
from smokelab.extensions.aws import (
    AwsCredentialsLoader,
    AwsKeyManager,
    create_ec2_client,
    key_pair_name,
    public_key_path,
)


class TestAwsCredentialsLoader:
    """Tests for credential resolution."""

    def test_binds_environment_credentials(self, lab_model):
        AwsCredentialsLoader().bootstrap(lab_model)

        assert lab_model.get_variable(CONSTANTS.AWS_ACCESS_KEY_VAR) == "testing"
        assert lab_model.get_variable(CONSTANTS.AWS_SECRET_KEY_VAR) == "testing"

    def test_no_credentials(self, lab_model):
        session = MagicMock()
        session.get_credentials.return_value = None

        with patch("smokelab.extensions.aws.boto3.Session", return_value=session):
            with pytest.raises(ConfigurationError) as exc_info:
                AwsCredentialsLoader().bootstrap(lab_model)

        assert "No AWS credentials" in str(exc_info.value)

    def test_profile_passed_to_session(self, lab_model):
        with patch("smokelab.extensions.aws.boto3.Session") as mock_session:
            AwsCredentialsLoader(profile_name="lab").bootstrap(lab_model)

        mock_session.assert_called_once_with(profile_name="lab")


class TestAwsKeyManager:
    """Keypair generation is idempotent per instance."""

    def test_generates_once_and_binds(self, lab_model, instance_dir):
        def fake_keygen(args, **kwargs):
            path = args[args.index("-f") + 1]
            with open(path, "w") as f:
                f.write("PRIVATE")
            with open(path + ".pub", "w") as f:
                f.write("ssh-rsa AAAA")

        with patch("smokelab.extensions.aws.run_local", side_effect=fake_keygen) as mock_run:
            AwsKeyManager().bootstrap(lab_model)
            AwsKeyManager().bootstrap(lab_model)

        assert mock_run.call_count == 1
        args = mock_run.call_args.args[0]
        assert args[:5] == ["ssh-keygen", "-t", "rsa", "-b", "4096"]
        assert "smokelab-lab" in args

        key_path = instance_dir / CONSTANTS.SSH_KEY_FILE_NAME
        assert lab_model.get_variable(CONSTANTS.SSH_KEY_PATH_VAR) == str(key_path)
        assert lab_model.get_variable(CONSTANTS.SSH_KEY_NAME_VAR) == "smokelab-lab"
        assert key_path.stat().st_mode & 0o777 == 0o600
        assert public_key_path(lab_model).read_text() == "ssh-rsa AAAA"

    def test_reuses_existing_key(self, lab_model, instance_dir):
        (instance_dir / CONSTANTS.SSH_KEY_FILE_NAME).write_text("EXISTING")

        with patch("smokelab.extensions.aws.run_local") as mock_run:
            AwsKeyManager().bootstrap(lab_model)

        mock_run.assert_not_called()

    def test_not_needed_for_disposal(self, lab_model, instance_dir):
        chain = BootstrapChain()
        chain.add(AwsKeyManager())

        with patch("smokelab.extensions.aws.run_local") as mock_run:
            chain.run(lab_model, disposal=True)

        mock_run.assert_not_called()
        assert not (instance_dir / CONSTANTS.SSH_KEY_FILE_NAME).exists()


class TestHelpers:
    def test_key_pair_name_override(self, lab_model):
        assert key_pair_name(lab_model) == "smokelab-lab"
        lab_model.set_variable(CONSTANTS.SSH_KEY_NAME_VAR, "custom")
        assert key_pair_name(lab_model) == "custom"

    def test_public_key_path_requires_key(self, lab_model):
        with pytest.raises(MissingVariableError):
            public_key_path(lab_model)

    def test_ec2_client_uses_bound_credentials(self, lab_model):
        lab_model.set_variable(CONSTANTS.AWS_ACCESS_KEY_VAR, "AKIAEXAMPLE")
        lab_model.set_variable(CONSTANTS.AWS_SECRET_KEY_VAR, "secret")

        with patch("smokelab.extensions.aws.boto3.client") as mock_client:
            create_ec2_client(lab_model, "us-west-2")

        mock_client.assert_called_once_with(
            "ec2",
            region_name="us-west-2",
            aws_access_key_id="AKIAEXAMPLE",
            aws_secret_access_key="secret",
        )

    def test_ec2_client_default_chain(self, lab_model):
        with patch("smokelab.extensions.aws.boto3.client") as mock_client:
            create_ec2_client(lab_model, "us-east-1")

        mock_client.assert_called_once_with("ec2", region_name="us-east-1")

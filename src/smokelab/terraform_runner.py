"""
Terraform CLI wrapper for instance working directories.

Each lab instance owns one Terraform working directory under its instance
dir (``<instance>/terraform``): the module files copied from the package,
the generated ``tfvars.json`` and the local state. Infrastructure stages
converge it with ``apply`` and read ``host_public_ips`` back; disposal runs
``destroy`` only while the state still lists resources.

Long-running commands (apply, destroy) are streamed line by line into the
``smokelab.terraform_runner`` logger so progress shows up next to the stage
logs; the captured text is kept for the error message.
"""

import json
import logging
import subprocess
from pathlib import Path
from typing import List

from smokelab.core.exceptions import SmokelabError

logger = logging.getLogger(__name__)

STATE_FILE_NAME = "terraform.tfstate"


class TerraformError(SmokelabError):
    """A terraform subcommand exited non-zero."""

    def __init__(self, command: str, return_code: int, stderr: str):
        self.command = command
        self.return_code = return_code
        self.stderr = stderr
        super().__init__(f"terraform {command} exited with {return_code}: {stderr}")


class TerraformRunner:
    """
    Runs terraform subcommands with ``-chdir`` pointed at one working dir.

    Attributes:
        terraform_dir: Instance Terraform working directory
        binary: Terraform executable name or path
    """

    def __init__(self, terraform_dir: str, binary: str = "terraform"):
        if not terraform_dir:
            raise ValueError("terraform_dir must not be empty")
        self.terraform_dir = Path(terraform_dir)
        if not self.terraform_dir.is_dir():
            raise ValueError(f"no Terraform working directory at {terraform_dir}")
        self.binary = binary

    def _command(self, args: List[str]) -> List[str]:
        return [self.binary, f"-chdir={self.terraform_dir}", *args]

    def _check(self, args: List[str], return_code: int, stdout: str, stderr: str = "") -> None:
        if return_code == 0:
            return
        details = "\n".join(part for part in (stdout, stderr) if part) or "no output"
        raise TerraformError(args[0], return_code, details)

    def _capture(self, args: List[str]) -> str:
        cmd = self._command(args)
        logger.debug(f"$ {' '.join(cmd)}")
        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        self._check(args, result.returncode, result.stdout, result.stderr)
        return result.stdout

    def _stream(self, args: List[str]) -> None:
        cmd = self._command(args)
        logger.debug(f"$ {' '.join(cmd)}")
        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
        )
        lines = []
        for line in process.stdout:
            lines.append(line)
            logger.info(f"  terraform | {line.rstrip()}")
        process.wait()
        self._check(args, process.returncode, "".join(lines))

    def _converge(self, verb: str, var_file: str) -> None:
        if not var_file:
            raise ValueError(f"terraform {verb} needs a var_file")
        self._stream([verb, "-input=false", f"-var-file={var_file}", "-auto-approve"])

    def init(self) -> None:
        logger.info(f"Initializing Terraform in {self.terraform_dir}")
        self._capture(["init", "-input=false"])

    def validate(self) -> None:
        self._capture(["validate"])
        logger.info("✓ Terraform configuration valid")

    def apply(self, var_file: str) -> None:
        """
        Create or update the lab hosts described by ``var_file``.

        Raises:
            ValueError: If var_file is empty
            TerraformError: If terraform exits non-zero
        """
        logger.info("Provisioning lab hosts with Terraform")
        self._converge("apply", var_file)
        logger.info("✓ Terraform apply complete")

    def destroy(self, var_file: str) -> None:
        """
        Tear down everything in the instance state.

        Raises:
            ValueError: If var_file is empty
            TerraformError: If terraform exits non-zero
        """
        logger.info("Destroying lab hosts with Terraform")
        self._converge("destroy", var_file)
        logger.info("✓ Terraform destroy complete")

    def output(self) -> dict:
        """Output values by name, unwrapped from terraform's ``{"value": ...}`` form."""
        raw = self._capture(["output", "-json"]).strip()
        if not raw:
            return {}
        return {name: entry.get("value") for name, entry in json.loads(raw).items()}

    def has_state(self) -> bool:
        """True unless the local state is missing or lists no resources."""
        state_file = self.terraform_dir / STATE_FILE_NAME
        if not state_file.is_file():
            return False
        try:
            state = json.loads(state_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            # leave a corrupt state for terraform to report
            return True
        return bool(state.get("resources"))

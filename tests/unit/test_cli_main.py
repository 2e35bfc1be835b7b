"""
Unit tests for the command-line entry point.
"""

from unittest.mock import patch

import pytest
import yaml

from smokelab import __version__
from smokelab.core.exceptions import ConfigurationError, StageError
from smokelab.main import EXIT_FAILURE, EXIT_OK, EXIT_USAGE, build_parser, load_model, main


class TestParser:
    def test_exec_requires_action_names(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["exec"])

    def test_exec_keeps_order(self):
        args = build_parser().parse_args(["exec", "stop", "login"])

        assert args.actions == ["stop", "login"]
        assert args.model == "ha"


class TestLoadModel:
    def test_registry_name(self):
        assert load_model("ha").id == "ha"

    def test_unknown_name(self):
        with pytest.raises(ConfigurationError):
            load_model("nope")

    def test_topology_file(self, tmp_path):
        path = tmp_path / "lab.yml"
        path.write_text(yaml.safe_dump({"id": "filelab", "regions": {}}))

        assert load_model(str(path)).id == "filelab"


class TestMain:
    """Exit codes and dispatch."""

    def test_usage_error(self):
        assert main([]) == EXIT_USAGE
        assert main(["bogus"]) == EXIT_USAGE

    def test_version(self, capsys):
        assert main(["--version"]) == EXIT_OK
        assert __version__ in capsys.readouterr().out

    def test_list_hosts(self, capsys, tmp_path):
        assert main(["--instance-dir", str(tmp_path), "list", "hosts"]) == EXIT_OK

        out = capsys.readouterr().out
        assert "router-west" in out
        assert "us-west-2" in out

    def test_list_actions_marks_activation(self, capsys, tmp_path):
        assert main(["--instance-dir", str(tmp_path), "list", "actions"]) == EXIT_OK

        lines = capsys.readouterr().out.splitlines()
        assert "  login" in lines
        assert "* stop" in lines

    def test_exec_dispatch(self, tmp_path):
        with patch("smokelab.main.Orchestrator") as mock_orchestrator:
            assert main(["--instance-dir", str(tmp_path), "exec", "stop", "login"]) == EXIT_OK

        mock_orchestrator.return_value.exec.assert_called_once_with("stop", "login")

    @pytest.mark.parametrize("command", ["up", "express", "build", "sync", "activate", "dispose"])
    def test_run_modes_dispatch(self, command, tmp_path):
        with patch("smokelab.main.Orchestrator") as mock_orchestrator:
            assert main(["--instance-dir", str(tmp_path), command]) == EXIT_OK

        getattr(mock_orchestrator.return_value, command).assert_called_once_with()

    def test_failure_exit_code(self, tmp_path):
        with patch("smokelab.main.Orchestrator") as mock_orchestrator:
            mock_orchestrator.return_value.up.side_effect = StageError("distribution", "rsync", 6)

            assert main(["--instance-dir", str(tmp_path), "up"]) == EXIT_FAILURE

    def test_unknown_model_is_failure(self, tmp_path):
        assert main(["--model", "nope", "--instance-dir", str(tmp_path), "list", "hosts"]) == EXIT_FAILURE

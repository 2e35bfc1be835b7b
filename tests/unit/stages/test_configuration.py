"""
Unit tests for configuration stages: PKI, component configs and the kit.
"""

from unittest.mock import patch

import pytest

from smokelab import constants as CONSTANTS
from smokelab.core.exceptions import (
    ConfigurationError,
    MissingVariableError,
    RemoteCommandError,
    ResourceNotFoundError,
)
from smokelab.core.resources import PackageBundle
from smokelab.core.state import InstanceState
from smokelab.models.ha import build_ha_model
from smokelab.stages.configuration import (
    ComponentConfig,
    DevKit,
    FabricPki,
    IfPkiNeedsRefresh,
    render_component_config,
    ziti_binary,
)

CTRL_TEMPLATE = (
    "identity: /home/${credentials.ssh.username}/fablab/pki/${public_identity}-server.cert\n"
    "advertise: tls:${public_ip}:6262\n"
    "trustDomain: ${trust_domain}\n"
    "host: ${host_id}@${site}\n"
)


@pytest.fixture
def configured_model(tmp_path, instance_dir, make_lab_model):
    configs = tmp_path / "configs"
    configs.mkdir()
    (configs / "ctrl.yml.tmpl").write_text(CTRL_TEMPLATE)
    model = make_lab_model(configs_dir=configs)
    model.set_variable(CONSTANTS.INSTANCE_DIR_VAR, str(instance_dir))
    model.set_variable("trust_domain", "lab.test")
    return model


class RecordingStage:
    name = "recording"

    def __init__(self):
        self.calls = 0

    def execute(self, model):
        self.calls += 1


class TestComponentConfig:
    """Rendering component configs into kit/cfg."""

    def test_renders_each_configured_component(self, configured_model):
        ComponentConfig().execute(configured_model)

        cfg_dir = InstanceState.of(configured_model).kit_dir / CONSTANTS.KIT_CFG_DIR_NAME
        assert sorted(p.name for p in cfg_dir.iterdir()) == ["ctrl1.yml", "ctrl2.yml", "ctrl3.yml"]
        assert (cfg_dir / "ctrl3.yml").read_text() == (
            "identity: /home/ubuntu/fablab/pki/ctrl3-server.cert\n"
            "advertise: tls:10.0.1.3:6262\n"
            "trustDomain: lab.test\n"
            "host: ctrl3@us-west-2b\n"
        )

    def test_missing_variable_names_it(self, tmp_path, instance_dir, make_lab_model):
        configs = tmp_path / "configs"
        configs.mkdir()
        (configs / "ctrl.yml.tmpl").write_text(CTRL_TEMPLATE)
        model = make_lab_model(configs_dir=configs)
        model.set_variable(CONSTANTS.INSTANCE_DIR_VAR, str(instance_dir))

        with pytest.raises(MissingVariableError) as exc_info:
            ComponentConfig().execute(model)

        assert exc_info.value.name == "trust_domain"
        assert exc_info.value.scope == "component:ctrl1"

    def test_unresolved_host_address_fails(self, configured_model):
        configured_model.get_host("ctrl2").public_ip = None

        with pytest.raises(ConfigurationError) as exc_info:
            ComponentConfig().execute(configured_model)

        assert "ctrl2" in str(exc_info.value)
        cfg_dir = InstanceState.of(configured_model).kit_dir / CONSTANTS.KIT_CFG_DIR_NAME
        assert not (cfg_dir / "ctrl2.yml").exists()

    def test_missing_template(self, tmp_path, instance_dir, make_lab_model):
        configs = tmp_path / "empty"
        configs.mkdir()
        model = make_lab_model(configs_dir=configs)
        model.set_variable(CONSTANTS.INSTANCE_DIR_VAR, str(instance_dir))

        with pytest.raises(ResourceNotFoundError):
            ComponentConfig().execute(model)

    def test_shipped_controller_template_renders(self, instance_dir):
        model = build_ha_model()
        model.set_variable(CONSTANTS.INSTANCE_DIR_VAR, str(instance_dir))
        for index, host in enumerate(model.hosts()):
            host.public_ip = f"192.0.2.{index + 1}"

        ComponentConfig().execute(model)

        cfg_dir = InstanceState.of(model).kit_dir / CONSTANTS.KIT_CFG_DIR_NAME
        ctrl1 = (cfg_dir / "ctrl1.yml").read_text()
        assert "trustDomain: simple-transfer.test" in ctrl1
        assert "/home/ubuntu/fablab/pki/intermediate/certs/ctrl1-server.cert" in ctrl1
        assert (cfg_dir / "router-west.yml").exists()


class TestRenderComponentConfig:
    def test_component_variable_overrides_model(self, configured_model):
        component = configured_model.get_host("ctrl1").components["ctrl1"]
        component.scope.variables.set("trust_domain", "override.test")

        rendered = render_component_config("${trust_domain} ${model_id}", component)

        assert rendered == "override.test lab"


class TestIfPkiNeedsRefresh:
    def test_runs_when_pki_missing(self, lab_model):
        inner = RecordingStage()

        IfPkiNeedsRefresh(inner).execute(lab_model)

        assert inner.calls == 1

    def test_skips_when_pki_complete(self, lab_model):
        pki = InstanceState.of(lab_model).pki_dir
        (pki / "root").mkdir(parents=True)
        (pki / CONSTANTS.PKI_COMPLETE_MARKER).write_text("lab.test\n")
        inner = RecordingStage()

        IfPkiNeedsRefresh(inner).execute(lab_model)

        assert inner.calls == 0

    def test_partial_pki_is_discarded_and_rebuilt(self, lab_model):
        pki = InstanceState.of(lab_model).pki_dir
        (pki / "root" / "certs").mkdir(parents=True)
        (pki / "root" / "certs" / "root-ca.cert").write_text("CA")
        seen = []

        class Inspect:
            name = "inspect"

            def execute(self, model):
                seen.append(pki.exists())

        IfPkiNeedsRefresh(Inspect()).execute(lab_model)

        assert seen == [False]

    def test_empty_pki_dir_counts_as_missing(self, lab_model):
        InstanceState.of(lab_model).pki_dir.mkdir()
        inner = RecordingStage()

        IfPkiNeedsRefresh(inner).execute(lab_model)

        assert inner.calls == 1
        assert IfPkiNeedsRefresh(inner).name == "if_pki_needs_refresh(recording)"


class TestFabricPki:
    def test_issues_ca_chain_and_server_certs(self, lab_model):
        lab_model.set_variable(CONSTANTS.ZITI_ROOT_VAR, "/opt/ziti")

        with patch("smokelab.stages.configuration.run_local") as mock_run:
            FabricPki("lab.test", "#ctrl").execute(lab_model)

        commands = [call.args[0] for call in mock_run.call_args_list]
        assert [c[3] for c in commands] == ["ca", "intermediate", "server", "server", "server"]
        assert all(c[0] == "/opt/ziti/ziti" for c in commands)
        assert "--trust-domain=spiffe://lab.test" in commands[0]
        assert "--server-file=ctrl2-server" in commands[3]
        assert "--ip=127.0.0.1,10.0.0.2" in commands[3]
        assert (InstanceState.of(lab_model).kit_dir / "pki").is_dir()
        assert (InstanceState.of(lab_model).pki_dir / CONSTANTS.PKI_COMPLETE_MARKER).is_file()

    def test_failure_leaves_pki_incomplete(self, lab_model):
        failure = RemoteCommandError("ziti pki create intermediate", 1, "boom")

        with patch("smokelab.stages.configuration.run_local", side_effect=[None, failure]):
            with pytest.raises(RemoteCommandError):
                FabricPki("lab.test", "#ctrl").execute(lab_model)

        assert not (InstanceState.of(lab_model).pki_dir / CONSTANTS.PKI_COMPLETE_MARKER).exists()

        inner = RecordingStage()
        IfPkiNeedsRefresh(inner).execute(lab_model)
        assert inner.calls == 1

    def test_requires_trust_domain(self):
        with pytest.raises(ValueError):
            FabricPki("", "#ctrl")

    def test_ziti_binary_defaults_to_path(self, lab_model):
        assert ziti_binary(lab_model) == "ziti"


class TestDevKit:
    def test_copies_binaries_executable(self, lab_model, tmp_path):
        source = tmp_path / "ziti-root"
        source.mkdir()
        (source / "ziti").write_bytes(b"\x7fELF")
        lab_model.set_variable(CONSTANTS.ZITI_ROOT_VAR, str(source))

        DevKit(CONSTANTS.ZITI_ROOT_VAR, ["ziti"]).execute(lab_model)

        target = InstanceState.of(lab_model).kit_dir / "bin" / "ziti"
        assert target.read_bytes() == b"\x7fELF"
        assert target.stat().st_mode & 0o777 == 0o755

    def test_missing_binary(self, lab_model, tmp_path):
        lab_model.set_variable(CONSTANTS.ZITI_ROOT_VAR, str(tmp_path))

        with pytest.raises(FileNotFoundError):
            DevKit(CONSTANTS.ZITI_ROOT_VAR, ["ziti-echo"]).execute(lab_model)

    def test_unbound_root(self, lab_model):
        with pytest.raises(MissingVariableError):
            DevKit(CONSTANTS.ZITI_ROOT_VAR, ["ziti"]).execute(lab_model)


class TestPackagedConfigs:
    def test_ha_templates_are_shipped(self):
        bundle = PackageBundle("smokelab", "configs")

        for name in ("ctrl.yml.tmpl", "router.yml.tmpl", "metricbeat.yml", "consul.hcl", "ziti.hcl"):
            assert bundle.read_file(name)

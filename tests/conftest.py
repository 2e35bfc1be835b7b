import pytest

from smokelab import constants as CONSTANTS
from smokelab.core.model import Component, Host, Model, Region, Scope
from smokelab.core.resources import CONFIGS, DirectoryBundle

DISTRIBUTION_ENV = (
    CONSTANTS.ENV_CONSUL_ENDPOINT,
    CONSTANTS.ENV_ELASTIC_ENDPOINT,
    CONSTANTS.ENV_ELASTIC_USERNAME,
    CONSTANTS.ENV_ELASTIC_PASSWORD,
    CONSTANTS.ENV_BUILD_NUMBER,
    CONSTANTS.ENV_CONSUL_ENCRYPTION_KEY,
    CONSTANTS.ENV_CONSUL_AGENT_CERT,
    CONSTANTS.ENV_ZITI_VERSION,
    CONSTANTS.ENV_ZITI_ROOT,
)


@pytest.fixture(scope="function", autouse=True)
def mock_env_vars(monkeypatch, tmp_path):
    """Set mock environment variables to prevent accidental cloud calls."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.setenv(CONSTANTS.SMOKELAB_HOME_ENV, str(tmp_path / "home"))
    for name in DISTRIBUTION_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def mock_sleep(monkeypatch):
    """Skip time.sleep calls to speed up tests."""
    monkeypatch.setattr("time.sleep", lambda x: None)


@pytest.fixture
def instance_dir(tmp_path):
    path = tmp_path / "instance"
    path.mkdir()
    return path


def controller(name):
    return Component(
        binary_name="ziti controller",
        config_src="ctrl.yml.tmpl",
        config_name=f"{name}.yml",
        public_identity=name,
        scope=Scope(tags=("ctrl",)),
    )


def build_lab_model(configs_dir=None, **model_kwargs):
    """
    Two regions, three controllers and one router:

        east: ctrl1 (10.0.0.1), ctrl2 (10.0.0.2)
        west: ctrl3 (10.0.1.3), router (10.0.1.4, also runs echo)
    """
    resources = dict(model_kwargs.pop("resources", {}))
    if configs_dir:
        resources[CONFIGS] = DirectoryBundle(configs_dir)
    model = Model(
        id="lab",
        scope=Scope(variables={
            "environment": "test",
            "credentials": {"ssh": {"username": "ubuntu"}},
        }),
        resources=resources,
        regions={
            "east": Region(
                region="us-east-1",
                site="us-east-1a",
                hosts={
                    "ctrl1": Host(instance_type="t3.micro", components={"ctrl1": controller("ctrl1")}),
                    "ctrl2": Host(instance_type="t3.micro", components={"ctrl2": controller("ctrl2")}),
                },
            ),
            "west": Region(
                region="us-west-2",
                site="us-west-2b",
                hosts={
                    "ctrl3": Host(instance_type="t3.micro", components={"ctrl3": controller("ctrl3")}),
                    "router": Host(
                        instance_type="t2.micro",
                        components={
                            "router": Component(
                                binary_name="ziti router",
                                scope=Scope(tags=("edge-router",)),
                            ),
                            "echo": Component(
                                binary_name="echo-server",
                                scope=Scope(tags=("sdk-app",)),
                            ),
                        },
                    ),
                },
            ),
        },
        **model_kwargs,
    )
    addresses = {"ctrl1": "10.0.0.1", "ctrl2": "10.0.0.2", "ctrl3": "10.0.1.3", "router": "10.0.1.4"}
    for host in model.hosts():
        host.public_ip = addresses[host.id]
    return model


@pytest.fixture
def lab_model(instance_dir):
    model = build_lab_model()
    model.set_variable(CONSTANTS.INSTANCE_DIR_VAR, str(instance_dir))
    return model


class FakeSshClient:
    """Records remote operations instead of running ssh."""

    def __init__(self, host, calls, failing):
        self.host = host
        self.calls = calls
        self.failing = failing

    def _record(self, op, *args):
        if self.host.id in self.failing:
            from smokelab.core.exceptions import RemoteCommandError
            raise RemoteCommandError(op, 255, "connection refused", host=self.host.id)
        self.calls.append((self.host.id, op) + args)

    def run(self, command, input_data=None, timeout=None):
        self._record("run", command)
        return ""

    def put_bytes(self, data, dest, mode=0o644):
        self._record("put", dest, data, mode)

    def rsync(self, local_dir, remote_dir="fablab"):
        self._record("rsync", str(local_dir), remote_dir)

    def is_ready(self, timeout=15):
        return self.host.id not in self.failing


class FakeSsh:
    def __init__(self):
        self.calls = []
        self.failing = set()

    def for_host(self, host):
        return FakeSshClient(host, self.calls, self.failing)

    def ops(self, op):
        return [call for call in self.calls if call[1] == op]

    def hosts_for(self, op):
        return sorted(call[0] for call in self.ops(op))


@pytest.fixture
def fake_ssh(monkeypatch):
    """Replace SshClient.for_host with a recorder shared by every module."""
    fake = FakeSsh()
    monkeypatch.setattr("smokelab.remote.SshClient.for_host", fake.for_host)
    return fake


@pytest.fixture
def make_lab_model():
    return build_lab_model

"""
HA smoke-test model.

Three controllers spread over two AWS regions, one edge router per region,
an echo server behind the east router and an echo client behind the west
one. Every host also runs a consul agent and metricbeat for monitoring.

    us-east-1 (us-east-1a)   ctrl1, ctrl2, router-east (+ echo-server)
    us-west-2 (us-west-2b)   ctrl3, router-west (+ echo-client)
"""

import os

from smokelab import constants as CONSTANTS
from smokelab.actions import (
    ConsulConfig,
    EdgeLogin,
    MetricbeatConfig,
    StopInParallel,
    new_bootstrap_action,
    new_start_action,
)
from smokelab.core.actions import bind
from smokelab.core.bootstrap import BootstrapWithFallbacks
from smokelab.core.model import Component, Host, Model, Region, Scope
from smokelab.core.resources import CONFIGS, TERRAFORM, PackageBundle
from smokelab.extensions import (
    AwsCredentialsLoader,
    AwsKeyManager,
    BootstrapFromEnv,
    BootstrapFromPath,
    RequireEnv,
)
from smokelab.stages import (
    AwsSshKeyDispose,
    AwsSshKeyExpress,
    ComponentConfig,
    DevKit,
    DistributeData,
    DistributeDataWithReplaceCallbacks,
    DistributeSshKey,
    FabricPki,
    FromEnv,
    HostPublicIp,
    HostVariable,
    IfPkiNeedsRefresh,
    Locations,
    RsyncStaged,
    SemaphoreReady,
    TerraformDispose,
    TerraformExpress,
    config_file,
    env_payload,
)

MODEL_ID = "ha"
TRUST_DOMAIN = "simple-transfer.test"
CONTROLLER_INSTANCE_TYPE = "t3.micro"
ROUTER_INSTANCE_TYPE = "t2.micro"

# Environment inputs read by the distribution stages and the start action
REQUIRED_ENV = (
    CONSTANTS.ENV_CONSUL_ENDPOINT,
    CONSTANTS.ENV_ELASTIC_ENDPOINT,
    CONSTANTS.ENV_ELASTIC_USERNAME,
    CONSTANTS.ENV_ELASTIC_PASSWORD,
    CONSTANTS.ENV_BUILD_NUMBER,
    CONSTANTS.ENV_CONSUL_ENCRYPTION_KEY,
    CONSTANTS.ENV_CONSUL_AGENT_CERT,
)

DEFAULTS = {
    "environment": "ha-smoketest",
    "trust_domain": TRUST_DOMAIN,
    "credentials": {
        "ssh": {"username": "ubuntu"},
        "edge": {"username": "admin", "password": "admin"},
    },
}


def controller(name: str) -> Component:
    return Component(
        binary_name="ziti controller",
        config_src="ctrl.yml.tmpl",
        config_name=f"{name}.yml",
        public_identity=name,
        scope=Scope(tags=("ctrl", "spiffe:controller")),
    )


def router(name: str) -> Component:
    return Component(
        binary_name="ziti router",
        config_src="router.yml.tmpl",
        config_name=f"{name}.yml",
        public_identity=name,
        scope=Scope(tags=("edge-router", "terminator")),
    )


def sdk_app(name: str, role: str) -> Component:
    return Component(
        binary_name=name,
        public_identity=name,
        scope=Scope(tags=("sdk-app", role)),
    )


def consul() -> Component:
    return Component(binary_name="consul")


def controller_host(name: str) -> Host:
    return Host(
        instance_type=CONTROLLER_INSTANCE_TYPE,
        components={name: controller(name), "consul": consul()},
    )


def build_ha_model() -> Model:
    """Build a fresh HA model with its actions and bootstrap extensions."""
    version = HostVariable(CONSTANTS.ZITI_VERSION_VAR)
    build_number = FromEnv(CONSTANTS.ENV_BUILD_NUMBER)

    model = Model(
        id=MODEL_ID,
        scope=Scope(variables=DEFAULTS),
        resources={
            CONFIGS: PackageBundle("smokelab", CONFIGS),
            TERRAFORM: PackageBundle("smokelab", TERRAFORM),
        },
        regions={
            "us-east-1": Region(
                region="us-east-1",
                site="us-east-1a",
                hosts={
                    "ctrl1": controller_host("ctrl1"),
                    "ctrl2": controller_host("ctrl2"),
                    "router-east": Host(
                        instance_type=ROUTER_INSTANCE_TYPE,
                        components={
                            "router-east": router("router-east"),
                            "echo-server": sdk_app("echo-server", "service"),
                            "consul": consul(),
                        },
                    ),
                },
            ),
            "us-west-2": Region(
                region="us-west-2",
                site="us-west-2b",
                hosts={
                    "ctrl3": controller_host("ctrl3"),
                    "router-west": Host(
                        instance_type=ROUTER_INSTANCE_TYPE,
                        components={
                            "router-west": router("router-west"),
                            "echo-client": sdk_app("echo-client", "client"),
                            "consul": consul(),
                        },
                    ),
                },
            ),
        },
        actions={
            "bootstrap": new_bootstrap_action(),
            "start": new_start_action(
                MetricbeatConfig(
                    config_path="metricbeat",
                    data_path="metricbeat/data",
                    log_path="metricbeat/logs",
                ),
                ConsulConfig(
                    server_addr=os.environ.get(CONSTANTS.ENV_CONSUL_ENDPOINT, ""),
                    config_dir="consul",
                    data_path="consul/data",
                    log_path="consul/log.out",
                ),
            ),
            "stop": bind(StopInParallel("*", 15)),
            "login": bind(EdgeLogin("#ctrl1")),
        },
        infrastructure=[
            AwsSshKeyExpress(),
            TerraformExpress(),
            SemaphoreReady(timeout=60),
        ],
        configuration=[
            IfPkiNeedsRefresh(FabricPki(TRUST_DOMAIN, ".ctrl")),
            ComponentConfig(),
            DevKit(CONSTANTS.ZITI_ROOT_VAR, ["ziti", "ziti-echo"]),
        ],
        distribution=[
            DistributeSshKey("*"),
            Locations("*", "logs"),
            DistributeDataWithReplaceCallbacks(
                "*",
                config_file("metricbeat.yml"),
                "metricbeat/metricbeat.yml",
                0o644,
                [
                    ("${host}", FromEnv(CONSTANTS.ENV_ELASTIC_ENDPOINT)),
                    ("${user}", FromEnv(CONSTANTS.ENV_ELASTIC_USERNAME)),
                    ("${password}", FromEnv(CONSTANTS.ENV_ELASTIC_PASSWORD)),
                    ("${build_number}", build_number),
                    ("${ziti_version}", version),
                ],
            ),
            DistributeDataWithReplaceCallbacks(
                "*",
                config_file("consul.hcl"),
                "consul/consul.hcl",
                0o644,
                [
                    ("${public_ip}", HostPublicIp()),
                    ("${encryption_key}", FromEnv(CONSTANTS.ENV_CONSUL_ENCRYPTION_KEY)),
                    ("${build_number}", build_number),
                    ("${ziti_version}", version),
                ],
            ),
            DistributeDataWithReplaceCallbacks(
                "#ctrl",
                config_file("ziti.hcl"),
                "consul/ziti.hcl",
                0o644,
                [
                    ("${build_number}", build_number),
                    ("${ziti_version}", version),
                ],
            ),
            DistributeData(
                "*",
                env_payload(CONSTANTS.ENV_CONSUL_AGENT_CERT),
                "consul/consul-agent-ca.pem",
            ),
            RsyncStaged(),
        ],
        disposal=[
            TerraformDispose(),
            AwsSshKeyDispose(),
        ],
    )

    model.add_activation_actions("stop", "bootstrap", "start")

    model.add_bootstrap_extension(BootstrapWithFallbacks(BootstrapFromEnv(), BootstrapFromPath()))
    model.add_bootstrap_extension(RequireEnv(*REQUIRED_ENV))
    model.add_bootstrap_extension(AwsCredentialsLoader())
    model.add_bootstrap_extension(AwsKeyManager())
    return model

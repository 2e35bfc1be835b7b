"""
smokelab - CLI Entry Point.

Runs one mode of the lab pipeline against a built-in model or a topology
file:

    smokelab up                       full pipeline, then the activation actions
    smokelab express|build|sync       a single phase
    smokelab activate                 the model's activation actions
    smokelab exec stop login          named actions, in the order given
    smokelab dispose                  best-effort teardown
    smokelab list hosts|actions       inspect the model

Exit status: 0 on success, 1 when a phase or action fails, 2 on usage errors.
"""

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from smokelab import __version__
from smokelab.core.exceptions import SmokelabError
from smokelab.core.loader import load_model_file
from smokelab.core.model import Model
from smokelab.core.orchestrator import Orchestrator
from smokelab.core.registry import ModelRegistry
from smokelab.logger import debug_from_env, logger, print_stack_trace, setup_logger
import smokelab.models  # noqa: F401  (registers built-in models)

DEFAULT_MODEL = "ha"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smokelab",
        description="Provision, configure and exercise lab topologies.",
    )
    parser.add_argument("--model", default=DEFAULT_MODEL,
                        help="Built-in model name or path to a JSON/YAML topology file")
    parser.add_argument("--instance-dir", default=None,
                        help="Instance state directory (default: $SMOKELAB_HOME/instances/<model>)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging and stack traces")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("up", help="Run every phase, then the activation actions")
    commands.add_parser("express", help="Run the infrastructure phase")
    commands.add_parser("build", help="Run the configuration phase")
    commands.add_parser("sync", help="Run the distribution phase")
    commands.add_parser("activate", help="Run the model's activation actions")
    exec_parser = commands.add_parser("exec", help="Run named actions in order")
    exec_parser.add_argument("actions", nargs="+", help="Action names")
    commands.add_parser("dispose", help="Tear down the instance")
    list_parser = commands.add_parser("list", help="Show model hosts or actions")
    list_parser.add_argument("what", choices=["hosts", "actions"])
    return parser


def load_model(name_or_path: str) -> Model:
    """Resolve ``--model``: an existing file is loaded, anything else is a registry name."""
    path = Path(name_or_path)
    if path.suffix.lower() in (".json", ".yml", ".yaml") or path.is_file():
        return load_model_file(path)
    return ModelRegistry.get(name_or_path)


def list_model(orchestrator: Orchestrator, what: str) -> None:
    model = orchestrator.model
    if what == "hosts":
        for host in model.hosts():
            components = ", ".join(host.components)
            print(f"{host.region.id:<12} {host.id:<14} {host.instance_type:<10} "
                  f"{host.public_ip or '-':<16} {components}")
    else:
        for name in orchestrator.actions.list_actions():
            marker = "*" if name in model.activation_actions else " "
            print(f"{marker} {name}")


def run(args: argparse.Namespace) -> None:
    model = load_model(args.model)
    orchestrator = Orchestrator(model, instance_dir=args.instance_dir)

    if args.command == "list":
        list_model(orchestrator, args.what)
    elif args.command == "exec":
        orchestrator.exec(*args.actions)
    else:
        getattr(orchestrator, args.command)()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return EXIT_OK if e.code == 0 else EXIT_USAGE

    setup_logger(debug_mode=args.verbose or debug_from_env())

    try:
        run(args)
    except SmokelabError as e:
        logger.error(str(e))
        print_stack_trace()
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_FAILURE
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

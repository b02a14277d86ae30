import argparse
import sys
from typing import List, Optional

from pydantic import ValidationError

from . import runner
from .config import SamplerConfig
from .telemetry.logging import ConsoleLogHandler, LoggingConfig

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


# ---------------------------------------------------------------------
# CLI parser
# ---------------------------------------------------------------------
def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="amqpbench",
        description="AMQP 0-9-1 publish/consume load samplers",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # -----------------------------------------------------------------
    # amqpbench run <publish|consume>
    # -----------------------------------------------------------------
    run_parser = subparsers.add_parser("run", help="Run samplers against a broker")
    run_parser.add_argument("sampler", choices=[k.value for k in runner.SamplerKind])
    run_parser.add_argument("--env-file", default=None, help="Env file holding AMQP_* options (default: $ENV_FILE)")
    run_parser.add_argument("--prefix", default="AMQP_", help="Environment variable prefix")
    run_parser.add_argument("--users", type=int, default=1, help="Number of concurrent virtual users")
    run_parser.add_argument("--loops", type=int, default=1, help="Samples per virtual user")
    run_parser.add_argument("--name", default="amqpbench", help="Run name used in logs and telemetry")
    run_parser.add_argument("--log-level", default="INFO", choices=LOG_LEVELS)

    return parser


def _run(args: argparse.Namespace) -> int:
    try:
        sampler_config = SamplerConfig.from_env(prefix=args.prefix, env_file=args.env_file)
        run_config = runner.RunConfig(
            name=args.name,
            sampler=args.sampler,
            config=sampler_config,
            users=args.users,
            loops=args.loops,
            logging=LoggingConfig(level=args.log_level, handlers=[ConsoleLogHandler(level=args.log_level)]),
        )
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return 2

    summary = runner.run(run_config)
    print(summary.model_dump_json(indent=2))
    return 0 if summary.failures == 0 else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        return _run(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())

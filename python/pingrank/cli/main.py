# pingrank/cli/main.py
import argparse
import asyncio
import inspect
import logging
import pathlib
import sys
from typing import Any, Dict, Iterator, List, Optional, Tuple, Type, Union, get_args, get_origin

from pydantic import BaseModel, ValidationError

from pingrank.core.config import load_config
from pingrank.core.errors import InvalidModeSelector, PingRankError
from pingrank.core.plugin import BasePlugin
from pingrank.core.registry import PLUGINS, PLUGIN_KINDS, get_plugin
from pingrank.runners.local_runner import LocalRunner

logger = logging.getLogger("pingrank.cli")

LOG_FORMAT = "%(asctime)s - %(name)s [%(levelname)s] - %(message)s"
# Constructor parameters the CLI fills in itself
RESERVED_PARAMS = {"self", "progress_bars_enabled"}

def setup_cli_logging(level_name: str = "INFO", log_file: Optional[pathlib.Path] = None) -> None:
    """Routes every log record to stderr, and to `log_file` when given. stdout carries results only."""
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {level_name}")

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file, mode="a"))
        except OSError as e:
            print(f"Error: cannot log to '{log_file}': {e}", file=sys.stderr)

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S", handlers=handlers, force=True)
    logger.debug(f"Logging at {level_name.upper()}" + (f", also to {log_file}" if log_file else ""))

def load_plugin_modules() -> None:
    """Importing the stage packages registers their plugins."""
    import pingrank.dataset
    import pingrank.expand
    import pingrank.scan
    import pingrank.analyze
    logger.debug(f"Registered plugins: { {kind: sorted(PLUGINS[kind]) for kind in PLUGIN_KINDS} }")

def unwrap_annotation(annotation: Any) -> Tuple[Any, bool]:
    """Element type for argparse plus whether the parameter takes a list. Looks through Optional[...]."""
    if get_origin(annotation) is Union:
        members = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(members) != 1:
            return str, False
        annotation = members[0]
    if get_origin(annotation) in (list, List):
        inner = get_args(annotation)
        return (inner[0] if inner else str), True
    if annotation in (Any, inspect.Parameter.empty):
        return str, False
    return annotation, False

def plugin_parameters(plugin_cls: Type[BasePlugin]) -> Iterator[Tuple[str, inspect.Parameter]]:
    for name, param in inspect.signature(plugin_cls.__init__).parameters.items():
        if name in RESERVED_PARAMS or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        yield name, param

def plugin_option(name: str, param: inspect.Parameter) -> Tuple[str, Dict[str, Any]]:
    """Maps one constructor parameter to an argparse flag and its options."""
    flag = "--" + name.replace("_", "-")
    kind, is_list = unwrap_annotation(param.annotation)
    has_default = param.default is not inspect.Parameter.empty

    if kind is bool:
        # A flag flips the default; a True default is switched off with --no-<name>.
        if has_default and param.default is True:
            return "--no-" + flag[2:], {"dest": name, "action": "store_false", "help": f"disable {name}"}
        return flag, {"dest": name, "action": "store_true", "help": f"enable {name}"}

    options: Dict[str, Any] = {"dest": name, "type": kind}
    if is_list:
        options["nargs"] = "+"
    if has_default:
        options["default"] = param.default
        options["help"] = f"{name} ({kind.__name__}, default: {param.default})"
    else:
        options["required"] = True
        options["help"] = f"{name} ({kind.__name__})"
    return flag, options

def add_plugin_arguments(parser: argparse.ArgumentParser, plugin_cls: Type[BasePlugin]) -> None:
    """Exposes the plugin's constructor as flags, plus the input/output plumbing every plugin gets."""
    for name, param in plugin_parameters(plugin_cls):
        flag, options = plugin_option(name, param)
        parser.add_argument(flag, **options)

    if plugin_cls.input_type is not None:
        parser.add_argument(
            "--input-file", type=pathlib.Path, required=True,
            help=f"JSON file holding a {plugin_cls.input_type.__name__}."
        )
    parser.add_argument("--output-file", type=pathlib.Path, help="Write the JSON output here instead of stdout.")
    parser.add_argument("--progress-bars", action="store_true", help="Show progress bars on stderr.")

def write_output(output_data: BaseModel, output_file: Optional[pathlib.Path]) -> None:
    text = output_data.model_dump_json(indent=2)
    if output_file is None:
        print(text)
        return
    output_file.parent.mkdir(parents=True, exist_ok=True)
    output_file.write_text(text)
    logger.info(f"Output saved to {output_file}")

def read_plugin_input(plugin_cls: Type[BasePlugin], path: pathlib.Path) -> BaseModel:
    logger.info(f"Loading {plugin_cls.input_type.__name__} from {path}")
    try:
        return plugin_cls.input_type.model_validate_json(path.read_text())
    except ValidationError as e:
        raise PingRankError(f"{path} is not a valid {plugin_cls.input_type.__name__}: {e}") from None

def handle_plugin_execution(args: argparse.Namespace) -> int:
    """Runs one plugin on its own: `pingrank <kind> <name> [flags]`."""
    plugin_cls: Type[BasePlugin] = args.plugin_cls
    init_args = {name: getattr(args, name) for name, _ in plugin_parameters(plugin_cls) if getattr(args, name, None) is not None}
    init_args["progress_bars_enabled"] = args.progress_bars

    input_data = None
    if plugin_cls.input_type is not None:
        input_data = read_plugin_input(plugin_cls, args.input_file)

    logger.info(f"Running {plugin_cls.name} {plugin_cls.version}")
    logger.debug(f"{plugin_cls.name} arguments: {init_args}")
    with LocalRunner() as runner:
        output_data = runner.execute(plugin_cls, init_args, {}, input_data=input_data)
    write_output(output_data, args.output_file)
    return 0

def handle_rank(args: argparse.Namespace) -> int:
    """Reads the input file, expands it under the mode, probes every host and prints the fastest."""
    from pingrank.dataset import TextFileDataset
    from pingrank.pipeline import find_fastest, format_ranking

    get_plugin("expand", args.mode) # fail on a bad mode before touching the network
    config = load_config(
        args.config,
        attempts=args.attempts,
        interval=args.interval,
        timeout=args.timeout,
        payload_size=args.payload_size,
        max_concurrency=args.max_concurrency,
        deadline=args.deadline,
        privileged=False if args.unprivileged else None,
        top_n=args.top,
        max_addresses=args.max_addresses,
    )
    specs = TextFileDataset(path=args.file).load()
    ranking = asyncio.run(find_fastest(specs.specs, args.mode, config, progress_bars_enabled=args.progress_bars))

    report = format_ranking(ranking)
    if report:
        print(report)
    else:
        logger.warning("No host answered; nothing to rank.")
    if args.output_file:
        write_output(ranking, args.output_file)
    return 0

def add_rank_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("mode", help="Address family of the input: ipv4 or ipv6.")
    parser.add_argument("file", type=pathlib.Path, help="Text file with one address or prefix per line.")
    parser.add_argument("-c", "--attempts", type=int, help="Echo requests per host (default: 4).")
    parser.add_argument("-i", "--interval", type=float, help="Seconds between requests to one host (default: 1.0).")
    parser.add_argument("-W", "--timeout", type=float, help="Seconds to wait for each reply (default: 2.0).")
    parser.add_argument("-n", "--top", type=int, help="Number of hosts to report (default: 10).")
    parser.add_argument("--payload-size", type=int, help="Echo payload in bytes (default: 56).")
    parser.add_argument("--max-concurrency", type=int, help="Hosts probed at once, 0 for no limit (default: 512).")
    parser.add_argument("--deadline", type=float, help="Stop probing after this many seconds, keeping partial results.")
    parser.add_argument("--max-addresses", type=int, help="Largest range a single line may expand to.")
    parser.add_argument("--unprivileged", action="store_true", help="Use datagram ICMP sockets instead of raw sockets.")
    parser.add_argument("--config", type=pathlib.Path, help="JSON file with default probe settings.")
    parser.add_argument("--output-file", type=pathlib.Path, help="Also save the ranking as JSON.")
    parser.add_argument("--progress-bars", action="store_true", help="Show a progress bar while probing.")

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pingrank",
        description="pingrank: find the lowest-latency hosts of address ranges with ICMP echo.",
    )
    parser.add_argument("-v", "--verbose", action="store_const", const="DEBUG", default="INFO", dest="log_level",
                        help="Log at DEBUG level.")
    parser.add_argument("--log-file", type=pathlib.Path, help="Append log records to this file as well.")
    commands = parser.add_subparsers(dest="command", title="commands", required=True)

    rank_parser = commands.add_parser("rank", help="Probe address ranges and print the fastest hosts.")
    add_rank_arguments(rank_parser)
    rank_parser.set_defaults(handler_func=handle_rank)

    # One command per plugin kind, one subcommand per registered plugin
    for kind in PLUGIN_KINDS:
        if not PLUGINS[kind]:
            continue
        kind_parser = commands.add_parser(kind, help=f"Run a single {kind} plugin.")
        plugins = kind_parser.add_subparsers(dest="plugin_name", title=f"{kind} plugins", required=True)
        for plugin_name, plugin_cls in sorted(PLUGINS[kind].items()):
            plugin_parser = plugins.add_parser(
                plugin_name,
                help=plugin_cls.description,
                description=f"{plugin_cls.description or plugin_name} (version {plugin_cls.version})",
            )
            plugin_parser.set_defaults(plugin_cls=plugin_cls, handler_func=handle_plugin_execution)
            add_plugin_arguments(plugin_parser, plugin_cls)

    return parser

def main(argv: Optional[List[str]] = None) -> int:
    load_plugin_modules()
    args = build_parser().parse_args(argv)
    setup_cli_logging(args.log_level, args.log_file)

    try:
        return args.handler_func(args)
    except InvalidModeSelector as e:
        logger.error(str(e))
        return 2
    except PingRankError as e:
        logger.error(str(e))
        return 1
    except FileNotFoundError as e:
        logger.error(f"File not found: {e.filename}")
        return 1
    except ValueError as e:
        logger.error(f"Invalid argument: {e}")
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted.")
        return 130

if __name__ == "__main__":
    sys.exit(main())

import sys
import json
import argparse
import logging
import textwrap

import skyglide
from .load_dump import breakdown_asdict, _dump_yaml_fromdict


class LoglikCommand:
    """
    Compute the coalescent log-likelihood of the genealogies in a model file,
    under the model's skygrid trajectory. The total is written to stdout.
    With --breakdown, the per-partition and per-tree log-likelihoods are
    written as YAML (or JSON with -j).
    """

    def __init__(self, subparsers):
        parser = subparsers.add_parser(
            "loglik",
            help="Compute the coalescent log-likelihood of a model's trees.",
            description=textwrap.dedent(self.__doc__),
        )
        parser.set_defaults(func=self)

        parser.add_argument(
            "-j",
            "--json",
            action="store_true",
            default=False,
            help="Read a JSON-formatted model, and write a JSON breakdown.",
        )
        parser.add_argument(
            "-b",
            "--breakdown",
            action="store_true",
            default=False,
            help="Output per-partition and per-tree log-likelihoods.",
        )
        variant_group = parser.add_mutually_exclusive_group()
        variant_group.add_argument(
            "--conditioned",
            action="store_true",
            default=None,
            help=(
                "Use the coalescent conditioned on a maximum time to the "
                "most recent common ancestor, regardless of the model file."
            ),
        )
        variant_group.add_argument(
            "--unconditioned",
            dest="conditioned",
            action="store_false",
            default=None,
            help="Use the skygrid coalescent, regardless of the model file.",
        )
        parser.add_argument(
            "--threshold",
            type=float,
            default=None,
            help=(
                "The numerical stability tolerance for the conditioned "
                "coalescent. Overrides the value in the model file."
            ),
        )
        parser.add_argument(
            "--export",
            metavar="FILE",
            default=None,
            help=(
                "Also write the log-likelihood breakdown to FILE. "
                "Failure to write the file is reported but is not an error."
            ),
        )
        parser.add_argument(
            "filename",
            type=argparse.FileType(),
            help=(
                "Filename of the model. The special value '-' may be used to "
                "read from stdin."
            ),
        )

    def __call__(self, args: argparse.Namespace) -> None:
        output_format = "json" if args.json else "yaml"
        model = skyglide.load(args.filename, format=output_format)
        aggregator = model.aggregator(
            conditioned=args.conditioned, threshold=args.threshold
        )
        if args.breakdown:
            data = breakdown_asdict(aggregator)
            if output_format == "json":
                json.dump(data, sys.stdout, indent=2)
                print()
            else:
                _dump_yaml_fromdict(data, sys.stdout)
        else:
            print(aggregator.log_likelihood())
        if args.export is not None:
            skyglide.dump_breakdown(aggregator, args.export, format=output_format)


def get_skyglide_parser() -> argparse.ArgumentParser:
    top_parser = argparse.ArgumentParser(
        prog="skyglide", description="Skygrid coalescent likelihood calculator."
    )
    top_parser.add_argument(
        "--version", action="version", version=skyglide.__version__
    )
    top_parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (may be repeated).",
    )
    subparsers = top_parser.add_subparsers(dest="subcommand")
    LoglikCommand(subparsers)
    return top_parser


def cli(args_list=None) -> None:
    top_parser = get_skyglide_parser()
    args = top_parser.parse_args(args_list)
    if args.subcommand is None:
        top_parser.print_help()
        exit(1)
    log_level = [logging.WARNING, logging.INFO, logging.DEBUG][min(args.verbose, 2)]
    logging.basicConfig(level=log_level)
    args.func(args)


if __name__ == "__main__":
    cli()

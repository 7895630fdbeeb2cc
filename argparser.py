# argparser.py
import argparse
import sys

import keyspec
from command_template import PLACEHOLDER

USAGE_ERROR = 1


class FilterArgumentParser(argparse.ArgumentParser):
    # usage errors exit with 1, not argparse's 2
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(USAGE_ERROR, f"{self.prog}: error: {message}\n")


def _non_negative_int(text):
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {text!r}")
    if value < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {text}")
    return value


def _key(text):
    try:
        return keyspec.parse_key(text)
    except keyspec.KeySpecError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser():
    parser = FilterArgumentParser(
        prog="livefilter",
        description="Interactively re-run a filter command over standard input "
                    f"as the query changes. {PLACEHOLDER} in the command is "
                    "replaced by the query.")

    parser.add_argument("-p", "--prompt", default="> ", help="query prompt text")
    parser.add_argument("-i", "--initial-query", default="", help="preset query text")
    parser.add_argument("-l", "--size-limit", type=_non_negative_int, default=None,
                        metavar="N", help="in-memory buffering threshold (advisory)")
    parser.add_argument("-t", "--timeout", type=_non_negative_int, default=None,
                        metavar="MSEC", help="debounce delay before auto-fire (reserved)")
    parser.add_argument("-k", "--key", type=_key, default=None, metavar="SPEC",
                        help="hotkey that fires the command: M-<c>, C-<c>, KEY_<NAME> or F<n>")
    parser.add_argument("-X", "--no-clear", action="store_true",
                        help="do not clear the result on exit; print it to stdout")
    parser.add_argument("-B", "--no-border", action="store_true", help="no result-pane border")
    parser.add_argument("-S", "--no-separator", action="store_true", help="no separator line")

    # per-axis scrollbar modes: auto / never / always
    parser.set_defaults(hscroll="auto", vscroll="auto")
    parser.add_argument("--no-scroll", action="store_true", help="hide both scrollbars")
    parser.add_argument("--no-hscroll", dest="hscroll", action="store_const", const="never")
    parser.add_argument("--no-vscroll", dest="vscroll", action="store_const", const="never")
    parser.add_argument("--always-scroll", action="store_true", help="always show both scrollbars")
    parser.add_argument("--always-hscroll", dest="hscroll", action="store_const", const="always")
    parser.add_argument("--always-vscroll", dest="vscroll", action="store_const", const="always")

    parser.add_argument("-w", "--wrap", action="store_true", help="wrap result lines")
    parser.add_argument("-b", "--bottom", action="store_true", help="query box at the bottom")
    parser.add_argument("-T", "--tail", action="store_true", help="show the end of the result")
    parser.add_argument("-s", "--stream", action="store_true", help="unbuffered mode (reserved)")

    parser.add_argument("command", nargs=argparse.REMAINDER,
                        help=f"filter command; {PLACEHOLDER} is replaced by the query")
    return parser


def parse_args(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command and args.command[0] == "--":
        args.command = args.command[1:]
    if not args.command:
        parser.error("a filter command is required")
    if args.no_scroll:
        args.hscroll = args.vscroll = "never"
    if args.always_scroll:
        args.hscroll = args.vscroll = "always"
    return args

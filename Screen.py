#!/usr/bin/env python3
# Screen.py - query box + live result pane; owns the display and the dispatcher loop
import codecs
import logging
import os
import queue
import sys

from prompt_toolkit.application import Application
from prompt_toolkit.application.current import get_app_or_none
from prompt_toolkit.buffer import Buffer
from prompt_toolkit.document import Document
from prompt_toolkit.filters import Condition
from prompt_toolkit.layout import ConditionalContainer, HSplit, Layout, Window
from prompt_toolkit.layout.controls import BufferControl, FormattedTextControl
from prompt_toolkit.layout.margins import ConditionalMargin, ScrollbarMargin
from prompt_toolkit.output import create_output
from prompt_toolkit.styles import DynamicStyle, Style
from prompt_toolkit.utils import get_cwidth
from prompt_toolkit.widgets import Frame, TextArea

import argparser
import commands
import Interrupt
import log_setup
from dispatcher import Dispatcher, RenderSurface
from external_runner import ExternalRunner
from process_subsystem import FireController
from spool import Spool

log = logging.getLogger(__name__)

BUSY_TEXT = " running... "
DEFAULT_PANE_SIZE = (80, 24)

IDLE_STYLE = Style.from_dict({
    "separator": "#666666",
    "status": "reverse",
    "result frame.border": "#888888",
    "result frame.label": "bold",
})
BUSY_STYLE = Style.from_dict({
    "separator": "#666666",
    "status": "reverse",
    "result frame.border": "ansiyellow",
    "result frame.label": "bold ansiyellow",
})


class ScreenState:
    def __init__(self, args):
        self.wrap = args.wrap
        self.tail = args.tail
        self.hscroll = args.hscroll
        self.vscroll = args.vscroll
        self.busy = False
        self.status = ""
        self.editing = False


# -----------------------
# Scrollbars
# -----------------------
def _forced(mode, needed):
    if mode == "always":
        return True
    if mode == "never":
        return False
    return needed


def scrollbar_visibility(text, width, height, wrap, hmode="auto", vmode="auto"):
    """Return (hscroll, vscroll) visibility for text shown in a width x height pane."""
    lines = text.split("\n")
    if len(lines) > 1 and lines[-1] == "":
        lines.pop()
    widths = [get_cwidth(line) for line in lines]
    width = max(width, 1)
    if wrap:
        rows = sum(max(1, -(-w // width)) for w in widths)
        h_needed = False
    else:
        rows = len(lines)
        h_needed = max(widths) > width
    v_needed = rows > height
    return _forced(hmode, h_needed), _forced(vmode, v_needed)


# -----------------------
# Result pane (render surface)
# -----------------------
class ResultPane(RenderSurface):
    def __init__(self, state, border=True):
        self.state = state
        self.text = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.buffer = Buffer(read_only=True, name="result")
        self.window = Window(
            BufferControl(buffer=self.buffer, focusable=True),
            wrap_lines=Condition(lambda: state.wrap),
            right_margins=[ConditionalMargin(ScrollbarMargin(display_arrows=True),
                                             filter=Condition(lambda: self.visibility()[1]))],
        )
        hbar = ConditionalContainer(
            Window(FormattedTextControl(self._hscroll_fragments), height=1),
            filter=Condition(lambda: self.visibility()[0]))
        body = HSplit([self.window, hbar])
        if border:
            self.container = Frame(body, title=self._title, style="class:result")
        else:
            status_line = ConditionalContainer(
                Window(FormattedTextControl(self._title), height=1, style="class:status"),
                filter=Condition(lambda: bool(self._title())))
            self.container = HSplit([body, status_line], style="class:result")

    def __pt_container__(self):
        return self.container

    def _title(self):
        if self.state.busy:
            return BUSY_TEXT
        if self.state.status:
            return f" {self.state.status} "
        return ""

    def pane_size(self):
        info = self.window.render_info
        if info is not None:
            return info.window_width, info.window_height
        app = get_app_or_none()
        if app is not None:
            size = app.output.get_size()
            return size.columns, size.rows
        return DEFAULT_PANE_SIZE

    def visibility(self):
        width, height = self.pane_size()
        s = self.state
        return scrollbar_visibility(self.text, width, height, s.wrap, s.hscroll, s.vscroll)

    def _hscroll_fragments(self):
        width = max(self.pane_size()[0], 1)
        longest = max((get_cwidth(line) for line in self.text.split("\n")), default=0)
        if longest <= width:
            return [("class:scrollbar.button", " " * width)]
        start = min(width - 1, self.window.horizontal_scroll * width // longest)
        size = max(1, width * width // longest)
        size = min(size, width - start)
        return [
            ("class:scrollbar.background", " " * start),
            ("class:scrollbar.button", " " * size),
            ("class:scrollbar.background", " " * (width - start - size)),
        ]

    def _show(self, cursor):
        cursor = max(0, min(cursor, len(self.text)))
        self.buffer.set_document(Document(self.text, cursor), bypass_readonly=True)

    def reposition(self):
        self._show(len(self.text) if self.state.tail else 0)

    # RenderSurface
    def set_text(self, text):
        self._decoder.reset()
        self.text = text
        self.reposition()

    def append(self, data):
        self.text += self._decoder.decode(data)
        if self.state.tail:
            self._show(len(self.text))
        else:
            self._show(self.buffer.cursor_position)

    def set_busy(self, busy):
        self.state.busy = busy

    def show_error(self, message):
        self.state.status = message

    def clear_error(self):
        self.state.status = ""


# -----------------------
# Screen
# -----------------------
class Screen:
    def __init__(self, args, spool):
        self.args = args
        self.spool = spool
        self.state = ScreenState(args)
        self.updates = queue.SimpleQueue()
        self.runner = ExternalRunner(self.updates)

        self.query = TextArea(text=args.initial_query, prompt=args.prompt,
                              multiline=False, wrap_lines=False,
                              accept_handler=self._accept_query)
        self.editor = TextArea(prompt="command: ", multiline=False, wrap_lines=False,
                               accept_handler=self._accept_filter)
        self.result = ResultPane(self.state, border=not args.no_border)

        self.controller = FireController(args.command,
                                         submit=self.runner.submit,
                                         get_query=lambda: self.query.text,
                                         open_reader=spool.open_reader)
        self.dispatcher = Dispatcher(self.updates, self.controller, self.result)
        self.query.buffer.on_text_changed += lambda _: commands.fire(self)

        self.app = Application(
            layout=Layout(self._build_layout(), focused_element=self.query),
            key_bindings=commands.bind_keys(self, args.key),
            style=DynamicStyle(lambda: BUSY_STYLE if self.state.busy else IDLE_STYLE),
            output=create_output(always_prefer_tty=True),
            full_screen=True,
        )

    def _build_layout(self):
        editor = ConditionalContainer(self.editor, filter=Condition(lambda: self.state.editing))
        top = [self.query, editor]
        if not self.args.no_separator:
            top.append(Window(height=1, char="─", style="class:separator"))
        if self.args.bottom:
            return HSplit([self.result] + list(reversed(top)))
        return HSplit(top + [self.result])

    def _accept_query(self, buff):
        commands.fire(self)
        return True

    def _accept_filter(self, buff):
        return not commands.apply_filter(self, buff.text)

    def _start_dispatcher(self):
        self.app.create_background_task(self.dispatcher.run(self.app))

    def run(self):
        Interrupt.bind_updates(self.updates)
        Interrupt.setup_signals()
        self.runner.start()
        commands.fire(self)
        self.app.run(pre_run=self._start_dispatcher, handle_sigint=False)
        self.runner.stop(timeout=1)
        return 0


# -----------------------
# Standard input
# -----------------------
def redirect_stdin():
    """Move piped stdin out of the way and put the terminal on fd 0.
    Returns the fd the spool should copy from, or None if stdin is a terminal."""
    if os.isatty(0):
        return None
    source = os.dup(0)
    tty = os.open("/dev/tty", os.O_RDWR)
    os.dup2(tty, 0)
    os.close(tty)
    return source


def main(argv=None):
    args = argparser.parse_args(argv)
    log_setup.configure()
    try:
        spool = Spool()
        source = redirect_stdin()
    except OSError as e:
        print(f"livefilter: {e}", file=sys.stderr)
        return 1
    if source is not None:
        spool.start_writer(source)
    log.info("livefilter: command %r", args.command)

    screen = Screen(args, spool)
    rc = screen.run()
    if args.no_clear and screen.result.text:
        sys.stdout.write(screen.result.text)
        sys.stdout.flush()
    return rc


if __name__ == "__main__":
    sys.exit(main())

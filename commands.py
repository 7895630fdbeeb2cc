#!/usr/bin/env python3
# commands.py - key-bound actions for the filter screen

from prompt_toolkit.filters import Condition, has_focus
from prompt_toolkit.key_binding import KeyBindings

from command_template import TemplateError, from_text, to_text

# -----------------------
# Actions
# Each function accepts the Screen it acts on
# -----------------------
def fire(screen):
    screen.controller.fire()

def quit_filter(screen):
    screen.controller.quit()

def toggle_wrap(screen):
    screen.state.wrap = not screen.state.wrap

def toggle_tail(screen):
    screen.state.tail = not screen.state.tail
    screen.result.reposition()

def focus_next(screen):
    order = [screen.query, screen.result.window]
    if screen.state.editing:
        order.append(screen.editor)
    layout = screen.app.layout
    current = layout.current_window
    for i, target in enumerate(order):
        window = getattr(target, "window", target)
        if window is current:
            layout.focus(order[(i + 1) % len(order)])
            return
    layout.focus(screen.query)

def edit_filter(screen):
    state = screen.state
    if state.editing:
        state.editing = False
        screen.app.layout.focus(screen.query)
        return
    screen.editor.text = to_text(screen.controller.template)
    state.editing = True
    screen.app.layout.focus(screen.editor)

def apply_filter(screen, text):
    """Replace the command template with the hand-edited one and re-run.
    Returns False when the text was rejected."""
    try:
        template = from_text(text)
    except TemplateError as e:
        screen.result.show_error(str(e))
        return False
    screen.controller.set_template(template)
    screen.state.editing = False
    screen.app.layout.focus(screen.query)
    fire(screen)
    return True


def bind_keys(screen, fire_key=None):
    kb = KeyBindings()
    result_focused = Condition(lambda: screen.app.layout.has_focus(screen.result.window))

    @kb.add("c-c")
    @kb.add("c-q")
    def _(event):
        quit_filter(screen)

    @kb.add("tab")
    def _(event):
        focus_next(screen)

    @kb.add("c-w")
    def _(event):
        toggle_wrap(screen)

    @kb.add("c-t")
    def _(event):
        toggle_tail(screen)

    @kb.add("c-e")
    def _(event):
        edit_filter(screen)

    @kb.add("escape", filter=has_focus(screen.editor))
    def _(event):
        edit_filter(screen)

    @kb.add("enter", filter=result_focused)
    def _(event):
        fire(screen)

    if fire_key:
        @kb.add(*fire_key)
        def _(event):
            fire(screen)

    return kb

from ..events import InputData, InputEvent
from .channel import Channel
from .dom import FORM_TAGS, Element
from .page import DomEvent
from .selectors import selector_of

TEXT_TAGS = ("INPUT", "TEXTAREA")
TOGGLE_TYPES = ("checkbox", "radio")


class InputWatcher(Channel):
    """Form controls: typed values (masked per policy), toggles, selects, focus."""

    name = "inputs"

    def _start(self) -> None:
        self._listen("input", self.on_input)
        self._listen("change", self.on_change)
        self._listen("focus", self.on_focus)
        self._listen("blur", self.on_blur)

    def _target(self, event: DomEvent, tags=FORM_TAGS):
        target = event.target
        if not isinstance(target, Element) or target.tag_name not in tags:
            return None
        if self.policy.is_excluded(target):
            return None
        return target

    def _emit(self, data: InputData) -> None:
        self.sink(InputEvent(timestamp=self.page.now(), data=data))

    def on_input(self, event: DomEvent) -> None:
        target = self._target(event, TEXT_TAGS)
        if target is None or target.type in TOGGLE_TYPES:
            return
        value, masked = self.policy.redact(target, target.value)
        self._emit(InputData(
            selector=selector_of(target),
            tag_name=target.tag_name,
            input_type=target.type,
            value=value,
            masked=masked,
            selection_start=target.selection_start,
            selection_end=target.selection_end,
        ))

    def on_change(self, event: DomEvent) -> None:
        target = self._target(event)
        if target is None:
            return
        if target.tag_name == "SELECT":
            option = target.selected_option
            value, masked = self.policy.redact(target, target.value)
            text, _ = self.policy.redact(target, option.text_content if option is not None else "")
            self._emit(InputData(
                selector=selector_of(target),
                tag_name="SELECT",
                selected_index=target.selected_index,
                value=value,
                selected_text=text,
                masked=masked,
            ))
        elif target.tag_name == "INPUT" and target.type in TOGGLE_TYPES:
            self._emit(InputData(
                selector=selector_of(target),
                tag_name="INPUT",
                input_type=target.type,
                checked=target.checked,
                value=target.value,
                name=target.name,
            ))

    def on_focus(self, event: DomEvent) -> None:
        self._focus_change(event, "focus")

    def on_blur(self, event: DomEvent) -> None:
        self._focus_change(event, "blur")

    def _focus_change(self, event: DomEvent, action: str) -> None:
        target = self._target(event)
        if target is None:
            return
        self._emit(InputData(selector=selector_of(target), tag_name=target.tag_name, action=action))

"""
Builds typed configuration definitions from parsed nodes.

Top-level forms:
    (defvar name "value")
    (defpoll name :interval "1s" :initial "0" "command")
    (deflisten name :initial "" "command")
    (defwidget name (param ?optional-param) (type :attr expr ... children...))
    (defwindow name :monitor 0 (type-or-widget ...))

Everything is validated here, at load time: unknown forms, unknown widget
types or attributes, bad builtin calls, duplicate names and recursive
widget definitions all raise before any state is touched.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Set, Tuple

from ..expr.ast import Expression, Literal
from ..expr.compiler import compile_expression
from ..expr.value import EMPTY, Value
from ..utils.errors import CompileError, DuplicateVariable
from ..widgets.registry import WidgetRegistry
from .nodes import Atom, AtomKind, ConfigNode, ListNode, Span
from .parser import parse

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)?")
DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, None: 1.0}


class VariableKind(Enum):
    CONSTANT = "constant"
    POLLED = "poll"
    LISTENED = "listen"


@dataclass(frozen=True)
class VarDefinition:
    name: str
    kind: VariableKind
    initial: Value = EMPTY
    command: Optional[str] = None
    interval: Optional[float] = None

    @classmethod
    def constant(cls, name: str, value: Value) -> "VarDefinition":
        return cls(name, VariableKind.CONSTANT, value)

    @classmethod
    def polled(cls, name: str, command: str, interval: float, initial: Value = EMPTY) -> "VarDefinition":
        return cls(name, VariableKind.POLLED, initial, command, interval)

    @classmethod
    def listened(cls, name: str, command: str, initial: Value = EMPTY) -> "VarDefinition":
        return cls(name, VariableKind.LISTENED, initial, command)


@dataclass(frozen=True)
class WidgetSpec:
    """
    One widget form: a type tag (builtin type or defwidget name), its
    attribute bindings in declaration order, and its child forms.
    """

    widget_type: str
    attributes: Tuple[Tuple[str, Expression], ...] = ()
    children: Tuple["WidgetSpec", ...] = ()
    span: Optional[Span] = field(default=None, compare=False, repr=False)

    def to_source(self) -> str:
        parts = [self.widget_type]
        for name, expr in self.attributes:
            parts.append(f":{name} {expr.to_source()}")
        parts.extend(child.to_source() for child in self.children)
        return "(" + " ".join(parts) + ")"


@dataclass(frozen=True)
class WidgetTemplate:
    """A reusable widget declared with defwidget."""

    name: str
    params: Tuple[str, ...]
    body: WidgetSpec
    optional: Tuple[str, ...] = ()


@dataclass(frozen=True)
class WindowDefinition:
    name: str
    root: WidgetSpec
    properties: Tuple[Tuple[str, Value], ...] = ()

    def property(self, name: str, default: Optional[Value] = None) -> Optional[Value]:
        return dict(self.properties).get(name, default)


@dataclass
class Config:
    """A fully validated configuration."""

    variables: Dict[str, VarDefinition] = field(default_factory=dict)
    templates: Dict[str, WidgetTemplate] = field(default_factory=dict)
    windows: Dict[str, WindowDefinition] = field(default_factory=dict)

    def generate_initial_state(self) -> Dict[str, Value]:
        return {name: definition.initial for name, definition in self.variables.items()}

    def expand(self, spec: WidgetSpec, bindings: Optional[Mapping[str, Expression]] = None) -> WidgetSpec:
        """
        Replace every defwidget use in a spec with its body.

        Template parameters are substituted into the body's expressions,
        so the result only contains builtin widget types.
        """
        bindings = bindings or {}
        attributes = tuple((name, expr.substitute(bindings)) for name, expr in spec.attributes)

        template = self.templates.get(spec.widget_type)
        if template is None:
            children = tuple(self.expand(child, bindings) for child in spec.children)
            return WidgetSpec(spec.widget_type, attributes, children, spec.span)

        arguments = dict(attributes)
        inner = {param: arguments.get(param, Literal(EMPTY)) for param in template.params}
        return self.expand(template.body, inner)


def parse_duration(text: str, span: Optional[Span] = None) -> float:
    """
    Parse "500ms", "1s", "2m", "1h" or bare seconds into seconds.

    Raises:
        CompileError: If the text is not a positive duration
    """
    match = DURATION_PATTERN.fullmatch(text.strip())
    if not match:
        raise CompileError(f"Invalid duration '{text}'", span)
    seconds = float(match.group(1)) * DURATION_UNITS[match.group(2)]
    if seconds <= 0:
        raise CompileError(f"Duration must be positive, got '{text}'", span)
    return seconds


def load_config(text: str, registry: WidgetRegistry) -> Config:
    """
    Parse and validate configuration text.

    Raises:
        ParseError: Malformed text
        CompileError: Invalid forms, widgets or expressions
        DuplicateVariable: A variable name declared twice
    """
    return ConfigBuilder(registry).build(parse(text))


class ConfigBuilder:
    """Turns top-level ConfigNodes into a validated Config."""

    def __init__(self, registry: WidgetRegistry):
        self.registry = registry
        self.config = Config()

    def build(self, nodes: List[ConfigNode]) -> Config:
        for node in nodes:
            self._build_form(node)

        for template in self.config.templates.values():
            self._validate_spec(template.body, (template.name,))
        for window in self.config.windows.values():
            self._validate_spec(window.root, ())

        logger.info(
            f"Loaded {len(self.config.variables)} variables, "
            f"{len(self.config.templates)} widgets, {len(self.config.windows)} windows"
        )
        return self.config

    def _build_form(self, node: ConfigNode) -> None:
        if not isinstance(node, ListNode) or node.head_symbol is None:
            raise CompileError(f"Expected a top-level declaration, got {node.to_source()}", node.span)

        form = node.head_symbol
        if form == "defvar":
            self._add_variable(self._build_defvar(node))
        elif form == "defpoll":
            self._add_variable(self._build_defpoll(node))
        elif form == "deflisten":
            self._add_variable(self._build_deflisten(node))
        elif form == "defwidget":
            self._build_defwidget(node)
        elif form == "defwindow":
            self._build_defwindow(node)
        else:
            raise CompileError(f"Unknown declaration '{form}'", node.span)

    # Variables

    def _add_variable(self, definition: VarDefinition) -> None:
        if definition.name in self.config.variables:
            raise DuplicateVariable(definition.name)
        self.config.variables[definition.name] = definition
        logger.debug(f"Declared {definition.kind.value} variable '{definition.name}'")

    def _build_defvar(self, node: ListNode) -> VarDefinition:
        name = _declared_name(node)
        keywords, positional = _split_arguments(node.items[2:])
        if keywords or len(positional) != 1:
            raise CompileError("defvar takes a name and exactly one value", node.span)
        return VarDefinition.constant(name, _literal_value(positional[0]))

    def _build_defpoll(self, node: ListNode) -> VarDefinition:
        name = _declared_name(node)
        keywords, positional = _split_arguments(node.items[2:])
        _reject_unknown_keywords(keywords, {"interval", "initial"}, node)
        if "interval" not in keywords:
            raise CompileError(f"defpoll '{name}' requires :interval", node.span)
        interval_node = keywords["interval"]
        interval = parse_duration(_literal_value(interval_node).as_string(), interval_node.span)
        command = _single_command(name, positional, node)
        initial = _literal_value(keywords["initial"]) if "initial" in keywords else EMPTY
        return VarDefinition.polled(name, command, interval, initial)

    def _build_deflisten(self, node: ListNode) -> VarDefinition:
        name = _declared_name(node)
        keywords, positional = _split_arguments(node.items[2:])
        _reject_unknown_keywords(keywords, {"initial"}, node)
        command = _single_command(name, positional, node)
        initial = _literal_value(keywords["initial"]) if "initial" in keywords else EMPTY
        return VarDefinition.listened(name, command, initial)

    # Widgets and windows

    def _build_defwidget(self, node: ListNode) -> None:
        name = _declared_name(node)
        if len(node.items) != 4 or not isinstance(node.items[2], ListNode):
            raise CompileError(
                f"defwidget '{name}' needs a parameter list and exactly one body widget", node.span
            )
        if name in self.config.templates or self.registry.get(name) is not None:
            raise CompileError(f"Widget '{name}' is already defined", node.span)

        params: List[str] = []
        optional: List[str] = []
        for param in node.items[2].items:
            if not (isinstance(param, Atom) and param.is_symbol):
                raise CompileError(f"Invalid parameter {param.to_source()}", param.span)
            if param.text.startswith("?") and len(param.text) > 1:
                params.append(param.text[1:])
                optional.append(param.text[1:])
            else:
                params.append(param.text)

        body = self._build_widget(node.items[3])
        self.config.templates[name] = WidgetTemplate(name, tuple(params), body, tuple(optional))

    def _build_defwindow(self, node: ListNode) -> None:
        name = _declared_name(node)
        if name in self.config.windows:
            raise CompileError(f"Window '{name}' is already defined", node.span)
        keywords, positional = _split_arguments(node.items[2:])
        if len(positional) != 1:
            raise CompileError(f"defwindow '{name}' needs exactly one root widget", node.span)
        properties = tuple((key, _literal_value(value)) for key, value in keywords.items())
        root = self._build_widget(positional[0])
        self.config.windows[name] = WindowDefinition(name, root, properties)

    def _build_widget(self, node: ConfigNode) -> WidgetSpec:
        if not isinstance(node, ListNode) or node.head_symbol is None:
            raise CompileError(f"Expected a widget, got {node.to_source()}", node.span)

        keywords, positional = _split_arguments(node.items[1:])
        attributes = tuple(
            (name, compile_expression(value)) for name, value in keywords.items()
        )
        children = []
        for child in positional:
            children.append(self._build_widget(child))
        return WidgetSpec(node.head_symbol, attributes, tuple(children), node.span)

    def _validate_spec(self, spec: WidgetSpec, stack: Tuple[str, ...]) -> None:
        template = self.config.templates.get(spec.widget_type)
        if template is not None:
            if template.name in stack:
                cycle = " -> ".join(stack + (template.name,))
                raise CompileError(f"Recursive widget definition: {cycle}", spec.span)
            given = {name for name, _ in spec.attributes}
            unknown = given - set(template.params)
            if unknown:
                raise CompileError(
                    f"Widget '{template.name}' has no parameter ':{sorted(unknown)[0]}'", spec.span
                )
            missing = set(template.params) - set(template.optional) - given
            if missing:
                raise CompileError(
                    f"Widget '{template.name}' is missing parameter ':{sorted(missing)[0]}'", spec.span
                )
            if spec.children:
                raise CompileError(f"Widget '{template.name}' does not take children", spec.span)
            self._validate_spec(template.body, stack + (template.name,))
            return

        widget = self.registry.get(spec.widget_type)
        if widget is None:
            raise CompileError(f"Unknown widget type '{spec.widget_type}'", spec.span)
        widget.validate([name for name, _ in spec.attributes], len(spec.children), spec.span)
        for child in spec.children:
            self._validate_spec(child, stack)


def _declared_name(node: ListNode) -> str:
    if len(node.items) < 2 or not (isinstance(node.items[1], Atom) and node.items[1].is_symbol):
        raise CompileError(f"'{node.head_symbol}' requires a name", node.span)
    return node.items[1].text


def _split_arguments(items: Tuple[ConfigNode, ...]) -> Tuple[Dict[str, ConfigNode], List[ConfigNode]]:
    """Split a form's arguments into keyword pairs and positional nodes."""
    keywords: Dict[str, ConfigNode] = {}
    positional: List[ConfigNode] = []
    index = 0
    while index < len(items):
        item = items[index]
        if isinstance(item, Atom) and item.is_keyword:
            if index + 1 >= len(items):
                raise CompileError(f"Keyword {item.text} is missing a value", item.span)
            if item.keyword_name in keywords:
                raise CompileError(f"Keyword {item.text} given more than once", item.span)
            keywords[item.keyword_name] = items[index + 1]
            index += 2
        else:
            positional.append(item)
            index += 1
    return keywords, positional


def _reject_unknown_keywords(keywords: Dict[str, ConfigNode], allowed: Set[str], node: ListNode) -> None:
    for key, value in keywords.items():
        if key not in allowed:
            raise CompileError(f"'{node.head_symbol}' does not accept :{key}", value.span)


def _literal_value(node: ConfigNode) -> Value:
    if isinstance(node, Atom):
        if node.kind is AtomKind.STRING:
            return Value.string(node.text)
        if node.kind is AtomKind.NUMBER:
            return Value.number(float(node.text))
        if node.kind is AtomKind.SYMBOL and node.text in ("true", "false"):
            return Value.boolean(node.text == "true")
    raise CompileError(f"Expected a literal value, got {node.to_source()}", node.span)


def _single_command(name: str, positional: List[ConfigNode], node: ListNode) -> str:
    if len(positional) != 1:
        raise CompileError(f"'{name}' needs exactly one command string", node.span)
    command = positional[0]
    if not (isinstance(command, Atom) and command.kind is AtomKind.STRING):
        raise CompileError(f"Command for '{name}' must be a string", command.span)
    return command.text

import inspect
import re
import types
import typing
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model


_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    tuple: "array",
    set: "array",
    dict: "object",
    type(None): "null",
}

_VALIDATION_KINDS = {
    "missing": "Missing required parameters",
    "missing_argument": "Missing required parameters",
    "extra_forbidden": "Unknown parameters",
    "unexpected_keyword_argument": "Unknown parameters",
}


class LLMRecoverableError(Exception):
    """Raise from a tool to hand a message back to the model verbatim.

    The message becomes the tool result, so the model can correct its
    call instead of the round failing.
    """


class ToolCallResult(BaseModel):
    tool_name: str
    output: Any = None


@dataclass
class ArgumentCheck:
    """Outcome of fitting decoded arguments onto a tool's signature.

    ``problem`` is ``None`` when the arguments are usable; otherwise it
    names the kind of mismatch and ``errors`` holds the details.
    """

    arguments: dict[str, Any] = field(default_factory=dict)
    problem: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.problem is None


def _json_type(annotation) -> str:
    if annotation is inspect.Parameter.empty or annotation is Any:
        return "string"
    origin = typing.get_origin(annotation)
    if origin in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        return _json_type(args[0]) if args else "null"
    if origin is not None:
        annotation = origin
    return _JSON_TYPES.get(annotation, "string")


def _parse_param_descriptions(func: Callable) -> dict[str, str]:
    """Pull per-parameter descriptions out of a docstring.

    Understands Google (``Args:``), reST (``:param x:``) and NumPy
    (``Parameters`` + dashes) styles.
    """
    doc = inspect.getdoc(func)
    if not doc:
        return {}
    lines = doc.splitlines()

    rest = re.findall(r"^:param\s+(?:\S+\s+)?(\w+):\s*(.*)$", doc, re.MULTILINE)
    if rest:
        return {name: desc.strip() for name, desc in rest}

    descriptions: dict[str, list[str]] = {}
    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped in ("Args:", "Arguments:", "Parameters:"):
            base_indent = None
            current = None
            for body in lines[i + 1:]:
                if not body.strip():
                    continue
                indent = len(body) - len(body.lstrip())
                if base_indent is None:
                    base_indent = indent
                if indent < base_indent:
                    break
                m = re.match(r"(\w+)\s*(?:\([^)]*\))?\s*:\s*(.*)$", body.strip())
                if indent == base_indent and m:
                    current = m.group(1)
                    descriptions[current] = [m.group(2).strip()]
                elif current is not None:
                    descriptions[current].append(body.strip())
            break
        if (
            stripped == "Parameters"
            and i + 1 < len(lines)
            and set(lines[i + 1].strip()) == {"-"}
        ):
            current = None
            section = lines[i + 2:]
            for j, body in enumerate(section):
                if not body.strip():
                    continue
                if not body.startswith((" ", "\t")):
                    following = section[j + 1].strip() if j + 1 < len(section) else ""
                    m = re.match(r"(\w+)\s*(?::.*)?$", body.strip())
                    if m is None or (following and set(following) == {"-"}):
                        break
                    current = m.group(1)
                    descriptions[current] = []
                elif current is not None:
                    descriptions[current].append(body.strip())
            break

    return {
        name: "\n".join(part for part in parts if part)
        for name, parts in descriptions.items()
    }


def _signature(func: Callable) -> inspect.Signature:
    """Signature of *func* with postponed (string) annotations resolved."""
    try:
        return inspect.signature(func, eval_str=True)
    except NameError:
        # Names local to an enclosing function stay unresolved strings.
        return inspect.signature(func)


def _build_parameters_schema(
    func: Callable, exclude: frozenset[str] = frozenset(),
) -> tuple[dict, list[str]]:
    """Build a JSON schema ``object`` for *func*'s parameters."""
    descriptions = _parse_param_descriptions(func)
    properties = {}
    required = []
    for name, param in _signature(func).parameters.items():
        if name in exclude or param.kind in (
            inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD,
        ):
            continue
        properties[name] = {
            "type": _json_type(param.annotation),
            "description": descriptions.get(name, ""),
        }
        if param.default is inspect.Parameter.empty:
            required.append(name)
    schema = {"type": "object", "properties": properties, "required": required}
    return schema, required


class Tool(BaseModel):
    """A named callable the model may invoke.

    Build one with the :func:`tool` decorator.  Failure handling is
    chosen per tool: the default turns exceptions into a diagnostic
    string, :meth:`failed` installs a custom handler and
    :meth:`without_error_handling` makes failures raise.
    """

    func: Callable = Field(exclude=True)
    name: str
    description: str = ""
    parameters_schema: dict
    bound_arguments: dict[str, Any] = Field(default_factory=dict, exclude=True)
    failed_handler: Callable | None = Field(default=None, exclude=True)
    handle_errors: bool = Field(default=True, exclude=True)
    model_config = {"arbitrary_types_allowed": True}

    def model_dump(self, **kwargs):
        """Return the OpenAI-compatible function schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema,
            },
        }

    def bind(self, **kwargs) -> "Tool":
        """Pre-apply arguments and hide them from the model."""
        bound = {**self.bound_arguments, **kwargs}
        schema, _ = _build_parameters_schema(self.func, frozenset(bound))
        return self.model_copy(update={
            "bound_arguments": bound,
            "parameters_schema": schema,
        })

    def failed(self, handler: Callable[[Exception, dict], str]) -> "Tool":
        return self.model_copy(update={
            "failed_handler": handler, "handle_errors": True,
        })

    def without_error_handling(self) -> "Tool":
        return self.model_copy(update={
            "failed_handler": None, "handle_errors": False,
        })

    def expected_parameters(self) -> str:
        required = set(self.parameters_schema.get("required", []))
        return ", ".join(
            f"{name} ({spec.get('type', 'string')}"
            f"{', required' if name in required else ''})"
            for name, spec in self.parameters_schema.get("properties", {}).items()
        )

    def _arguments_model(self) -> type[BaseModel]:
        fields: dict[str, Any] = {}
        extra = "forbid"
        for name, param in _signature(self.func).parameters.items():
            if param.kind is inspect.Parameter.VAR_KEYWORD:
                extra = "allow"
                continue
            if name in self.bound_arguments or param.kind is inspect.Parameter.VAR_POSITIONAL:
                continue
            annotation = Any if param.annotation is inspect.Parameter.empty else param.annotation
            default = ... if param.default is inspect.Parameter.empty else param.default
            fields[name] = (annotation, default)
        return create_model(
            f"{self.name}_arguments",
            __config__=ConfigDict(extra=extra, arbitrary_types_allowed=True),
            **fields,
        )

    def check_arguments(self, arguments: dict[str, Any]) -> ArgumentCheck:
        """Validate *arguments* against the signature without calling."""
        try:
            validated = self._arguments_model().model_validate(arguments)
        except ValidationError as e:
            errors = e.errors()
            kinds = {_VALIDATION_KINDS.get(err["type"], "Type mismatch") for err in errors}
            problem = kinds.pop() if len(kinds) == 1 else "Invalid parameters"
            return ArgumentCheck(
                arguments=arguments,
                problem=problem,
                errors=[
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                    for err in errors
                ],
            )
        provided = {name: getattr(validated, name) for name in validated.model_fields_set}
        provided.update(validated.model_extra or {})
        return ArgumentCheck(arguments=provided)

    async def __call__(self, *args, **kwargs) -> ToolCallResult:
        output = self.func(*args, **self.bound_arguments, **kwargs)
        if inspect.isawaitable(output):
            output = await output
        return ToolCallResult(tool_name=self.name, output=output)


def tool(func: Callable | None = None, *, name: str | None = None, description: str | None = None):
    """Turn a function into a :class:`Tool`.

    Usable bare (``@tool``) or with overrides
    (``@tool(name="lookup", description="...")``).  The description
    defaults to the first paragraph of the docstring.
    """
    def wrap(f: Callable) -> Tool:
        schema, _ = _build_parameters_schema(f)
        doc = inspect.getdoc(f) or ""
        return Tool(
            func=f,
            name=name or f.__name__,
            description=description if description is not None else doc.split("\n\n")[0].strip(),
            parameters_schema=schema,
        )

    if func is not None:
        return wrap(func)
    return wrap

"""`@email`: validates email addresses flowing into and out of the API.

On arguments and input fields the declared `String` type is replaced by the
`ValidatedEmail` scalar, so an invalid value fails the whole operation while it
is being parsed, before any resolver runs:

    type Mutation {
      createUser(email: String! @email): User
    }

On output fields the resolver result is checked after the field resolves. An
invalid stored value is reported as an error on that field only; sibling fields
of the response keep their data.

Variables passed to email-validated arguments must be declared as
`ValidatedEmail` (or `ValidatedEmail!`).
"""

import re
from typing import Any

from graphql import (
    ArgumentNode,
    DirectiveLocation,
    FieldNode,
    GraphQLError,
    GraphQLScalarType,
    GraphQLString,
    ObjectFieldNode,
    StringValueNode,
    ValidationContext,
    ValueNode,
    VariableDefinitionNode,
    get_named_type,
    print_ast,
)
from graphql.validation import ValuesOfCorrectTypeRule

from gqlharbor import log
from gqlharbor.directives.registry import DirectiveDefinition, FieldDescriptor, call_resolver
from gqlharbor.directives.types import TypeShape, describe_type
from gqlharbor.errors import InvalidEmailError, SchemaConfigurationError

EMAIL_DIRECTIVE_NAME = "email"

EMAIL_TYPE_DEFS = f"""
directive @{EMAIL_DIRECTIVE_NAME} on FIELD_DEFINITION | ARGUMENT_DEFINITION | INPUT_FIELD_DEFINITION
"""

# Approximates RFC 5322: dot-atom local part, dot-separated domain labels and an
# alphabetic top-level label. Not a deliverability check.
EMAIL_PATTERN = re.compile(
    r"[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+)*"
    r"@(?:[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?\.)+[A-Za-z]{2,63}"
)


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and len(value) <= 254 and EMAIL_PATTERN.fullmatch(value) is not None


def parse_email(value: Any) -> str:
    if not is_valid_email(value):
        raise InvalidEmailError(f"Invalid email address: {value!r}")
    return value


def parse_email_literal(value_node: ValueNode, _variables: Any = None) -> str:
    if not isinstance(value_node, StringValueNode):
        raise InvalidEmailError(f"Email address must be a string, found {print_ast(value_node)}")
    return parse_email(value_node.value)


GraphQLValidatedEmail = GraphQLScalarType(
    name="ValidatedEmail",
    description="A String holding a syntactically valid email address.",
    serialize=GraphQLString.serialize,
    parse_value=parse_email,
    parse_literal=parse_email_literal,
)


class EmailValuesRule(ValuesOfCorrectTypeRule):
    """ValuesOfCorrectTypeRule that names where an invalid email literal was given.

    The reported error carries the argument coordinate followed by the input
    field path, e.g. `Mutation.createUser(input:).email`, in its message and in
    `extensions.coordinate`. Other literals are checked as usual.
    """

    def __init__(self, context: ValidationContext) -> None:
        super().__init__(context)
        self._field: str | None = None
        self._path: list[str] = []

    def enter_field(self, node: FieldNode, *_args: Any) -> None:
        parent = self.context.get_parent_type()
        self._field = f"{parent.name}.{node.name.value}" if parent else node.name.value

    def enter_argument(self, node: ArgumentNode, *_args: Any) -> None:
        directive = self.context.get_directive()
        owner = f"@{directive.name}" if directive else self._field
        self._path = [f"{owner}({node.name.value}:)"]

    def leave_argument(self, *_args: Any) -> None:
        self._path = []

    def enter_variable_definition(self, node: VariableDefinitionNode, *_args: Any) -> None:
        self._path = [f"${node.variable.name.value}"]

    def leave_variable_definition(self, *_args: Any) -> None:
        self._path = []

    def enter_object_field(self, node: ObjectFieldNode, *args: Any) -> None:
        self._path.append(node.name.value)
        super().enter_object_field(node, *args)

    def leave_object_field(self, *_args: Any) -> None:
        if self._path:
            self._path.pop()

    def is_valid_value_node(self, node: ValueNode) -> None:
        location_type = self.context.get_input_type()
        if location_type is None or get_named_type(location_type) is not GraphQLValidatedEmail or not self._path:
            super().is_valid_value_node(node)
            return

        try:
            parse_email_literal(node)
        except InvalidEmailError as e:
            coordinate = ".".join(self._path)
            self.report_error(
                GraphQLError(
                    f"Invalid value for '{coordinate}': {e.message}",
                    node,
                    original_error=e,
                    extensions={**e.extensions, "coordinate": coordinate},
                )
            )


def _validated_email_type(field: FieldDescriptor) -> Any:
    descriptor = describe_type(field.type)
    if descriptor.shape is TypeShape.OTHER or descriptor.scalar not in (GraphQLString, GraphQLValidatedEmail):
        raise SchemaConfigurationError(
            f"@{EMAIL_DIRECTIVE_NAME} on {field.coordinate} requires String or String!, got {field.type}"
        )
    return descriptor.rewrap(GraphQLValidatedEmail)


def visit_field_definition(field: FieldDescriptor, _directive_args: dict[str, Any]) -> None:
    resolve = field.resolve
    if resolve is None:
        raise SchemaConfigurationError(f"@{EMAIL_DIRECTIVE_NAME} on {field.coordinate} has no resolver to wrap")
    field.type = _validated_email_type(field)
    coordinate = field.coordinate

    async def resolve_validated_email(obj: Any, info: Any, **kwargs: Any) -> Any:
        value = await call_resolver(resolve, obj, info, **kwargs)
        if value is None or is_valid_email(value):
            return value
        log.warning(f"Stored value of {coordinate} is not a valid email address")
        raise InvalidEmailError(f"Stored value of '{coordinate}' is not a valid email address")

    field.resolve = resolve_validated_email


def visit_input_value(field: FieldDescriptor, _directive_args: dict[str, Any]) -> None:
    field.type = _validated_email_type(field)


EMAIL_DIRECTIVE = DirectiveDefinition(
    name=EMAIL_DIRECTIVE_NAME,
    type_defs=EMAIL_TYPE_DEFS,
    visitors={
        DirectiveLocation.FIELD_DEFINITION: visit_field_definition,
        DirectiveLocation.ARGUMENT_DEFINITION: visit_input_value,
        DirectiveLocation.INPUT_FIELD_DEFINITION: visit_input_value,
    },
)

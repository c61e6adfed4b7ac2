from typing import Any

import pytest
from ariadne import QueryType
from graphql import DirectiveLocation, GraphQLSchema, GraphQLString, print_schema

from gqlharbor.directives import (
    DATE_DIRECTIVE,
    EMAIL_DIRECTIVE,
    DirectiveDefinition,
    DirectiveRegistry,
    FieldDescriptor,
    call_resolver,
    default_registry,
)
from gqlharbor.errors import SchemaConfigurationError
from gqlharbor.schema_loader import build_executable_schema
from gqlharbor.server import execute_operation


def tracing_directive(name: str, calls: list[str]) -> DirectiveDefinition:
    """A directive recording when its wrapper runs relative to the resolver it wraps."""

    def visit(field: FieldDescriptor, _args: dict[str, Any]) -> None:
        resolve = field.resolve
        assert resolve is not None

        async def traced(obj: Any, info: Any, **kwargs: Any) -> str:
            calls.append(f"{name}:before")
            result = await call_resolver(resolve, obj, info, **kwargs)
            calls.append(f"{name}:after")
            return f"{name}({result})"

        field.resolve = traced

    return DirectiveDefinition(
        name=name,
        type_defs=f"directive @{name} on FIELD_DEFINITION",
        visitors={DirectiveLocation.FIELD_DEFINITION: visit},
    )


def recording_directive(seen: list[tuple[str, DirectiveLocation, dict[str, Any]]]) -> DirectiveDefinition:
    def visit(field: FieldDescriptor, args: dict[str, Any]) -> None:
        seen.append((field.coordinate, field.location, args))

    return DirectiveDefinition(
        name="mark",
        type_defs='directive @mark(label: String = "unlabeled") on FIELD_DEFINITION | ARGUMENT_DEFINITION | INPUT_FIELD_DEFINITION',
        visitors={
            DirectiveLocation.FIELD_DEFINITION: visit,
            DirectiveLocation.ARGUMENT_DEFINITION: visit,
            DirectiveLocation.INPUT_FIELD_DEFINITION: visit,
        },
    )


@pytest.fixture
def greeting_query() -> QueryType:
    query = QueryType()

    @query.field("greeting")
    def resolve_greeting(*_: Any) -> str:
        return "base"

    return query


@pytest.mark.asyncio
async def test_later_directive_wraps_earlier_one(greeting_query: QueryType) -> None:
    calls: list[str] = []
    registry = DirectiveRegistry([tracing_directive("first", calls), tracing_directive("second", calls)])
    schema = build_executable_schema(
        "type Query { greeting: String @first @second }", greeting_query, registry=registry
    )

    success, result = await execute_operation(schema, "{ greeting }")

    assert success
    assert result["data"] == {"greeting": "second(first(base))"}
    assert calls == ["second:before", "first:before", "first:after", "second:after"]


@pytest.mark.asyncio
async def test_declaration_order_decides_nesting(greeting_query: QueryType) -> None:
    calls: list[str] = []
    registry = DirectiveRegistry([tracing_directive("first", calls), tracing_directive("second", calls)])
    schema = build_executable_schema(
        "type Query { greeting: String @second @first }", greeting_query, registry=registry
    )

    _, result = await execute_operation(schema, "{ greeting }")

    assert result["data"] == {"greeting": "first(second(base))"}


def test_visitors_receive_coordinates_locations_and_coerced_arguments() -> None:
    seen: list[tuple[str, DirectiveLocation, dict[str, Any]]] = []
    schema = build_executable_schema(
        """
        type Query {
            greet(name: String @mark(label: "who")): String @mark
            search(filter: Filter): String
        }

        input Filter {
            term: String @mark
        }
        """,
        registry=DirectiveRegistry([recording_directive(seen)]),
    )

    assert isinstance(schema, GraphQLSchema)
    by_coordinate = {coordinate: (location, args) for coordinate, location, args in seen}
    assert by_coordinate == {
        "Query.greet(name:)": (DirectiveLocation.ARGUMENT_DEFINITION, {"label": "who"}),
        "Query.greet": (DirectiveLocation.FIELD_DEFINITION, {"label": "unlabeled"}),
        "Filter.term": (DirectiveLocation.INPUT_FIELD_DEFINITION, {"label": "unlabeled"}),
    }
    coordinates = [coordinate for coordinate, _, _ in seen]
    assert coordinates.index("Query.greet(name:)") < coordinates.index("Query.greet")


def test_elements_without_directives_are_untouched(users_schema: GraphQLSchema) -> None:
    user_type = users_schema.type_map["User"]
    first_name = user_type.fields["firstName"]  # type: ignore[attr-defined]

    assert first_name.type is GraphQLString
    assert first_name.args == {}


def test_unregistered_directive_fails_the_build() -> None:
    with pytest.raises(SchemaConfigurationError, match="Unknown directive '@audit'"):
        build_executable_schema(
            """
            directive @audit on FIELD_DEFINITION

            type Query { secret: String @audit }
            """
        )


def test_directive_on_undeclared_location_fails_the_build() -> None:
    with pytest.raises(SchemaConfigurationError):
        build_executable_schema("type Query { posts(since: String @formattableDate): [String] }")


def test_invalid_directive_argument_fails_the_build() -> None:
    with pytest.raises(SchemaConfigurationError, match="Invalid arguments for '@formattableDate'"):
        build_executable_schema("type Query { createdAt: String @formattableDate(timezone: 5) }")


def test_registry_is_sealed_after_first_apply() -> None:
    registry = default_registry()
    build_executable_schema("type Query { ping: String }", registry=registry)

    with pytest.raises(SchemaConfigurationError, match="already applied"):
        registry.register(tracing_directive("late", []))


def test_directives_cannot_be_applied_twice_to_a_schema() -> None:
    registry = default_registry()
    schema = build_executable_schema("type Query { ping: String }", registry=registry)

    with pytest.raises(SchemaConfigurationError, match="already applied to this schema"):
        registry.apply(schema)


@pytest.mark.parametrize(
    "definitions, message",
    [
        ([DATE_DIRECTIVE, DATE_DIRECTIVE], "already registered"),
        (
            [
                DirectiveDefinition(
                    name="deprecated",
                    type_defs='directive @deprecated(reason: String = "No longer supported") on FIELD_DEFINITION',
                    visitors={DirectiveLocation.FIELD_DEFINITION: lambda field, args: None},
                )
            ],
            "built-in directive",
        ),
    ],
)
def test_invalid_registrations_are_rejected(definitions: list[DirectiveDefinition], message: str) -> None:
    with pytest.raises(SchemaConfigurationError, match=message):
        DirectiveRegistry(definitions)


def test_definition_requires_a_visitor_per_declared_location() -> None:
    def visit(field: FieldDescriptor, args: dict[str, Any]) -> None:
        pass

    with pytest.raises(SchemaConfigurationError, match="no visitor for ARGUMENT_DEFINITION"):
        DirectiveDefinition(
            name="partial",
            type_defs="directive @partial on FIELD_DEFINITION | ARGUMENT_DEFINITION",
            visitors={DirectiveLocation.FIELD_DEFINITION: visit},
        )


def test_definition_sdl_must_declare_the_named_directive() -> None:
    with pytest.raises(SchemaConfigurationError, match="declares '@other' instead"):
        DirectiveDefinition(
            name="mine",
            type_defs="directive @other on FIELD_DEFINITION",
            visitors={DirectiveLocation.FIELD_DEFINITION: lambda field, args: None},
        )


def test_definitions_expose_arguments_and_locations() -> None:
    arguments = DATE_DIRECTIVE.arguments

    assert set(arguments) == {"format", "timezone", "locale"}
    assert arguments["timezone"].default == "utc"
    assert arguments["locale"].default == "en"
    assert arguments["format"].default is None
    assert DATE_DIRECTIVE.locations == {DirectiveLocation.FIELD_DEFINITION}
    assert EMAIL_DIRECTIVE.locations == {
        DirectiveLocation.FIELD_DEFINITION,
        DirectiveLocation.ARGUMENT_DEFINITION,
        DirectiveLocation.INPUT_FIELD_DEFINITION,
    }


def test_default_registry_holds_the_builtin_directives() -> None:
    registry = default_registry()

    assert len(registry) == 2
    assert "formattableDate" in registry
    assert "email" in registry
    assert registry.get("email") is EMAIL_DIRECTIVE
    assert [definition.name for definition in registry] == ["formattableDate", "email"]


def test_building_twice_from_the_same_sdl_gives_equivalent_schemas() -> None:
    sdl = "type Query { createdAt: String @formattableDate  contact: String @email }"

    assert print_schema(build_executable_schema(sdl)) == print_schema(build_executable_schema(sdl))


@pytest.mark.parametrize("definition", [DATE_DIRECTIVE, EMAIL_DIRECTIVE])
def test_field_visitors_require_a_resolver(definition: DirectiveDefinition) -> None:
    field = FieldDescriptor(
        coordinate="Query.contact",
        location=DirectiveLocation.FIELD_DEFINITION,
        type=GraphQLString,
    )
    visit = definition.visitors[DirectiveLocation.FIELD_DEFINITION]

    with pytest.raises(SchemaConfigurationError, match="Query.contact has no resolver to wrap"):
        visit(field, {})

    assert field.type is GraphQLString
    assert field.args == {}

"""Operation validation used by the HTTP, WebSocket and in-process executors."""

from collections.abc import Collection
from typing import Any

from graphql import DocumentNode, GraphQLError, GraphQLSchema, specified_rules, validate
from graphql.validation import ASTValidationRule, ValuesOfCorrectTypeRule

from gqlharbor.directives.email import EmailValuesRule


def validate_query(
    schema: GraphQLSchema,
    document_ast: DocumentNode,
    rules: Collection[type[ASTValidationRule]] | None = None,
    max_errors: int | None = None,
    **kwargs: Any,
) -> list[GraphQLError]:
    """graphql-core's `validate`, reporting invalid email literals with their coordinate.

    Matches ariadne's `QueryValidator` signature so it can be passed as `query_validator`.
    """
    rules = [EmailValuesRule if rule is ValuesOfCorrectTypeRule else rule for rule in rules or specified_rules]
    return validate(schema, document_ast, rules, max_errors, **kwargs)

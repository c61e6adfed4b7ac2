from gqlharbor.directives.date import DATE_DIRECTIVE
from gqlharbor.directives.email import EMAIL_DIRECTIVE, GraphQLValidatedEmail, is_valid_email
from gqlharbor.directives.registry import (
    DirectiveArgument,
    DirectiveDefinition,
    DirectiveRegistry,
    FieldDescriptor,
    call_resolver,
)


def default_registry() -> DirectiveRegistry:
    """A new registry holding @formattableDate and @email."""
    return DirectiveRegistry([DATE_DIRECTIVE, EMAIL_DIRECTIVE])


__all__ = [
    "DATE_DIRECTIVE",
    "EMAIL_DIRECTIVE",
    "DirectiveArgument",
    "DirectiveDefinition",
    "DirectiveRegistry",
    "FieldDescriptor",
    "GraphQLValidatedEmail",
    "call_resolver",
    "default_registry",
    "is_valid_email",
]

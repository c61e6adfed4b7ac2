from dataclasses import dataclass
from enum import Enum

from graphql import GraphQLNonNull, GraphQLScalarType, GraphQLType


class TypeShape(Enum):
    SCALAR = "scalar"
    NON_NULL_SCALAR = "non_null_scalar"
    OTHER = "other"


@dataclass(frozen=True)
class TypeDescriptor:
    """Shape of a declared type as far as scalar substitution is concerned."""

    shape: TypeShape
    scalar: GraphQLScalarType | None = None

    def rewrap(self, scalar: GraphQLScalarType) -> GraphQLType:
        """Return `scalar` wrapped the same way as the described type."""
        if self.shape is TypeShape.NON_NULL_SCALAR:
            return GraphQLNonNull(scalar)
        if self.shape is TypeShape.SCALAR:
            return scalar
        raise ValueError("Only scalar shapes can be rewrapped")


def describe_type(type_: GraphQLType) -> TypeDescriptor:
    if isinstance(type_, GraphQLScalarType):
        return TypeDescriptor(TypeShape.SCALAR, type_)
    if isinstance(type_, GraphQLNonNull) and isinstance(type_.of_type, GraphQLScalarType):
        return TypeDescriptor(TypeShape.NON_NULL_SCALAR, type_.of_type)
    return TypeDescriptor(TypeShape.OTHER)

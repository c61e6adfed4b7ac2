from typing import Any

import pytest
from ariadne import MutationType, QueryType
from faker import Faker
from graphql import GraphQLSchema

from gqlharbor.schema_loader import build_executable_schema

USERS_SDL = """
type Query {
    user(id: ID!): User
    users: [User!]!
}

type Mutation {
    createUser(input: CreateUserInput!): User
    inviteUser(email: String! @email): Boolean!
}

input CreateUserInput {
    firstName: String!
    lastName: String!
    email: String! @email
}

type User {
    firstName: String
    lastName: String
    email: String @email
    createdAt: String @formattableDate
    birthday: String @formattableDate(format: "DDD", locale: "en")
}
"""


USERS: dict[str, dict[str, Any]] = {
    "1": {
        "firstName": "Cami",
        "lastName": "Rosewell",
        "email": "crosewell4@freewebs.com",
        "createdAt": "2000-01-31T10:27:00Z",
        "birthday": 949314420000,
    },
    "2": {
        "firstName": "Mallory",
        "lastName": "Quinn",
        "email": "<script>alert('x')</script>",
        "createdAt": None,
        "birthday": "not a date",
    },
}


def users_bindables(users: dict[str, dict[str, Any]] | None = None) -> list[Any]:
    """Resolvers serving `users` from memory, recording created users in place."""
    store = USERS if users is None else users
    query = QueryType()
    mutation = MutationType()

    @query.field("user")
    def resolve_user(*_: Any, id: str) -> dict[str, Any] | None:
        return store.get(id)

    @query.field("users")
    def resolve_users(*_: Any) -> list[dict[str, Any]]:
        return list(store.values())

    @mutation.field("createUser")
    async def resolve_create_user(*_: Any, input: dict[str, Any]) -> dict[str, Any]:
        user = {**input, "createdAt": None, "birthday": None}
        store[str(len(store) + 1)] = user
        return user

    @mutation.field("inviteUser")
    def resolve_invite_user(*_: Any, email: str) -> bool:
        return True

    return [query, mutation]


@pytest.fixture
def users_schema() -> GraphQLSchema:
    return build_executable_schema(USERS_SDL, *users_bindables(dict(USERS)))


@pytest.fixture
def faker() -> Faker:
    Faker.seed(4242)
    return Faker()

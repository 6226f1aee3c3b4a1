"""
Key mapping for relationship variants.

Both relationship consumers (filter push-down and result expansion) and the
join derivation read keys through ``relationship_keys`` so every variant is
handled in exactly one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from actionflow.core.errors import ResolutionError
from actionflow.specs.model import BelongsTo, HasMany, HasOne, ModelDefinition
from actionflow.specs.operation import Join, JoinType


@dataclass(frozen=True)
class RelationshipKeys:
    """
    Column pair linking the current model to the related model.

    Attributes:
        current_key: Attribute on the current model
        related_key: Attribute on the related model
    """

    current_key: str
    related_key: str


def relationship_keys(relationship: Any) -> RelationshipKeys:
    """
    Resolve the key pair of a relationship.

    BelongsTo: current foreign_key -> related owner_key
    HasMany / HasOne: current local_key -> related foreign_key

    Raises:
        ResolutionError: for an unsupported variant or an owner key that has
            not been resolved against the related model yet
    """
    match relationship:
        case BelongsTo(foreign_key=foreign_key, owner_key=owner_key):
            if owner_key is None:
                raise ResolutionError(
                    f"Owner key of relationship '{relationship.name}' is unresolved; "
                    "freeze the model registry first",
                    name=relationship.name,
                    model=relationship.current_model,
                )
            return RelationshipKeys(current_key=foreign_key, related_key=owner_key)
        case HasMany(foreign_key=foreign_key, local_key=local_key) | HasOne(
            foreign_key=foreign_key, local_key=local_key
        ):
            return RelationshipKeys(current_key=local_key, related_key=foreign_key)
        case _:
            raise ResolutionError(
                f"Unsupported relationship type: {type(relationship).__name__}",
                name=getattr(relationship, "name", None),
            )


def is_to_many(relationship: Any) -> bool:
    """True when expansion attaches a list rather than a single row."""
    match relationship:
        case HasMany():
            return True
        case BelongsTo() | HasOne():
            return False
        case _:
            raise ResolutionError(
                f"Unsupported relationship type: {type(relationship).__name__}",
                name=getattr(relationship, "name", None),
            )


def join_for(
    model: ModelDefinition,
    relationship: Any,
    related: ModelDefinition,
    join_type: JoinType = JoinType.LEFT,
) -> Join:
    """
    Derive the join that follows ``relationship`` from ``model`` to ``related``.

    Example:
        post.author (belongs_to user) ->
        Join(table="users", on=("posts.author_id", "users.id"), alias="author")
    """
    keys = relationship_keys(relationship)
    return Join(
        table=related.config.table,
        type=join_type,
        on=(
            f"{model.config.table}.{keys.current_key}",
            f"{related.config.table}.{keys.related_key}",
        ),
        alias=relationship.name,
    )

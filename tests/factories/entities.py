"""Factories for entity directory models."""

import factory
from saas_wrapper.database.models import (
    Entity,
    EntityType,
    MembershipStatus,
    OrganizationMembership,
)
from saas_wrapper.database.models.base import utc_now
from .base import AsyncSQLAlchemyModelFactory, UUIDFactory


class EntityFactory(AsyncSQLAlchemyModelFactory[Entity]):
    """Factory for creating Entity instances."""

    class Meta:
        model = Entity

    id = UUIDFactory()
    tenant_id = UUIDFactory()
    entity_type = EntityType.ORGANIZATION
    entity_name = factory.Faker("company")
    parent_entity_id = None
    is_active = True
    is_default = False
    created_at = factory.LazyFunction(utc_now)


class OrganizationMembershipFactory(AsyncSQLAlchemyModelFactory[OrganizationMembership]):
    """Factory for creating OrganizationMembership instances."""

    class Meta:
        model = OrganizationMembership

    id = UUIDFactory()
    tenant_id = UUIDFactory()
    user_id = UUIDFactory()
    entity_type = EntityType.ORGANIZATION
    membership_status = MembershipStatus.ACTIVE
    is_primary = False
    created_at = factory.LazyFunction(utc_now)

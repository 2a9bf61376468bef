"""
Tests for the plan catalog, plan limits and plan validation rules
"""
import pytest
from unittest.mock import Mock, patch
from pydantic import ValidationError
import redis

from creator_subscriptions.db.models import Team, PlanName, UNLIMITED_SENTINEL
from creator_subscriptions.exceptions import PlanValidationError, NotFoundError, InconsistentPlanStateError
from creator_subscriptions.schemas import PlanCreate, PlanUpdate
from creator_subscriptions.services.plan_catalog import (
    Limit,
    PlanLimits,
    PlanCatalog,
    validate_plan_logic,
    default_credits,
    serialize_plan,
)
from creator_subscriptions.services.plan_cache import PlanCache, InMemoryPlanStore, get_redis_client


def agency_plan(**overrides) -> PlanCreate:
    fields = dict(
        name="AGENCY",
        display_name="Agency",
        price=149.90,
        trial_days=0,
        max_members=50,
        max_brands=20,
        max_strategic_themes=60,
        max_personas=60,
        quick_content_creations=15,
        custom_content_suggestions=40,
        content_plans=15,
        content_reviews=20,
    )
    fields.update(overrides)
    return PlanCreate(**fields)


class TestLimit:
    """Finite and unlimited plan limits"""

    def test_sentinel_and_null_read_as_unlimited(self):
        assert Limit.from_stored(UNLIMITED_SENTINEL).is_unlimited
        assert Limit.from_stored(UNLIMITED_SENTINEL + 1).is_unlimited
        assert Limit.from_stored(None).is_unlimited
        assert not Limit.from_stored(UNLIMITED_SENTINEL - 1).is_unlimited

    def test_is_reached_at_boundary(self):
        limit = Limit.finite(5)
        assert limit.is_reached(5)
        assert limit.is_reached(6)
        assert not limit.is_reached(4)

    def test_unlimited_is_never_reached(self):
        assert not Limit.unlimited().is_reached(10 ** 9)

    def test_zero_limit_blocks_first_unit(self):
        assert Limit.finite(0).is_reached(0)

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            Limit.finite(-1)

    def test_stored_and_display_forms(self):
        assert Limit.unlimited().to_stored() == UNLIMITED_SENTINEL
        assert Limit.unlimited().to_display() is None
        assert Limit.finite(7).to_stored() == 7
        assert str(Limit.unlimited()) == "unlimited"
        assert str(Limit.finite(7)) == "7"
        assert Limit.finite(3) == Limit.from_stored(3)


class TestSeeding:
    """Catalog seeding from plans.yaml"""

    def test_seed_creates_four_plans(self, db_session):
        created = PlanCatalog(db_session).seed_from_yaml()
        assert sorted(plan.name for plan in created) == ["BASIC", "ENTERPRISE", "FREE", "PRO"]

    def test_seed_is_idempotent(self, catalog):
        assert catalog.seed_from_yaml() == []
        assert len(catalog.list_active()) == 4

    def test_seeded_free_plan(self, catalog):
        free = catalog.get_free_plan()
        assert float(free.price) == 0
        assert free.trial_days == 14
        assert free.max_members == 5
        assert default_credits(free) == {
            "quick_content_creations": 5,
            "custom_content_suggestions": 15,
            "content_plans": 5,
            "content_reviews": 10,
        }

    def test_enterprise_limits_are_unlimited(self, catalog):
        enterprise = catalog.get_by_name("ENTERPRISE")
        limits = PlanLimits.from_plan(enterprise)
        for kind in ["members", "brands", "themes", "personas", "content_reviews"]:
            assert limits.limit_for(kind).is_unlimited
        assert all(value is None for value in serialize_plan(enterprise)["limits"].values())

    def test_missing_free_plan_raises(self, db_session):
        with pytest.raises(InconsistentPlanStateError):
            PlanCatalog(db_session).get_free_plan()

    def test_unknown_limit_kind(self, catalog):
        with pytest.raises(ValueError):
            PlanLimits.from_plan(catalog.get_free_plan()).limit_for("videos")


class TestListing:
    """Plan listing order and cache use"""

    def test_display_order(self, catalog):
        catalog.create_plan(agency_plan())
        names = [plan.name for plan in catalog.list_active()]
        assert names == ["FREE", "BASIC", "PRO", "ENTERPRISE", "AGENCY"]

    def test_list_paid_excludes_free(self, catalog):
        assert [plan.name for plan in catalog.list_paid()] == ["BASIC", "PRO", "ENTERPRISE"]

    def test_inactive_plans_are_hidden(self, catalog):
        catalog.create_plan(agency_plan(is_active=False))
        assert "AGENCY" not in [plan.name for plan in catalog.list_active()]

    def test_serialized_listing_cached_and_invalidated(self, db_session):
        cache = PlanCache(default_ttl=60, redis_client=None)
        cached_catalog = PlanCatalog(db_session, cache=cache)
        cached_catalog.seed_from_yaml()

        first = cached_catalog.list_active_serialized()
        assert cache.get_active_plans() == first

        cached_catalog.create_plan(agency_plan())
        assert cache.get_active_plans() is None
        assert "AGENCY" in [plan["name"] for plan in cached_catalog.list_active_serialized()]


class TestPlanValidation:
    """Business rules for plan definitions"""

    def test_valid_seed_like_plan_has_no_errors(self):
        assert validate_plan_logic(agency_plan().model_dump()) == []

    def test_free_plan_cannot_have_price(self):
        errors = validate_plan_logic({"name": "FREE", "price": 10})
        assert "Free plan cannot have a price greater than zero" in errors

    def test_paid_plan_needs_price_and_no_trial(self):
        errors = validate_plan_logic({"name": "AGENCY", "price": 0, "trial_days": 7})
        assert "Paid plans must have a price greater than zero" in errors
        assert "Only the free plan can have a trial period" in errors

    def test_basic_and_pro_hierarchy(self):
        basic_errors = validate_plan_logic({"name": "BASIC", "price": 90, "max_members": 20})
        assert "Basic plan cannot have more than 15 members" in basic_errors
        assert "Basic plan cannot cost more than 80" in basic_errors

        pro_errors = validate_plan_logic({"name": "PRO", "price": 50, "max_members": 10})
        assert "Pro plan must allow more members than the basic plan" in pro_errors
        assert "Pro plan must cost more than the basic plan" in pro_errors

    def test_quota_ordering(self):
        errors = validate_plan_logic({
            "name": "AGENCY",
            "price": 10,
            "quick_content_creations": 50,
            "custom_content_suggestions": 10,
            "content_plans": 30,
            "content_reviews": 5,
        })
        assert "Quick content creations must not exceed custom content suggestions" in errors
        assert "Content plans must not exceed content reviews" in errors

    def test_schema_bounds(self):
        with pytest.raises(ValidationError):
            agency_plan(max_members=1001)
        with pytest.raises(ValidationError):
            agency_plan(name="agency")
        with pytest.raises(ValidationError):
            agency_plan(price=-1)


class TestPlanWrites:
    """Create, update and delete through the catalog"""

    def test_create_plan(self, catalog):
        plan = catalog.create_plan(agency_plan())
        assert plan.id is not None
        assert float(plan.price) == pytest.approx(149.90)

    def test_create_duplicate_name(self, catalog):
        with pytest.raises(PlanValidationError) as exc_info:
            catalog.create_plan(agency_plan(name="PRO", price=99.0, max_members=20))
        assert "A plan named PRO already exists" in exc_info.value.errors

    def test_create_invalid_plan_lists_all_errors(self, catalog):
        with pytest.raises(PlanValidationError) as exc_info:
            catalog.create_plan(agency_plan(trial_days=7, content_plans=30, content_reviews=10))
        assert len(exc_info.value.errors) == 2

    def test_update_validates_merged_definition(self, catalog):
        basic = catalog.get_by_name("BASIC")
        with pytest.raises(PlanValidationError) as exc_info:
            catalog.update_plan(basic.id, PlanUpdate(price=100))
        assert "Basic plan cannot cost more than 80" in exc_info.value.errors

        updated = catalog.update_plan(basic.id, PlanUpdate(display_name="Basic+", price=69.90))
        assert updated.display_name == "Basic+"
        assert float(updated.price) == pytest.approx(69.90)
        assert updated.max_members == 10

    def test_update_unknown_plan(self, catalog):
        with pytest.raises(NotFoundError):
            catalog.update_plan(9999, PlanUpdate(display_name="x"))

    def test_system_plans_cannot_be_deleted(self, catalog):
        with pytest.raises(PlanValidationError) as exc_info:
            catalog.delete_plan(catalog.get_by_name(PlanName.BASIC.value).id)
        assert "System plans cannot be deleted" in exc_info.value.errors

    def test_plan_in_use_cannot_be_deleted(self, db_session, catalog):
        plan = catalog.create_plan(agency_plan())
        db_session.add(Team(name="Studio", current_plan_id=plan.id))
        db_session.commit()

        with pytest.raises(PlanValidationError) as exc_info:
            catalog.delete_plan(plan.id)
        assert "Cannot delete a plan used by 1 team(s)" in exc_info.value.errors

    def test_unused_plan_is_deleted(self, catalog):
        plan = catalog.create_plan(agency_plan())
        catalog.delete_plan(plan.id)
        assert catalog.get_by_name("AGENCY") is None

    def test_enterprise_is_deletable_when_unused(self, catalog):
        catalog.delete_plan(catalog.get_by_name("ENTERPRISE").id)
        assert catalog.get_by_name("ENTERPRISE") is None


class TestPlanCache:
    """Redis-backed and in-memory plan cache"""

    def test_memory_store_expires(self):
        store = InMemoryPlanStore()
        with patch("creator_subscriptions.services.plan_cache.time.time", return_value=1000.0):
            store.setex("k", 10, "v")
            assert store.get("k") == "v"
        with patch("creator_subscriptions.services.plan_cache.time.time", return_value=1011.0):
            assert store.get("k") is None

    def test_no_redis_url_means_memory(self):
        assert get_redis_client("") is None
        cache = PlanCache(redis_client=None)
        assert cache.get_stats()["backend"] == "memory"

    def test_unreachable_redis_falls_back(self):
        client = Mock()
        client.ping.side_effect = redis.ConnectionError("refused")
        with patch.object(redis.Redis, "from_url", return_value=client):
            assert get_redis_client("redis://localhost:6379/0") is None

    def test_redis_errors_are_cache_misses(self):
        client = Mock()
        client.get.side_effect = redis.ConnectionError("gone")
        client.setex.side_effect = redis.ConnectionError("gone")
        cache = PlanCache(redis_client=client)

        assert cache.get_stats()["backend"] == "redis"
        assert cache.get_active_plans() is None
        cache.set_active_plans([{"name": "FREE"}])

    def test_redis_round_trip(self):
        client = Mock()
        client.get.return_value = '[{"name": "FREE"}]'
        cache = PlanCache(redis_client=client)

        assert cache.get_active_plans() == [{"name": "FREE"}]
        cache.invalidate()
        client.delete.assert_called_once_with("plans:active")

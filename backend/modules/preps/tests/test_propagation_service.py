# backend/modules/preps/tests/test_propagation_service.py

import pytest
from decimal import Decimal
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from core.database import Base
from ..config import CostingConfig
from ..models import Prep
from ..schemas.prep_schemas import PrepCreate, PrepIngredientCreate
from ..services import propagation_service
from ..services.ingredient_service import IngredientService
from ..services.prep_service import PrepService
from ..services.propagation_service import PropagationScheduler
from .factories import IngredientFactory, bind_factory_session


def _make_prep(db_session, name, *edges):
    return PrepService(db_session).create_prep(
        PrepCreate(
            name=name,
            batch_yield="1000g",
            ingredients=[
                PrepIngredientCreate(ingredient_id=ingredient.id, quantity=Decimal(quantity))
                for ingredient, quantity in edges
            ],
        )
    )


@pytest.fixture
def scheduler(db_session):
    return PropagationScheduler(db_session, config=CostingConfig(), sleep=lambda _: None)


class TestIngredientCostPropagation:

    def test_garlic_price_change_updates_curry_paste(self, db_session, garlic, curry_paste):
        assert curry_paste.cost_per_batch == Decimal("2.00")
        version_before = curry_paste.version

        _, result = IngredientService(db_session).update_cost(garlic.id, Decimal("0.04"))

        db_session.expire_all()
        prep = db_session.get(Prep, curry_paste.id)
        assert result.updated == [curry_paste.id]
        assert result.succeeded
        assert prep.cost_per_batch == Decimal("4.00")
        assert prep.cost_per_unit == Decimal("0.008")
        assert prep.name == "Green Curry Paste"
        assert prep.version == version_before + 1

    def test_unrelated_preps_are_not_touched(self, db_session, garlic, curry_paste):
        salt = IngredientFactory(name="Salt", unit="g", cost_per_unit=Decimal("0.001"))
        brine = _make_prep(db_session, "Brine", (salt, "50"))
        brine_version = brine.version

        _, result = IngredientService(db_session).update_cost(garlic.id, Decimal("0.04"))

        db_session.expire_all()
        assert brine.id not in result.affected
        assert db_session.get(Prep, brine.id).version == brine_version
        assert db_session.get(Prep, brine.id).cost_per_batch == Decimal("0.05")

    def test_unchanged_cost_does_not_propagate(self, db_session, garlic, curry_paste):
        _, result = IngredientService(db_session).update_cost(garlic.id, Decimal("0.02"))
        assert result is None

    def test_propagation_is_idempotent(self, db_session, garlic, curry_paste, scheduler):
        IngredientService(db_session).update_cost(garlic.id, Decimal("0.04"))

        result = scheduler.propagate_ingredient_change(garlic.id)

        assert result.updated == []
        assert result.unchanged == [curry_paste.id]
        db_session.expire_all()
        assert db_session.get(Prep, curry_paste.id).cost_per_batch == Decimal("4.00")

    def test_every_dependent_prep_is_recomputed(self, db_session, garlic, curry_paste):
        aioli = _make_prep(db_session, "Aioli", (garlic, "30"))

        _, result = IngredientService(db_session).update_cost(garlic.id, Decimal("0.10"))

        db_session.expire_all()
        assert sorted(result.updated) == sorted([curry_paste.id, aioli.id])
        assert db_session.get(Prep, aioli.id).cost_per_batch == Decimal("3.00")
        assert db_session.get(Prep, curry_paste.id).cost_per_batch == Decimal("10.00")

    def test_failure_on_one_prep_does_not_block_others(self, db_session, garlic, curry_paste):
        lime = IngredientFactory(name="Lime", unit="g", cost_per_unit=Decimal("0.01"))
        dressing = _make_prep(db_session, "Dressing", (garlic, "10"), (lime, "20"))

        # Dangling edge: the ingredient row disappears underneath the prep
        db_session.execute(text("DELETE FROM ingredients WHERE id = :id"), {"id": lime.id})
        db_session.commit()

        _, result = IngredientService(db_session).update_cost(garlic.id, Decimal("0.04"))

        assert result.updated == [curry_paste.id]
        assert [f.prep_id for f in result.failed] == [dressing.id]
        assert result.failed[0].error_code == "MISSING_COST_DATA"
        assert not result.has_upstream_failures

        db_session.expire_all()
        assert db_session.get(Prep, curry_paste.id).cost_per_batch == Decimal("4.00")


class TestConcurrentRecompute:

    def test_stale_write_is_retried(self, db_session, garlic, curry_paste, scheduler, monkeypatch):
        original = propagation_service.apply_prep_cost
        calls = {"count": 0}

        def flaky(store, prep):
            calls["count"] += 1
            if calls["count"] == 1:
                raise StaleDataError("row version changed")
            return original(store, prep)

        monkeypatch.setattr(propagation_service, "apply_prep_cost", flaky)
        garlic.cost_per_unit = Decimal("0.04")
        db_session.commit()

        result = scheduler.propagate_ingredient_change(garlic.id)

        assert calls["count"] == 2
        assert result.updated == [curry_paste.id]
        db_session.expire_all()
        assert db_session.get(Prep, curry_paste.id).cost_per_batch == Decimal("4.00")

    def test_conflict_reported_after_max_attempts(
        self, db_session, garlic, curry_paste, scheduler, monkeypatch
    ):
        calls = {"count": 0}

        def always_stale(store, prep):
            calls["count"] += 1
            raise StaleDataError("row version changed")

        monkeypatch.setattr(propagation_service, "apply_prep_cost", always_stale)

        result = scheduler.propagate_ingredient_change(garlic.id)

        assert calls["count"] == 3
        assert result.failed[0].prep_id == curry_paste.id
        assert result.failed[0].error_code == "CONCURRENCY_CONFLICT"
        assert result.has_upstream_failures


class TestRecalculateAll:

    def test_repairs_stale_stored_costs(self, db_session, garlic, curry_paste, scheduler):
        # Price edited behind the service's back
        db_session.execute(
            text("UPDATE ingredients SET cost_per_unit = 0.05 WHERE id = :id"), {"id": garlic.id}
        )
        db_session.commit()

        result = scheduler.recalculate_all()

        assert result.ingredient_id is None
        assert result.updated == [curry_paste.id]
        db_session.expire_all()
        assert db_session.get(Prep, curry_paste.id).cost_per_batch == Decimal("5.00")

    def test_result_serializes(self, db_session, curry_paste, scheduler):
        data = scheduler.recalculate_all().to_dict()
        assert data == {
            "ingredient_id": None,
            "affected": [curry_paste.id],
            "updated": [],
            "unchanged": [curry_paste.id],
            "failed": [],
        }


@pytest.fixture
def file_sessions(tmp_path):
    """Sessions on a file database, so each worker thread gets its own connection"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'preps.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = session_factory()
    bind_factory_session(db)
    try:
        yield session_factory, db
    finally:
        db.close()
        bind_factory_session(None)
        engine.dispose()


class TestParallelPropagation:

    def test_workers_update_every_dependent_prep(self, file_sessions):
        session_factory, db = file_sessions
        garlic = IngredientFactory(name="Garlic", unit="g", cost_per_unit=Decimal("0.02"))
        grams = {}
        for n in range(1, 5):
            prep = _make_prep(db, f"Garlic Paste {n}", (garlic, str(10 * n)))
            grams[prep.id] = 10 * n
        garlic.cost_per_unit = Decimal("0.04")
        db.commit()

        scheduler = PropagationScheduler(
            db,
            session_factory=session_factory,
            config=CostingConfig(PROPAGATION_MAX_WORKERS=4),
            sleep=lambda _: None,
        )
        result = scheduler.propagate_ingredient_change(garlic.id)

        assert result.succeeded
        assert result.affected == sorted(grams)
        assert sorted(result.updated) == sorted(grams)
        db.expire_all()
        for prep_id, quantity in grams.items():
            assert db.get(Prep, prep_id).cost_per_batch == Decimal("0.04") * quantity

    def test_worker_crash_is_reported_for_its_prep(
        self, db_session, garlic, curry_paste, monkeypatch
    ):
        paste_id = curry_paste.id
        aioli_id = _make_prep(db_session, "Aioli", (garlic, "30")).id
        scheduler = PropagationScheduler(
            db_session,
            session_factory=lambda: db_session,
            config=CostingConfig(PROPAGATION_MAX_WORKERS=2),
            sleep=lambda _: None,
        )

        def crash_on_aioli(prep_id):
            if prep_id == aioli_id:
                raise RuntimeError("worker lost its connection")
            return prep_id, True, None

        monkeypatch.setattr(scheduler, "_recompute_isolated", crash_on_aioli)

        result = scheduler.propagate_ingredient_change(garlic.id)

        assert result.updated == [paste_id]
        assert [f.prep_id for f in result.failed] == [aioli_id]
        assert result.failed[0].error_code == "UPSTREAM_UNAVAILABLE"
        assert "RuntimeError" in result.failed[0].message
        assert result.has_upstream_failures

# backend/modules/preps/tests/test_prep_service.py

import pytest
from decimal import Decimal

from ..exceptions import (
    PrepErrorCode,
    PrepValidationError,
    PrepNotFound,
    DuplicateEdge,
    ReferentialDeleteBlocked,
    ConcurrencyConflict,
)
from ..models import Prep, PrepIngredient
from ..schemas.prep_schemas import (
    PrepCreate,
    PrepUpdate,
    PrepIngredientCreate,
    PrepIngredientUpdate,
)
from ..services.prep_query_service import PrepQueryService
from ..services.prep_service import PrepService
from .factories import IngredientFactory, MenuItemIngredientFactory


@pytest.fixture
def service(db_session):
    return PrepService(db_session)


class TestCreatePrep:

    def test_costs_computed_on_create(self, curry_paste):
        assert curry_paste.id is not None
        assert curry_paste.cost_per_batch == Decimal("2.00")
        assert curry_paste.cost_per_unit == Decimal("0.004")
        assert curry_paste.batch_yield_amount == Decimal("500")
        assert [edge.unit for edge in curry_paste.ingredients] == ["g"]

    def test_yield_parsed_from_text(self, service, garlic):
        prep = service.create_prep(
            PrepCreate(
                name="Garlic Confit",
                batch_yield="2.5 kg",
                ingredients=[PrepIngredientCreate(ingredient_id=garlic.id, quantity=Decimal("250"))],
            )
        )
        assert prep.batch_yield_amount == Decimal("2.5")
        assert prep.batch_yield_unit == "kg"
        assert prep.cost_per_unit == Decimal("2")

    def test_unparseable_yield_rejected(self, service):
        with pytest.raises(PrepValidationError) as exc:
            service.create_prep(PrepCreate(name="Stock", batch_yield="one pot"))
        assert exc.value.error_code == PrepErrorCode.INVALID_BATCH_YIELD

    def test_zero_yield_rejected(self, service, db_session):
        with pytest.raises(PrepValidationError) as exc:
            service.create_prep(PrepCreate(name="Stock", batch_yield_amount=Decimal("0")))
        assert exc.value.field == "batch_yield_amount"
        assert db_session.query(Prep).count() == 0

    def test_empty_prep_costs_nothing(self, service):
        prep = service.create_prep(PrepCreate(name="Water", batch_yield="1l"))
        assert prep.cost_per_batch == Decimal("0")
        assert prep.cost_per_unit == Decimal("0")

    def test_duplicate_ingredient_in_request(self, service, garlic, db_session):
        with pytest.raises(DuplicateEdge):
            service.create_prep(
                PrepCreate(
                    name="Double Garlic",
                    batch_yield="100g",
                    ingredients=[
                        PrepIngredientCreate(ingredient_id=garlic.id, quantity=Decimal("10")),
                        PrepIngredientCreate(ingredient_id=garlic.id, quantity=Decimal("20")),
                    ],
                )
            )
        assert db_session.query(Prep).count() == 0

    def test_create_is_atomic(self, service, garlic, coconut_milk, db_session):
        with pytest.raises(PrepValidationError) as exc:
            service.create_prep(
                PrepCreate(
                    name="Broken Paste",
                    batch_yield="500ml",
                    ingredients=[
                        PrepIngredientCreate(ingredient_id=garlic.id, quantity=Decimal("10")),
                        PrepIngredientCreate(
                            ingredient_id=coconut_milk.id, quantity=Decimal("100"), unit="g"
                        ),
                    ],
                )
            )
        assert exc.value.error_code == PrepErrorCode.UNIT_MISMATCH
        assert db_session.query(Prep).count() == 0
        assert db_session.query(PrepIngredient).count() == 0

    def test_stored_cost_matches_stored_quantities(self, service, db_session):
        salt = IngredientFactory(name="Salt", unit="g", cost_per_unit=Decimal("1.00"))
        prep = service.create_prep(
            PrepCreate(
                name="Seasoning",
                batch_yield_amount=Decimal("0.33335"),
                batch_yield_unit="g",
                ingredients=[
                    PrepIngredientCreate(ingredient_id=salt.id, quantity=Decimal("0.33335"))
                ],
            )
        )

        db_session.expire_all()
        stored = db_session.get(Prep, prep.id)
        edge = stored.ingredients[0]
        assert edge.quantity == Decimal("0.3334")
        assert stored.batch_yield_amount == Decimal("0.3334")
        assert stored.cost_per_batch == edge.quantity * salt.cost_per_unit
        assert stored.cost_per_unit == Decimal("1")

        breakdown = PrepQueryService(db_session).get_cost_breakdown(prep.id)
        assert breakdown.is_stale is False


class TestUpdatePrep:

    def test_clearing_yield_text_keeps_amount(self, service, curry_paste):
        prep = service.update_prep(curry_paste.id, PrepUpdate(batch_yield=None))
        assert prep.batch_yield is None
        assert prep.batch_yield_amount == Decimal("500")
        assert prep.batch_yield_unit == "ml"
        assert prep.cost_per_unit == Decimal("0.004")

    def test_new_yield_text_is_parsed(self, service, curry_paste):
        prep = service.update_prep(curry_paste.id, PrepUpdate(batch_yield="1000 ml"))
        assert prep.batch_yield_amount == Decimal("1000")
        assert prep.cost_per_unit == Decimal("0.002")

    def test_yield_unit_change_blocked_while_on_menu(self, service, curry_paste, db_session):
        MenuItemIngredientFactory(prep=curry_paste, quantity=Decimal("25"), unit="ml")

        with pytest.raises(PrepValidationError) as exc:
            service.update_prep(curry_paste.id, PrepUpdate(batch_yield="1kg"))

        assert exc.value.error_code == PrepErrorCode.UNIT_MISMATCH
        db_session.expire_all()
        assert db_session.get(Prep, curry_paste.id).batch_yield_unit == "ml"

    def test_yield_change_recomputes_unit_cost(self, service, curry_paste):
        prep = service.update_prep(curry_paste.id, PrepUpdate(batch_yield_amount=Decimal("250")))
        assert prep.cost_per_batch == Decimal("2.00")
        assert prep.cost_per_unit == Decimal("0.008")

    def test_plain_edit_keeps_costs(self, service, curry_paste):
        prep = service.update_prep(curry_paste.id, PrepUpdate(notes="Keep chilled"))
        assert prep.notes == "Keep chilled"
        assert prep.cost_per_batch == Decimal("2.00")

    def test_null_name_is_ignored(self, service, curry_paste):
        prep = service.update_prep(curry_paste.id, PrepUpdate(name=None, description="Spicy"))
        assert prep.name == "Green Curry Paste"

    def test_ingredients_replace_edges(self, service, curry_paste, coconut_milk):
        prep = service.update_prep(
            curry_paste.id,
            PrepUpdate(
                ingredients=[
                    PrepIngredientCreate(ingredient_id=coconut_milk.id, quantity=Decimal("400"))
                ]
            ),
        )
        assert [edge.ingredient_id for edge in prep.ingredients] == [coconut_milk.id]
        assert prep.cost_per_batch == Decimal("2.00")

    def test_stale_expected_version(self, service, curry_paste, db_session):
        with pytest.raises(ConcurrencyConflict) as exc:
            service.update_prep(
                curry_paste.id,
                PrepUpdate(name="Red Curry Paste", expected_version=curry_paste.version + 5),
            )
        assert exc.value.details["current_version"] == curry_paste.version
        db_session.expire_all()
        assert db_session.get(Prep, curry_paste.id).name == "Green Curry Paste"

    def test_matching_expected_version(self, service, curry_paste):
        version = curry_paste.version
        prep = service.update_prep(
            curry_paste.id, PrepUpdate(name="Red Curry Paste", expected_version=version)
        )
        assert prep.name == "Red Curry Paste"
        assert prep.version > version

    def test_unknown_prep(self, service):
        with pytest.raises(PrepNotFound):
            service.update_prep(999, PrepUpdate(notes="x"))


class TestPrepEdges:

    def test_add_ingredient(self, service, curry_paste, coconut_milk):
        prep = service.add_prep_ingredient(
            curry_paste.id,
            PrepIngredientCreate(ingredient_id=coconut_milk.id, quantity=Decimal("200")),
        )
        assert len(prep.ingredients) == 2
        assert prep.cost_per_batch == Decimal("3.00")

    def test_add_existing_ingredient_rejected(self, service, curry_paste, garlic, db_session):
        with pytest.raises(DuplicateEdge):
            service.add_prep_ingredient(
                curry_paste.id,
                PrepIngredientCreate(ingredient_id=garlic.id, quantity=Decimal("5")),
            )
        assert db_session.query(PrepIngredient).count() == 1

    def test_update_quantity(self, service, curry_paste, garlic):
        prep = service.update_prep_ingredient(
            curry_paste.id, garlic.id, PrepIngredientUpdate(quantity=Decimal("50"))
        )
        assert prep.cost_per_batch == Decimal("1.00")

    def test_zero_quantity_rejected(self, service, curry_paste, garlic):
        with pytest.raises(PrepValidationError):
            service.update_prep_ingredient(
                curry_paste.id, garlic.id, PrepIngredientUpdate(quantity=Decimal("0"))
            )

    def test_remove_ingredient(self, service, curry_paste, garlic):
        prep = service.remove_prep_ingredient(curry_paste.id, garlic.id)
        assert prep.ingredients == []
        assert prep.cost_per_batch == Decimal("0")

    def test_replace_ingredients(self, service, curry_paste, garlic, coconut_milk):
        prep = service.replace_prep_ingredients(
            curry_paste.id,
            [
                PrepIngredientCreate(ingredient_id=garlic.id, quantity=Decimal("50")),
                PrepIngredientCreate(ingredient_id=coconut_milk.id, quantity=Decimal("400")),
            ],
        )
        assert sorted(edge.ingredient_id for edge in prep.ingredients) == sorted(
            [garlic.id, coconut_milk.id]
        )
        assert prep.cost_per_batch == Decimal("3.00")


class TestDeletePrep:

    def test_delete_unused_prep(self, service, curry_paste, db_session):
        service.delete_prep(curry_paste.id)
        assert db_session.query(Prep).count() == 0
        assert db_session.query(PrepIngredient).count() == 0

    def test_delete_blocked_by_menu_item(self, service, curry_paste, db_session):
        MenuItemIngredientFactory(prep=curry_paste, quantity=Decimal("25"))

        with pytest.raises(ReferentialDeleteBlocked) as exc:
            service.delete_prep(curry_paste.id)

        assert exc.value.referenced_by[0]["entity_type"] == "menu_items"
        db_session.expire_all()
        assert db_session.get(Prep, curry_paste.id) is not None
        assert db_session.query(PrepIngredient).count() == 1


class TestRecalculateAll:

    def test_recalculate_all_reports_each_prep(self, service, curry_paste):
        salt = IngredientFactory(name="Salt", unit="g", cost_per_unit=Decimal("0.001"))
        other = service.create_prep(
            PrepCreate(
                name="Brine",
                batch_yield="1l",
                ingredients=[PrepIngredientCreate(ingredient_id=salt.id, quantity=Decimal("50"))],
            )
        )
        result = service.recalculate_all()
        assert result.affected == [curry_paste.id, other.id]
        assert result.unchanged == [curry_paste.id, other.id]

# backend/modules/preps/tests/test_prep_api.py

import pytest
from decimal import Decimal

from .factories import IngredientFactory, MenuItemIngredientFactory


def _error(response):
    return response.json()["detail"]["error"]


class TestPrepEndpoints:

    def test_create_prep(self, client, garlic):
        response = client.post(
            "/preps",
            json={
                "name": "Garlic Paste",
                "batch_yield": "200g",
                "ingredients": [{"ingredient_id": garlic.id, "quantity": "100"}],
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["batch_yield_unit"] == "g"
        assert Decimal(str(data["cost_per_batch"])) == Decimal("2.00")
        assert Decimal(str(data["cost_per_unit"])) == Decimal("0.01")
        assert data["ingredients"][0]["unit"] == "g"
        assert data["version"] >= 1

    def test_create_with_unknown_ingredient(self, client):
        response = client.post(
            "/preps",
            json={
                "name": "Mystery Paste",
                "batch_yield": "200g",
                "ingredients": [{"ingredient_id": 999, "quantity": "10"}],
            },
        )
        assert response.status_code == 404
        assert _error(response)["kind"] == "NOT_FOUND"

    def test_create_with_negative_quantity(self, client, garlic):
        response = client.post(
            "/preps",
            json={
                "name": "Negative Paste",
                "batch_yield": "200g",
                "ingredients": [{"ingredient_id": garlic.id, "quantity": "-5"}],
            },
        )
        assert response.status_code == 422
        error = _error(response)
        assert error["code"] == "PRP001"
        assert error["field"] == "quantity"

    def test_get_by_id(self, client, curry_paste):
        response = client.get("/preps", params={"id": curry_paste.id, "include_ingredients": True})
        assert response.status_code == 200
        data = response.json()
        assert data["name_de"] == "Grüne Currypaste"
        assert data["ingredients"][0]["ingredient_name"] == "Garlic"

    def test_get_missing_prep(self, client):
        response = client.get("/preps", params={"id": 12345})
        assert response.status_code == 404
        assert _error(response)["code"] == "PRP103"

    def test_search(self, client, curry_paste):
        response = client.get("/preps", params={"search": "Currypaste"})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["page"] == 1
        assert data["items"][0]["id"] == curry_paste.id
        assert data["items"][0]["ingredients"] is None

    def test_update_yield(self, client, curry_paste):
        response = client.put(
            "/preps", params={"id": curry_paste.id}, json={"batch_yield_amount": "1000"}
        )
        assert response.status_code == 200
        assert Decimal(str(response.json()["cost_per_unit"])) == Decimal("0.002")

    def test_clear_yield_text(self, client, curry_paste):
        response = client.put(
            "/preps", params={"id": curry_paste.id}, json={"batch_yield": None}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["batch_yield"] is None
        assert Decimal(str(data["batch_yield_amount"])) == Decimal("500")
        assert Decimal(str(data["cost_per_unit"])) == Decimal("0.004")

    def test_update_with_stale_version(self, client, curry_paste):
        response = client.put(
            "/preps",
            params={"id": curry_paste.id},
            json={"notes": "late edit", "expected_version": curry_paste.version + 1},
        )
        assert response.status_code == 409
        assert _error(response)["kind"] == "CONCURRENCY_CONFLICT"

    def test_delete_prep(self, client, curry_paste):
        response = client.delete("/preps", params={"id": curry_paste.id})
        assert response.status_code == 204
        assert client.get("/preps", params={"id": curry_paste.id}).status_code == 404

    def test_delete_prep_in_use(self, client, curry_paste, curry_dish):
        MenuItemIngredientFactory(menu_item=curry_dish, prep=curry_paste, quantity=Decimal("25"))

        response = client.delete("/preps", params={"id": curry_paste.id})

        assert response.status_code == 409
        error = _error(response)
        assert error["kind"] == "REFERENTIAL_DELETE_BLOCKED"
        assert error["details"]["referenced_by"] == [
            {"entity_type": "menu_items", "count": 1, "names": ["Curry Dish"]}
        ]

    def test_recalculate_costs(self, client, curry_paste):
        response = client.post("/preps/recalculate-costs")
        assert response.status_code == 200
        assert response.json()["unchanged"] == [curry_paste.id]


class TestPrepIngredientEndpoints:

    def test_add_ingredient(self, client, curry_paste, coconut_milk):
        response = client.post(
            f"/preps/{curry_paste.id}/ingredients",
            json={"ingredient_id": coconut_milk.id, "quantity": "200", "unit": "ml"},
        )
        assert response.status_code == 201
        assert Decimal(str(response.json()["cost_per_batch"])) == Decimal("3.00")

    def test_add_duplicate_ingredient(self, client, curry_paste, garlic):
        response = client.post(
            f"/preps/{curry_paste.id}/ingredients",
            json={"ingredient_id": garlic.id, "quantity": "5"},
        )
        assert response.status_code == 409
        assert _error(response)["kind"] == "DUPLICATE_EDGE"

    def test_add_ingredient_in_wrong_unit(self, client, curry_paste, coconut_milk):
        response = client.post(
            f"/preps/{curry_paste.id}/ingredients",
            json={"ingredient_id": coconut_milk.id, "quantity": "200", "unit": "g"},
        )
        assert response.status_code == 422
        assert _error(response)["kind"] == "UNIT_MISMATCH"

    def test_replace_ingredients(self, client, curry_paste, coconut_milk):
        response = client.put(
            f"/preps/{curry_paste.id}/ingredients",
            json=[{"ingredient_id": coconut_milk.id, "quantity": "100"}],
        )
        assert response.status_code == 200
        data = response.json()
        assert [edge["ingredient_id"] for edge in data["ingredients"]] == [coconut_milk.id]
        assert Decimal(str(data["cost_per_batch"])) == Decimal("0.50")

    def test_update_and_remove_ingredient(self, client, curry_paste, garlic):
        response = client.put(
            f"/preps/{curry_paste.id}/ingredients/{garlic.id}", json={"quantity": "25"}
        )
        assert response.status_code == 200
        assert Decimal(str(response.json()["cost_per_batch"])) == Decimal("0.50")

        response = client.delete(f"/preps/{curry_paste.id}/ingredients/{garlic.id}")
        assert response.status_code == 200
        assert response.json()["ingredients"] == []

    def test_cost_breakdown(self, client, curry_paste):
        response = client.get(f"/preps/{curry_paste.id}/cost-breakdown")
        assert response.status_code == 200
        data = response.json()
        assert Decimal(str(data["total_cost"])) == Decimal("2.00")
        assert data["is_stale"] is False
        assert data["most_expensive"]["name"] == "Garlic"

    def test_usage(self, client, curry_paste, curry_dish):
        MenuItemIngredientFactory(menu_item=curry_dish, prep=curry_paste, quantity=Decimal("25"))
        response = client.get(f"/preps/{curry_paste.id}/usage")
        assert response.status_code == 200
        assert response.json()["menu_item_count"] == 1


class TestIngredientEndpoints:

    def test_create_and_list(self, client):
        response = client.post(
            "/ingredients",
            json={"name": "Lemongrass", "name_de": "Zitronengras", "unit": "g", "cost_per_unit": "0.03"},
        )
        assert response.status_code == 201

        response = client.get("/ingredients", params={"search": "zitronen"})
        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_negative_cost_rejected(self, client):
        response = client.post(
            "/ingredients", json={"name": "Saffron", "unit": "g", "cost_per_unit": "-1"}
        )
        assert response.status_code == 422
        assert _error(response)["field"] == "cost_per_unit"

    def test_cost_update_propagates(self, client, garlic, curry_paste):
        response = client.put(f"/ingredients/{garlic.id}", json={"cost_per_unit": "0.04"})

        assert response.status_code == 200
        data = response.json()
        assert data["cost_changed"] is True
        assert data["propagation"]["updated"] == [curry_paste.id]

        prep = client.get("/preps", params={"id": curry_paste.id}).json()
        assert Decimal(str(prep["cost_per_batch"])) == Decimal("4.00")

    def test_name_update_does_not_propagate(self, client, garlic, curry_paste):
        response = client.put(f"/ingredients/{garlic.id}", json={"name": "Black Garlic"})
        assert response.status_code == 200
        assert response.json()["cost_changed"] is False
        assert response.json()["propagation"] is None

    def test_unit_change_blocked_while_used(self, client, garlic, curry_paste):
        response = client.put(f"/ingredients/{garlic.id}", json={"unit": "kg"})
        assert response.status_code == 422
        assert _error(response)["kind"] == "UNIT_MISMATCH"

    def test_delete_ingredient_in_use(self, client, garlic, curry_paste):
        response = client.delete(f"/ingredients/{garlic.id}")
        assert response.status_code == 409
        referenced_by = _error(response)["details"]["referenced_by"]
        assert referenced_by[0]["entity_type"] == "preps"
        assert referenced_by[0]["names"] == ["Green Curry Paste"]

    def test_delete_unused_ingredient(self, client):
        salt = IngredientFactory(name="Salt")
        assert client.delete(f"/ingredients/{salt.id}").status_code == 204
        assert client.get(f"/ingredients/{salt.id}").status_code == 404


class TestMenuItemEndpoints:

    def test_component_needs_exactly_one_source(self, client, curry_dish, garlic, curry_paste):
        response = client.post(
            f"/menu-items/{curry_dish.id}/ingredients",
            json={"ingredient_id": garlic.id, "prep_id": curry_paste.id, "quantity": "1"},
        )
        assert response.status_code == 422
        assert _error(response)["code"] == "PRP100"

        response = client.post(
            f"/menu-items/{curry_dish.id}/ingredients", json={"quantity": "1"}
        )
        assert response.status_code == 422
        assert _error(response)["kind"] == "EXCLUSIVITY_VIOLATION"

    def test_component_in_wrong_unit(self, client, curry_dish, garlic, curry_paste):
        response = client.post(
            f"/menu-items/{curry_dish.id}/ingredients",
            json={"ingredient_id": garlic.id, "quantity": "1", "unit": "kg"},
        )
        assert response.status_code == 422
        assert _error(response)["kind"] == "UNIT_MISMATCH"

        response = client.post(
            f"/menu-items/{curry_dish.id}/ingredients",
            json={"prep_id": curry_paste.id, "quantity": "25", "unit": "g"},
        )
        assert response.status_code == 422
        assert _error(response)["field"] == "unit"

        breakdown = client.get(f"/menu-items/{curry_dish.id}/cost-breakdown").json()
        assert Decimal(str(breakdown["total_cost"])) == Decimal("0")

    def test_create_menu_item_and_breakdown(self, client, garlic, curry_paste):
        response = client.post(
            "/menu-items",
            json={
                "name": "Green Curry",
                "price": "14.00",
                "ingredients": [
                    {"prep_id": curry_paste.id, "quantity": "25"},
                    {"ingredient_id": garlic.id, "quantity": "50"},
                ],
            },
        )
        assert response.status_code == 201
        menu_item = response.json()
        assert {c["unit"] for c in menu_item["ingredients"]} == {"ml", "g"}

        response = client.get(f"/menu-items/{menu_item['id']}/cost-breakdown")
        assert response.status_code == 200
        data = response.json()
        assert Decimal(str(data["total_cost"])) == Decimal("1.10")
        assert data["cost_rating"] == "good"

    def test_remove_component(self, client, curry_dish, curry_paste):
        component = MenuItemIngredientFactory(menu_item=curry_dish, prep=curry_paste)

        response = client.delete(f"/menu-items/{curry_dish.id}/ingredients/{component.id}")
        assert response.status_code == 204

        assert client.delete("/preps", params={"id": curry_paste.id}).status_code == 204


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"

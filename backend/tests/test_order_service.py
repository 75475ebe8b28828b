"""
Manufacturing order tests.

Verifies:
- Completion deducts ingredient.quantity * coefficient from each material
- Completion is all-or-nothing (shortage, missing formula, missing material)
- Completed and cancelled orders are terminal; stock is never deducted twice
- The completion activity entry is written with the deductions
"""

import pytest

from aromalab.extensions import db
from aromalab.models import RawMaterial, ManufacturingOrder, ActivityLog
from aromalab.services import order_service, formula_service, material_service
from aromalab.services.order_service import (
    OrderStateError,
    OrderCompletionError,
    InsufficientStockError,
)


def _stock(material_id):
    return db.session.get(RawMaterial, material_id).stock


@pytest.fixture
def order(valid_formula, admin_actor):
    """OF0001: 2 x F1, i.e. 120 kg MP1 + 80 kg MP2."""
    return order_service.add_order(
        {"formula_id": valid_formula.id, "coefficient": 2.0}, actor=admin_actor
    )


class TestCreate:

    def test_new_order_is_pending(self, order, admin_user):
        assert order.status == "pending"
        assert order.order_number == "OF0001"
        assert order.created_by == admin_user.id
        assert order.completed_at is None
        assert order.produced_weight == pytest.approx(200.0)

    def test_creation_is_logged(self, order):
        entry = db.session.query(ActivityLog).one()
        assert entry.action == "Création"
        assert entry.entity == "order"
        assert entry.details == "Ordre de fabrication OF0001 créé"

    def test_list_filters(self, order, valid_formula):
        second = order_service.add_order({"formula_id": valid_formula.id, "coefficient": 1.0})
        order_service.cancel_order(second.id)

        assert [o.id for o in order_service.list_orders()] == [second.id, order.id]
        assert [o.id for o in order_service.list_orders(status="pending")] == [order.id]
        assert [o.id for o in order_service.list_orders(search="vanille")] == [second.id, order.id]
        assert [o.id for o in order_service.list_orders(search="OF0002")] == [second.id]


class TestCompletion:

    def test_complete_deducts_scaled_quantities(self, order, materials):
        completed = order_service.complete_order(order.id)

        assert completed.status == "completed"
        assert completed.completed_at is not None
        assert _stock(materials[0].id) == pytest.approx(250.0 - 120.0)
        assert _stock(materials[1].id) == pytest.approx(180.0 - 80.0)
        assert _stock(materials[2].id) == pytest.approx(320.0)

    def test_completion_is_logged(self, order, admin_actor):
        order_service.complete_order(order.id, actor=admin_actor)

        entry = db.session.query(ActivityLog).filter_by(action="Complétion").one()
        assert entry.entity_id == order.id
        assert entry.details == "Ordre de fabrication OF0001 complété"

    def test_second_completion_is_refused(self, order, materials):
        order_service.complete_order(order.id)
        stock_after_first = _stock(materials[0].id)

        with pytest.raises(OrderStateError):
            order_service.complete_order(order.id)

        assert _stock(materials[0].id) == pytest.approx(stock_after_first)

    def test_cancelled_order_cannot_be_completed(self, order, materials):
        order_service.cancel_order(order.id)

        with pytest.raises(OrderStateError):
            order_service.complete_order(order.id)

        assert _stock(materials[0].id) == pytest.approx(250.0)

    def test_in_progress_order_can_be_completed(self, order, materials):
        order_service.update_order(order.id, {"status": "in-progress"})
        completed = order_service.complete_order(order.id)
        assert completed.status == "completed"

    def test_unknown_order(self, db_session):
        assert order_service.complete_order(12345) is None

    def test_duplicate_material_lines_are_summed(self, materials):
        formula = formula_service.add_formula({
            "name": "Double vanille",
            "ingredients": [
                {"material_id": materials[0].id, "quantity": 70.0},
                {"material_id": materials[0].id, "quantity": 30.0},
            ],
        })
        order = order_service.add_order({"formula_id": formula.id, "coefficient": 2.5})

        plan = order_service.plan_consumption(order)
        assert len(plan) == 1
        assert plan[0].required == pytest.approx(250.0)

        order_service.complete_order(order.id)
        assert _stock(materials[0].id) == pytest.approx(0.0)


class TestAtomicity:

    def test_shortage_rolls_everything_back(self, valid_formula, materials):
        # 5 x F1 needs 300 kg MP1 (250 on hand) and 200 kg MP2 (180 on hand)
        order = order_service.add_order({"formula_id": valid_formula.id, "coefficient": 5.0})

        with pytest.raises(InsufficientStockError) as excinfo:
            order_service.complete_order(order.id)

        shortages = {s.material_id for s in excinfo.value.shortages}
        assert shortages == {materials[0].id, materials[1].id}
        assert "Stock insuffisant" in str(excinfo.value)

        assert _stock(materials[0].id) == pytest.approx(250.0)
        assert _stock(materials[1].id) == pytest.approx(180.0)
        assert db.session.get(ManufacturingOrder, order.id).status == "pending"
        assert db.session.query(ActivityLog).filter_by(action="Complétion").count() == 0

    def test_partial_shortage_touches_no_material(self, materials):
        formula = formula_service.add_formula({
            "name": "Mixte",
            "ingredients": [
                {"material_id": materials[2].id, "quantity": 50.0},
                {"material_id": materials[1].id, "quantity": 50.0},
            ],
        })
        # 4 x: MP3 needs 200 (ok), MP2 needs 200 (180 on hand)
        order = order_service.add_order({"formula_id": formula.id, "coefficient": 4.0})

        with pytest.raises(InsufficientStockError):
            order_service.complete_order(order.id)

        assert _stock(materials[2].id) == pytest.approx(320.0)

    def test_negative_stock_when_allowed(self, app, valid_formula, materials, monkeypatch):
        monkeypatch.setitem(app.config, "ALLOW_NEGATIVE_STOCK", True)
        order = order_service.add_order({"formula_id": valid_formula.id, "coefficient": 5.0})

        order_service.complete_order(order.id)

        assert _stock(materials[0].id) == pytest.approx(-50.0)
        assert _stock(materials[1].id) == pytest.approx(-20.0)

    def test_missing_formula(self, materials):
        order = order_service.add_order({"formula_id": 999, "coefficient": 1.0})

        with pytest.raises(OrderCompletionError):
            order_service.complete_order(order.id)

        assert db.session.get(ManufacturingOrder, order.id).status == "pending"

    def test_missing_material(self, materials):
        formula = formula_service.add_formula({
            "name": "Orpheline",
            "ingredients": [
                {"material_id": materials[2].id, "quantity": 50.0},
                {"material_id": 9999, "quantity": 50.0},
            ],
        })
        order = order_service.add_order({"formula_id": formula.id, "coefficient": 1.0})

        with pytest.raises(OrderCompletionError):
            order_service.complete_order(order.id)

        assert _stock(materials[2].id) == pytest.approx(320.0)


class TestUpdateAndCancel:

    def test_cancel(self, order, admin_actor, materials):
        cancelled = order_service.cancel_order(order.id, actor=admin_actor)

        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at is not None
        assert _stock(materials[0].id) == pytest.approx(250.0)
        assert db.session.query(ActivityLog).filter_by(action="Annulation").count() == 1

    def test_cancel_twice_is_refused(self, order):
        order_service.cancel_order(order.id)
        with pytest.raises(OrderStateError):
            order_service.cancel_order(order.id)

    def test_update_coefficient(self, order):
        updated = order_service.update_order(order.id, {"coefficient": 0.5})
        assert updated.coefficient == 0.5
        assert updated.order_number == "OF0001"

    def test_update_cannot_complete(self, order, materials):
        with pytest.raises(OrderStateError):
            order_service.update_order(order.id, {"status": "completed"})
        assert _stock(materials[0].id) == pytest.approx(250.0)

    def test_terminal_order_is_frozen(self, order):
        order_service.complete_order(order.id)
        with pytest.raises(OrderStateError):
            order_service.update_order(order.id, {"coefficient": 3.0})

    def test_update_unknown_status(self, order):
        with pytest.raises(ValueError):
            order_service.update_order(order.id, {"status": "shipped"})


class TestPreviewAndCounts:

    def test_plan_consumption_has_no_side_effects(self, order, materials):
        plan = order_service.plan_consumption(order)

        by_id = {m.material_id: m for m in plan}
        assert by_id[materials[0].id].required == pytest.approx(120.0)
        assert by_id[materials[0].id].stock_after == pytest.approx(130.0)
        assert _stock(materials[0].id) == pytest.approx(250.0)

    def test_status_counts_and_open_orders(self, order, valid_formula):
        other = order_service.add_order({"formula_id": valid_formula.id, "coefficient": 1.0})
        order_service.complete_order(other.id)

        counts = order_service.order_status_counts()
        assert counts == {"pending": 1, "in-progress": 0, "completed": 1, "cancelled": 0}
        assert [o.id for o in order_service.open_orders()] == [order.id]

    def test_deleting_a_material_after_completion_is_still_guarded(self, order, materials):
        order_service.complete_order(order.id)
        result = material_service.delete_material(materials[0].id)
        assert result.blocked


class TestRecordedExamples:

    def test_ten_kg_twice_from_one_hundred(self, db_session):
        material = material_service.add_material({"designation": "Menthol", "stock": 100.0})
        formula = formula_service.add_formula({
            "name": "Menthe",
            "ingredients": [{"material_id": material.id, "quantity": 10.0}],
        })
        order = order_service.add_order({"formula_id": formula.id, "coefficient": 2.0})

        result = order_service.complete_order(order.id)

        assert result
        assert result.status == "completed"
        assert result.completed_at is not None
        assert _stock(material.id) == pytest.approx(80.0)

    def test_exact_consumption_leaves_zero_not_float_residue(self, db_session):
        material = material_service.add_material({"designation": "Menthol", "stock": 0.3})
        formula = formula_service.add_formula({
            "name": "Trace",
            "ingredients": [{"material_id": material.id, "quantity": 0.1}],
        })
        order = order_service.add_order({"formula_id": formula.id, "coefficient": 3.0})

        order_service.complete_order(order.id)

        assert _stock(material.id) == 0.0
        assert material_service.stock_status(_stock(material.id)) == "low"

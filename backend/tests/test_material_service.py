"""
Raw material tests.

Verifies:
- Codes are assigned on create and survive updates
- Stock top-ups add, and refuse non-positive quantities
- The deletion guard blocks materials used in formulas and mutates nothing
- Bulk deletion is all-or-nothing
"""

import pytest

from aromalab.extensions import db
from aromalab.models import RawMaterial, Formula, ActivityLog
from aromalab.services import material_service, formula_service


class TestCreateAndUpdate:

    def test_add_assigns_code_and_timestamps(self, db_session):
        material = material_service.add_material({
            "designation": "Vanilline",
            "code": "999",
            "stock": 10.0,
            "price": 45.5,
        })
        assert material.code == "1"
        assert material.created_at is not None
        assert material.updated_at is not None
        assert material.to_dict()["display_code"] == "MP1"

    def test_update_keeps_identity(self, materials):
        original = materials[0]
        code, created_at = original.code, original.created_at

        updated = material_service.update_material(original.id, {"designation": "Vanilline naturelle"})

        assert updated.designation == "Vanilline naturelle"
        assert updated.code == code
        assert updated.created_at == created_at
        assert updated.stock == 250.0

    def test_update_unknown_returns_none(self, db_session):
        assert material_service.update_material(999, {"designation": "x"}) is None

    def test_update_logs_activity(self, materials, admin_actor):
        material_service.update_material(materials[0].id, {"price": 50.0}, actor=admin_actor)

        entry = db.session.query(ActivityLog).one()
        assert entry.action == "Modification"
        assert entry.entity == "material"
        assert entry.details == "Matière première MP1 modifiée"
        assert entry.user_name == "Administrateur"


class TestStock:

    def test_add_stock(self, materials, admin_actor):
        material = material_service.add_stock(materials[0].id, 5.0, actor=admin_actor)
        assert material.stock == pytest.approx(255.0)

        entry = db.session.query(ActivityLog).one()
        assert entry.action == "Ajout stock"
        assert entry.details == "+5.00 kg ajoutés à MP1 (nouveau stock: 255.00 kg)"

    @pytest.mark.parametrize("quantity", [0, -1.5])
    def test_add_stock_rejects_non_positive(self, materials, quantity):
        with pytest.raises(ValueError):
            material_service.add_stock(materials[0].id, quantity)
        assert db.session.get(RawMaterial, materials[0].id).stock == 250.0

    def test_add_stock_unknown_material(self, db_session):
        assert material_service.add_stock(42, 1.0) is None

    @pytest.mark.parametrize(
        "stock,expected",
        [
            (0.0, "low"),
            (0.019, "low"),
            (0.05, "medium"),
            (0.1, "good"),
            (0.49, "good"),
            (0.5, "excellent"),
            (250.0, "excellent"),
        ],
    )
    def test_stock_status(self, app, stock, expected):
        assert material_service.stock_status(stock) == expected

    def test_low_stock_materials(self, materials):
        material_service.update_material(materials[2].id, {"stock": 0.01})
        low = material_service.low_stock_materials()
        assert [m.id for m in low] == [materials[2].id]


class TestSearch:

    def test_search_by_display_code(self, materials):
        found = material_service.list_materials("MP2")
        assert materials[1].id in [m.id for m in found]

    def test_bare_prefix_is_searched_literally(self, materials):
        assert material_service.list_materials("MP") == []

    def test_search_by_designation(self, materials):
        found = material_service.list_materials("maltol")
        assert [m.id for m in found] == [materials[1].id]

    def test_search_by_supplier_is_case_insensitive(self, materials):
        found = material_service.list_materials("firmenich")
        assert [m.designation for m in found] == ["Menthol"]

    def test_list_is_ordered_by_numeric_code(self, db_session):
        for i in range(11):
            material_service.add_material({"designation": f"M{i}"})
        codes = [m.code for m in material_service.list_materials()]
        assert codes == [str(i) for i in range(1, 12)]


class TestDeletionGuard:

    def test_delete_unused_material(self, materials, admin_actor):
        result = material_service.delete_material(materials[2].id, actor=admin_actor)

        assert result.found and result.deleted
        assert db.session.get(RawMaterial, materials[2].id) is None
        entry = db.session.query(ActivityLog).one()
        assert entry.details == "Matière première MP3 supprimée"

    def test_delete_referenced_material_is_blocked(self, materials, valid_formula):
        result = material_service.delete_material(materials[0].id)

        assert result.found
        assert not result.deleted
        assert result.blocked
        assert result.blocking_labels == ["F1 - Vanille douce"]
        assert db.session.get(RawMaterial, materials[0].id) is not None
        assert db.session.query(ActivityLog).count() == 0

        formula = db.session.get(Formula, valid_formula.id)
        assert len(formula.ingredients) == 2
        assert formula.total_weight == pytest.approx(100.0)

    def test_delete_unknown_material(self, db_session):
        result = material_service.delete_material(404)
        assert not result.found
        assert not result.deleted

    def test_guard_lifts_once_formula_is_gone(self, materials, valid_formula):
        formula_service.delete_formula(valid_formula.id)
        result = material_service.delete_material(materials[0].id)
        assert result.deleted

    def test_guard_lifts_once_ingredient_is_removed(self, materials, valid_formula):
        formula_service.update_formula(valid_formula.id, {
            "ingredients": [{"material_id": materials[1].id, "quantity": 100.0}],
        })

        result = material_service.delete_material(materials[0].id)

        assert result.deleted
        assert db.session.get(RawMaterial, materials[0].id) is None
        assert material_service.find_formulas_referencing(materials[1].id)[0].id == valid_formula.id

    def test_bulk_delete_is_all_or_nothing(self, materials, valid_formula):
        ids = [m.id for m in materials]

        results = material_service.delete_materials(ids)

        assert not any(r.deleted for r in results)
        blocked = {r.material_id for r in results if r.blocked}
        assert blocked == {materials[0].id, materials[1].id}
        assert db.session.query(RawMaterial).count() == 3

    def test_bulk_delete_unreferenced(self, materials):
        results = material_service.delete_materials([materials[1].id, materials[2].id, 999])

        assert [r.deleted for r in results] == [True, True, False]
        assert db.session.query(RawMaterial).count() == 1

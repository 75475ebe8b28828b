"""
Activity log tests.

Verifies:
- Entries are returned newest first
- The log is bounded to ACTIVITY_LOG_LIMIT entries, oldest dropped
- user_name is a snapshot taken at write time
"""

import pytest

from aromalab.extensions import db
from aromalab.models import ActivityLog
from aromalab.services import activity_service
from aromalab.services.activity_service import log_activity, list_activity


class TestActivityLog:

    def test_entry_is_stamped_with_actor(self, admin_actor, admin_user):
        entry = log_activity(admin_actor, action="Création", entity="material", entity_id=1,
                             details="Matière première MP1 créée")

        assert entry.user_id == admin_user.id
        assert entry.user_name == "Administrateur"
        assert entry.timestamp is not None

    def test_newest_first(self, admin_actor):
        for i in range(3):
            log_activity(admin_actor, action="Création", entity="formula", entity_id=i,
                         details=f"Formule F{i} créée")

        assert [e.entity_id for e in list_activity()] == [2, 1, 0]

    def test_log_is_bounded(self, app, admin_actor, monkeypatch):
        monkeypatch.setitem(app.config, "ACTIVITY_LOG_LIMIT", 5)

        for i in range(8):
            log_activity(admin_actor, action="Modification", entity="material", entity_id=i)

        entries = list_activity()
        assert db.session.query(ActivityLog).count() == 5
        assert [e.entity_id for e in entries] == [7, 6, 5, 4, 3]

    def test_default_limit_is_100(self, admin_actor):
        for i in range(105):
            log_activity(admin_actor, action="Modification", entity="order", entity_id=i, commit=False)
        db.session.commit()

        assert db.session.query(ActivityLog).count() == activity_service.DEFAULT_ACTIVITY_LOG_LIMIT
        assert list_activity()[-1].entity_id == 5

    def test_unknown_entity_is_rejected(self, admin_actor):
        with pytest.raises(ValueError):
            log_activity(admin_actor, action="Création", entity="invoice", entity_id=1)

    def test_user_name_is_a_snapshot(self, admin_actor, admin_user):
        log_activity(admin_actor, action="Création", entity="user", entity_id=admin_user.id)

        admin_user.name = "Nouveau nom"
        db.session.commit()

        assert list_activity()[0].user_name == "Administrateur"

    def test_filter_and_search(self, admin_actor, user_actor):
        log_activity(admin_actor, action="Création", entity="material", entity_id=1,
                     details="Matière première MP1 créée")
        log_activity(user_actor, action="Complétion", entity="order", entity_id=1,
                     details="Ordre de fabrication OF0001 complété")

        assert [e.entity for e in list_activity(entity="order")] == ["order"]
        assert [e.user_name for e in list_activity(search="laborantin")] == ["Laborantin"]
        assert [e.details for e in list_activity(search="OF0001")] == [
            "Ordre de fabrication OF0001 complété"
        ]
        assert len(list_activity(limit=1)) == 1

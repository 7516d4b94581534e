"""
Tests for ColonyService.

Covers:
- Colony creation with zeroed counts
- Plot counts are never client-writable
- Recount equals a fresh scan of plots
- Only colonies without plots can be deleted
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from colony_kernel.exceptions import (
    CityNotFoundError,
    ColonyHasPlotsError,
    ColonyNotFoundError,
    ForbiddenError,
    ValidationError,
)
from colony_kernel.domain.permissions import Identity, Permission, RoleGrant
from colony_kernel.models.colony import Colony
from colony_kernel.models.plot import Plot
from colony_kernel.models.property import Property


class TestCreateColony:

    def test_new_colony_has_zero_counts(self, create_colony, captured_logs):
        colony = create_colony(name="  Green Valley  ", total_area="25000", price_per_sqft="450")

        assert colony.name == "Green Valley"
        assert colony.status == "planning"
        assert colony.total_area == Decimal("25000")
        assert (
            colony.total_plots,
            colony.available_plots,
            colony.sold_plots,
            colony.blocked_plots,
        ) == (0, 0, 0, 0)
        assert any(r["message"] == "colony_created" for r in captured_logs())

    def test_name_required(self, colony_service, admin_identity):
        with pytest.raises(ValidationError) as exc_info:
            colony_service.create_colony({"name": " "}, admin_identity)

        assert exc_info.value.field == "name"

    def test_counts_not_accepted_on_create(self, colony_service, admin_identity):
        with pytest.raises(ValidationError) as exc_info:
            colony_service.create_colony({"name": "X", "sold_plots": 4}, admin_identity)

        assert exc_info.value.field == "sold_plots"

    def test_city_must_exist(self, colony_service, admin_identity):
        with pytest.raises(CityNotFoundError):
            colony_service.create_colony({"name": "X", "city_id": uuid4()}, admin_identity)

    def test_city_link(self, colony_service, admin_identity, city):
        colony = colony_service.create_colony({"name": "X", "city_id": city.id}, admin_identity)

        assert colony.city_id == city.id

    def test_khatoni_holders_need_names(self, colony_service, admin_identity):
        with pytest.raises(ValidationError) as exc_info:
            colony_service.create_colony(
                {"name": "X", "khatoni_holders": [{"name": "Hari"}, {"address": "Village"}]},
                admin_identity,
            )

        assert exc_info.value.field == "khatoni_holders[1].name"

    def test_manager_without_permission(self, colony_service, manager_identity):
        with pytest.raises(ForbiddenError):
            colony_service.create_colony({"name": "X"}, manager_identity)


class TestUpdateColony:

    def test_partial_update(self, colony_service, colony, admin_identity):
        updated = colony_service.update_colony(
            colony.id,
            {"status": "ready_to_sell", "address": "NH-48"},
            admin_identity,
        )

        assert updated.status == "ready_to_sell"
        assert updated.address == "NH-48"
        assert updated.name == colony.name

    @pytest.mark.parametrize(
        "field", ["total_plots", "available_plots", "sold_plots", "blocked_plots"]
    )
    def test_counts_rejected(self, colony_service, colony, admin_identity, field):
        with pytest.raises(ValidationError) as exc_info:
            colony_service.update_colony(colony.id, {field: 99}, admin_identity)

        assert exc_info.value.field == field

    def test_unknown_status(self, colony_service, colony, admin_identity):
        with pytest.raises(ValidationError):
            colony_service.update_colony(colony.id, {"status": "abandoned"}, admin_identity)

    def test_negative_area(self, colony_service, colony, admin_identity):
        with pytest.raises(ValidationError):
            colony_service.update_colony(colony.id, {"total_area": "-1"}, admin_identity)

    def test_unknown_colony(self, colony_service, admin_identity):
        with pytest.raises(ColonyNotFoundError):
            colony_service.update_colony(uuid4(), {"address": "x"}, admin_identity)


class TestRecount:

    def test_counts_by_status(self, plot_service, colony_service, create_plot, colony, admin_identity):
        create_plot()
        create_plot()
        create_plot(status="blocked")
        create_plot(status="reserved")
        create_plot(status="booked")
        create_plot(status="sold")

        counts = colony_service.recount(colony.id)

        assert (counts.total, counts.available, counts.sold, counts.blocked) == (6, 2, 1, 1)

    def test_recount_repairs_bypassed_write(
        self, session, colony_service, create_plot, colony
    ):
        plot = create_plot()
        session.get(Plot, plot.id).status = "sold"
        session.flush()

        counts = colony_service.recount(colony.id)
        info = colony_service.get_colony(colony.id)

        assert counts.sold == 1
        assert (info.available_plots, info.sold_plots) == (0, 1)

    def test_recount_empty_colony(self, colony_service, colony):
        counts = colony_service.recount(colony.id)

        assert counts.total == 0

    def test_recount_unknown_colony(self, colony_service):
        with pytest.raises(ColonyNotFoundError):
            colony_service.recount(uuid4())

    def test_recount_logged(self, colony_service, colony, captured_logs):
        colony_service.recount(colony.id)

        recounted = [r for r in captured_logs() if r["message"] == "colony_recounted"]
        assert recounted[0]["colony_id"] == str(colony.id)
        assert recounted[0]["total_plots"] == 0


class TestDeleteColony:

    def test_empty_colony_deleted(self, session, colony_service, colony, admin_identity, captured_logs):
        colony_service.delete_colony(colony.id, admin_identity)

        assert session.get(Colony, colony.id) is None
        deleted = [r for r in captured_logs() if r["message"] == "colony_deleted"]
        assert deleted[0]["colony_id"] == str(colony.id)
        assert deleted[0]["colony_name"] == "Green Valley"

    def test_properties_detached(self, session, colony_service, colony, colony_property, admin_identity):
        colony_service.delete_colony(colony.id, admin_identity)

        session.expire_all()
        assert session.get(Property, colony_property.id).colony_id is None

    def test_colony_with_plots_kept(self, session, colony_service, create_plot, colony, admin_identity):
        create_plot()
        create_plot(status="sold")

        with pytest.raises(ColonyHasPlotsError) as exc_info:
            colony_service.delete_colony(colony.id, admin_identity)

        assert exc_info.value.plot_count == 2
        assert exc_info.value.http_status == 409
        assert session.get(Colony, colony.id) is not None

    def test_deletable_after_last_plot_removed(
        self, session, plot_service, colony_service, create_plot, colony, admin_identity
    ):
        plot = create_plot()
        plot_service.delete_plot(plot.id, admin_identity)

        colony_service.delete_colony(colony.id, admin_identity)

        assert session.get(Colony, colony.id) is None

    def test_unknown_colony(self, colony_service, admin_identity):
        with pytest.raises(ColonyNotFoundError):
            colony_service.delete_colony(uuid4(), admin_identity)

    def test_needs_colony_delete(self, session, colony_service, colony, manager_identity):
        with pytest.raises(ForbiddenError):
            colony_service.delete_colony(colony.id, manager_identity)

        assert session.get(Colony, colony.id) is not None

    @pytest.mark.parametrize("grant", [Permission.COLONY_DELETE, "all"])
    def test_granted_role_deletes(self, session, colony_service, colony, grant):
        identity = Identity(user_id=uuid4(), role=RoleGrant("Operations", (grant,)))

        colony_service.delete_colony(colony.id, identity)

        assert session.get(Colony, colony.id) is None

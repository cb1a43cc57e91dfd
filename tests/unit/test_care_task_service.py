"""Unit tests for care_task_service."""

from datetime import UTC, date, datetime

import pytest

from src.core.errors import ConflictError, NotFoundError, OwnershipError, ValidationError
from src.domain.care_task import TaskType
from src.services import care_task_service
from tests.unit.conftest import OTHER_OWNER_ID, OWNER_ID


async def create(category, clock, **overrides):
    kwargs = {
        "owner_id": OWNER_ID,
        "name": "Buy litter",
        "task_type": "PURCHASE",
        "start_date": "2024-01-01",
        "recurrence_interval_days": 30,
        "category_id": category["id"],
        "clock": clock,
    }
    kwargs.update(overrides)
    return await care_task_service.create_task(**kwargs)


@pytest.mark.unit
class TestCreateTask:
    """Tests for create_task."""

    async def test_recurring_task_backfills_through_end_date(self, patched_db, category, clock):
        """Test a bounded series is generated in full at creation."""
        result = await create(category, clock, end_date="2024-03-01")

        assert result.task.task_type == TaskType.PURCHASE
        assert result.task.is_active is True
        assert len(result.execution_ids) == 3
        dates = [r["scheduled_date"] for r in patched_db.all("task_executions")]
        assert dates == ["2024-01-01", "2024-01-31", "2024-03-01"]

    async def test_unbounded_task_backfills_to_year_end(self, patched_db, category, clock):
        """Test an open-ended series stops at December 31 of the current year."""
        result = await create(category, clock, recurrence_interval_days=100)

        dates = [r["scheduled_date"] for r in patched_db.all("task_executions")]
        assert dates == ["2024-01-01", "2024-04-10", "2024-07-19", "2024-10-27"]
        assert len(result.execution_ids) == 4

    async def test_one_off_task_gets_single_execution(self, patched_db, category, clock):
        """Test a one-off task receives exactly one execution on its start date."""
        result = await create(category, clock, recurrence_interval_days=0, start_date="2025-02-01")

        assert result.task.is_one_off
        executions = patched_db.all("task_executions")
        assert len(executions) == 1
        assert executions[0]["scheduled_date"] == "2025-02-01"
        assert executions[0]["status"] == "TODO"

    async def test_future_year_task_gets_no_executions(self, patched_db, category, clock):
        """Test a recurring task starting next year is not backfilled yet."""
        result = await create(category, clock, start_date="2025-01-05")

        assert result.execution_ids == []
        assert patched_db.all("task_executions") == []

    async def test_purchase_executions_default_unit(self, patched_db, category, clock):
        """Test generated purchase executions default to the piece unit."""
        await create(category, clock, end_date="2024-01-01", quantity_per_purchase=2)

        execution = patched_db.all("task_executions")[0]
        assert execution["quantity_unit"] == "piece"
        assert execution["quantity_purchased"] == 2

    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"name": "  "}, "name"),
            ({"task_type": "CHORE"}, "task_type"),
            ({"start_date": "someday"}, "start_date"),
            ({"recurrence_interval_days": -1}, "recurrence_interval_days"),
            ({"end_date": "2023-12-31"}, "end_date"),
            ({"yearly_budget": "lots"}, "yearly_budget"),
            ({"quantity_per_purchase": 0}, "quantity_per_purchase"),
        ],
    )
    async def test_invalid_input(self, patched_db, category, clock, overrides, message):
        """Test malformed input is rejected before anything is written."""
        with pytest.raises(ValidationError, match=message):
            await create(category, clock, **overrides)

        assert patched_db.all("care_tasks") == []

    async def test_category_must_belong_to_owner(self, patched_db, other_category, clock):
        """Test another owner's category is reported as missing."""
        with pytest.raises(NotFoundError, match="Category"):
            await create(other_category, clock)


@pytest.mark.unit
class TestReadAndList:
    """Tests for get_task and list_tasks."""

    async def test_get_task_checks_owner(self, patched_db, category, clock):
        """Test reading another owner's task is refused."""
        result = await create(category, clock, end_date="2024-01-01")

        assert (await care_task_service.get_task(owner_id=OWNER_ID, task_id=result.task.id)).name == "Buy litter"
        with pytest.raises(OwnershipError):
            await care_task_service.get_task(owner_id=OTHER_OWNER_ID, task_id=result.task.id)
        with pytest.raises(NotFoundError):
            await care_task_service.get_task(owner_id=OWNER_ID, task_id="missing")

    async def test_list_tasks_filters(self, patched_db, category, clock):
        """Test filtering by type, activity and start date."""
        litter = await create(category, clock, end_date="2024-01-01")
        clock.moment = datetime(2024, 6, 16, tzinfo=UTC)
        walk = await create(
            category, clock, name="Walk", task_type="GENERAL", start_date="2024-05-01", end_date="2024-05-01"
        )
        await care_task_service.deactivate_task(owner_id=OWNER_ID, task_id=litter.task.id, clock=clock)

        active = await care_task_service.list_tasks(owner_id=OWNER_ID)
        assert [t.id for t in active] == [walk.task.id]

        everything = await care_task_service.list_tasks(owner_id=OWNER_ID, is_active="all")
        assert [t.id for t in everything] == [walk.task.id, litter.task.id]

        purchases = await care_task_service.list_tasks(owner_id=OWNER_ID, task_type="PURCHASE", is_active="all")
        assert [t.id for t in purchases] == [litter.task.id]

        from_april = await care_task_service.list_tasks(
            owner_id=OWNER_ID, is_active="all", start_date_from="2024-04-01"
        )
        assert [t.id for t in from_april] == [walk.task.id]

        assert await care_task_service.list_tasks(owner_id=OTHER_OWNER_ID, is_active="all") == []

    async def test_list_tasks_pagination(self, patched_db, category, clock):
        """Test limit and offset slice the newest-first list."""
        for day in range(1, 4):
            clock.moment = datetime(2024, 6, day, tzinfo=UTC)
            await create(category, clock, name=f"Task {day}", recurrence_interval_days=0)

        page = await care_task_service.list_tasks(owner_id=OWNER_ID, limit=1, offset=1)

        assert [t.name for t in page] == ["Task 2"]

    async def test_list_tasks_rejects_unknown_activity_filter(self, patched_db):
        """Test is_active only accepts true, false or all."""
        with pytest.raises(ValidationError, match="is_active"):
            await care_task_service.list_tasks(owner_id=OWNER_ID, is_active="maybe")


@pytest.mark.unit
class TestUpdateTask:
    """Tests for update_task."""

    async def test_partial_update(self, patched_db, category, clock):
        """Test only the given fields change."""
        result = await create(category, clock, end_date="2024-01-01", yearly_budget=120)

        updated = await care_task_service.update_task(
            owner_id=OWNER_ID,
            task_id=result.task.id,
            changes={"name": "Buy premium litter", "estimated_unit_cost": "12.5", "yearly_budget": None},
            clock=clock,
        )

        assert updated.name == "Buy premium litter"
        assert updated.estimated_unit_cost == 12.5
        assert updated.yearly_budget is None
        assert updated.start_date == date(2024, 1, 1)

    async def test_end_date_before_start_rejected(self, patched_db, category, clock):
        """Test the date range stays ordered across partial updates."""
        result = await create(category, clock, end_date="2024-01-01")

        with pytest.raises(ValidationError, match="end_date"):
            await care_task_service.update_task(
                owner_id=OWNER_ID, task_id=result.task.id, changes={"start_date": "2024-02-01"}, clock=clock
            )

    async def test_unknown_field_rejected(self, patched_db, category, clock):
        """Test fields outside the editable set are rejected."""
        result = await create(category, clock, end_date="2024-01-01")

        with pytest.raises(ValidationError, match="owner_id"):
            await care_task_service.update_task(
                owner_id=OWNER_ID, task_id=result.task.id, changes={"owner_id": OTHER_OWNER_ID}, clock=clock
            )


@pytest.mark.unit
class TestActivationAndGeneration:
    """Tests for deactivation, reactivation and on-demand generation."""

    async def test_deactivate_and_reactivate(self, patched_db, category, clock):
        """Test soft deletion keeps the task and its executions."""
        result = await create(category, clock, end_date="2024-03-01")

        inactive = await care_task_service.deactivate_task(owner_id=OWNER_ID, task_id=result.task.id, clock=clock)
        assert inactive.is_active is False
        assert inactive.deactivated_at is not None
        assert len(patched_db.all("task_executions")) == 3

        active = await care_task_service.reactivate_task(owner_id=OWNER_ID, task_id=result.task.id, clock=clock)
        assert active.is_active is True
        assert active.deactivated_at is None

    async def test_generate_next_for_inactive_task_conflicts(self, patched_db, category, clock):
        """Test generation is refused for an inactive task."""
        result = await create(category, clock, end_date="2024-03-01")
        await care_task_service.deactivate_task(owner_id=OWNER_ID, task_id=result.task.id, clock=clock)

        with pytest.raises(ConflictError):
            await care_task_service.generate_next_for_task(owner_id=OWNER_ID, task_id=result.task.id, clock=clock)

    async def test_generate_next_for_one_off_is_none(self, patched_db, category, clock):
        """Test one-off tasks never get a next execution."""
        result = await create(category, clock, recurrence_interval_days=0)

        assert (
            await care_task_service.generate_next_for_task(owner_id=OWNER_ID, task_id=result.task.id, clock=clock)
            is None
        )

    async def test_generate_remaining_after_extension(self, patched_db, category, clock):
        """Test extending the end date and generating the rest of the series."""
        result = await create(category, clock, end_date="2024-03-01")
        await care_task_service.update_task(
            owner_id=OWNER_ID, task_id=result.task.id, changes={"end_date": "2024-05-01"}, clock=clock
        )

        created = await care_task_service.generate_remaining_executions(
            owner_id=OWNER_ID, task_id=result.task.id, clock=clock
        )

        assert len(created) == 2
        dates = [r["scheduled_date"] for r in patched_db.all("task_executions")]
        assert dates[-2:] == ["2024-03-31", "2024-04-30"]

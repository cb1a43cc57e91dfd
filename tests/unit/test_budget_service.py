"""Unit tests for budget_service."""

import pytest

from src.core.errors import InsufficientBudgetError, NotFoundError, OwnershipError, ValidationError
from src.services import budget_service, care_task_service, execution_service
from tests.unit.conftest import OTHER_OWNER_ID, OWNER_ID


async def make_task(category, clock, name, budget, owner_id=OWNER_ID):
    result = await care_task_service.create_task(
        owner_id=owner_id,
        name=name,
        task_type="PURCHASE",
        start_date="2024-01-01",
        recurrence_interval_days=30,
        end_date="2024-03-01",
        yearly_budget=budget,
        category_id=category["id"],
        clock=clock,
    )
    return result.task.id, result.execution_ids


@pytest.mark.unit
class TestNetSpend:
    """Tests for the pure net spend calculation."""

    def test_net_spend_floors_each_execution_at_zero(self):
        """Test refunds never make an execution's contribution negative."""
        executions = [
            {"actual_cost": 30.0, "refund": None},
            {"actual_cost": 10.0, "refund": {"refund_amount": 4.0}},
            {"actual_cost": None, "refund": None},
        ]
        base = {
            "owner_id": OWNER_ID,
            "care_task_id": "t",
            "scheduled_date": "2024-01-01",
            "created_at": "x",
            "updated_at": "x",
        }
        refund_base = {"refund_date": "2024-01-02", "refunded_by": OWNER_ID, "created_at": "x", "updated_at": "x"}
        records = []
        for index, item in enumerate(executions):
            record = {**base, "id": str(index), "actual_cost": item["actual_cost"]}
            if item["refund"]:
                record["refund"] = {**refund_base, **item["refund"]}
            records.append(record)

        assert budget_service.calculate_net_spend(records) == pytest.approx(36.0)
        assert budget_service.calculate_refunded_total(records) == pytest.approx(4.0)

    def test_net_spend_of_nothing(self):
        """Test an empty ledger spends nothing."""
        assert budget_service.calculate_net_spend([]) == 0.0


@pytest.mark.unit
class TestTransferBudget:
    """Tests for transfer_budget."""

    async def test_transfer_moves_budget_and_records_snapshot(self, patched_db, category, clock):
        """Test a valid transfer updates both budgets and writes an audit record."""
        source_id, source_executions = await make_task(category, clock, "Food", 100)
        destination_id, _ = await make_task(category, clock, "Toys", 20)
        await execution_service.complete_execution(
            owner_id=OWNER_ID, task_id=source_id, execution_id=source_executions[0], actual_cost=30, clock=clock
        )

        result = await budget_service.transfer_budget(
            owner_id=OWNER_ID, from_task_id=source_id, to_task_id=destination_id, amount="40", note="rebalance", clock=clock
        )

        assert result.from_task.yearly_budget == 60.0
        assert result.to_task.yearly_budget == 60.0
        assert result.transfer.amount == 40.0
        assert result.transfer.year == 2024
        assert result.transfer.note == "rebalance"
        assert result.transfer.performed_by == OWNER_ID
        assert result.transfer.source_snapshot.yearly_budget == 100.0
        assert result.transfer.source_snapshot.net_spend == 30.0
        assert result.transfer.source_snapshot.available_before == 70.0

    async def test_transfer_of_exact_available_amount(self, patched_db, category, clock):
        """Test the whole available budget can be moved."""
        source_id, _ = await make_task(category, clock, "Food", 50)
        destination_id, _ = await make_task(category, clock, "Toys", None)

        result = await budget_service.transfer_budget(
            owner_id=OWNER_ID, from_task_id=source_id, to_task_id=destination_id, amount=50, clock=clock
        )

        assert result.from_task.yearly_budget == 0.0
        assert result.to_task.yearly_budget == 50.0

    async def test_insufficient_budget_changes_nothing(self, patched_db, category, clock):
        """Test a rejected transfer leaves budgets and the ledger untouched."""
        source_id, source_executions = await make_task(category, clock, "Food", 100)
        destination_id, _ = await make_task(category, clock, "Toys", 20)
        await execution_service.complete_execution(
            owner_id=OWNER_ID, task_id=source_id, execution_id=source_executions[0], actual_cost=80, clock=clock
        )
        tasks_before = patched_db.all("care_tasks")

        with pytest.raises(InsufficientBudgetError, match="available 20.00"):
            await budget_service.transfer_budget(
                owner_id=OWNER_ID, from_task_id=source_id, to_task_id=destination_id, amount=25, clock=clock
            )

        assert patched_db.all("care_tasks") == tasks_before
        assert patched_db.all("budget_transfers") == []

    async def test_refund_frees_budget(self, patched_db, category, clock):
        """Test refunded spend becomes available again."""
        source_id, source_executions = await make_task(category, clock, "Food", 100)
        destination_id, _ = await make_task(category, clock, "Toys", 0)
        await execution_service.complete_execution(
            owner_id=OWNER_ID, task_id=source_id, execution_id=source_executions[0], actual_cost=80, clock=clock
        )
        await execution_service.refund_execution(
            owner_id=OWNER_ID, task_id=source_id, execution_id=source_executions[0], refund_amount=30, clock=clock
        )

        result = await budget_service.transfer_budget(
            owner_id=OWNER_ID, from_task_id=source_id, to_task_id=destination_id, amount=50, clock=clock
        )

        assert result.transfer.source_snapshot.net_spend == 50.0

    @pytest.mark.parametrize(
        ("from_id", "to_id", "amount"),
        [("", "b", 10), ("a", "a", 10), ("a", "b", 0), ("a", "b", -3), ("a", "b", "ten")],
    )
    async def test_invalid_transfer_input(self, patched_db, clock, from_id, to_id, amount):
        """Test malformed transfers are rejected before touching the store."""
        with pytest.raises(ValidationError):
            await budget_service.transfer_budget(
                owner_id=OWNER_ID, from_task_id=from_id, to_task_id=to_id, amount=amount, clock=clock
            )

    async def test_transfer_requires_owned_tasks(self, patched_db, category, other_category, clock):
        """Test both tasks must exist and belong to the caller."""
        source_id, _ = await make_task(category, clock, "Food", 100)
        foreign_id, _ = await make_task(other_category, clock, "Garden", 100, owner_id=OTHER_OWNER_ID)

        with pytest.raises(OwnershipError):
            await budget_service.transfer_budget(
                owner_id=OWNER_ID, from_task_id=source_id, to_task_id=foreign_id, amount=10, clock=clock
            )
        with pytest.raises(NotFoundError):
            await budget_service.transfer_budget(
                owner_id=OWNER_ID, from_task_id=source_id, to_task_id="missing", amount=10, clock=clock
            )


@pytest.mark.unit
class TestLedgerQueries:
    """Tests for list_budget_transfers and get_budget_summary."""

    async def test_list_transfers_touching_task(self, patched_db, category, clock):
        """Test filtering transfers by either side."""
        food_id, _ = await make_task(category, clock, "Food", 100)
        toys_id, _ = await make_task(category, clock, "Toys", 100)
        vet_id, _ = await make_task(category, clock, "Vet", 100)
        first = await budget_service.transfer_budget(
            owner_id=OWNER_ID, from_task_id=food_id, to_task_id=toys_id, amount=10, clock=clock
        )
        second = await budget_service.transfer_budget(
            owner_id=OWNER_ID, from_task_id=vet_id, to_task_id=food_id, amount=5, clock=clock
        )
        await budget_service.transfer_budget(
            owner_id=OWNER_ID, from_task_id=toys_id, to_task_id=vet_id, amount=1, clock=clock
        )

        food_transfers = await budget_service.list_budget_transfers(owner_id=OWNER_ID, task_id=food_id)
        assert {t.id for t in food_transfers} == {first.transfer.id, second.transfer.id}

        assert len(await budget_service.list_budget_transfers(owner_id=OWNER_ID)) == 3
        assert await budget_service.list_budget_transfers(owner_id=OTHER_OWNER_ID) == []

    async def test_budget_summary(self, patched_db, category, clock):
        """Test the summary reports budget, net spend, refunds and availability."""
        task_id, executions = await make_task(category, clock, "Food", 100)
        await execution_service.complete_execution(
            owner_id=OWNER_ID, task_id=task_id, execution_id=executions[0], actual_cost=40, clock=clock
        )
        await execution_service.refund_execution(
            owner_id=OWNER_ID, task_id=task_id, execution_id=executions[0], refund_amount=15, clock=clock
        )

        summary = await budget_service.get_budget_summary(owner_id=OWNER_ID, task_id=task_id)

        assert summary.yearly_budget == 100.0
        assert summary.net_spend == 25.0
        assert summary.refunded_total == 15.0
        assert summary.available == 75.0

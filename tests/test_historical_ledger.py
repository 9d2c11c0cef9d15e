"""Historical ledger tests.

- Scoring snapshots: validity window (T+89 current, T+91 stale), history order
- Financial, asset and bureau series with derived figures
- Append-only surface: no update or delete operations
- recorded_by is mandatory
"""

from __future__ import annotations

import threading
from datetime import timedelta

import pydantic
import pytest

from crel.audit.sink import InMemoryAuditSink
from crel.errors import ValidationError
from crel.models.actor import ActorIdentity
from crel.models.ledger import (
    AssetSnapshotInput,
    BalanceSheet,
    BureauQueryInput,
    BureauQueryStatus,
    BureauQueryType,
    DataSource,
    FinancialSnapshotInput,
    FinancialStatementType,
    IncomeStatement,
    LedgerEntryKind,
    Machinery,
    MachineryOwnership,
    MonthlyTaxReturn,
    OtherAsset,
    RealEstate,
)
from crel.persistence.repositories import (
    InMemoryEvaluationsRepository,
    InMemoryLedgerRepository,
    LedgerRepository,
)
from crel.scoring.models import Tier
from crel.services.ledger import HistoricalLedger
from tests.fixtures.factories import FIXED_NOW, TENANT_A_ID, fixed_clock, make_scoring_record

CUSTOMER = "cust-001"


@pytest.fixture
def ledger(audit_sink: InMemoryAuditSink) -> HistoricalLedger:
    return HistoricalLedger(TENANT_A_ID, audit_sink=audit_sink, clock=fixed_clock())


def _ledger_at(offset_days: int) -> HistoricalLedger:
    return HistoricalLedger(TENANT_A_ID, clock=fixed_clock(FIXED_NOW + timedelta(days=offset_days)))


class TestScoringSnapshots:
    """Tests for scoring snapshots and the validity window."""

    def test_snapshot_valid_at_day_89(
        self, ledger: HistoricalLedger, evaluator: ActorIdentity
    ) -> None:
        stored = ledger.add_scoring_record(CUSTOMER, make_scoring_record(), evaluator)

        current = ledger.get_current_valid_score(CUSTOMER, now=FIXED_NOW + timedelta(days=89))

        assert current == stored

    def test_snapshot_stale_at_day_91(
        self, ledger: HistoricalLedger, evaluator: ActorIdentity
    ) -> None:
        ledger.add_scoring_record(CUSTOMER, make_scoring_record(), evaluator)

        assert ledger.get_current_valid_score(CUSTOMER, now=FIXED_NOW + timedelta(days=91)) is None

    def test_naive_now_is_read_as_utc(
        self, ledger: HistoricalLedger, evaluator: ActorIdentity
    ) -> None:
        stored = ledger.add_scoring_record(CUSTOMER, make_scoring_record(), evaluator)
        naive_now = FIXED_NOW.replace(tzinfo=None)

        current = ledger.get_current_valid_score(CUSTOMER, now=naive_now + timedelta(days=89))
        stale = ledger.get_current_valid_score(CUSTOMER, now=naive_now + timedelta(days=91))

        assert current == stored
        assert stale is None

    def test_valid_until_is_recorded(
        self, ledger: HistoricalLedger, evaluator: ActorIdentity
    ) -> None:
        stored = ledger.add_scoring_record(
            CUSTOMER, make_scoring_record(validity_days=30), evaluator
        )

        assert stored.valid_until == "2025-03-31T12:00:00.000000Z"
        assert stored.recorded_at == "2025-03-01T12:00:00.000000Z"

    def test_no_snapshot_means_no_current_score(self, ledger: HistoricalLedger) -> None:
        assert ledger.get_current_valid_score(CUSTOMER) is None

    def test_stale_latest_hides_older_valid_snapshot(self, evaluator: ActorIdentity) -> None:
        """Only the newest snapshot is considered for currency."""
        _ledger_at(0).add_scoring_record(
            CUSTOMER, make_scoring_record(validity_days=365), evaluator
        )
        _ledger_at(10).add_scoring_record(CUSTOMER, make_scoring_record(validity_days=5), evaluator)

        now = FIXED_NOW + timedelta(days=20)
        assert _ledger_at(20).get_current_valid_score(CUSTOMER, now=now) is None

    def test_history_newest_first_with_limit(self, evaluator: ActorIdentity) -> None:
        for offset in range(12):
            _ledger_at(offset).add_scoring_record(
                CUSTOMER, make_scoring_record(score=50 + offset), evaluator
            )

        history = _ledger_at(30).get_scoring_history(CUSTOMER)

        assert len(history) == 10
        assert [s.total_score for s in history[:2]] == [61.0, 60.0]
        assert len(_ledger_at(30).get_scoring_history(CUSTOMER, limit=3)) == 3

    def test_credit_line_calculated_from_tier_and_sales(
        self, ledger: HistoricalLedger, evaluator: ActorIdentity
    ) -> None:
        stored = ledger.add_scoring_record(CUSTOMER, make_scoring_record(tier=Tier.B), evaluator)
        without_sales = ledger.add_scoring_record(
            CUSTOMER, make_scoring_record(annual_sales=None), evaluator
        )

        assert stored.credit_line_calculated == 440_000.0
        assert without_sales.credit_line_calculated is None
        assert stored.model_version == "v1.0"

    def test_each_add_creates_new_entry(
        self, ledger: HistoricalLedger, evaluator: ActorIdentity
    ) -> None:
        first = ledger.add_scoring_record(CUSTOMER, make_scoring_record(score=40), evaluator)
        ledger.add_scoring_record(CUSTOMER, make_scoring_record(score=90), evaluator)

        history = ledger.get_scoring_history(CUSTOMER)

        assert len(history) == 2
        assert first in history

    def test_recorded_by_required(self, ledger: HistoricalLedger) -> None:
        with pytest.raises(ValidationError):
            ledger.add_scoring_record(CUSTOMER, make_scoring_record(), None)

    def test_append_emits_audit_event(
        self,
        ledger: HistoricalLedger,
        evaluator: ActorIdentity,
        audit_sink: InMemoryAuditSink,
    ) -> None:
        stored = ledger.add_scoring_record(CUSTOMER, make_scoring_record(), evaluator)

        event = audit_sink.events[-1]
        assert event["event_type"] == "ledger.scoring.appended"
        assert event["resource"]["resource_id"] == stored.entry_id
        assert event["actor"]["actor_id"] == evaluator.actor_id


class TestLedgerImmutability:
    """The ledger surface offers creation and reads only."""

    @pytest.mark.parametrize(
        "target", [HistoricalLedger, LedgerRepository, InMemoryLedgerRepository]
    )
    def test_no_mutation_methods(self, target: type) -> None:
        public = {name for name in dir(target) if not name.startswith("_")}

        assert not {n for n in public if n.startswith(("update", "delete", "remove", "set"))}

    def test_returned_snapshot_is_frozen(
        self, ledger: HistoricalLedger, evaluator: ActorIdentity
    ) -> None:
        stored = ledger.add_scoring_record(CUSTOMER, make_scoring_record(), evaluator)

        with pytest.raises(pydantic.ValidationError):
            stored.total_score = 0  # type: ignore[misc]

        assert ledger.get_scoring_history(CUSTOMER)[0].total_score == stored.total_score


class TestFinancialSnapshots:
    """Tests for financial-statement snapshots."""

    def test_balance_sheet_ratios_derived(
        self, ledger: HistoricalLedger, evaluator: ActorIdentity
    ) -> None:
        snapshot = ledger.add_financial_snapshot(
            CUSTOMER,
            FinancialSnapshotInput(
                statement_type=FinancialStatementType.BALANCE_SHEET,
                period="2024",
                balance_sheet=BalanceSheet(
                    current_assets=500_000,
                    non_current_assets=1_500_000,
                    current_liabilities=250_000,
                    non_current_liabilities=750_000,
                    equity=1_000_000,
                ),
                income_statement=IncomeStatement(
                    net_sales=2_000_000, cost_of_goods_sold=1_200_000
                ),
                data_source=DataSource.AUDITED_BALANCE,
            ),
            evaluator,
        )

        ratios = snapshot.ratios
        assert ratios is not None
        assert ratios.current_liquidity == 2.0
        assert ratios.indebtedness == 0.5
        assert ratios.solvency == 0.5
        assert ratios.gross_margin == 0.4
        assert ratios.asset_turnover == 1.0

    def test_filter_by_statement_type(
        self, ledger: HistoricalLedger, evaluator: ActorIdentity
    ) -> None:
        ledger.add_financial_snapshot(
            CUSTOMER,
            FinancialSnapshotInput(
                statement_type=FinancialStatementType.MONTHLY_VAT,
                period="2024-03",
                monthly_tax_return=MonthlyTaxReturn(vat_sales=21_000, vat_purchases=10_500),
                data_source=DataSource.SWORN_STATEMENT,
            ),
            evaluator,
        )
        ledger.add_financial_snapshot(
            CUSTOMER,
            FinancialSnapshotInput(
                statement_type=FinancialStatementType.BALANCE_SHEET,
                period="2023",
                balance_sheet=BalanceSheet(current_assets=1, current_liabilities=1, equity=0),
                data_source=DataSource.ESTIMATE,
            ),
            evaluator,
        )

        vat = ledger.get_financial_snapshots(
            CUSTOMER, statement_type=FinancialStatementType.MONTHLY_VAT
        )

        assert [s.period for s in vat] == ["2024-03"]
        assert vat[0].ratios is None
        assert len(ledger.get_financial_snapshots(CUSTOMER)) == 2


class TestAssetSnapshots:
    """Tests for asset snapshots."""

    def _inventory(self, land_value: float) -> AssetSnapshotInput:
        return AssetSnapshotInput(
            machinery=[
                Machinery(
                    kind="Harvester",
                    current_value=300_000,
                    ownership=MachineryOwnership.OWNED,
                ),
                Machinery(
                    kind="Tractor",
                    current_value=120_000,
                    ownership=MachineryOwnership.LEASING,
                ),
            ],
            real_estate=[
                RealEstate(kind="Field", estimated_value=land_value, has_lien=False),
                RealEstate(kind="Mortgaged plot", estimated_value=999_999, has_lien=True),
            ],
            other_assets=[OtherAsset(description="Grain stock", value=50_000)],
        )

    def test_totals_and_variation(self, evaluator: ActorIdentity) -> None:
        first = _ledger_at(0).add_asset_snapshot(CUSTOMER, self._inventory(650_000), evaluator)
        second = _ledger_at(30).add_asset_snapshot(CUSTOMER, self._inventory(850_000), evaluator)

        assert first.total_machinery == 300_000
        assert first.total_real_estate == 650_000
        assert first.total_assets == 1_000_000
        assert first.previous_entry_id is None

        assert second.previous_entry_id == first.entry_id
        assert second.absolute_variation == 200_000
        assert second.percentage_variation == 20.0

        latest = _ledger_at(31).get_latest_asset_snapshot(CUSTOMER)
        assert latest is not None
        assert latest.entry_id == second.entry_id


class TestBureauQueries:
    """Tests for bureau query logs."""

    def test_api_key_masked(self, ledger: HistoricalLedger, evaluator: ActorIdentity) -> None:
        logged = ledger.log_bureau_query(
            CUSTOMER,
            BureauQueryInput(
                tax_id="30-71234567-8",
                query_type=BureauQueryType.FULL,
                response_payload={"score": 710},
                score=710,
                bcra_situation=1,
                status=BureauQueryStatus.SUCCESS,
                response_time_ms=420,
                api_key="secret-key-ABCD",
            ),
            evaluator,
        )

        assert logged.api_key_masked == "****ABCD"
        assert "secret-key-ABCD" not in logged.model_dump_json()
        assert ledger.get_bureau_queries(CUSTOMER)[0].entry_id == logged.entry_id
        assert logged.queried_at == logged.recorded_at


class TestInMemoryStoreConcurrency:
    """Readers iterate a snapshot while other threads append."""

    def test_list_while_appending(self) -> None:
        ledger_repo = InMemoryLedgerRepository(TENANT_A_ID)
        evaluations_repo = InMemoryEvaluationsRepository(TENANT_A_ID)
        writes_per_thread = 200
        failures: list[Exception] = []

        def write(worker: int) -> None:
            for n in range(writes_per_thread):
                stamp = f"2025-03-01T12:00:00.{n:06d}Z"
                ledger_repo.append(
                    LedgerEntryKind.SCORING,
                    {"entry_id": f"{worker}-{n}", "customer_id": CUSTOMER, "recorded_at": stamp},
                )
                evaluations_repo.create(
                    {
                        "evaluation_id": f"{worker}-{n}",
                        "customer_id": f"cust-{worker}-{n}",
                        "state": "pendiente",
                        "created_at": stamp,
                    }
                )

        def read() -> None:
            try:
                for _ in range(writes_per_thread):
                    ledger_repo.list(LedgerEntryKind.SCORING, CUSTOMER, limit=200)
                    evaluations_repo.list()
            except Exception as exc:
                failures.append(exc)

        threads = [threading.Thread(target=write, args=(worker,)) for worker in range(3)]
        threads += [threading.Thread(target=read) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert failures == []
        assert len(evaluations_repo.list()) == 3 * writes_per_thread
        assert len(ledger_repo.list(LedgerEntryKind.SCORING, CUSTOMER, limit=200)) == 200

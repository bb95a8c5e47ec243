"""Tests for the deduction engine: pay items, pay runs and gross-up."""

from decimal import Decimal
from uuid import uuid4

import pytest

from statutory_payroll.calculators.engine import DeductionEngine, compute_pay_item
from statutory_payroll.calculators.jurisdictions import JurisdictionRegistry
from statutory_payroll.calculators.types import (
    DeductionKind,
    Employee,
    EmployeeClassification,
    PayGroup,
    PayRunEntry,
)
from statutory_payroll.errors import InvalidInputError


class TestKenyaPayItem:
    """End-to-end Kenya calculation at 50,000 KES."""

    @pytest.fixture
    def item(self, engine, kenyan):
        return engine.compute_pay_item(kenyan, Decimal("50000"))

    def test_itemized_deductions_in_rule_order(self, item):
        assert [(d.rule_name, d.amount) for d in item.deductions] == [
            ("PAYE", Decimal("7382")),
            ("NSSF", Decimal("3000")),
            ("NHIF", Decimal("1100")),
            ("Housing Levy", Decimal("750")),
        ]
        assert item.deductions[0].kind == DeductionKind.PROGRESSIVE

    def test_totals(self, item):
        assert item.currency == "KES"
        assert item.total_deductions == Decimal("12232")
        assert item.net_pay == Decimal("37768")
        assert item.net_pay == item.gross_pay - sum(d.amount for d in item.deductions)

    def test_employer_contributions(self, item):
        assert [(c.rule_name, c.amount) for c in item.employer_contributions] == [
            ("NSSF", Decimal("3000")),
            ("Housing Levy", Decimal("750")),
        ]
        assert item.total_employer_contributions == Decimal("3750")

    def test_expatriate_flat_tax_not_applied_to_locals(self, item):
        assert item.deduction_amount("Expatriate Flat Tax") == Decimal("0")

    def test_canonical_dict(self, item):
        data = item.to_canonical_dict()
        assert data["net_pay"] == "37768"
        assert data["deductions"][2] == {"rule_name": "NHIF", "amount": "1100", "kind": "progressive"}


class TestUgandaPayItem:
    """Uganda: NSSF ceiling, employer-only NSSF and the optional local service tax."""

    def test_high_earner(self, engine, ugandan):
        item = engine.compute_pay_item(ugandan, Decimal("2000000"))
        assert item.deduction_amount("PAYE") == Decimal("501999")
        assert item.deduction_amount("NSSF Employee") == Decimal("60000")
        assert item.net_pay == Decimal("1438001")

    def test_employer_only_rule_does_not_reduce_net(self, engine, ugandan):
        item = engine.compute_pay_item(ugandan, Decimal("2000000"))
        assert "NSSF Employer" not in [d.rule_name for d in item.deductions]
        assert [(c.rule_name, c.amount) for c in item.employer_contributions] == [
            ("NSSF Employer", Decimal("120000")),
        ]

    def test_optional_rule_requires_opt_in(self, engine, ugandan):
        item = engine.compute_pay_item(ugandan, Decimal("500000"))
        assert item.deduction_amount("LST") == Decimal("0")

        opted_in = Employee(
            employee_id=uuid4(), jurisdiction_code="UG", opted_in_rules=frozenset({"LST"})
        )
        item = engine.compute_pay_item(opted_in, Decimal("500000"))
        assert item.deduction_amount("LST") == Decimal("4000")

    def test_exempt_rule_skipped(self, engine):
        employee = Employee(
            employee_id=uuid4(),
            jurisdiction_code="UG",
            exempt_rules=frozenset({"NSSF Employee"}),
        )
        item = engine.compute_pay_item(employee, Decimal("500000"))
        assert [d.rule_name for d in item.deductions] == ["PAYE"]

    def test_expatriate_pays_flat_tax_only(self, engine, expatriate_in_uganda):
        item = engine.compute_pay_item(expatriate_in_uganda, Decimal("2000000"))
        assert [(d.rule_name, d.amount) for d in item.deductions] == [
            ("Expatriate Flat Tax", Decimal("300000")),
        ]
        assert item.employer_contributions == ()
        assert item.net_pay == Decimal("1700000")

    def test_exempt_classification_has_no_deductions(self, engine):
        employee = Employee(
            employee_id=uuid4(),
            jurisdiction_code="UG",
            classification=EmployeeClassification.EXEMPT,
        )
        item = engine.compute_pay_item(employee, Decimal("2000000"))
        assert item.deductions == ()
        assert item.net_pay == Decimal("2000000")


class TestCentMoneyUnit:
    """Amounts truncated to cents; bracket tables stay whole-unit contiguous."""

    CENT = Decimal("0.01")

    def test_bundled_tables_load_with_cent_unit(self, ugandan):
        engine = DeductionEngine(unit=self.CENT)
        item = engine.compute_pay_item(ugandan, Decimal("2000000"))
        assert item.deduction_amount("PAYE") == Decimal("501999.40")
        assert item.deduction_amount("NSSF Employee") == Decimal("60000.00")
        assert item.net_pay == Decimal("1438000.60")

    def test_uganda_paye_keeps_fraction(self, registry, ugandan):
        engine = DeductionEngine(registry, unit=self.CENT)
        item = engine.compute_pay_item(ugandan, Decimal("335000"))
        assert item.deduction_amount("PAYE") == Decimal("9999.90")

    def test_gross_up_to_the_cent(self, registry, expatriate_in_uganda):
        engine = DeductionEngine(registry, unit=self.CENT)
        item = engine.gross_from_net(Decimal("850000"), expatriate_in_uganda)
        assert Decimal("850000") <= item.net_pay < Decimal("850000.01")
        assert item.gross_pay == Decimal("1000000")


class TestEdgeCases:
    def test_negative_gross_rejected(self, engine, kenyan):
        with pytest.raises(InvalidInputError):
            engine.compute_pay_item(kenyan, Decimal("-1"))

    def test_zero_gross(self, engine, kenyan):
        item = engine.compute_pay_item(kenyan, Decimal("0"))
        assert item.total_deductions == Decimal("0")
        assert item.net_pay == Decimal("0")

    def test_fixed_deduction_on_zero_pay_follows_flag(self):
        def registry(flag):
            return JurisdictionRegistry.from_payload(
                {
                    "jurisdictions": {
                        "XX": {
                            "currency": "XXX",
                            "apply_fixed_when_no_pay": flag,
                            "deductions": [{"name": "Fee", "type": "fixed", "amount": 100}],
                        }
                    }
                }
            )

        employee = Employee(employee_id=uuid4(), jurisdiction_code="XX")
        charged = compute_pay_item(employee, Decimal("0"), registry(True).get("XX"))
        waived = compute_pay_item(employee, Decimal("0"), registry(False).get("XX"))
        assert charged.deduction_amount("Fee") == Decimal("100")
        assert waived.deduction_amount("Fee") == Decimal("0")

    def test_country_name_as_jurisdiction(self, engine):
        employee = Employee(employee_id=uuid4(), jurisdiction_code="Kenya")
        assert engine.compute_pay_item(employee, Decimal("50000")).jurisdiction_code == "KE"

    def test_pay_group_jurisdiction_wins(self, engine, kenyan):
        group = PayGroup(pay_group_id=uuid4(), jurisdiction_code="UG")
        assert engine.jurisdiction_for(kenyan, group).code == "UG"
        assert engine.jurisdiction_for(kenyan).code == "KE"

    def test_custom_applicability(self, registry, kenyan):
        engine = DeductionEngine(registry, is_applicable=lambda e, r: r.name == "PAYE")
        item = engine.compute_pay_item(kenyan, Decimal("50000"))
        assert [d.rule_name for d in item.deductions] == ["PAYE"]


class TestComputePayRun:
    """Pay run calculation collects per-employee failures."""

    def test_items_and_totals(self, engine, kenyan):
        other = Employee(employee_id=uuid4(), jurisdiction_code="KE")
        pay_run_id = uuid4()
        result = engine.compute_pay_run(
            pay_run_id,
            [PayRunEntry(kenyan, Decimal("50000")), PayRunEntry(other, Decimal("50000"))],
        )
        assert result.success
        assert len(result.items) == 2
        assert result.total_net == Decimal("75536")
        assert all(i.pay_run_id == pay_run_id for i in result.items.values())

    def test_invalid_employee_reported_not_raised(self, engine, kenyan):
        unknown = Employee(employee_id=uuid4(), jurisdiction_code="Atlantis")
        negative = Employee(employee_id=uuid4(), jurisdiction_code="KE")
        result = engine.compute_pay_run(
            uuid4(),
            [
                PayRunEntry(kenyan, Decimal("50000")),
                PayRunEntry(unknown, Decimal("50000")),
                PayRunEntry(negative, Decimal("-5")),
            ],
        )
        assert list(result.items) == [kenyan.employee_id]
        assert set(result.errors) == {unknown.employee_id, negative.employee_id}
        assert "Atlantis" in result.errors[unknown.employee_id]
        assert result.error_count == 2

    def test_duplicate_employee(self, engine, kenyan):
        result = engine.compute_pay_run(
            uuid4(),
            [PayRunEntry(kenyan, Decimal("50000")), PayRunEntry(kenyan, Decimal("60000"))],
        )
        assert result.items == {}
        assert kenyan.employee_id in result.errors


class TestGrossFromNet:
    """Gross-up for contracts agreed in net terms."""

    def assert_minimal_gross(self, engine, employee, target):
        item = engine.gross_from_net(target, employee)
        assert target <= item.net_pay < target + 1
        below = engine.compute_pay_item(employee, item.gross_pay - 1)
        assert below.net_pay < target
        return item

    def test_expatriate(self, engine, expatriate_in_uganda):
        item = self.assert_minimal_gross(engine, expatriate_in_uganda, Decimal("850000"))
        assert item.gross_pay == Decimal("999999")

    def test_local_kenya(self, engine, kenyan):
        self.assert_minimal_gross(engine, kenyan, Decimal("37768"))

    def test_zero_target(self, engine, kenyan):
        item = engine.gross_from_net(Decimal("0"), kenyan)
        assert item.gross_pay == Decimal("0")

    def test_negative_target_rejected(self, engine, kenyan):
        with pytest.raises(InvalidInputError):
            engine.gross_from_net(Decimal("-1"), kenyan)

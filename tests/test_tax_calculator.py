"""Unit tests for bracket and deduction calculations."""

from decimal import Decimal

import pytest

from statutory_payroll.calculators.tax_calculator import (
    calculate_deduction,
    calculate_employer_contribution,
    calculate_progressive_tax,
)
from statutory_payroll.calculators.types import (
    DeductionRule,
    FixedAmount,
    PercentageOfGross,
    ProgressiveBrackets,
    RateKind,
    TaxBracket,
)
from statutory_payroll.errors import InvalidInputError

UGANDA_PAYE = (
    TaxBracket(Decimal("0"), Decimal("235000"), Decimal("0")),
    TaxBracket(Decimal("235001"), Decimal("335000"), Decimal("0.10")),
    TaxBracket(Decimal("335001"), Decimal("410000"), Decimal("0.20")),
    TaxBracket(Decimal("410001"), Decimal("10000000"), Decimal("0.30")),
    TaxBracket(Decimal("10000001"), None, Decimal("0.40")),
)


def flat(min_amount: str, max_amount: str | None, amount: str) -> TaxBracket:
    return TaxBracket(
        Decimal(min_amount),
        Decimal(max_amount) if max_amount else None,
        Decimal(amount),
        RateKind.FLAT_AMOUNT,
    )


NHIF_EXCERPT = (
    flat("0", "5999", "0"),
    flat("6000", "7999", "150"),
    flat("8000", "11999", "300"),
    flat("45000", "49999", "1000"),
    flat("50000", "59999", "1100"),
    flat("100000", None, "1700"),
)


class TestProgressiveTaxCalculation:
    """Percentage bracket tables accumulate band by band."""

    @pytest.mark.parametrize(
        "gross,expected",
        [
            ("0", "0"),
            ("235000", "0"),
            ("335000", "9999"),
            ("410000", "24999"),
        ],
    )
    def test_uganda_paye_boundaries(self, gross, expected):
        """Band edges of the Uganda table, truncated to whole shillings."""
        assert calculate_progressive_tax(Decimal(gross), UGANDA_PAYE) == Decimal(expected)

    def test_top_band_is_open_ended(self):
        # 9999.9 + 14999.8 + 9589999 * 0.30 + 1999999 * 0.40
        tax = calculate_progressive_tax(Decimal("12000000"), UGANDA_PAYE)
        assert tax == Decimal("3701999")

    def test_gross_at_band_minimum_stops_accumulation(self):
        """A band whose minimum equals gross pay contributes nothing."""
        assert calculate_progressive_tax(Decimal("235001"), UGANDA_PAYE) == Decimal("0")

    def test_unordered_table_is_sorted(self):
        shuffled = tuple(reversed(UGANDA_PAYE))
        assert calculate_progressive_tax(Decimal("410000"), shuffled) == Decimal("24999")

    def test_finer_money_unit(self):
        tax = calculate_progressive_tax(Decimal("335000"), UGANDA_PAYE, unit=Decimal("0.01"))
        assert tax == Decimal("9999.90")

    def test_empty_table_rejected(self):
        with pytest.raises(InvalidInputError):
            calculate_progressive_tax(Decimal("1000"), ())

    def test_mixed_table_rejected(self):
        mixed = (UGANDA_PAYE[0], flat("235001", None, "100"))
        with pytest.raises(InvalidInputError):
            calculate_progressive_tax(Decimal("300000"), mixed)

    def test_negative_gross_rejected(self):
        with pytest.raises(InvalidInputError):
            calculate_progressive_tax(Decimal("-1"), UGANDA_PAYE)


class TestFlatAmountLookup:
    """Flat-amount tables return the amount of the band containing gross pay."""

    @pytest.mark.parametrize(
        "gross,expected",
        [
            ("0", "0"),
            ("5999", "0"),
            ("6000", "150"),
            ("7999", "150"),
            ("8000", "300"),
            ("50000", "1100"),
            ("59999", "1100"),
            ("250000", "1700"),
        ],
    )
    def test_band_lookup(self, gross, expected):
        assert calculate_progressive_tax(Decimal(gross), NHIF_EXCERPT) == Decimal(expected)

    def test_amounts_are_not_summed(self):
        """Amounts of lower bands never accumulate."""
        assert calculate_progressive_tax(Decimal("9000"), NHIF_EXCERPT) == Decimal("300")


class TestCalculateDeduction:
    """Rule-level amounts."""

    def test_fixed_ignores_gross(self):
        rule = DeductionRule("LST", FixedAmount(Decimal("4000")))
        for gross in ("1", "500000", "99999999"):
            assert calculate_deduction(Decimal(gross), rule) == Decimal("4000")

    def test_fixed_on_zero_pay_follows_jurisdiction_flag(self):
        rule = DeductionRule("LST", FixedAmount(Decimal("4000")))
        assert calculate_deduction(Decimal("0"), rule) == Decimal("4000")
        assert calculate_deduction(
            Decimal("0"), rule, apply_fixed_when_no_pay=False
        ) == Decimal("0")

    def test_percentage_truncates(self):
        rule = DeductionRule("Housing Levy", PercentageOfGross(Decimal("1.5")))
        assert calculate_deduction(Decimal("50001"), rule) == Decimal("750")

    def test_percentage_capped_at_wage_ceiling(self):
        rule = DeductionRule(
            "NSSF Employee",
            PercentageOfGross(Decimal("5"), wage_ceiling=Decimal("1200000")),
        )
        assert calculate_deduction(Decimal("1000000"), rule) == Decimal("50000")
        assert calculate_deduction(Decimal("1200000"), rule) == Decimal("60000")
        assert calculate_deduction(Decimal("5000000"), rule) == Decimal("60000")

    def test_progressive_relief_subtracted(self):
        brackets = (
            TaxBracket(Decimal("0"), Decimal("24000"), Decimal("0.10")),
            TaxBracket(Decimal("24001"), Decimal("32333"), Decimal("0.25")),
            TaxBracket(Decimal("32334"), None, Decimal("0.30")),
        )
        rule = DeductionRule("PAYE", ProgressiveBrackets(brackets, relief=Decimal("2400")))
        assert calculate_deduction(Decimal("50000"), rule) == Decimal("7382")

    def test_relief_never_goes_negative(self):
        brackets = (TaxBracket(Decimal("0"), None, Decimal("0.10")),)
        rule = DeductionRule("PAYE", ProgressiveBrackets(brackets, relief=Decimal("2400")))
        assert calculate_deduction(Decimal("10000"), rule) == Decimal("0")

    def test_negative_gross_rejected(self):
        rule = DeductionRule("LST", FixedAmount(Decimal("4000")))
        with pytest.raises(InvalidInputError):
            calculate_deduction(Decimal("-100"), rule)


class TestEmployerContribution:
    """Employer-side amounts."""

    def test_split_rule_uses_employer_percentage(self):
        rule = DeductionRule(
            "NSSF",
            PercentageOfGross(Decimal("6")),
            employee_contribution=Decimal("6"),
            employer_contribution=Decimal("6"),
        )
        assert calculate_employer_contribution(Decimal("50000"), rule) == Decimal("3000")

    def test_employer_only_rule_contributes_full_amount(self):
        rule = DeductionRule(
            "NSSF Employer",
            PercentageOfGross(Decimal("10"), wage_ceiling=Decimal("1200000")),
            employer_contribution=Decimal("10"),
            employer_only=True,
        )
        assert calculate_employer_contribution(Decimal("2000000"), rule) == Decimal("120000")

    def test_rule_without_employer_share(self):
        rule = DeductionRule("PAYE", ProgressiveBrackets(UGANDA_PAYE))
        assert calculate_employer_contribution(Decimal("500000"), rule) == Decimal("0")

"""Jurisdiction deduction tables: loading and validation.

Configuration is JSON-shaped:
{
    "country_names": {"Uganda": "UG", ...},
    "jurisdictions": {
        "UG": {
            "name": "Uganda",
            "currency": "UGX",
            "apply_fixed_when_no_pay": true,
            "deductions": [
                {"name": "PAYE", "type": "progressive",
                 "brackets": [{"min": 0, "max": 235000, "rate": 0}, ...]},
                {"name": "NSSF Employee", "type": "percentage", "percentage": 5,
                 "wage_ceiling": 1200000},
                {"name": "LST", "type": "fixed", "amount": 4000, "mandatory": false},
                ...
            ]
        }
    }
}

Every table is validated when loaded. Invalid configuration raises
ConfigurationError naming the jurisdiction and rule, so bad data never
reaches a calculation.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

from statutory_payroll.calculators.types import (
    DEFAULT_CLASSIFICATIONS,
    DeductionKind,
    DeductionRule,
    EmployeeClassification,
    FixedAmount,
    JurisdictionDeductionSet,
    PercentageOfGross,
    ProgressiveBrackets,
    RateKind,
    TaxBracket,
)
from statutory_payroll.errors import ConfigurationError

DEFAULT_CONFIG_RESOURCE = "jurisdictions.json"

HUNDRED = Decimal("100")

# Bands are whole-unit contiguous: next.min == prev.max + 1
BRACKET_STEP = Decimal("1")

PAYLOAD_KEYS = {
    DeductionKind.FIXED: "amount",
    DeductionKind.PERCENTAGE: "percentage",
    DeductionKind.PROGRESSIVE: "brackets",
}


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value))


def _optional_decimal(payload: Mapping[str, Any], key: str) -> Decimal | None:
    value = payload.get(key)
    return _decimal(value) if value is not None else None


def _parse_brackets(payload: Mapping[str, Any]) -> tuple[TaxBracket, ...]:
    raw_brackets = payload.get("brackets") or []
    table_kind = payload.get("rate_kind")

    rates = [_decimal(b["rate"]) for b in raw_brackets]
    if table_kind is None and not any("rate_kind" in b for b in raw_brackets):
        # Legacy tables: any rate of 1 or more marks the whole table as flat amounts
        table_kind = (
            RateKind.FLAT_AMOUNT.value
            if any(r >= 1 for r in rates)
            else RateKind.PERCENTAGE.value
        )

    brackets = []
    for b, rate in zip(raw_brackets, rates):
        brackets.append(
            TaxBracket(
                min_amount=_decimal(b["min"]),
                max_amount=_decimal(b["max"]) if b.get("max") is not None else None,
                rate=rate,
                rate_kind=RateKind(b.get("rate_kind", table_kind)),
            )
        )
    return tuple(brackets)


def parse_rule(payload: Mapping[str, Any]) -> DeductionRule:
    """Build a DeductionRule from its JSON payload (no validation)."""
    kind = DeductionKind(payload["type"])

    if kind == DeductionKind.FIXED:
        if payload.get("amount") is None:
            raise ValueError("fixed rule requires 'amount'")
        calculation: Any = FixedAmount(amount=_decimal(payload["amount"]))
    elif kind == DeductionKind.PERCENTAGE:
        if payload.get("percentage") is None:
            raise ValueError("percentage rule requires 'percentage'")
        calculation = PercentageOfGross(
            percentage=_decimal(payload["percentage"]),
            wage_ceiling=_optional_decimal(payload, "wage_ceiling"),
        )
    else:
        calculation = ProgressiveBrackets(
            brackets=_parse_brackets(payload),
            relief=_decimal(payload.get("relief", 0)),
        )

    # Exactly one payload field per kind
    present = [
        key
        for key in PAYLOAD_KEYS.values()
        if key != PAYLOAD_KEYS[kind] and payload.get(key) is not None
    ]
    if present:
        raise ValueError(f"{kind.value} rule must not define {', '.join(present)}")

    applies_to = payload.get("applies_to")
    return DeductionRule(
        name=payload["name"],
        calculation=calculation,
        mandatory=bool(payload.get("mandatory", True)),
        description=payload.get("description", ""),
        employee_contribution=_optional_decimal(payload, "employee_contribution"),
        employer_contribution=_optional_decimal(payload, "employer_contribution"),
        employer_only=bool(payload.get("employer_only", False)),
        applies_to=(
            frozenset(EmployeeClassification(c) for c in applies_to)
            if applies_to is not None
            else DEFAULT_CLASSIFICATIONS
        ),
    )


def _check_percent(value: Decimal | None, label: str) -> str | None:
    if value is not None and not (0 <= value <= HUNDRED):
        return f"{label} must be between 0 and 100 (got {value})"
    return None


def validate_brackets(brackets: tuple[TaxBracket, ...]) -> list[str]:
    """Return the invariant violations of a bracket table (empty if valid)."""
    errors: list[str] = []
    if not brackets:
        return ["progressive rule requires a non-empty bracket table"]

    if len({b.rate_kind for b in brackets}) > 1:
        errors.append("bracket table mixes percentage and flat-amount bands")

    for index, bracket in enumerate(brackets):
        label = f"bracket {index + 1}"
        if bracket.min_amount < 0:
            errors.append(f"{label} has a negative minimum")
        if bracket.max_amount is not None and bracket.max_amount < bracket.min_amount:
            errors.append(f"{label} has max below min")
        if bracket.rate < 0:
            errors.append(f"{label} has a negative rate")
        if bracket.rate_kind == RateKind.PERCENTAGE and bracket.rate >= 1:
            errors.append(f"{label} percentage rate must be a fraction below 1")

        if index == 0:
            continue

        previous = brackets[index - 1]
        if bracket.min_amount <= previous.min_amount:
            errors.append(f"{label} minimum is not strictly increasing")
        if previous.max_amount is None:
            errors.append(f"bracket {index} is open-ended but is not the last band")
        elif bracket.min_amount != previous.max_amount + BRACKET_STEP:
            errors.append(
                f"{label} is not contiguous (expected min {previous.max_amount + BRACKET_STEP}, "
                f"got {bracket.min_amount})"
            )
        if bracket.rate_kind == RateKind.FLAT_AMOUNT and bracket.rate < previous.rate:
            errors.append(f"{label} flat amount decreases")

    if brackets[-1].max_amount is not None:
        errors.append("last bracket must be open-ended")

    return errors


def validate_rule(rule: DeductionRule) -> list[str]:
    """Return the invariant violations of a rule (empty if valid)."""
    errors: list[str] = []
    calc = rule.calculation

    if isinstance(calc, FixedAmount):
        if calc.amount < 0:
            errors.append("fixed amount must not be negative")
    elif isinstance(calc, PercentageOfGross):
        message = _check_percent(calc.percentage, "percentage")
        if message:
            errors.append(message)
        if calc.wage_ceiling is not None and calc.wage_ceiling <= 0:
            errors.append("wage ceiling must be positive")
    elif isinstance(calc, ProgressiveBrackets):
        errors.extend(validate_brackets(calc.brackets))
        if calc.relief < 0:
            errors.append("relief must not be negative")
    else:
        errors.append(f"unsupported calculation {type(calc).__name__}")

    for value, label in (
        (rule.employee_contribution, "employee contribution"),
        (rule.employer_contribution, "employer contribution"),
    ):
        message = _check_percent(value, label)
        if message:
            errors.append(message)

    if not rule.applies_to:
        errors.append("rule applies to no employee classification")

    return errors


def validate_jurisdiction(jurisdiction: JurisdictionDeductionSet) -> None:
    """Raise ConfigurationError on the first invalid rule of a jurisdiction."""
    if not jurisdiction.currency:
        raise ConfigurationError("currency is required", jurisdiction.code)

    seen: set[str] = set()
    for rule in jurisdiction.deductions:
        if not rule.name:
            raise ConfigurationError("rule name is required", jurisdiction.code)
        if rule.name in seen:
            raise ConfigurationError("duplicate rule name", jurisdiction.code, rule.name)
        seen.add(rule.name)

        errors = validate_rule(rule)
        if errors:
            raise ConfigurationError("; ".join(errors), jurisdiction.code, rule.name)


def parse_jurisdiction(code: str, payload: Mapping[str, Any]) -> JurisdictionDeductionSet:
    """Build a JurisdictionDeductionSet, converting parse failures to ConfigurationError."""
    rules: list[DeductionRule] = []
    for index, rule_payload in enumerate(payload.get("deductions", [])):
        rule_name = rule_payload.get("name") or f"#{index + 1}"
        try:
            rules.append(parse_rule(rule_payload))
        except (KeyError, ValueError, TypeError, InvalidOperation) as e:
            raise ConfigurationError(f"malformed rule: {e}", code, rule_name) from e

    return JurisdictionDeductionSet(
        code=code.upper(),
        name=payload.get("name", ""),
        currency=payload.get("currency", ""),
        deductions=tuple(rules),
        apply_fixed_when_no_pay=bool(payload.get("apply_fixed_when_no_pay", True)),
    )


def load_jurisdictions(payload: Mapping[str, Any]) -> dict[str, JurisdictionDeductionSet]:
    """Parse and validate every jurisdiction in a configuration payload."""
    jurisdictions: dict[str, JurisdictionDeductionSet] = {}
    for code, jurisdiction_payload in payload.get("jurisdictions", {}).items():
        jurisdiction = parse_jurisdiction(code, jurisdiction_payload)
        validate_jurisdiction(jurisdiction)
        jurisdictions[jurisdiction.code] = jurisdiction
    return jurisdictions


class JurisdictionRegistry:
    """Read-only lookup of validated jurisdiction deduction sets."""

    def __init__(
        self,
        jurisdictions: Mapping[str, JurisdictionDeductionSet],
        country_names: Mapping[str, str] | None = None,
    ):
        for jurisdiction in jurisdictions.values():
            validate_jurisdiction(jurisdiction)
        self._jurisdictions = {code.upper(): j for code, j in jurisdictions.items()}
        self._country_names = {
            name.lower(): code.upper() for name, code in (country_names or {}).items()
        }
        for jurisdiction in self._jurisdictions.values():
            if jurisdiction.name:
                self._country_names.setdefault(jurisdiction.name.lower(), jurisdiction.code)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> JurisdictionRegistry:
        return cls(load_jurisdictions(payload), country_names=payload.get("country_names"))

    @classmethod
    def from_file(cls, path: str | Path) -> JurisdictionRegistry:
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"invalid JSON in {path}: {e}") from e
        return cls.from_payload(payload)

    @classmethod
    def default(cls) -> JurisdictionRegistry:
        """Registry built from the tables bundled with the package."""
        text = resources.files(__package__).joinpath(DEFAULT_CONFIG_RESOURCE).read_text(
            encoding="utf-8"
        )
        return cls.from_payload(json.loads(text))

    def resolve_code(self, name_or_code: str) -> str:
        """Map a country name ("Kenya") or code ("ke") to a jurisdiction code."""
        key = name_or_code.strip()
        if key.upper() in self._jurisdictions:
            return key.upper()
        code = self._country_names.get(key.lower())
        if code is None:
            raise ConfigurationError(f"unknown jurisdiction '{name_or_code}'")
        return code

    def get(self, name_or_code: str) -> JurisdictionDeductionSet:
        code = self.resolve_code(name_or_code)
        try:
            return self._jurisdictions[code]
        except KeyError:
            raise ConfigurationError(f"no deduction table for '{code}'", code) from None

    @property
    def codes(self) -> list[str]:
        return sorted(self._jurisdictions)

    def __contains__(self, name_or_code: object) -> bool:
        if not isinstance(name_or_code, str):
            return False
        try:
            self.resolve_code(name_or_code)
        except ConfigurationError:
            return False
        return True

    def __iter__(self) -> Iterator[JurisdictionDeductionSet]:
        return iter(self._jurisdictions[code] for code in self.codes)

    def __len__(self) -> int:
        return len(self._jurisdictions)


def load_registry(path: str | Path | None = None) -> JurisdictionRegistry:
    """Load the registry from a file if given, else the bundled tables."""
    if path:
        return JurisdictionRegistry.from_file(path)
    return JurisdictionRegistry.default()


@lru_cache(maxsize=1)
def _bundled_registry() -> JurisdictionRegistry:
    return JurisdictionRegistry.default()


def resolve_jurisdiction_code(name_or_code: str) -> str:
    """Resolve a country name or code against the bundled tables."""
    return _bundled_registry().resolve_code(name_or_code)

"""
Quote Settings Entity - Rate tables and defaults used for pricing.

Settings are read-only from the engine's point of view.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Mapping, Optional

from quote_budget.config import get_config
from quote_budget.domain.numbers import num_or_zero, optional_number

logger = logging.getLogger(__name__)

SOCIAL_CHARGES_DISPLAY_MODES = ("detailed", "grouped")


@dataclass
class SocialChargeRate:
    """
    Payroll charge rate applied to lines that reference it.

    Attributes:
        id: Rate identifier referenced by BudgetLine.social_charges
        label: Display label (e.g. 'Techniciens')
        rate: Charge as a fraction (0.65 = 65%)
        agency_percent: Agency applied on aggregated charges, None = default
        margin_percent: Margin applied on aggregated charges, None = default
    """

    id: str
    label: str = ""
    rate: float = 0.0
    agency_percent: Optional[float] = None
    margin_percent: Optional[float] = None

    def to_dict(self) -> dict:
        data = {'id': self.id, 'label': self.label, 'rate': self.rate}
        if self.agency_percent is not None:
            data['agencyPercent'] = self.agency_percent
        if self.margin_percent is not None:
            data['marginPercent'] = self.margin_percent
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SocialChargeRate":
        return cls(
            id=str(data.get('id', '')),
            label=data.get('label') or "",
            rate=num_or_zero(data.get('rate')),
            agency_percent=optional_number(data.get('agencyPercent', data.get('agency_percent'))),
            margin_percent=optional_number(data.get('marginPercent', data.get('margin_percent'))),
        )


def _iter_rates(rates: Any) -> Iterator[SocialChargeRate]:
    """Charge rates of a settings object; mappings are parsed, junk is skipped."""
    if not isinstance(rates, (list, tuple)):
        return
    for rate in rates:
        if isinstance(rate, SocialChargeRate):
            yield rate
        elif isinstance(rate, Mapping):
            yield SocialChargeRate.from_dict(dict(rate))


@dataclass
class QuoteSettings:
    """Pricing settings of a quote."""

    social_charge_rates: List[SocialChargeRate] = field(default_factory=list)
    default_agency_percent: float = 10.0
    default_margin_percent: float = 15.0
    available_units: List[str] = field(default_factory=list)
    show_empty_items: bool = True
    social_charges_display: str = "detailed"
    apply_social_charges_margins: bool = False

    def find_rate(self, rate_id: Optional[str]) -> Optional[SocialChargeRate]:
        """Resolve a social charge rate by id; a miss means no charge applies."""
        if not rate_id:
            return None
        for rate in _iter_rates(self.social_charge_rates):
            if rate.id == str(rate_id):
                return rate
        return None

    def to_dict(self) -> dict:
        return {
            'socialChargeRates': [rate.to_dict() for rate in _iter_rates(self.social_charge_rates)],
            'defaultAgencyPercent': self.default_agency_percent,
            'defaultMarginPercent': self.default_margin_percent,
            'availableUnits': list(self.available_units),
            'showEmptyItems': self.show_empty_items,
            'socialChargesDisplay': self.social_charges_display,
            'applySocialChargesMargins': self.apply_social_charges_margins,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "QuoteSettings":
        """Build settings from a camelCase mapping, defaulting missing keys from config."""
        defaults = get_default_settings()
        if not isinstance(data, dict):
            return defaults

        rates = data.get('socialChargeRates')
        display = data.get('socialChargesDisplay', defaults.social_charges_display)
        if display not in SOCIAL_CHARGES_DISPLAY_MODES:
            display = defaults.social_charges_display

        return cls(
            social_charge_rates=(
                [SocialChargeRate.from_dict(r) for r in rates if isinstance(r, dict)]
                if isinstance(rates, list) else defaults.social_charge_rates
            ),
            default_agency_percent=num_or_zero(
                data.get('defaultAgencyPercent', defaults.default_agency_percent)
            ),
            default_margin_percent=num_or_zero(
                data.get('defaultMarginPercent', defaults.default_margin_percent)
            ),
            available_units=list(data.get('availableUnits') or defaults.available_units),
            show_empty_items=bool(data.get('showEmptyItems', defaults.show_empty_items)),
            social_charges_display=display,
            apply_social_charges_margins=bool(
                data.get('applySocialChargesMargins', defaults.apply_social_charges_margins)
            ),
        )


def get_default_settings() -> QuoteSettings:
    """Settings provider backed by the YAML configuration."""
    config = get_config()
    display = config.quote_defaults.get("social_charges_display", "detailed")
    return QuoteSettings(
        social_charge_rates=[SocialChargeRate.from_dict(r) for r in config.social_charge_rates],
        default_agency_percent=num_or_zero(config.default_agency_percent),
        default_margin_percent=num_or_zero(config.default_margin_percent),
        available_units=list(config.available_units),
        show_empty_items=bool(config.quote_defaults.get("show_empty_items", True)),
        social_charges_display=display if display in SOCIAL_CHARGES_DISPLAY_MODES else "detailed",
        apply_social_charges_margins=bool(
            config.quote_defaults.get("apply_social_charges_margins", False)
        ),
    )


def coerce_settings(value: Any) -> Optional[QuoteSettings]:
    """
    Settings usable by the pricing code.

    A camelCase mapping is parsed with QuoteSettings.from_dict; anything
    else that is not a QuoteSettings counts as missing settings.
    """
    if value is None or isinstance(value, QuoteSettings):
        return value
    if isinstance(value, Mapping):
        return QuoteSettings.from_dict(dict(value))
    logger.warning(f"Ignoring settings of type {type(value).__name__}")
    return None

# =============================================================================
# physics/loads.py — Appliance Power-Draw Model
# =============================================================================

from dataclasses import dataclass
from typing import Dict, Iterable

from utils.constants import HOURS_PER_DAY, DAYS_PER_MONTH


@dataclass(frozen=True)
class Appliance:
    """One appliance line item."""
    name: str
    base_watts: float
    quantity: int = 1
    enabled: bool = True

    def draw_w(self) -> float:
        """Nominal draw of this line item (0 when disabled)."""
        if not self.enabled:
            return 0.0
        return self.base_watts * self.quantity


def total_power_w(appliances: Iterable[Appliance],
                  efficiency_factor: float = 1.0) -> float:
    """
    Total instantaneous draw.

    P = Σ (base_watts · quantity) over enabled appliances, times the
    efficiency factor (0.8 = 20 % savings).
    """
    total = sum(a.draw_w() for a in appliances)
    return total * efficiency_factor


def energy_totals(watts: float) -> Dict[str, float]:
    """
    Extrapolate an instantaneous draw to kW, daily and monthly kWh.

    Returns:
        Dict with 'watts', 'kw', 'daily_kwh', 'monthly_kwh'
    """
    kw = watts / 1000.0
    return {
        'watts': watts,
        'kw': kw,
        'daily_kwh': kw * HOURS_PER_DAY,
        'monthly_kwh': kw * HOURS_PER_DAY * DAYS_PER_MONTH,
    }

"""Emissions estimates attached to schema v1 legs."""

from datetime import timedelta

LITERS_PER_GALLON = 3.78541
KG_JET_FUEL_PER_LITER = 0.8
KG_CO2_PER_KG_JET_FUEL = 3.16

# First-class kg CO2e per passenger-km by haul band (DEFRA conversion factors)
FIRST_CLASS_FACTORS = (
    (785.0, 0.24587),
    (3700.0, 0.22907),
    (float("inf"), 0.58525),
)


def leg_co2e_kg(gph: float, duration: timedelta) -> float:
    """CO2 emitted by an aircraft burning ``gph`` gallons per hour for ``duration``."""
    hours = duration.total_seconds() / 3600.0
    fuel_kg = gph * hours * LITERS_PER_GALLON * KG_JET_FUEL_PER_LITER
    return fuel_kg * KG_CO2_PER_KG_JET_FUEL


def commercial_emissions_kg(distance_km: float) -> float:
    """CO2e of one first-class passenger flying ``distance_km`` on a commercial flight."""
    for upper_km, factor in FIRST_CLASS_FACTORS:
        if distance_km <= upper_km:
            return distance_km * factor
    raise ValueError(f"distance must be finite, got {distance_km}")

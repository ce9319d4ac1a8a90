# game/geometry.py
import math

EARTH_RADIUS_M = 6_371_000.0

# ---- Angles ---------------------------------------------------------------

def deg_to_rad(d: float) -> float:
    return math.radians(d)

def rad_to_deg(r: float) -> float:
    return math.degrees(r)

def wrap_degrees(d: float) -> float:
    """Wrap degrees into [0, 360)."""
    w = d % 360.0
    # -1e-17 % 360 rounds to 360.0
    return 0.0 if w >= 360.0 else w

# ---- Great-circle (lat/lon in degrees, distances in metres) ---------------
# Compass convention: 0 = north, 90 = east, clockwise.

def distance(a, b) -> float:
    """Haversine distance in metres between two samples with latitude/longitude."""
    phi1 = deg_to_rad(a.latitude)
    phi2 = deg_to_rad(b.latitude)
    dphi = deg_to_rad(b.latitude - a.latitude)
    dlmb = deg_to_rad(b.longitude - a.longitude)

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    h = min(1.0, max(0.0, h))
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_M * c

def bearing(frm, to) -> float:
    """Initial bearing in degrees [0, 360) along the great circle from `frm` to `to`."""
    phi1 = deg_to_rad(frm.latitude)
    phi2 = deg_to_rad(to.latitude)
    dlmb = deg_to_rad(to.longitude - frm.longitude)

    y = math.sin(dlmb) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlmb)
    return wrap_degrees(rad_to_deg(math.atan2(y, x)))

def angular_deviation(heading: float, bearing_deg: float) -> float:
    """Absolute angle in [0, 180] between a compass heading and a bearing."""
    diff = abs(wrap_degrees(heading) - wrap_degrees(bearing_deg))
    return min(diff, 360.0 - diff)

def damage_falloff(distance_m: float, max_range: float, base_damage: float) -> float:
    """
    Linear falloff base * (1 - d/max_range), floored at base_damage.

    The floor means long-range hits still deal the full base value; close
    range hits never exceed it either, so the result is always base_damage
    for 0 <= d <= max_range.
    """
    falloff = 1.0 - distance_m / max_range
    return max(base_damage * falloff, base_damage)

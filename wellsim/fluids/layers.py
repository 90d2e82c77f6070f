"""Fluid Layer Model

Stacks of fluid segments for the three wellbore regions: inside the string, the
annulus above the bit and the open hole pocket below the bit. A stack is a tuple of
FluidLayer sorted shallow to deep. Every operation returns a new tuple, stacks are
never edited in place.

Fluid is incompressible. Moving fluid between regions is done in volume space and
mapped back to measured depth by inverting the geometry provider's volume function,
so a layer keeps its volume when it passes a change in hole or pipe size.
"""

import logging
from dataclasses import dataclass

from scipy import optimize as opt

from wellsim.flow.hydraulics import KPA_PER_M, EPS

logger = logging.getLogger(__name__)

REGIONS = ("string", "annulus", "pocket")
VOL_TOL = 1e-9  # m3
DENSITY_TOL = 1e-6  # kg/m3


@dataclass(frozen=True)
class FluidLayer:
    """Fluid Segment

    Args:
        top_md (float): Top of the segment, meters
        bottom_md (float): Bottom of the segment, meters
        density (float): Fluid density, kg/m3
        color (str): Optional display color, hex string
    """

    top_md: float
    bottom_md: float
    density: float
    color: str | None = None

    def __post_init__(self):
        if not self.bottom_md > self.top_md:
            raise ValueError(f"Layer bottom {self.bottom_md} must be deeper than top {self.top_md}")

    @property
    def length(self) -> float:
        return self.bottom_md - self.top_md

    def to_dict(self) -> dict:
        return {"top_md": self.top_md, "bottom_md": self.bottom_md, "density": self.density, "color": self.color}

    @classmethod
    def from_dict(cls, data: dict):
        return cls(data["top_md"], data["bottom_md"], data["density"], data.get("color"))


@dataclass(frozen=True)
class Parcel:
    """Volume of fluid that is not tied to a depth, m3"""

    density: float
    volume: float
    color: str | None = None


def region_volume(geom, region: str, md_a: float, md_b: float) -> float:
    """Volume of a region between two measured depths

    Args:
        geom (GeometryProvider): Wellbore geometry
        region (str): "string", "annulus" or "pocket"
        md_a (float): Upper depth, meters
        md_b (float): Lower depth, meters

    Returns:
        vol (float): Region volume, m3
    """
    if md_b <= md_a:
        return 0.0
    if region == "string":
        return geom.volume_in_string(md_a, md_b)
    if region == "annulus":
        return geom.volume_in_annulus(md_a, md_b)
    if region == "pocket":
        return geom.volume_in_hole(md_a, md_b)
    raise ValueError(f"Invalid value for 'region': {region}. Expected {', '.join(REGIONS)}.")


def md_for_volume(geom, region: str, start_md: float, volume: float, limit_md: float) -> float:
    """Depth Holding a Volume

    Inverse of the region volume function. Walks down from start_md when the limit
    is deeper, or up when the limit is shallower. Bisection is used since the volume
    function is monotonic but only piecewise smooth.

    Args:
        geom (GeometryProvider): Wellbore geometry
        region (str): "string", "annulus" or "pocket"
        start_md (float): Depth the volume is measured from, meters
        volume (float): Volume to fit, m3
        limit_md (float): Depth the search can not pass, meters

    Returns:
        md (float): Depth where the enclosed volume equals the input, meters
    """
    if volume <= VOL_TOL:
        return start_md

    if limit_md >= start_md:

        def resid(md: float) -> float:
            return region_volume(geom, region, start_md, md) - volume

    else:

        def resid(md: float) -> float:
            return region_volume(geom, region, md, start_md) - volume

    if resid(limit_md) <= 0:
        return limit_md
    return float(opt.brentq(resid, start_md, limit_md, xtol=1e-9))


def stack_span(layers: tuple[FluidLayer, ...]) -> tuple[float, float]:
    """Top and bottom of a stack, meters"""
    if not layers:
        return 0.0, 0.0
    return layers[0].top_md, layers[-1].bottom_md


def stack_volume(layers: tuple[FluidLayer, ...], region: str, geom) -> float:
    """Total Fluid Volume in a Stack, m3"""
    return sum(region_volume(geom, region, lay.top_md, lay.bottom_md) for lay in layers)


def parcels_from_layers(layers: tuple[FluidLayer, ...], region: str, geom) -> list[Parcel]:
    """Layers to Parcels, shallow to deep"""
    return [
        Parcel(lay.density, region_volume(geom, region, lay.top_md, lay.bottom_md), lay.color)
        for lay in layers
    ]


def _repack(
    parcels: list[Parcel], region: str, top: float, bottom: float, geom, anchor: str
) -> tuple[tuple[FluidLayer, ...], list[Parcel]]:
    """Pack Parcels into a Region Span

    Parcels are ordered shallow to deep. With a top anchor they fill from the top
    and whatever does not fit leaves the bottom, with a bottom anchor they fill
    from the bottom and the excess leaves the top. Boundaries are found from the
    cumulative volume measured from the anchor so rounding does not accumulate.

    Returns:
        layers (tuple): New stack
        overflow (list): Fluid that left the span, first out first
    """
    capacity = region_volume(geom, region, top, bottom)
    order = parcels if anchor == "top" else list(reversed(parcels))
    start, limit = (top, bottom) if anchor == "top" else (bottom, top)

    placed = []  # (md_near, md_far, parcel)
    leftover = []
    used = 0.0
    cursor = start
    for parcel in order:
        if parcel.volume <= VOL_TOL:
            continue
        take = min(parcel.volume, max(0.0, capacity - used))
        if take <= VOL_TOL:
            take = 0.0
        else:
            used += take
            far = limit if capacity - used <= VOL_TOL else md_for_volume(geom, region, start, used, limit)
            if abs(far - cursor) > EPS:
                placed.append((cursor, far, parcel))
            cursor = far
        if parcel.volume - take > VOL_TOL:
            leftover.append(Parcel(parcel.density, parcel.volume - take, parcel.color))

    layers = []
    for near, far, parcel in placed:
        upr, lwr = min(near, far), max(near, far)
        layers.append(FluidLayer(upr, lwr, parcel.density, parcel.color))
    layers.sort(key=lambda lay: lay.top_md)
    return merge_layers(tuple(layers)), list(reversed(leftover))


def insert_at_top(
    layers: tuple[FluidLayer, ...],
    region: str,
    density: float,
    volume: float,
    geom,
    color: str | None = None,
    span: tuple[float, float] | None = None,
) -> tuple[tuple[FluidLayer, ...], list[Parcel]]:
    """Insert Fluid at the Top of a Region

    The new fluid takes the top of the region and pushes the existing layers down.
    Volume that no longer fits leaves the bottom of the region.

    Args:
        layers (tuple): Current stack
        region (str): "string", "annulus" or "pocket"
        density (float): Density of the new fluid, kg/m3
        volume (float): Volume of the new fluid, m3
        geom (GeometryProvider): Wellbore geometry
        color (str): Display color of the new fluid
        span (tuple): Region top and bottom, meters, defaults to the stack span

    Returns:
        layers (tuple): New stack
        overflow (list): Parcels pushed out the bottom, first out first
    """
    top, bottom = span if span is not None else stack_span(layers)
    parcels = [Parcel(density, volume, color)] + parcels_from_layers(layers, region, geom)
    if bottom - top <= EPS:
        return (), [p for p in reversed(parcels) if p.volume > VOL_TOL]
    return _repack(parcels, region, top, bottom, geom, "top")


def insert_at_bottom(
    layers: tuple[FluidLayer, ...],
    region: str,
    parcels: list[Parcel],
    geom,
    span: tuple[float, float] | None = None,
) -> tuple[tuple[FluidLayer, ...], list[Parcel]]:
    """Insert Fluid at the Bottom of a Region

    Parcels enter in order, so the first parcel ends up highest. Existing fluid is
    pushed up and the excess leaves the top of the region.

    Args:
        layers (tuple): Current stack
        region (str): "string", "annulus" or "pocket"
        parcels (list): Fluid entering the bottom, first in first
        geom (GeometryProvider): Wellbore geometry
        span (tuple): Region top and bottom, meters, defaults to the stack span

    Returns:
        layers (tuple): New stack
        overflow (list): Parcels pushed out the top, first out first
    """
    top, bottom = span if span is not None else stack_span(layers)
    packed = parcels_from_layers(layers, region, geom) + list(parcels)
    if bottom - top <= EPS:
        return (), [p for p in packed if p.volume > VOL_TOL]
    return _repack(packed, region, top, bottom, geom, "bottom")


def remove_from_bottom(
    layers: tuple[FluidLayer, ...], region: str, volume: float, geom
) -> tuple[tuple[FluidLayer, ...], list[Parcel]]:
    """Remove Fluid from the Bottom of a Region

    The region keeps its top and loses span from the bottom.

    Args:
        layers (tuple): Current stack
        region (str): "string", "annulus" or "pocket"
        volume (float): Volume to remove, m3
        geom (GeometryProvider): Wellbore geometry

    Returns:
        layers (tuple): New stack
        removed (list): Parcels removed, deepest first
    """
    if not layers or volume <= VOL_TOL:
        return layers, []
    top, bottom = stack_span(layers)
    capacity = region_volume(geom, region, top, bottom)
    if volume >= capacity - VOL_TOL:
        return (), list(reversed(parcels_from_layers(layers, region, geom)))
    new_bottom = md_for_volume(geom, region, top, capacity - volume, bottom)
    return _repack(parcels_from_layers(layers, region, geom), region, top, new_bottom, geom, "top")


def split_at(layers: tuple[FluidLayer, ...], md: float) -> tuple[tuple[FluidLayer, ...], tuple[FluidLayer, ...]]:
    """Split a Stack at a Depth

    A layer crossing the depth is divided between both halves.

    Returns:
        above (tuple): Layers shallower than md
        below (tuple): Layers deeper than md
    """
    above, below = [], []
    for lay in layers:
        if lay.bottom_md <= md + EPS:
            above.append(lay)
        elif lay.top_md >= md - EPS:
            below.append(lay)
        else:
            above.append(FluidLayer(lay.top_md, md, lay.density, lay.color))
            below.append(FluidLayer(md, lay.bottom_md, lay.density, lay.color))
    return tuple(above), tuple(below)


def shift(layers: tuple[FluidLayer, ...], delta_md: float, top: float, bottom: float) -> tuple[FluidLayer, ...]:
    """Translate every layer and clip to a span, meters"""
    moved = []
    for lay in layers:
        upr = max(top, lay.top_md + delta_md)
        lwr = min(bottom, lay.bottom_md + delta_md)
        if lwr - upr > EPS:
            moved.append(FluidLayer(upr, lwr, lay.density, lay.color))
    return tuple(moved)


def merge_layers(layers: tuple[FluidLayer, ...]) -> tuple[FluidLayer, ...]:
    """Merge touching neighbours of the same fluid"""
    merged: list[FluidLayer] = []
    for lay in layers:
        if (
            merged
            and abs(merged[-1].density - lay.density) < DENSITY_TOL
            and merged[-1].color == lay.color
            and abs(merged[-1].bottom_md - lay.top_md) < 1e-6
        ):
            merged[-1] = FluidLayer(merged[-1].top_md, lay.bottom_md, lay.density, lay.color)
        else:
            merged.append(lay)
    return tuple(merged)


def normalize(layers: tuple[FluidLayer, ...], top: float, bottom: float) -> tuple[FluidLayer, ...]:
    """Restore Stack Invariants

    Clamp to the span, drop empty layers, sort, snap each top to the bottom of the
    layer above and pin the first and last boundaries to the exact span. Stops
    rounding from opening gaps or overlaps between layers.

    Args:
        layers (tuple): Stack to clean
        top (float): Region top, meters
        bottom (float): Region bottom, meters
    """
    if bottom - top <= EPS:
        return ()
    clamped = []
    for lay in sorted(layers, key=lambda item: item.top_md):
        upr = min(max(lay.top_md, top), bottom)
        lwr = min(max(lay.bottom_md, top), bottom)
        if lwr - upr > EPS:
            clamped.append([upr, lwr, lay.density, lay.color])
    if not clamped:
        return ()
    clamped[0][0] = top
    for idx in range(1, len(clamped)):
        clamped[idx][0] = clamped[idx - 1][1]
    clamped[-1][1] = bottom
    snapped = tuple(FluidLayer(*vals) for vals in clamped if vals[1] - vals[0] > EPS)
    return merge_layers(snapped)


def hydrostatic_pressure(layers: tuple[FluidLayer, ...], from_md: float, to_md: float, tvd) -> float:
    """Hydrostatic Pressure of a Stack

    Sums density times vertical height for every layer overlapping the interval.
    Partial overlaps are clipped in measured depth and converted to vertical depth.

    Args:
        layers (tuple): Stack of fluid layers
        from_md (float): Upper depth, meters
        to_md (float): Lower depth, meters
        tvd (callable): Measured depth to vertical depth, meters

    Returns:
        press (float): Hydrostatic pressure, kPa
    """
    press = 0.0
    for lay in layers:
        upr = max(lay.top_md, from_md)
        lwr = min(lay.bottom_md, to_md)
        if lwr - upr <= EPS:
            continue
        press += lay.density * KPA_PER_M * max(0.0, tvd(lwr) - tvd(upr))
    return press


def equivalent_static_density(layers: tuple[FluidLayer, ...], at_md: float, tvd) -> float:
    """Equivalent Static Density

    Uniform density that gives the same hydrostatic pressure as the layered
    column from surface to the depth.

    Args:
        layers (tuple): Stack of fluid layers from surface
        at_md (float): Depth of interest, meters
        tvd (callable): Measured depth to vertical depth, meters

    Returns:
        esd (float): Equivalent static density, kg/m3
    """
    at_tvd = tvd(at_md)
    if at_tvd <= EPS:
        return 0.0
    return hydrostatic_pressure(layers, 0.0, at_md, tvd) / (KPA_PER_M * at_tvd)


def mix_parcels(parcels: list[Parcel], fallback_density: float) -> Parcel:
    """Blend Parcels into One

    Density is mass weighted, color is volume weighted.

    Args:
        parcels (list): Parcels to blend
        fallback_density (float): Density used when there is no volume, kg/m3
    """
    vol = sum(p.volume for p in parcels)
    if vol <= VOL_TOL:
        return Parcel(fallback_density, 0.0, None)
    mass = sum(p.density * p.volume for p in parcels)
    return Parcel(mass / vol, vol, blend_colors([(p.color, p.volume) for p in parcels]))


def coalesce(parcels: list[Parcel], density_tol: float = 0.5) -> list[Parcel]:
    """Join neighbouring parcels of the same fluid, keeping their mass"""
    result: list[Parcel] = []
    for parcel in parcels:
        if parcel.volume <= VOL_TOL:
            continue
        if result and abs(result[-1].density - parcel.density) < density_tol and result[-1].color == parcel.color:
            merged = mix_parcels([result[-1], parcel], parcel.density)
            result[-1] = Parcel(merged.density, merged.volume, parcel.color)
        else:
            result.append(parcel)
    return result


def blend_colors(weighted: list[tuple[str | None, float]]) -> str | None:
    """Volume Weighted Blend of Hex Colors

    Entries without a color are ignored. Returns None when nothing has a color.
    """
    colored = [(c, w) for c, w in weighted if c and w > VOL_TOL]
    if not colored:
        return None
    if all(c == colored[0][0] for c, _ in colored):
        return colored[0][0]
    total = sum(w for _, w in colored)
    rgb = [0.0, 0.0, 0.0]
    for hexcol, wgt in colored:
        value = hexcol.lstrip("#")
        for idx in range(3):
            rgb[idx] += int(value[2 * idx : 2 * idx + 2], 16) * wgt / total
    return "#{:02x}{:02x}{:02x}".format(*(int(round(v)) for v in rgb))


def uniform_column(density: float, top: float, bottom: float, color: str | None = None) -> tuple[FluidLayer, ...]:
    """Single fluid stack, empty when the span is zero"""
    if bottom - top <= EPS:
        return ()
    return (FluidLayer(top, bottom, density, color),)

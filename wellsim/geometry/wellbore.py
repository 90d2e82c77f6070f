"""Wellbore Geometry

Hole sections, drill string sections and the geometry provider the step engines
consume. Every volume is an exact integral of a piecewise constant area, so
inverting a volume back to a depth is well behaved.
"""

import math
from dataclasses import dataclass, field, replace
from typing import Protocol

from wellsim.geometry.wellprofile import WellProfile
from wellsim.utils.errors import MissingGeometry


class GeometryProvider(Protocol):
    """Narrow interface the engines need from the host project"""

    @property
    def hole_td(self) -> float: ...

    def tvd(self, md: float) -> float: ...

    def volume_of_string_od(self, md_a: float, md_b: float) -> float: ...

    def volume_in_string(self, md_a: float, md_b: float) -> float: ...

    def volume_in_annulus(self, md_a: float, md_b: float) -> float: ...

    def volume_in_hole(self, md_a: float, md_b: float) -> float: ...

    def hole_diameter(self, md: float) -> float: ...

    def pipe_od(self, md: float) -> float: ...

    def annulus_area(self, md: float) -> float: ...

    def steel_area(self, md: float) -> float: ...


@dataclass(frozen=True)
class AnnulusSection:
    """Hole or casing interval, the outer wall of the annulus

    Args:
        top_md (float): Top of section, meters
        bottom_md (float): Bottom of section, meters
        inner_diameter (float): Hole size or casing ID, meters
        cased (bool): Section is lined with casing
        name (str): Label for reports
    """

    top_md: float
    bottom_md: float
    inner_diameter: float
    cased: bool = False
    name: str = ""

    def __post_init__(self):
        if self.bottom_md <= self.top_md:
            raise ValueError(f"Annulus section {self.name!r} bottom {self.bottom_md} must be below top {self.top_md}")
        if self.inner_diameter <= 0:
            raise ValueError(f"Annulus section {self.name!r} diameter must be positive, got {self.inner_diameter}")


@dataclass(frozen=True)
class StringSection:
    """Drill string interval measured from surface

    Args:
        top_md (float): Top of section, meters
        bottom_md (float): Bottom of section, meters
        outer_diameter (float): Pipe OD, meters
        inner_diameter (float): Pipe ID, meters
        name (str): Label for reports
    """

    top_md: float
    bottom_md: float
    outer_diameter: float
    inner_diameter: float
    name: str = ""

    def __post_init__(self):
        if self.bottom_md <= self.top_md:
            raise ValueError(f"String section {self.name!r} bottom {self.bottom_md} must be below top {self.top_md}")
        if not 0 <= self.inner_diameter < self.outer_diameter:
            raise ValueError(
                f"String section {self.name!r} needs 0 <= ID < OD, got ID {self.inner_diameter} and OD {self.outer_diameter}"
            )


def circle_area(diameter: float) -> float:
    """Area of a circle from the diameter, m2"""
    return math.pi / 4 * diameter**2


@dataclass
class Wellbore:
    """Wellbore Geometry Provider

    Annulus sections describe the outer wall, string sections the pipe. Pipe
    properties below the deepest string section repeat the deepest section, so a
    string keeps its size as it is run deeper. The survey maps MD to TVD.
    """

    annulus_sections: list[AnnulusSection]
    string_sections: list[StringSection]
    profile: WellProfile
    _breaks: list[float] = field(init=False, repr=False)

    def __post_init__(self):
        self.annulus_sections = sorted(self.annulus_sections, key=lambda s: s.top_md)
        self.string_sections = sorted(self.string_sections, key=lambda s: s.top_md)
        edges = {0.0}
        for sect in [*self.annulus_sections, *self.string_sections]:
            edges.update((sect.top_md, sect.bottom_md))
        self._breaks = sorted(edges)

    def validate(self, *mds: float) -> None:
        """Check the geometry is usable over the given depths

        Raises:
            MissingGeometry: no sections, or a depth below hole TD or outside the survey
        """
        if not self.annulus_sections:
            raise MissingGeometry(
                "No annulus sections defined for the wellbore", suggestion="Add casing or open hole sections"
            )
        if not self.string_sections:
            raise MissingGeometry("No drill string sections defined", suggestion="Add at least one string section")
        for md in mds:
            if md > self.hole_td + 1e-6:
                raise MissingGeometry(
                    f"Depth {md:.1f} m is below hole TD {self.hole_td:.1f} m", details={"md": md, "hole_td": self.hole_td}
                )
            if not self.profile.covers(md):
                raise MissingGeometry(
                    f"Depth {md:.1f} m is outside the survey",
                    suggestion="Extend the directional survey to hole TD",
                    details={"md": md},
                )

    @property
    def hole_td(self) -> float:
        """Deepest annulus section, meters"""
        if not self.annulus_sections:
            return 0.0
        return max(sect.bottom_md for sect in self.annulus_sections)

    @property
    def shoe_md(self) -> float:
        """Deepest cased shoe, falls back to hole TD when nothing is cased"""
        cased = [sect.bottom_md for sect in self.annulus_sections if sect.cased]
        return max(cased) if cased else self.hole_td

    def tvd(self, md: float) -> float:
        return self.profile.vd_interp(md)

    def hole_diameter(self, md: float) -> float:
        """Hole or casing inner diameter at a depth, meters"""
        for sect in self.annulus_sections:
            if sect.top_md <= md <= sect.bottom_md:
                return sect.inner_diameter
        if not self.annulus_sections:
            return 0.0
        return max(self.annulus_sections, key=lambda s: s.bottom_md).inner_diameter

    def _string_section(self, md: float) -> StringSection | None:
        for sect in self.string_sections:
            if sect.top_md <= md <= sect.bottom_md:
                return sect
        if not self.string_sections:
            return None
        return max(self.string_sections, key=lambda s: s.bottom_md)

    def pipe_od(self, md: float) -> float:
        sect = self._string_section(md)
        return sect.outer_diameter if sect else 0.0

    def pipe_id(self, md: float) -> float:
        sect = self._string_section(md)
        return sect.inner_diameter if sect else 0.0

    def hole_area(self, md: float) -> float:
        return circle_area(self.hole_diameter(md))

    def annulus_area(self, md: float) -> float:
        return max(0.0, self.hole_area(md) - circle_area(self.pipe_od(md)))

    def string_area(self, md: float) -> float:
        return circle_area(self.pipe_id(md))

    def steel_area(self, md: float) -> float:
        return circle_area(self.pipe_od(md)) - circle_area(self.pipe_id(md))

    def _integrate(self, area_fn, md_a: float, md_b: float) -> float:
        """Integrate a piecewise constant area between two depths, m3"""
        top, bot = min(md_a, md_b), max(md_a, md_b)
        if bot - top <= 0:
            return 0.0
        pts = [top] + [brk for brk in self._breaks if top < brk < bot] + [bot]
        vol = 0.0
        for upr, lwr in zip(pts[:-1], pts[1:]):
            vol += area_fn(0.5 * (upr + lwr)) * (lwr - upr)
        return vol

    def volume_of_string_od(self, md_a: float, md_b: float) -> float:
        """Volume Enclosed by the Pipe OD, capacity plus steel, m3"""
        return self._integrate(lambda md: circle_area(self.pipe_od(md)), md_a, md_b)

    def volume_in_string(self, md_a: float, md_b: float) -> float:
        """Volume Inside the Pipe, m3"""
        return self._integrate(self.string_area, md_a, md_b)

    def volume_in_annulus(self, md_a: float, md_b: float) -> float:
        """Volume Between Pipe OD and Hole, m3"""
        return self._integrate(self.annulus_area, md_a, md_b)

    def volume_in_hole(self, md_a: float, md_b: float) -> float:
        """Volume of the Open Hole with No Pipe, m3"""
        return self._integrate(self.hole_area, md_a, md_b)

    def with_pipe(self, outer_diameter: float, inner_diameter: float) -> "Wellbore":
        """Copy of the wellbore with a single uniform string to hole TD

        Args:
            outer_diameter (float): Pipe OD, meters
            inner_diameter (float): Pipe ID, meters
        """
        td = max(self.hole_td, 1.0)
        pipe = StringSection(0.0, td, outer_diameter, inner_diameter, name="run string")
        return replace(self, string_sections=[pipe])

    @classmethod
    def vertical(
        cls,
        total_md: float,
        hole_diameter: float = 0.2159,
        pipe_od: float = 0.127,
        pipe_id: float = 0.1086,
        shoe_md: float | None = None,
        casing_id: float | None = None,
    ):
        """Vertical Test Wellbore

        Single hole size to TD with an optional casing shoe above it.

        Args:
            total_md (float): Hole TD, meters
            hole_diameter (float): Open hole diameter, meters
            pipe_od (float): Drill pipe OD, meters
            pipe_id (float): Drill pipe ID, meters
            shoe_md (float): Casing shoe depth, meters
            casing_id (float): Casing ID, meters, defaults to hole diameter
        """
        if shoe_md is None:
            annulus = [AnnulusSection(0.0, total_md, hole_diameter, name="open hole")]
        else:
            annulus = [
                AnnulusSection(0.0, shoe_md, casing_id or hole_diameter, cased=True, name="casing"),
                AnnulusSection(shoe_md, total_md, hole_diameter, name="open hole"),
            ]
        string = [StringSection(0.0, total_md, pipe_od, pipe_id, name="drill pipe")]
        return cls(annulus, string, WellProfile.vertical(total_md))

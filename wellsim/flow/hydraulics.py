"""Hydraulics

Constants, the surface back pressure solve and the pressure loss models used by
the step engines. Swab/surge and annular pressure loss (APL) are pluggable: the
engines only call ``model.pressure(...)`` so a calibrated correlation can replace
the defaults without touching the engines.

Units: density kg/m3, depth meters, pressure kPa, pump rate m3/min, trip speed m/s.
"""

import logging
import math
from dataclasses import dataclass
from typing import Protocol

from wellsim.utils.errors import NonConvergentBackPressureSolve

logger = logging.getLogger(__name__)

G = 9.81  # m/s2
KPA_PER_M = G / 1000  # kPa per meter of TVD per kg/m3
RHO_AIR = 1.2  # kg/m3
FLOAT_TOLERANCE = 5.0  # kPa
ECCENTRICITY = 1.2
APL_EMPIRICAL_K = 5.0e-05
MIN_FLOW_RATE = 0.001  # m3/min
FANN35_DIAL_TO_PA = 0.478802
FANN35_600_SHEAR = 1022.0  # 1/s
FANN35_300_SHEAR = 511.0  # 1/s
M3_TO_BBL = 6.28981
EPS = 1e-9


def required_back_pressure(esd: float, target_esd: float, control_tvd: float) -> float:
    """Surface Annulus Back Pressure

    Direct solve of (hydrostatic + SABP) / (g * TVD) = target for SABP. The
    column can only be topped up from surface, so the result is never negative.

    Args:
        esd (float): Static equivalent density at control depth, kg/m3
        target_esd (float): Density to hold at control depth, kg/m3
        control_tvd (float): Control vertical depth, meters

    Returns:
        sabp (float): Surface annulus back pressure, kPa
    """
    if not all(math.isfinite(val) for val in (esd, target_esd, control_tvd)):
        raise NonConvergentBackPressureSolve(
            "Back pressure solve received a non-finite input",
            details={"esd": esd, "target_esd": target_esd, "control_tvd": control_tvd},
        )
    if control_tvd <= EPS:
        return 0.0
    return max(0.0, (target_esd - esd) * KPA_PER_M * control_tvd)


def esd_with_back_pressure(esd: float, sabp: float, control_tvd: float) -> float:
    """Equivalent Density with Surface Pressure Applied, kg/m3"""
    if control_tvd <= EPS:
        return esd
    return esd + sabp / (KPA_PER_M * control_tvd)


def float_state_label(open_count: int, total_count: int) -> str:
    """Float Text from the Share of Internal Steps Spent Open

    Returns:
        label (str): "CLOSED 100%", "OPEN 100%" or "OPEN n%"
    """
    open_pct = int(round(open_count / total_count * 100)) if total_count > 0 else 0
    if open_pct == 0:
        return "CLOSED 100%"
    return f"OPEN {open_pct}%"


def power_law_from_dials(theta600: float, theta300: float) -> tuple[float, float]:
    """Power Law Constants from Fann 35 Readings

    Args:
        theta600 (float): 600 rpm dial reading
        theta300 (float): 300 rpm dial reading

    Returns:
        k_cons (float): Consistency index, Pa.s^n
        n_flow (float): Flow behaviour index
    """
    if theta600 <= 0 or theta300 <= 0:
        raise ValueError(f"Dial readings must be positive, got {theta600} and {theta300}")
    n_flow = math.log(theta600 / theta300) / math.log(FANN35_600_SHEAR / FANN35_300_SHEAR)
    k_cons = theta600 * FANN35_DIAL_TO_PA / FANN35_600_SHEAR**n_flow
    return k_cons, n_flow


def power_law_gradient(k_cons: float, n_flow: float, velocity: float, gap: float) -> float:
    """Laminar Power Law Friction Gradient

    Mooney-Rabinowitsch wall shear rate for a slot of hydraulic diameter gap.

    Args:
        k_cons (float): Consistency index, Pa.s^n
        n_flow (float): Flow behaviour index
        velocity (float): Mean annular velocity, m/s
        gap (float): Hydraulic diameter, meters

    Returns:
        grad (float): Friction gradient, Pa/m
    """
    gap = max(gap, 1e-6)
    velocity = max(velocity, 1e-12)
    gamma_w = (3 * n_flow + 1) / (4 * n_flow) * (8 * velocity / gap)
    tau_w = k_cons * gamma_w**n_flow
    return 4 * tau_w / gap


def annulus_segments(annulus_layers, bit_md: float, seg_len: float = 10.0):
    """Walk the Annulus Above the Bit in Short Segments

    Yields:
        density (float): Layer density, kg/m3
        md_mid (float): Segment midpoint, meters
        length (float): Segment length, meters
    """
    for lay in annulus_layers:
        top = max(0.0, lay.top_md)
        bot = min(lay.bottom_md, bit_md)
        md = top
        while bot - md > EPS:
            nxt = min(md + seg_len, bot)
            yield lay.density, 0.5 * (md + nxt), nxt - md
            md = nxt


class SwabSurgeModel(Protocol):
    """Pressure change from moving pipe through the annulus fluid"""

    def pressure(
        self, annulus_layers, bit_md: float, trip_speed: float, eccentricity: float, geom, float_open: bool = False
    ) -> float: ...


class AnnularPressureLossModel(Protocol):
    """Friction pressure of the returns flowing up the annulus"""

    def pressure(self, annulus_layers, bit_md: float, pump_rate: float, geom) -> float: ...


class NoSwabSurge:
    """Swab and surge ignored"""

    def pressure(self, annulus_layers, bit_md, trip_speed, eccentricity, geom, float_open=False) -> float:
        return 0.0


@dataclass(frozen=True)
class PowerLawSwabSurge:
    """Power Law Swab and Surge

    Fluid displaced by the moving pipe flows through the annulus at
    V_pipe * A_pipe / A_annulus, amplified by the eccentricity factor. Closed pipe
    displaces its full OD, an open float only the steel.

    Args:
        theta600 (float): 600 rpm dial reading
        theta300 (float): 300 rpm dial reading
        seg_len (float): Integration segment length, meters
    """

    theta600: float
    theta300: float
    seg_len: float = 10.0

    def pressure(self, annulus_layers, bit_md, trip_speed, eccentricity, geom, float_open=False) -> float:
        speed = abs(trip_speed)
        if speed <= EPS:
            return 0.0
        k_cons, n_flow = power_law_from_dials(self.theta600, self.theta300)
        total = 0.0  # Pa
        for _, md_mid, length in annulus_segments(annulus_layers, bit_md, self.seg_len):
            area_ann = geom.annulus_area(md_mid)
            if area_ann <= EPS:
                continue
            od = geom.pipe_od(md_mid)
            area_pipe = geom.steel_area(md_mid) if float_open else math.pi / 4 * od**2
            velocity = speed * area_pipe / area_ann * max(eccentricity, 1.0)
            gap = geom.hole_diameter(md_mid) - od
            total += power_law_gradient(k_cons, n_flow, velocity, gap) * length
        return total / 1000


@dataclass(frozen=True)
class SimplifiedAPL:
    """Empirical Annular Pressure Loss

    APL = K * rho * L * Q^2 / (Dh - Dp). K was calibrated against field data for
    m3/min and meters.
    """

    k_emp: float = APL_EMPIRICAL_K
    seg_len: float = 10.0

    def pressure(self, annulus_layers, bit_md, pump_rate, geom) -> float:
        if pump_rate <= MIN_FLOW_RATE:
            return 0.0
        total = 0.0
        for density, md_mid, length in annulus_segments(annulus_layers, bit_md, self.seg_len):
            gap = geom.hole_diameter(md_mid) - geom.pipe_od(md_mid)
            if gap <= 1e-6:
                continue
            total += self.k_emp * density * length * pump_rate**2 / gap
        return total


@dataclass(frozen=True)
class BinghamAPL:
    """Bingham Plastic Annular Pressure Loss

    dP/dL = 4 YP / (Dh - Dp) + 8 PV V / (Dh - Dp)^2

    Args:
        pv_cp (float): Plastic viscosity, cP
        yp_pa (float): Yield point, Pa
    """

    pv_cp: float
    yp_pa: float
    seg_len: float = 10.0

    def pressure(self, annulus_layers, bit_md, pump_rate, geom) -> float:
        if pump_rate <= MIN_FLOW_RATE:
            return 0.0
        total = 0.0  # Pa
        for _, md_mid, length in annulus_segments(annulus_layers, bit_md, self.seg_len):
            gap = geom.hole_diameter(md_mid) - geom.pipe_od(md_mid)
            area = geom.annulus_area(md_mid)
            if gap <= 1e-6 or area <= EPS:
                continue
            velocity = pump_rate / 60 / area
            grad = 4 * self.yp_pa / gap + 8 * (self.pv_cp / 1000) * velocity / gap**2
            total += grad * length
        return total / 1000


@dataclass(frozen=True)
class PowerLawAPL:
    """Power Law Annular Pressure Loss from Fann 35 readings"""

    theta600: float
    theta300: float
    seg_len: float = 10.0

    def pressure(self, annulus_layers, bit_md, pump_rate, geom) -> float:
        if pump_rate <= MIN_FLOW_RATE:
            return 0.0
        k_cons, n_flow = power_law_from_dials(self.theta600, self.theta300)
        total = 0.0  # Pa
        for _, md_mid, length in annulus_segments(annulus_layers, bit_md, self.seg_len):
            gap = geom.hole_diameter(md_mid) - geom.pipe_od(md_mid)
            area = geom.annulus_area(md_mid)
            if gap <= 1e-6 or area <= EPS:
                continue
            total += power_law_gradient(k_cons, n_flow, pump_rate / 60 / area, gap) * length
        return total / 1000


def swab_model_for(theta600: float | None, theta300: float | None) -> SwabSurgeModel:
    """Default swab model, zero unless both dial readings are known"""
    if theta600 and theta300:
        return PowerLawSwabSurge(theta600, theta300)
    return NoSwabSurge()

"""Well Profile

Measured depth to true vertical depth mapping of a directional survey. Hydrostatic
head is always taken over vertical depth, so every pressure in the simulation is
routed through the profile.
"""

import matplotlib.pyplot as plt
import numpy as np


class WellProfile:
    """Well Profile Class

    Create a wellprofile, which is the subsurface geometry of the measured depth versus vertical depth.
    Can be used to interpolate values for understanding how measured depth relates to vertical depth.
    """

    def __init__(self, md_list: list | np.ndarray, vd_list: list | np.ndarray) -> None:
        """Create a Well Profile

        Duplicate measured depths are dropped, keeping the first station.

        Args:
            md_list (list): List of measured depths, meters
            vd_list (list): List of vertical depths, meters

        Returns:
            Self
        """
        if len(md_list) != len(vd_list):
            raise ValueError("Lists for Measured Depth and Vertical Depth need to be the same length")

        if len(md_list) < 2:
            raise ValueError("Well Profile needs at least two survey stations")

        if max(md_list) < max(vd_list):
            raise ValueError("Measured Depth needs to extend farther than Vertical Depth")

        md_ray, vd_ray = sort_profile(np.array(md_list, dtype=float), np.array(vd_list, dtype=float))

        self.md_ray = md_ray
        self.vd_ray = vd_ray
        self.hd_ray = self._horz_dist(self.md_ray, self.vd_ray)

    def __repr__(self):
        final_md = round(self.md_ray[-1], 0)
        final_vd = round(self.vd_ray[-1], 0)

        return f"Profile is {final_md} m long and {final_vd} m deep"

    @property
    def final_md(self) -> float:
        """Deepest Survey Station, Measured Depth, meters"""
        return float(self.md_ray[-1])

    def vd_interp(self, md_dpth: float) -> float:
        """Vertical Depth Interpolation

        Args:
            md_dpth (float): Measured Depth, meters

        Returns:
            vd_dpth (float): Vertical Depth, meters
        """
        return self._depth_interp(md_dpth, self.md_ray, self.vd_ray)

    def hd_interp(self, md_dpth: float) -> float:
        """Horizontal Distance Interpolation

        Args:
            md_dpth (float): Measured Depth, meters

        Returns:
            hd_dist (float): Horizontal Distance, meters
        """
        return self._depth_interp(md_dpth, self.md_ray, self.hd_ray)

    def md_interp(self, vd_dpth: float) -> float:
        """Measured Depth Interpolation

        Only meaningful while vertical depth keeps increasing along the survey.

        Args:
            vd_dpth (float): Vertical Depth, meters

        Returns:
            md_dpth (float): Measured Depth, meters
        """
        return self._depth_interp(vd_dpth, self.vd_ray, self.md_ray)

    def covers(self, md_dpth: float) -> bool:
        """Is the measured depth inside the survey"""
        return bool(self.md_ray[0] - 1e-9 <= md_dpth <= self.md_ray[-1] + 1e-9)

    def plot_raw(self) -> None:
        """Plot the Raw Profile Data"""
        self._profileplot(self.hd_ray, self.vd_ray, self.md_ray)
        return None

    @staticmethod
    def _depth_interp(in_dpth: float, in_ray: np.ndarray, out_ray: np.ndarray) -> float:
        """Depth Interpolation

        Args:
            in_dpth (float): Known Depth, meters
            in_ray (list): Known List of Depths, meters
            out_ray (list): Unknown List of Depths, meters

        Returns:
            out_dpth (float): Unknown Depth, meters
        """
        # small tolerance so stacked floating point depths at the boundary still resolve
        if (min(in_ray) - 1e-6 <= in_dpth <= max(in_ray) + 1e-6) is False:
            raise ValueError(f"{in_dpth} meters is not inside survey boundary")

        out_dpth = np.interp(in_dpth, in_ray, out_ray)
        return float(out_dpth)

    @staticmethod
    def _horz_dist(md_ray: np.ndarray, vd_ray: np.ndarray) -> np.ndarray:
        """Horizontal Distance from Wellhead

        Args:
            md_ray (np array): Measured Depth array, meters
            vd_ray (np array): Vertical Depth array, meters

        Returns:
            hd_ray (np array): Horizontal Dist array, meters
        """
        md_diff = np.diff(md_ray, n=1)
        vd_diff = np.diff(vd_ray, n=1)
        hd_diff = np.zeros(1)  # start with zero at top to make array match original size
        hd_diff = np.append(hd_diff, np.sqrt(np.clip(md_diff**2 - vd_diff**2, 0, None)))
        hd_ray = np.cumsum(hd_diff)
        return hd_ray

    @staticmethod
    def _profileplot(hd_ray: np.ndarray, vd_ray: np.ndarray, md_ray: np.ndarray) -> None:
        """Create a Well Profile Plot

        Annotate the graph will a label of the measured depth every 500 meters of md.

        Args:
            hd_ray (np array): Horizontal distance, meters
            vd_ray (np array): Vertical depth, meters
            md_ray (np arary): Measured depth, meters
        """
        if len(md_ray) > 20:
            plt.scatter(hd_ray, vd_ray, label="Survey")
        else:
            plt.plot(hd_ray, vd_ray, marker="o", linestyle="--", label="Survey")

        plt.gca().invert_yaxis()
        plt.title(f"Dir Survey, Length: {max(md_ray)} m")
        plt.xlabel("Horizontal Distance, Meters")
        plt.ylabel("True Vertical Depth, Meters")

        md_match = np.arange(500, max(md_ray), 500)
        idxs = np.searchsorted(md_ray, md_match)
        idxs = np.unique(idxs[idxs < len(md_ray)])

        for idx in idxs:
            plt.annotate(text=f"{int(md_ray[idx])} m", xy=(hd_ray[idx] + 5, vd_ray[idx] - 10), rotation=30)
        plt.legend()
        plt.show()

    @classmethod
    def vertical(cls, total_md: float):
        """Vertical Well Profile

        Straight hole where vertical depth equals measured depth.

        Args:
            total_md (float): Total Measured Depth, meters
        """
        return cls(md_list=[0, total_md], vd_list=[0, total_md])


def sort_profile(md_ray: np.ndarray, vd_ray: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Sort Well Profile

    Take in the raw survey data. Sort the measured depth in ascending order from
    smallest to largest, drop repeated measured depths and mirror the new ordered
    sort on the vertical array.

    Args:
        md_ray (np array): Measured Depth array, meters
        vd_ray (np array): Vertical Depth array, meters

    Returns:
        md_sort (np array): Sorted Measured Depth array, meters
        vd_sort (np array): Sorted Vertical Depth array, meters
    """
    sort_idxs = np.argsort(md_ray, kind="stable")
    md_sort = md_ray[sort_idxs]
    vd_sort = vd_ray[sort_idxs]
    md_sort, uniq_idxs = np.unique(md_sort, return_index=True)
    vd_sort = vd_sort[uniq_idxs]
    return md_sort, vd_sort

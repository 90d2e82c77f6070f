from wellsim.geometry.wellbore import AnnulusSection, GeometryProvider, StringSection, Wellbore
from wellsim.geometry.wellprofile import WellProfile

__all__ = ["AnnulusSection", "GeometryProvider", "StringSection", "Wellbore", "WellProfile"]

"""Mud Catalog and Pump Queue

Operations reference muds by id. Density, name and color are looked up in the
catalog when an operation runs, so catalog edits show up on the next run.
"""

from dataclasses import dataclass, field

from wellsim.utils.errors import UnresolvedMud


@dataclass(frozen=True)
class Mud:
    """Drilling Fluid

    Args:
        id (str): Catalog identifier
        name (str): Display name
        density (float): Density, kg/m3
        color (str): Display color, hex string
    """

    id: str
    name: str
    density: float
    color: str | None = None

    def __post_init__(self):
        if self.density <= 0:
            raise ValueError(f"Mud {self.name} density must be positive, got {self.density}")

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "density": self.density, "color": self.color}

    @classmethod
    def from_dict(cls, data: dict):
        return cls(data["id"], data["name"], data["density"], data.get("color"))


@dataclass
class MudCatalog:
    """Read only list of muds available to a project"""

    muds: list[Mud] = field(default_factory=list)

    def __iter__(self):
        return iter(self.muds)

    def __len__(self) -> int:
        return len(self.muds)

    def add(self, mud: Mud) -> None:
        self.muds = [m for m in self.muds if m.id != mud.id] + [mud]

    def remove(self, mud_id: str) -> None:
        self.muds = [m for m in self.muds if m.id != mud_id]

    def get(self, mud_id: str | None) -> Mud:
        """Resolve a Mud by Id

        Raises:
            UnresolvedMud: id is None or not in the catalog
        """
        if mud_id is None:
            raise UnresolvedMud("No mud selected", suggestion="Pick a mud from the catalog")
        for mud in self.muds:
            if mud.id == mud_id:
                return mud
        raise UnresolvedMud(
            f"Mud {mud_id!r} is not in the catalog",
            suggestion="Re-select the mud, it may have been deleted",
            details={"mud_id": mud_id},
        )

    def match(self, mud_id: str | None, name: str | None = None, density: float | None = None) -> Mud | None:
        """Loose Lookup

        Tries the id, then the name, then a density within 1 kg/m3. Used when a
        configuration comes from another project.
        """
        for mud in self.muds:
            if mud_id is not None and mud.id == mud_id:
                return mud
        for mud in self.muds:
            if name and mud.name == name:
                return mud
        if density is not None:
            for mud in self.muds:
                if abs(mud.density - density) < 1.0:
                    return mud
        return None


@dataclass(frozen=True)
class PumpStage:
    """One entry of a pump queue

    Args:
        mud_id (str): Catalog id of the mud pumped
        volume (float): Volume to pump, m3
    """

    mud_id: str
    volume: float

    def __post_init__(self):
        if self.volume < 0:
            raise ValueError(f"Pump stage volume can not be negative, got {self.volume}")


@dataclass(frozen=True)
class PumpQueue:
    """Ordered stages pumped down the string, consumed front to back"""

    stages: tuple[PumpStage, ...] = ()

    def __iter__(self):
        return iter(self.stages)

    def __len__(self) -> int:
        return len(self.stages)

    @property
    def total_volume(self) -> float:
        return sum(stage.volume for stage in self.stages)

    def to_list(self) -> list[dict]:
        return [{"mud_id": stage.mud_id, "volume": stage.volume} for stage in self.stages]

    @classmethod
    def from_list(cls, data: list[dict]):
        return cls(tuple(PumpStage(item["mud_id"], item["volume"]) for item in data))

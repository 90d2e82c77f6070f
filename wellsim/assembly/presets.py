"""Operation Presets

Named operation lists saved as JSON so a plan can be reused on another project.
Only configuration is written. Mud ids are saved along with the mud name and
density, on load each reference is matched against the current catalog by id,
then name, then density.
"""

import json
import logging
import os
from datetime import datetime

from wellsim.assembly.operation import Operation
from wellsim.fluids.mud import MudCatalog

logger = logging.getLogger(__name__)

MUD_FIELDS = ("base_mud_id", "backfill_mud_id", "fill_mud_id", "ream_mud_id")


def sanitize(name: str) -> str:
    """File safe preset name"""
    return name.replace("/", "_").replace(":", "_")


def _mud_ref(catalog: MudCatalog | None, mud_id: str | None) -> dict | None:
    if mud_id is None:
        return None
    ref = {"id": mud_id, "name": None, "density": None}
    if catalog is not None:
        found = catalog.match(mud_id)
        if found is not None:
            ref.update(name=found.name, density=found.density)
    return ref


def _resolve(catalog: MudCatalog, ref: dict | None) -> str | None:
    """Mud id in the current catalog, None when nothing matches"""
    if ref is None:
        return None
    if not len(catalog):
        return ref["id"]
    found = catalog.match(ref["id"], ref.get("name"), ref.get("density"))
    if found is None:
        logger.warning("preset mud %r (%s) has no match in the catalog", ref.get("name"), ref["id"])
        return None
    return found.id


class PresetStore:
    """Directory of JSON presets"""

    def __init__(self, directory: str | os.PathLike) -> None:
        self.directory = os.fspath(directory)
        os.makedirs(self.directory, exist_ok=True)

    def path(self, name: str) -> str:
        return os.path.join(self.directory, f"{sanitize(name)}.json")

    def save(self, name: str, operations: list[Operation], catalog: MudCatalog | None = None) -> str:
        """Save Operation Configurations

        Args:
            name (str): Preset name
            operations (list): Operations to save, results are left out
            catalog (MudCatalog): Catalog the mud names and densities are read from

        Returns:
            path (str): File written
        """
        configs = []
        for oper in operations:
            config = oper.to_dict()
            config["muds"] = {fld: _mud_ref(catalog, getattr(oper, fld)) for fld in MUD_FIELDS}
            config["pump_queue"] = [
                {**stage, "mud": _mud_ref(catalog, stage["mud_id"])} for stage in config["pump_queue"]
            ]
            configs.append(config)

        preset = {"name": name, "created_at": datetime.now().isoformat(), "operations": configs}
        path = self.path(name)
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(preset, fh, indent=2)
        logger.info("saved preset %s with %d operations", name, len(configs))
        return path

    def load(self, name: str, catalog: MudCatalog) -> list[Operation]:
        """Load a Preset as Pending Operations

        Args:
            name (str): Preset name
            catalog (MudCatalog): Current muds, references are re-resolved against it

        Raises:
            FileNotFoundError: no preset with that name
        """
        with open(self.path(name), encoding="utf-8") as fh:
            preset = json.load(fh)

        operations = []
        for config in preset["operations"]:
            refs = config.pop("muds", {})
            for stage in config.get("pump_queue", []):
                ref = stage.pop("mud", None)
                if ref is not None:
                    stage["mud_id"] = _resolve(catalog, ref)
            config["pump_queue"] = [stage for stage in config.get("pump_queue", []) if stage["mud_id"] is not None]
            for fld in MUD_FIELDS:
                if fld in refs:
                    config[fld] = _resolve(catalog, refs[fld])
            operations.append(Operation.from_dict(config))
        return operations

    def list(self) -> list[str]:
        """Preset names, newest first"""
        presets = []
        for fname in os.listdir(self.directory):
            if not fname.endswith(".json"):
                continue
            with open(os.path.join(self.directory, fname), encoding="utf-8") as fh:
                data = json.load(fh)
            presets.append((data.get("created_at", ""), data["name"]))
        return [name for _, name in sorted(presets, reverse=True)]

    def delete(self, name: str) -> None:
        path = self.path(name)
        if os.path.exists(path):
            os.remove(path)
            logger.info("deleted preset %s", name)

import json
from importlib import resources
from typing import Any, Dict


def _load_json(name: str) -> Dict[str, Any]:
    with resources.files(__package__).joinpath(f"data/{name}").open("r", encoding="utf-8") as fh:
        return json.load(fh)


def load_example_topology() -> Dict[str, Any]:
    return _load_json("example_topology.json")


def load_example_configuration() -> Dict[str, Any]:
    return _load_json("example_configuration.json")

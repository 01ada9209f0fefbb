from dataclasses import dataclass
from pathlib import Path
from typing import cast
from dynaconf import Dynaconf, Validator


@dataclass
class SolverSettings:
    name: str
    time_limit: float


@dataclass
class ACCASettings:
    diameter: int
    max_its: int
    scenarios_per_agent: int


@dataclass
class Settings:
    log_level: str
    solver: SolverSettings
    acca: ACCASettings


settings_not_casted = Dynaconf(
    envvar_prefix="DYNACONF",
    settings_files=[".secrets.toml", ".settings.toml"],
    root_path=Path(__file__).parent,
    validators=[
        Validator("log_level", default="info"),
        Validator("solver.name", default="gurobi_direct"),
        Validator("solver.time_limit", default=60),
        Validator("acca.diameter", default=3),
        Validator("acca.max_its", default=100),
        Validator("acca.scenarios_per_agent", default=10),
    ],
)

settings = cast(
    Settings,
    settings_not_casted,
)

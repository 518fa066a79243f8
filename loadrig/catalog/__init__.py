"""
Test catalog: named scenarios the runner can resolve.

Usage:
    from loadrig.catalog import default_catalog

    catalog = default_catalog()
    definition = catalog.resolve("basic-load")
    for name, description in catalog.descriptions().items():
        print(name, description)
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from loadrig.exceptions import ConfigurationError, ScenarioNotFound
from loadrig.scenario import ScenarioDefinition

from loadrig.catalog import (
    basic_load,
    error_test,
    profiling_test,
    soak_test,
    spike_test,
    stress_test,
)

BUILTIN_SCENARIOS = (
    basic_load.SCENARIO,
    stress_test.SCENARIO,
    spike_test.SCENARIO,
    soak_test.SCENARIO,
    error_test.SCENARIO,
    profiling_test.SCENARIO,
)


class Catalog:
    """Registry of scenario definitions keyed by name, in registration order."""

    def __init__(self, scenarios: Optional[Iterable[ScenarioDefinition]] = None) -> None:
        self._scenarios: Dict[str, ScenarioDefinition] = {}
        for scenario in scenarios or ():
            self.register(scenario)

    def register(self, definition: ScenarioDefinition, *, replace: bool = False) -> None:
        if definition.name in self._scenarios and not replace:
            raise ConfigurationError(
                f"Scenario '{definition.name}' is already registered",
                code="duplicate_scenario",
            )
        self._scenarios[definition.name] = definition

    def resolve(self, name: str) -> ScenarioDefinition:
        """
        Look up a scenario by name.

        Raises:
            ScenarioNotFound: Unknown name; the error lists the known names.
        """
        try:
            return self._scenarios[name]
        except KeyError:
            raise ScenarioNotFound(name, self._scenarios) from None

    def names(self) -> List[str]:
        return list(self._scenarios)

    def descriptions(self) -> Dict[str, str]:
        return {name: s.description for name, s in self._scenarios.items()}

    def __contains__(self, name: object) -> bool:
        return name in self._scenarios

    def __len__(self) -> int:
        return len(self._scenarios)


def default_catalog() -> Catalog:
    """A fresh catalog holding the built-in scenarios."""
    return Catalog(BUILTIN_SCENARIOS)


__all__ = ["Catalog", "default_catalog", "BUILTIN_SCENARIOS"]

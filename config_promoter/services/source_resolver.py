"""
Source environment resolution.

A target environment is promoted from the nearest earlier environment in
the chain that has a repository configured. Unprovisioned stages in between
are skipped, so Prod falls back to Dev when QA and Stage have no repository.
"""
import logging
from typing import Optional, Union

from config_promoter.core.exceptions import NotFoundError
from config_promoter.services.environment_registry import Environment, EnvironmentRegistry

logger = logging.getLogger(__name__)


class SourceResolver:
    def __init__(self, registry: EnvironmentRegistry):
        self.registry = registry

    def resolve(self, target: Union[Environment, str]) -> Optional[Environment]:
        """Return the nearest configured predecessor of target, or None."""
        target_name = target.name if isinstance(target, Environment) else target
        chain = self.registry.list()
        index = next((i for i, env in enumerate(chain) if env.name == target_name), -1)
        if index <= 0:
            return None

        for candidate in reversed(chain[:index]):
            if candidate.repo_identifier:
                if candidate is not chain[index - 1]:
                    logger.info(f"Falling back to {candidate.name} as source for {target_name}")
                return candidate
        return None

    def resolve_or_raise(self, target: Union[Environment, str]) -> Environment:
        source = self.resolve(target)
        if source is None:
            target_name = target.name if isinstance(target, Environment) else target
            raise NotFoundError(f"No source environment found for {target_name}")
        return source

"""
reconciler.py  –  Create, update, or rename-then-update

For one local model and the live list of semantic models in the target
workspace, decide which remote item (if any) the model corresponds to:

  1. Identity mapper hit on the ``.platform`` logicalId
  2. Exact (case-insensitive) match on the desired display name
  3. Exact match on a fallback name (previously deployed name, ``.platform``
     displayName, declared model name), renaming the item to the desired name

No match creates a new item with the full definition.  A failed rename aborts
the whole deploy; falling through to create would duplicate the model.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .config import SEMANTIC_MODEL_TYPE
from .errors import ConfigurationError, ReconciliationError, RemoteCallError
from .fabric_api import FabricClient
from .identity import IdentityMapper
from .model import LocalModel
from .models import AuthConfig, DeployAction, DeployResult, RemoteItem, is_blank
from .prompts import Prompter

logger = logging.getLogger(__name__)


@dataclass
class ReconcilePlan:
    action: DeployAction
    desired_name: str
    item: Optional[RemoteItem] = None
    matched_by: Optional[str] = None
    rename_from: Optional[str] = None

    @property
    def needs_rename(self) -> bool:
        return self.rename_from is not None


def _same_name(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


def _find_by_name(items: list[RemoteItem], name: str) -> Optional[RemoteItem]:
    for item in items:
        if _same_name(item.display_name, name):
            return item
    return None


class ItemReconciler:

    def __init__(self, client: FabricClient, mapper: IdentityMapper,
                 prompter: Optional[Prompter] = None,
                 item_type: str = SEMANTIC_MODEL_TYPE):
        self.client = client
        self.mapper = mapper
        self.prompter = prompter
        self.item_type = item_type

    def resolve_desired_name(self, model: LocalModel, explicit_name: Optional[str]) -> str:
        """explicit name > .platform displayName > declared name > prompt."""
        for candidate in (explicit_name, model.platform_name, model.declared_name):
            if not is_blank(candidate):
                return candidate.strip()
        if self.prompter is None:
            raise ConfigurationError(
                "Could not resolve semantic model name. Provide --name, set "
                "metadata.displayName in .platform, or declare a database name in database.tmdl."
            )
        return self.prompter.prompt_required("Semantic model name")

    def plan(self, workspace_id: str, model: LocalModel, desired_name: str,
             previous_name: Optional[str], remote_items: list[RemoteItem]) -> ReconcilePlan:
        """Pure decision step; performs no remote mutation."""
        item = self.mapper.lookup(workspace_id, model.logical_id, remote_items)
        if item is not None:
            if _same_name(item.display_name, desired_name):
                return ReconcilePlan(DeployAction.UPDATE, desired_name, item, "logicalId")
            return ReconcilePlan(DeployAction.RENAME_AND_UPDATE, desired_name, item,
                                 "logicalId", rename_from=item.display_name)

        item = _find_by_name(remote_items, desired_name)
        if item is not None:
            return ReconcilePlan(DeployAction.UPDATE, desired_name, item, "name")

        for fallback in (previous_name, model.platform_name, model.declared_name):
            if is_blank(fallback) or _same_name(fallback, desired_name):
                continue
            item = _find_by_name(remote_items, fallback)
            if item is not None:
                return ReconcilePlan(DeployAction.RENAME_AND_UPDATE, desired_name, item,
                                     f"previous name '{fallback}'", rename_from=item.display_name)

        return ReconcilePlan(DeployAction.CREATE, desired_name)

    def reconcile(self, workspace_id: str, model: LocalModel, config: AuthConfig) -> DeployResult:
        """Bring the remote item in line with *model*; updates name fields on *config*."""
        desired_name = self.resolve_desired_name(model, config.model_name)
        parts = model.definition_parts()
        if not parts:
            raise ConfigurationError(f"No deployable files found in '{model.root}'.")

        remote_items = self.client.list_items(workspace_id, self.item_type)
        plan = self.plan(workspace_id, model, desired_name, config.previous_model_name, remote_items)
        logger.info("Plan for '%s': %s (matched by %s)", desired_name, plan.action.value, plan.matched_by)

        config.model_name = desired_name

        if plan.action is DeployAction.CREATE:
            item_id = self.client.create_item(workspace_id, desired_name, self.item_type, parts)
            self.mapper.remember(workspace_id, model.logical_id, item_id)
            config.previous_model_name = desired_name
            return DeployResult.ok(f"Successfully created semantic model '{desired_name}'",
                                   DeployAction.CREATE, item_id)

        item = plan.item
        if plan.needs_rename:
            try:
                self.client.rename_item(workspace_id, item.id, desired_name)
            except RemoteCallError as exc:
                raise ReconciliationError(
                    f"Found existing semantic model '{plan.rename_from}' but failed to "
                    f"rename it to '{desired_name}': {exc.message}"
                ) from None

        self.mapper.remember(workspace_id, model.logical_id, item.id)
        self.client.update_definition(workspace_id, item.id, parts)

        if plan.needs_rename:
            config.previous_model_name = plan.rename_from
            return DeployResult.ok(
                f"Successfully renamed semantic model '{plan.rename_from}' to "
                f"'{desired_name}' and updated its definition",
                DeployAction.RENAME_AND_UPDATE, item.id,
            )

        config.previous_model_name = item.display_name or desired_name
        return DeployResult.ok(f"Successfully updated semantic model '{desired_name}'",
                               DeployAction.UPDATE, item.id)

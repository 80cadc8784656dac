"""
Rate config lifecycle and fee quotes.

Configs move draft -> pending_approval -> approved -> active -> archived. The only
backward edge is a rejection, which returns a pending config to draft. Every
transition is written to the audit log.
"""

import logging
from collections.abc import Sequence
from datetime import date

from pydantic import ValidationError

from teesheet.config import settings
from teesheet.exceptions import InvalidRateConfig, NotFound
from teesheet.models.schemas import (
    FeeBreakdown,
    RateAuditEntry,
    RateConfig,
    RateConfigStatus,
    RateSchedule,
    utcnow,
)
from teesheet.services import rate_engine
from teesheet.services.database_service import database_service

logger = logging.getLogger(__name__)


def build_schedule(data: dict) -> RateSchedule:
    """
    Validate raw fee tables into a RateSchedule.

    Raises:
        InvalidRateConfig: If the tables are malformed or break the platinum rule.
    """
    if data.get("tax_config") is None:
        data = {**data, "tax_config": {"entertainment_tax": settings.default_entertainment_tax}}
    try:
        return RateSchedule.model_validate(data)
    except ValidationError as e:
        raise InvalidRateConfig(str(e)) from None


class RateConfigService:
    async def _audit(
        self, config_id: int, action: str, performed_by: str | None, notes: str = ""
    ) -> None:
        await database_service.add_audit_entry(
            RateAuditEntry(
                config_id=config_id,
                action=action,
                performed_by=performed_by,
                notes=notes,
                performed_at=utcnow(),
            )
        )

    async def get_config(self, config_id: int) -> RateConfig:
        config = await database_service.get_rate_config(config_id)
        if config is None:
            raise NotFound(f"Rate config {config_id} not found")
        return config

    async def list_configs(self, status: RateConfigStatus | None = None) -> list[RateConfig]:
        return await database_service.list_rate_configs(status)

    async def get_active_config(self) -> RateConfig:
        return await database_service.get_active_rate_config()

    async def get_audit_log(self, config_id: int) -> list[RateAuditEntry]:
        await self.get_config(config_id)
        return await database_service.get_audit_log(config_id)

    async def create_draft(
        self, schedule: RateSchedule, created_by: str | None = None
    ) -> RateConfig:
        config = await database_service.create_rate_config(schedule, created_by)
        await self._audit(config.id, "created", created_by, schedule.notes)  # type: ignore[arg-type]
        logger.info(f"Created draft rate config v{config.version_number} (id {config.id})")
        return config

    async def update_draft(
        self, config_id: int, schedule: RateSchedule, updated_by: str | None = None
    ) -> RateConfig:
        config = await self.get_config(config_id)
        if not await database_service.update_draft_rate_config(config_id, schedule):
            raise InvalidRateConfig(
                f"Rate config {config_id} is {config.status.value}; only drafts can be edited"
            )
        await self._audit(config_id, "updated", updated_by)
        return await self.get_config(config_id)

    async def _transition(
        self,
        config_id: int,
        from_status: RateConfigStatus,
        to_status: RateConfigStatus,
        action: str,
        performed_by: str | None,
        notes: str = "",
        **fields,
    ) -> RateConfig:
        config = await self.get_config(config_id)
        moved = await database_service.transition_rate_config(
            config_id, from_status, to_status, **fields
        )
        if not moved:
            raise InvalidRateConfig(
                f"Rate config {config_id} is {config.status.value}; "
                f"cannot move to {to_status.value}"
            )
        await self._audit(config_id, action, performed_by, notes)
        logger.info(f"Rate config {config_id}: {from_status.value} -> {to_status.value}")
        return await self.get_config(config_id)

    async def submit(self, config_id: int, submitted_by: str | None = None) -> RateConfig:
        return await self._transition(
            config_id,
            RateConfigStatus.DRAFT,
            RateConfigStatus.PENDING_APPROVAL,
            "submitted",
            submitted_by,
            submitted_by=submitted_by,
            rejection_reason=None,
        )

    async def approve(self, config_id: int, approved_by: str | None = None) -> RateConfig:
        return await self._transition(
            config_id,
            RateConfigStatus.PENDING_APPROVAL,
            RateConfigStatus.APPROVED,
            "approved",
            approved_by,
            approved_by=approved_by,
        )

    async def reject(
        self, config_id: int, reason: str, rejected_by: str | None = None
    ) -> RateConfig:
        if not reason.strip():
            raise InvalidRateConfig("A rejection reason is required")
        return await self._transition(
            config_id,
            RateConfigStatus.PENDING_APPROVAL,
            RateConfigStatus.DRAFT,
            "rejected",
            rejected_by,
            notes=reason,
            rejection_reason=reason,
        )

    async def activate(self, config_id: int, activated_by: str | None = None) -> RateConfig:
        """
        Make an approved config the single active one.

        The config must price every required tier and caddy ratio for both hole
        buckets. The previously active config is archived in the same transaction.

        Raises:
            UnknownTier, UnknownRatio, MissingHoleBucket: If the config is incomplete.
            InvalidRateConfig: If the config is not approved.
        """
        config = await self.get_config(config_id)
        if config.status != RateConfigStatus.APPROVED:
            raise InvalidRateConfig(
                f"Rate config {config_id} is {config.status.value}; only approved configs "
                "can be activated"
            )
        rate_engine.validate_completeness(
            config, settings.required_rate_tiers, settings.required_caddy_ratios
        )

        archived = await database_service.activate_rate_config(config_id, utcnow())
        if archived is None:
            raise InvalidRateConfig(f"Rate config {config_id} is no longer approved")
        for old_id in archived:
            await self._audit(old_id, "archived", activated_by, f"Superseded by {config_id}")
        await self._audit(config_id, "activated", activated_by)
        logger.info(
            f"Activated rate config v{config.version_number} (id {config_id}), "
            f"archived {archived or 'none'}"
        )
        return await self.get_config(config_id)

    async def quote(
        self,
        holes: int,
        caddy_ratio: str,
        tier: str | None = None,
        golfer_type: str | None = None,
        tiers: Sequence[str] | None = None,
        player_count: int = 4,
        play_date: date | None = None,
        holiday: bool | None = None,
    ) -> FeeBreakdown:
        """
        Price a round under the active config.

        Either pass tiers for a mixed group, or a single tier (or a member category
        mapped to one) shared by player_count players. The holiday flag defaults to
        the weekend rule for play_date.
        """
        config = await self.get_active_config()
        if holiday is None:
            holiday = rate_engine.is_holiday(play_date) if play_date else False
        if tiers:
            return rate_engine.calculate_group(tiers, holes, holiday, caddy_ratio, config)
        if tier is None:
            tier = rate_engine.golfer_type_to_tier(golfer_type)
        return rate_engine.calculate(tier, holes, holiday, caddy_ratio, player_count, config)


rate_config_service = RateConfigService()

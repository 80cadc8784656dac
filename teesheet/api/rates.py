from datetime import date

from fastapi import APIRouter
from pydantic import BaseModel, Field, model_validator

from teesheet.models.schemas import (
    BaseFees,
    DayRates,
    FeeBreakdown,
    RateAuditEntry,
    RateConfig,
    RateConfigStatus,
    TaxConfig,
)
from teesheet.services.rate_config_service import build_schedule, rate_config_service

router = APIRouter(prefix="/rates", tags=["rates"])


class RateScheduleRequest(BaseModel):
    green_fees: dict[str, dict[int, DayRates]]
    caddy_fees: dict[str, dict[int, int]]
    base_fees: BaseFees
    tax_config: TaxConfig | None = None
    notes: str = ""
    performed_by: str | None = None


class ActorRequest(BaseModel):
    performed_by: str | None = None


class RejectRequest(BaseModel):
    reason: str
    performed_by: str | None = None


class QuoteRequest(BaseModel):
    holes: int
    caddy_ratio: str
    tier: str | None = None
    golfer_type: str | None = None
    tiers: list[str] | None = None
    player_count: int = Field(default=4, ge=1, le=4)
    play_date: date | None = None
    is_holiday: bool | None = None

    @model_validator(mode="after")
    def check_group(self) -> "QuoteRequest":
        if self.tiers is not None and not 1 <= len(self.tiers) <= 4:
            raise ValueError("tiers must list between 1 and 4 players")
        return self


def _schedule_of(request: RateScheduleRequest):
    # Revalidated here so the platinum rule surfaces as InvalidRateConfig.
    return build_schedule(request.model_dump(exclude={"performed_by"}))


@router.post("/", response_model=RateConfig, status_code=201)
async def create_rate_config(request: RateScheduleRequest) -> RateConfig:
    return await rate_config_service.create_draft(_schedule_of(request), request.performed_by)


@router.get("/", response_model=list[RateConfig])
async def list_rate_configs(status: RateConfigStatus | None = None) -> list[RateConfig]:
    return await rate_config_service.list_configs(status)


@router.get("/active", response_model=RateConfig)
async def get_active_rate_config() -> RateConfig:
    return await rate_config_service.get_active_config()


@router.post("/quote", response_model=FeeBreakdown)
async def quote(request: QuoteRequest) -> FeeBreakdown:
    return await rate_config_service.quote(
        holes=request.holes,
        caddy_ratio=request.caddy_ratio,
        tier=request.tier,
        golfer_type=request.golfer_type,
        tiers=request.tiers,
        player_count=request.player_count,
        play_date=request.play_date,
        holiday=request.is_holiday,
    )


@router.get("/{config_id}", response_model=RateConfig)
async def get_rate_config(config_id: int) -> RateConfig:
    return await rate_config_service.get_config(config_id)


@router.put("/{config_id}", response_model=RateConfig)
async def update_rate_config(config_id: int, request: RateScheduleRequest) -> RateConfig:
    return await rate_config_service.update_draft(
        config_id, _schedule_of(request), request.performed_by
    )


@router.get("/{config_id}/audit", response_model=list[RateAuditEntry])
async def get_audit_log(config_id: int) -> list[RateAuditEntry]:
    return await rate_config_service.get_audit_log(config_id)


@router.post("/{config_id}/submit", response_model=RateConfig)
async def submit(config_id: int, request: ActorRequest | None = None) -> RateConfig:
    return await rate_config_service.submit(config_id, request.performed_by if request else None)


@router.post("/{config_id}/approve", response_model=RateConfig)
async def approve(config_id: int, request: ActorRequest | None = None) -> RateConfig:
    return await rate_config_service.approve(config_id, request.performed_by if request else None)


@router.post("/{config_id}/reject", response_model=RateConfig)
async def reject(config_id: int, request: RejectRequest) -> RateConfig:
    return await rate_config_service.reject(config_id, request.reason, request.performed_by)


@router.post("/{config_id}/activate", response_model=RateConfig)
async def activate(config_id: int, request: ActorRequest | None = None) -> RateConfig:
    return await rate_config_service.activate(
        config_id, request.performed_by if request else None
    )

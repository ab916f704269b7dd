"""
Приоритет клиентов в виртуальной очереди

score = eta_weight * norm_eta + position_weight * norm_position + wait_time_bonus * norm_wait

Каждая нормализованная составляющая лежит в [0, 1], поэтому сумма ограничена
суммой весов и веса можно сравнивать между собой.
"""
from datetime import datetime
from typing import NamedTuple, Optional

from ..schemas import QueueConfig

# Максимальное время дороги при входе в очередь
ETA_SCALE_MINUTES = 180
# После часа ожидания бонус больше не растет
WAIT_SATURATION_MINUTES = 60


class PriorityBreakdown(NamedTuple):
    eta_component: float
    position_component: float
    wait_bonus: float

    @property
    def score(self) -> float:
        return self.eta_component + self.position_component + self.wait_bonus


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def normalize_eta(estimated_arrival_minutes: float, minutes_until_slot: float) -> float:
    """Чем точнее время дороги совпадает со временем до слота, тем ближе к 1"""
    mismatch = abs(estimated_arrival_minutes - minutes_until_slot)
    return _clamp(1.0 - mismatch / ETA_SCALE_MINUTES)


def normalize_position(queue_position: int) -> float:
    """1-е место = 1.0, дальше убывает"""
    return 1.0 / max(queue_position, 1)


def normalize_wait(wait_minutes: float) -> float:
    """Растет с ожиданием и упирается в 1 через час"""
    return _clamp(max(wait_minutes, 0) / WAIT_SATURATION_MINUTES)


def score_entry(
    config: QueueConfig,
    estimated_arrival_minutes: float,
    queue_position: int,
    wait_minutes: float,
    minutes_until_slot: float
) -> PriorityBreakdown:
    return PriorityBreakdown(
        eta_component=config.eta_weight * normalize_eta(estimated_arrival_minutes, minutes_until_slot),
        position_component=config.position_weight * normalize_position(queue_position),
        wait_bonus=config.wait_time_bonus * normalize_wait(wait_minutes),
    )


def wait_minutes_since(created_at: datetime, now: datetime) -> float:
    return (now - created_at).total_seconds() / 60


def ranking_key(score: float, created_at: datetime, entry_id: Optional[str] = ""):
    """Ключ сортировки: выше score раньше, при равенстве - кто раньше пришел"""
    return (-score, created_at, entry_id or "")

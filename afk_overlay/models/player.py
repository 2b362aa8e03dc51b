"""Player progression state: the idle-game side of the overlay."""

from pydantic import BaseModel, Field


class ProgressionConfig(BaseModel):
    """Tuning for the idle progression loop."""

    initial_level: int = 1
    initial_experience: int = 0
    initial_experience_to_next_level: int = 100
    initial_energy: float = 100.0
    initial_currency: int = 0

    xp_interval_seconds: int = 10           # Experience is granted every N seconds online
    xp_per_interval: int = 5
    energy_decay: float = 0.5
    max_energy: float = 100.0

    level_growth: float = 1.5               # experienceToNextLevel multiplier per level-up
    level_energy_bonus: float = 20.0
    level_currency_factor: int = 10         # currency += factor * new_level
    reward_factor: int = 50                 # claim reward = factor * level

    critical_energy_threshold: float = 20.0
    warning_energy_threshold: float = 60.0
    critical_label: str = "🔴 精力接近临界值"
    warning_label: str = "🟡 世界线出现轻微扰动"
    stable_label: str = "🟢 稳定监控中"


class PlayerState(BaseModel):
    """Snapshot of the player's progression. Persisted after every mutation."""

    level: int = Field(ge=1, default=1)
    experience: int = Field(ge=0, default=0)
    experience_to_next_level: int = Field(gt=0, default=100)
    energy: float = Field(ge=0, le=100, default=100.0)
    currency: int = Field(ge=0, default=0)  # Contribution points
    online_seconds: int = Field(ge=0, default=0)
    status_text: str = "🟢 稳定监控中"

    @classmethod
    def initial(cls, config: ProgressionConfig) -> "PlayerState":
        """Fresh state for a first run."""
        return cls(
            level=config.initial_level,
            experience=config.initial_experience,
            experience_to_next_level=config.initial_experience_to_next_level,
            energy=config.initial_energy,
            currency=config.initial_currency,
            online_seconds=0,
            status_text=config.stable_label,
        )

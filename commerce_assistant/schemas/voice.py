"""Pydantic schemas for voice settings."""

from pydantic import Field

from commerce_assistant.schemas.common import BaseSchema


class VoiceSettings(BaseSchema):
    """Process-wide speech settings, persisted on every change."""

    rate: float = Field(1.0, ge=0.1, le=10.0)
    pitch: float = Field(1.0, ge=0.0, le=2.0)
    volume: float = Field(1.0, ge=0.0, le=1.0)
    continuous_mode: bool = Field(False, alias="continuousMode")
    selected_voice_id: str | None = Field(None, alias="selectedVoiceId")


class VoiceSettingsUpdate(BaseSchema):
    """Partial update for voice settings."""

    rate: float | None = Field(None, ge=0.1, le=10.0)
    pitch: float | None = Field(None, ge=0.0, le=2.0)
    volume: float | None = Field(None, ge=0.0, le=1.0)
    continuous_mode: bool | None = Field(None, alias="continuousMode")
    selected_voice_id: str | None = Field(None, alias="selectedVoiceId")

    def apply_to(self, current: VoiceSettings) -> VoiceSettings:
        """Merge the fields set on this update into ``current``.

        ``selectedVoiceId`` may be explicitly reset to null; other null fields
        are ignored.
        """
        changes = {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key == "selected_voice_id"
        }
        return current.model_copy(update=changes)

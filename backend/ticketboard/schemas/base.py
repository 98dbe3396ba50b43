"""
Base commune des schémas : les clients JavaScript parlent en camelCase
(userId, roomCode, dateCreation...), le code Python reste en snake_case.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def as_utc_iso(value: datetime) -> str:
    """Les DateTime stockés sont en UTC naïf : on rend le fuseau explicite pour les clients."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class MessageResponse(CamelModel):
    message: str

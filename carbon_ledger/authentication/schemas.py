from pydantic import BaseModel, Field


class Identity(BaseModel):
    """The caller as asserted by the upstream authentication service."""

    organisation_id: int = Field(description="The organisation the caller acts for.")
    is_admin: bool = Field(
        default=False,
        description="Whether the caller may perform registry administration.",
    )

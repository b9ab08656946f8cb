"""Browser view models decoded from protocol payloads."""

from cdp_use.cdp.target import TargetID
from pydantic import BaseModel, ConfigDict, Field


class TargetInfo(BaseModel):
    """Snapshot of a remote target as reported by the Target domain.

    Built from the camelCase `targetInfo` payload of targetCreated /
    targetInfoChanged notifications; unknown keys are kept as extras.
    """

    model_config = ConfigDict(
        extra='allow',
        populate_by_name=True,
        validate_by_name=True,
        validate_by_alias=True,
    )

    target_id: TargetID = Field(alias='targetId')
    type: str
    title: str = ''
    url: str = ''
    attached: bool = False
    opener_id: TargetID | None = Field(default=None, alias='openerId')
    browser_context_id: str | None = Field(default=None, alias='browserContextId')


class BrowserVersion(BaseModel):
    """Result of `Browser.getVersion`."""

    model_config = ConfigDict(extra='allow', populate_by_name=True)

    product: str = ''
    protocol_version: str = Field(default='', alias='protocolVersion')
    revision: str = ''
    user_agent: str = Field(default='', alias='userAgent')
    js_version: str = Field(default='', alias='jsVersion')

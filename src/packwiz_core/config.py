"""Source client settings.

Library mechanism: clients take a SourceSettings instance. Where the values come
from (environment, a settings file, a prompt) is the app's policy; from_env() covers
the common case.
"""

import os

from pydantic import BaseModel
from pydantic import ConfigDict

DEFAULT_USER_AGENT = "packwiz-core/0.1.0"

CURSEFORGE_API_URL = "https://api.curseforge.com"
MODRINTH_API_URL = "https://api.modrinth.com"
GITHUB_API_URL = "https://api.github.com"


class SourceSettings(BaseModel):
    """Credentials and HTTP behaviour shared by the source clients."""

    model_config = ConfigDict(frozen=True)

    user_agent: str = DEFAULT_USER_AGENT
    curseforge_api_key: str | None = None
    github_token: str | None = None
    timeout: float = 30.0
    # Transport-level retries on connection failures
    retries: int = 3

    curseforge_url: str = CURSEFORGE_API_URL
    modrinth_url: str = MODRINTH_API_URL
    github_url: str = GITHUB_API_URL

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "SourceSettings":
        """Read CURSEFORGE_API_KEY, GITHUB_TOKEN and PACKWIZ_USER_AGENT.

        Args:
            environ: Mapping to read from (os.environ if not provided)
        """
        env = os.environ if environ is None else environ
        return cls(
            user_agent=env.get("PACKWIZ_USER_AGENT") or DEFAULT_USER_AGENT,
            curseforge_api_key=env.get("CURSEFORGE_API_KEY") or None,
            github_token=env.get("GITHUB_TOKEN") or None,
        )

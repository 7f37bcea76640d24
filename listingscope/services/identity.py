"""Randomized, internally consistent browser identities.

Every call picks a Chrome major version and a desktop platform, then derives
the user-agent string and the ``sec-ch-ua*`` client hints from the same two
values so the headers never contradict each other.
"""

import random
from dataclasses import dataclass, field

CHROME_VERSION_MIN = 115
CHROME_VERSION_MAX = 124

# platform name (as reported in sec-ch-ua-platform) -> UA OS token
PLATFORMS = {
    "Windows": "Windows NT 10.0; Win64; x64",
    "macOS": "Macintosh; Intel Mac OS X 10_15_7",
    "Linux": "X11; Linux x86_64",
}

ACCEPT = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,"
    "image/webp,image/apng,*/*;q=0.8"
)
ACCEPT_LANGUAGE = "en-US,en;q=0.9"


@dataclass
class IdentityProfile:
    chrome_version: int
    platform: str
    user_agent: str
    accept_language: str = ACCEPT_LANGUAGE
    client_hints: dict[str, str] = field(default_factory=dict)

    def headers(self) -> dict[str, str]:
        """Full header set for a top-level document navigation."""
        return {
            "accept": ACCEPT,
            "accept-language": self.accept_language,
            "cache-control": "max-age=0",
            **self.client_hints,
            "sec-fetch-dest": "document",
            "sec-fetch-mode": "navigate",
            "sec-fetch-site": "none",
            "sec-fetch-user": "?1",
            "upgrade-insecure-requests": "1",
            "user-agent": self.user_agent,
        }


def generate_identity(rng: random.Random | None = None) -> IdentityProfile:
    rng = rng or random
    version = rng.randint(CHROME_VERSION_MIN, CHROME_VERSION_MAX)
    platform = rng.choice(list(PLATFORMS))

    user_agent = (
        f"Mozilla/5.0 ({PLATFORMS[platform]}) AppleWebKit/537.36 "
        f"(KHTML, like Gecko) Chrome/{version}.0.0.0 Safari/537.36"
    )
    client_hints = {
        "sec-ch-ua": (
            f'"Google Chrome";v="{version}", "Chromium";v="{version}", '
            '"Not=A?Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": f'"{platform}"',
    }
    return IdentityProfile(
        chrome_version=version,
        platform=platform,
        user_agent=user_agent,
        client_hints=client_hints,
    )

"""Unit tests for listingscope.services.identity: randomized browser identities."""

import random
import re

from listingscope.services.identity import (
    CHROME_VERSION_MAX,
    CHROME_VERSION_MIN,
    PLATFORMS,
    generate_identity,
)


class TestGenerateIdentity:
    def test_version_within_range(self):
        """Chrome major version stays within the realistic range."""
        rng = random.Random(7)
        for _ in range(200):
            identity = generate_identity(rng)
            assert CHROME_VERSION_MIN <= identity.chrome_version <= CHROME_VERSION_MAX

    def test_user_agent_matches_client_hints(self):
        """The UA version equals every version asserted in sec-ch-ua."""
        rng = random.Random(42)
        for _ in range(100):
            identity = generate_identity(rng)
            ua_version = re.search(r"Chrome/(\d+)\.", identity.user_agent).group(1)
            hint_versions = set(re.findall(r'v="(\d+)"', identity.client_hints["sec-ch-ua"]))
            assert str(identity.chrome_version) == ua_version
            # "Not=A?Brand" carries its own fixed version
            assert hint_versions == {ua_version, "24"}

    def test_platform_consistent(self):
        """sec-ch-ua-platform names the OS the user agent claims."""
        rng = random.Random(3)
        for _ in range(50):
            identity = generate_identity(rng)
            assert identity.client_hints["sec-ch-ua-platform"] == f'"{identity.platform}"'
            assert PLATFORMS[identity.platform] in identity.user_agent

    def test_seeded_generation_is_reproducible(self):
        assert generate_identity(random.Random(1)) == generate_identity(random.Random(1))

    def test_headers_contain_identity(self):
        """headers() carries the UA, language and client hints."""
        identity = generate_identity(random.Random(5))
        headers = identity.headers()
        assert headers["user-agent"] == identity.user_agent
        assert headers["accept-language"] == "en-US,en;q=0.9"
        assert headers["sec-ch-ua"] == identity.client_hints["sec-ch-ua"]
        assert headers["sec-ch-ua-mobile"] == "?0"
        assert headers["sec-fetch-mode"] == "navigate"

    def test_default_rng(self):
        identity = generate_identity()
        assert identity.user_agent.startswith("Mozilla/5.0 (")

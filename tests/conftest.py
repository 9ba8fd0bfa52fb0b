"""
Pytest configuration and fixtures for Chatwarden tests.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from chatwarden.configuration.app_configuration import ModerationSettings  # noqa: E402
from chatwarden.datatypes.identity import Identity  # noqa: E402
from chatwarden.transport.local_transport import LocalTransport  # noqa: E402

GROUP = "6-3 of '25"
ADMIN = "6580480362@c.us"
OFFENDER = "6591234567@c.us"


def make_settings(tmp_path: Path, **overrides) -> ModerationSettings:
    values = dict(
        banned_terms=("fuck", "shit", "hell", "ass"),
        allowed_numbers=(Identity("6580480362"),),
        target_groups=(GROUP,),
        warnings_threshold=3,
        moderation_active=True,
        announce_on_ready=False,
        warnings_file=tmp_path / "warnings.json",
    )
    values.update(overrides)
    return ModerationSettings(**values)


@pytest.fixture()
def settings(tmp_path: Path) -> ModerationSettings:
    return make_settings(tmp_path)


@pytest.fixture()
def transport() -> LocalTransport:
    local = LocalTransport()
    local.add_group(GROUP, participants=[ADMIN, OFFENDER])
    return local


@pytest.fixture()
def settings_factory(tmp_path: Path):
    def factory(**overrides) -> ModerationSettings:
        return make_settings(tmp_path, **overrides)
    return factory

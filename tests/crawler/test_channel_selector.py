import pytest

from src.config import SelectionConfig
from src.crawler.channel_selector import select_channels
from src.models.retrieval import AttemptOutcome, AttemptRecord, ChannelId, FailureKind

pytestmark = pytest.mark.unit

DIRECT = ChannelId.DIRECT_BROWSER
REMOTE = ChannelId.REMOTE_BROWSER
RENDER = ChannelId.RENDERING_PROXY
UNBLOCK = ChannelId.UNBLOCK_PROXY
SNAPSHOT = ChannelId.SNAPSHOT


def _blocked(channel=DIRECT):
    return AttemptRecord(channel, AttemptOutcome.FAILURE, FailureKind.BLOCKED)


def test_plain_site_order(make_target):
    order = select_channels(make_target(), SelectionConfig())
    assert order == [DIRECT, RENDER, UNBLOCK, SNAPSHOT]


def test_archive_preferred_puts_snapshot_first(make_target):
    order = select_channels(make_target(archive_preferred=True), SelectionConfig())
    assert order[0] is SNAPSHOT
    assert order.count(SNAPSHOT) == 1


def test_forced_channel_is_the_only_channel(make_target):
    config = SelectionConfig(forced_channel=UNBLOCK)
    assert select_channels(make_target(known_blocked=True), config) == [UNBLOCK]


def test_aggressive_skips_direct_for_known_blocked(make_target):
    config = SelectionConfig(aggressive=True)
    assert DIRECT not in select_channels(make_target(known_blocked=True), config)
    assert DIRECT in select_channels(make_target(), config)


def test_remote_browser_needs_prior_challenge(make_target):
    target = make_target(known_blocked=True)
    assert REMOTE not in select_channels(target, SelectionConfig())

    order = select_channels(target, SelectionConfig(), history=[_blocked()])
    assert order[:2] == [DIRECT, REMOTE]


def test_remote_browser_uses_prior_attempts(make_target):
    target = make_target(known_blocked=True)
    target = type(target)(
        id=target.id,
        url=target.url,
        site_hints=target.site_hints,
        topic_keyword=target.topic_keyword,
        prior_attempts=(_blocked(RENDER),),
    )
    assert REMOTE in select_channels(target, SelectionConfig())


def test_challenge_on_unblocked_site_does_not_add_remote(make_target):
    order = select_channels(make_target(), SelectionConfig(), history=[_blocked()])
    assert REMOTE not in order


def test_unavailable_channels_are_dropped(make_target):
    order = select_channels(
        make_target(known_blocked=True),
        SelectionConfig(),
        history=[_blocked()],
        unavailable={REMOTE, DIRECT},
    )
    assert order == [RENDER, UNBLOCK, SNAPSHOT]


def test_budget_exhausted_remote_is_excluded(make_target, ledger):
    for _ in range(15):
        ledger.charge(REMOTE)
    ledger.begin_run()
    for _ in range(15):
        ledger.charge(REMOTE)
    assert ledger.state(REMOTE).sessions_used_today == 30
    assert not ledger.admit(REMOTE)

    unavailable = {c for c in ChannelId if not ledger.admit(c)}
    order = select_channels(
        make_target(known_blocked=True),
        SelectionConfig(),
        history=[_blocked()],
        unavailable=unavailable,
    )
    assert REMOTE not in order

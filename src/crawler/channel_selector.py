"""Pure mapping from a target and run configuration to a channel order."""

from __future__ import annotations

from typing import Iterable

from src.config import SelectionConfig
from src.models.retrieval import AttemptRecord, ChannelId, FailureKind, Target

DEFAULT_ORDER = (
    ChannelId.DIRECT_BROWSER,
    ChannelId.REMOTE_BROWSER,
    ChannelId.RENDERING_PROXY,
    ChannelId.UNBLOCK_PROXY,
    ChannelId.SNAPSHOT,
)


def hit_bot_challenge(attempts: Iterable[AttemptRecord]) -> bool:
    return any(a.error_kind is FailureKind.BLOCKED for a in attempts)


def select_channels(
    target: Target,
    config: SelectionConfig,
    history: Iterable[AttemptRecord] = (),
    unavailable: Iterable[ChannelId] = frozenset(),
) -> list[ChannelId]:
    """Return the ordered channels to try for ``target``.

    ``history`` is any attempts made during the current run on top of the
    target's ``prior_attempts``. ``unavailable`` holds channels that are
    budget-exhausted, health-exhausted or unconfigured; they are dropped
    from the order. A forced channel is returned on its own regardless.
    """
    if config.forced_channel is not None:
        return [config.forced_channel]

    hints = target.site_hints
    attempts = list(target.prior_attempts) + list(history)
    unavailable = set(unavailable)

    order: list[ChannelId] = []
    for channel in DEFAULT_ORDER:
        if channel is ChannelId.DIRECT_BROWSER:
            if config.aggressive and hints.known_blocked:
                continue
        elif channel is ChannelId.REMOTE_BROWSER:
            if not (hints.known_blocked and hit_bot_challenge(attempts)):
                continue
        order.append(channel)

    if hints.archive_preferred:
        order.remove(ChannelId.SNAPSHOT)
        order.insert(0, ChannelId.SNAPSHOT)

    return [c for c in order if c not in unavailable]

"""Social graph, feeds and channels.

Feeds and channels are views: they hold copies of Post records whose
content lives in the kernel content store. Post lists are ordered most
recent first.
"""

from __future__ import annotations

import logging
from typing import Any

from .addresses import Address, format_address
from .constants import AddressScheme, PERSONAL_FEED_PREFIX
from .errors import BlockedIdentityError, SelfFollowError
from .hashing import parse_timestamp
from .models import Channel, Feed, Post, SocialGraph

logger = logging.getLogger(__name__)


def personal_feed_id(did: str) -> str:
    """`personal_` plus the first 8 hex characters after `did:xhe:`."""
    return PERSONAL_FEED_PREFIX + did[len("did:xhe:"):][:8]


class SocialStore:
    """Follow/block graph, personal feeds and channels for one kernel."""

    def __init__(
        self,
        graph: SocialGraph | None = None,
        feeds: dict[str, Feed] | None = None,
        channels: dict[str, Channel] | None = None,
    ) -> None:
        self.graph = graph or SocialGraph()
        self.feeds: dict[str, Feed] = dict(feeds or {})
        self.channels: dict[str, Channel] = dict(channels or {})

    # ----- graph -----

    def follow(self, self_did: str, did: str) -> bool:
        """Add did to following.

        Returns:
            False if already following (no change), True if added.

        Raises:
            SelfFollowError: did is the current identity.
            BlockedIdentityError: did is blocked.
        """
        if did == self_did:
            raise SelfFollowError(did)
        if did in self.graph.following:
            return False
        if did in self.graph.blocked:
            raise BlockedIdentityError(did)
        self.graph.following.append(did)
        return True

    def unfollow(self, did: str) -> bool:
        """Remove did from following. Returns whether it was present."""
        if did not in self.graph.following:
            return False
        self.graph.following.remove(did)
        return True

    def block(self, self_did: str, did: str) -> bool:
        """Block did and drop it from following.

        Raises:
            SelfFollowError: did is the current identity.
        """
        if did == self_did:
            raise SelfFollowError(did, action="block")
        if did in self.graph.following:
            self.graph.following.remove(did)
        if did in self.graph.blocked:
            return False
        self.graph.blocked.append(did)
        return True

    def unblock(self, did: str) -> bool:
        if did not in self.graph.blocked:
            return False
        self.graph.blocked.remove(did)
        return True

    def knows(self, did: str) -> bool:
        return did in self.graph.following or did in self.graph.followers

    # ----- feeds and channels -----

    def publish(self, post: Post, owner: str) -> bool:
        """Prepend post to owner's personal feed and to its channel, if any.

        The personal feed is created on first use.

        Returns:
            True if the post also landed in a channel.
        """
        feed_id = personal_feed_id(owner)
        feed = self.feeds.get(feed_id)
        if feed is None:
            feed = Feed(id=feed_id, owner=owner, created=post.timestamp)
            self.feeds[feed_id] = feed
        feed.posts.insert(0, post)

        if post.channel and post.channel in self.channels:
            self.channels[post.channel].posts.insert(0, post)
            return True
        if post.channel:
            logger.info("Post %s names unknown channel %s; kept in feed only", post.id, post.channel)
        return False

    def create_channel(
        self,
        channel_id: str,
        name: str,
        description: str,
        owner: str,
        created: str,
    ) -> Channel:
        channel = Channel(
            id=channel_id,
            name=name,
            description=description,
            owner=owner,
            created=created,
            members=[owner],
            address=format_address(Address(AddressScheme.CHANNEL, channel_id)),
        )
        self.channels[channel_id] = channel
        return channel

    def personal_feed(self, did: str) -> Feed | None:
        return self.feeds.get(personal_feed_id(did))

    def global_feed(self, limit: int = 50) -> list[Post]:
        """Union of feed and channel posts, one per content hash, newest first."""
        if limit <= 0:
            return []
        seen: set[str] = set()
        unique: list[Post] = []
        for source in [*self.feeds.values(), *self.channels.values()]:
            for post in source.posts:
                if post.hash in seen:
                    continue
                seen.add(post.hash)
                unique.append(post)
        unique.sort(key=lambda p: parse_timestamp(p.timestamp), reverse=True)
        return unique[:limit]

    # ----- persistence -----

    def feeds_dict(self) -> dict[str, Any]:
        return {feed_id: feed.to_dict() for feed_id, feed in self.feeds.items()}

    def channels_dict(self) -> dict[str, Any]:
        return {cid: channel.to_dict() for cid, channel in self.channels.items()}

    @classmethod
    def from_dicts(
        cls,
        graph: dict[str, Any],
        feeds: dict[str, Any],
        channels: dict[str, Any],
    ) -> SocialStore:
        loaded_feeds: dict[str, Feed] = {}
        for feed_id, raw in feeds.items():
            try:
                loaded_feeds[feed_id] = Feed.from_dict(raw)
            except (KeyError, TypeError) as e:
                logger.error("Dropping unreadable feed %s: %s", feed_id, e)
        loaded_channels: dict[str, Channel] = {}
        for cid, raw in channels.items():
            try:
                loaded_channels[cid] = Channel.from_dict(raw)
            except (KeyError, TypeError) as e:
                logger.error("Dropping unreadable channel %s: %s", cid, e)
        return cls(SocialGraph.from_dict(graph), loaded_feeds, loaded_channels)
